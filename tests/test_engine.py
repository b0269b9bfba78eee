"""Tests for the recalculation pass, cell editing and the persistence boundary."""

import pytest

from conftest import put, shown
from gridcalc.engine import SpreadsheetEngine
from gridcalc.errors import CorruptState, OutOfBounds
from gridcalc.models import CellUpdate, RecalcState


def _formula_values(engine: SpreadsheetEngine) -> dict:
    return {(r, c): cell.stored_value for r, c, cell in engine.grid.cells() if cell.is_formula}


class TestEditing:
    def test_literal_and_formula_classification(self, engine):
        put(engine, "A1", "  42 ")
        put(engine, "B1", " =A1*2")
        a1 = engine.grid.get(0, 0)
        b1 = engine.grid.get(0, 1)
        assert (a1.stored_value, a1.formula_text) == ("42", "")
        assert b1.formula_text == "=A1*2"
        assert b1.stored_value == "84"

    def test_edit_returns_formula_updates(self, engine):
        put(engine, "A1", "=1+1")
        updates = put(engine, "B2", "=A1*10")
        assert updates == [
            CellUpdate(row=0, col=0, display="2"),
            CellUpdate(row=1, col=1, display="20"),
        ]

    def test_formula_becomes_literal_on_edit(self, engine):
        put(engine, "A1", "=2*3")
        put(engine, "A1", "hello")
        assert engine.grid.get(0, 0).formula_text == ""
        assert engine.recalc_all() == []
        assert shown(engine, "A1") == "hello"

    def test_editable_text(self, engine):
        put(engine, "A1", "7")
        put(engine, "A2", "=A1+1")
        assert engine.get_cell_text(0, 0) == "7"
        assert engine.get_cell_text(1, 0) == "=A1+1"
        assert engine.get_display_text(1, 0) == "8"

    def test_sentinels_are_stored_as_values(self, engine):
        put(engine, "A1", "=FOO(A2:A3)")
        put(engine, "A2", "=A1+(")
        put(engine, "A3", "=A1+1")
        assert shown(engine, "A1") == "#FUNC?"
        assert shown(engine, "A2") == "#ERROR!"
        assert shown(engine, "A3") == "1"

    def test_out_of_bounds_edit(self, engine):
        with pytest.raises(OutOfBounds):
            engine.set_cell_text(5, 0, "1")
        with pytest.raises(OutOfBounds):
            engine.get_cell_text(0, -1)

    def test_edit_cells_recalculates_once(self):
        seen = []
        engine = SpreadsheetEngine(3, 3, on_cell_update=seen.append)
        engine.edit_cells([(0, 0, "=1"), (0, 1, "=2"), (0, 2, "5")])
        assert [u.display for u in seen] == ["1", "2"]

    def test_evaluate_formula_does_not_store(self, engine):
        put(engine, "A1", "4")
        assert engine.evaluate_formula("=A1*A1") == "16"
        assert engine.evaluate_formula("SUM(A1:A2)") == "4"
        assert _formula_values(engine) == {}


class TestRecalculation:
    def test_row_major_sweep_uses_stale_later_values(self, engine):
        # A1 reads A2, which comes later in row-major order
        put(engine, "A1", "=A2")
        put(engine, "A2", "=3")
        assert shown(engine, "A1") == "0"
        assert shown(engine, "A2") == "3"
        engine.recalc_all()
        assert shown(engine, "A1") == "3"

    def test_earlier_cells_are_fresh(self, engine):
        put(engine, "A1", "=3")
        put(engine, "A2", "=A1+1")
        put(engine, "A1", "=10")
        assert shown(engine, "A2") == "11"

    def test_idempotent(self, engine):
        put(engine, "A1", "2")
        put(engine, "A2", "=A1*5")
        put(engine, "B3", "=SUM(A1:A2)")
        put(engine, "C1", "=AVERAGE(A1:B3)")
        first = engine.recalc_all()
        values = _formula_values(engine)
        second = engine.recalc_all()
        assert first == second
        assert _formula_values(engine) == values

    def test_chained_formulas_keep_full_precision(self, engine):
        put(engine, "A1", "=12345.678901")
        put(engine, "B1", "=A1*1000000")
        put(engine, "C1", "=0.1+0.2")
        put(engine, "D1", "=C1*10")
        assert shown(engine, "A1") == "12345.678901"
        assert float(shown(engine, "B1")) == 12345.678901 * 1000000
        assert float(shown(engine, "B1")) == pytest.approx(12345678901, rel=1e-15)
        assert float(shown(engine, "D1")) == (0.1 + 0.2) * 10

    def test_reentrant_call_is_dropped(self):
        inner_results = []
        states = []

        def listener(update):
            states.append(engine.state)
            inner_results.append(engine.recalc_all())

        engine = SpreadsheetEngine(2, 2, on_cell_update=listener)
        engine.grid.get(0, 0).formula_text = "=1"
        engine.grid.get(1, 1).formula_text = "=A1+1"
        updates = engine.recalc_all()

        assert len(updates) == 2
        assert inner_results == [[], []]
        assert states == [RecalcState.RUNNING, RecalcState.RUNNING]
        assert engine.state is RecalcState.IDLE

    def test_edit_from_listener_is_picked_up_by_running_sweep(self):
        def listener(update):
            if update.col == 0:
                assert engine.set_cell_text(0, 1, "=99") == []

        engine = SpreadsheetEngine(1, 2, on_cell_update=listener)
        engine.set_cell_text(0, 0, "=1")
        assert engine.get_cell_text(0, 1) == "=99"
        assert engine.get_display_text(0, 1) == "99"

    def test_state_resets_when_listener_fails(self):
        def listener(update):
            raise RuntimeError("presentation layer failed")

        engine = SpreadsheetEngine(1, 1, on_cell_update=listener)
        engine.grid.get(0, 0).formula_text = "=1"
        with pytest.raises(RuntimeError):
            engine.recalc_all()
        assert engine.state is RecalcState.IDLE


class TestStructure:
    def test_add_row_yields_placeholders(self, engine):
        updates = engine.add_row()
        assert engine.grid.n_rows == 6
        assert updates == [CellUpdate(row=5, col=c, display="") for c in range(5)]

    def test_add_column_yields_placeholders(self, engine):
        updates = engine.add_column()
        assert engine.grid.n_cols == 6
        assert updates == [CellUpdate(row=r, col=5, display="") for r in range(5)]

    def test_append_then_remove_column_preserves_contents(self, engine):
        put(engine, "A1", "1")
        put(engine, "E5", "=A1+1")
        before = engine.serialize()
        engine.add_column()
        assert engine.remove_column() is True
        assert engine.serialize() == before
        assert (engine.grid.n_rows, engine.grid.n_cols) == (5, 5)

    def test_remove_on_empty_grid_is_noop(self):
        engine = SpreadsheetEngine(0, 0)
        assert engine.remove_row() is False
        assert engine.remove_column() is False
        assert (engine.grid.n_rows, engine.grid.n_cols) == (0, 0)

    def test_removed_row_reads_blank(self, engine):
        put(engine, "A5", "9")
        put(engine, "A1", "=A5")
        engine.remove_row()
        assert engine.recalc_all() == [CellUpdate(row=0, col=0, display="0")]


class TestPersistence:
    def test_round_trip(self, engine):
        put(engine, "A1", "3")
        put(engine, "B1", "text")
        put(engine, "C2", "=A1*2")
        data = engine.serialize()

        restored = SpreadsheetEngine(1, 1)
        restored.deserialize(data)
        assert restored.serialize() == data
        assert (restored.grid.n_rows, restored.grid.n_cols) == (5, 5)

    def test_deserialize_recalculates(self):
        engine = SpreadsheetEngine(1, 1)
        updates = engine.deserialize([
            [{"stored_value": "2", "formula_text": ""}, {"stored_value": "stale", "formula_text": "=A1*3"}],
        ])
        assert updates == [CellUpdate(row=0, col=1, display="6")]

    def test_empty_payload(self, engine):
        engine.deserialize([])
        assert (engine.grid.n_rows, engine.grid.n_cols) == (0, 0)

    @pytest.mark.parametrize("data", [
        None,
        "not a grid",
        {"rows": []},
        [{"stored_value": "", "formula_text": ""}],
        [[{"stored_value": "", "formula_text": ""}], []],
        [[{"stored_value": ""}]],
        [[{"stored_value": "", "formula_text": "", "bold": True}]],
        [[{"stored_value": 5, "formula_text": ""}]],
        [[{"stored_value": "", "formula_text": "A1+1"}]],
    ])
    def test_corrupt_payload_leaves_grid_unchanged(self, engine, data):
        put(engine, "A1", "1")
        put(engine, "B1", "=A1+1")
        before = engine.serialize()
        with pytest.raises(CorruptState):
            engine.deserialize(data)
        assert engine.serialize() == before
