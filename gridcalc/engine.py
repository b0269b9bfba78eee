import logging
from typing import Any, Callable, Iterable, List, Optional

from pydantic import TypeAdapter, ValidationError

from gridcalc.errors import CorruptState
from gridcalc.formula import evaluate, format_result
from gridcalc.grid import GridStore
from gridcalc.models import FORMULA_MARKER, Cell, CellUpdate, RecalcState, SerializedCell

logger = logging.getLogger(__name__)

CellListener = Callable[[CellUpdate], None]

_PERSISTED_GRID = TypeAdapter(List[List[SerializedCell]])


class SpreadsheetEngine:
    """A single sheet: the grid store plus its recalculation state machine.

    recalc_all() is a plain row-major sweep with no dependency ordering.
    A formula sees fresh values for cells earlier in row-major order and
    the previous sweep's values for cells after it.
    """

    def __init__(self, rows: int, cols: int, on_cell_update: Optional[CellListener] = None):
        self.grid = GridStore(rows, cols)
        self.on_cell_update = on_cell_update
        self._state = RecalcState.IDLE

    @property
    def state(self) -> RecalcState:
        return self._state

    # ── Cell access ──────────────────────────────────────────────

    def get_cell_text(self, row: int, col: int) -> str:
        """Text shown when editing: the formula if any, else the literal."""
        return self.grid.get(row, col).editable_text

    def get_display_text(self, row: int, col: int) -> str:
        return self.grid.get(row, col).stored_value

    def set_cell_text(self, row: int, col: int, text: str) -> List[CellUpdate]:
        self.grid.set(row, col, Cell.from_text(text))
        return self.recalc_all()

    def edit_cells(self, edits: Iterable[tuple[int, int, str]]) -> List[CellUpdate]:
        """Apply several edits, then recalculate once."""
        for row, col, text in edits:
            self.grid.set(row, col, Cell.from_text(text))
        return self.recalc_all()

    def evaluate_formula(self, text: str) -> str:
        """Evaluate an '=' expression against the grid without storing it."""
        raw = text.strip()
        if raw.startswith(FORMULA_MARKER):
            raw = raw[len(FORMULA_MARKER):]
        return format_result(evaluate(raw, self.grid))

    # ── Recalculation ────────────────────────────────────────────

    def recalc_all(self) -> List[CellUpdate]:
        """Re-evaluate every formula cell in row-major order.

        A call made while a pass is already running is dropped.
        """
        if self._state is RecalcState.RUNNING:
            logger.debug("Recalculation already running; request dropped")
            return []

        self._state = RecalcState.RUNNING
        updates: List[CellUpdate] = []
        try:
            for r, c, cell in self.grid.cells():
                if not cell.is_formula:
                    continue
                result = evaluate(cell.formula_text[len(FORMULA_MARKER):], self.grid)
                cell.stored_value = format_result(result)
                update = CellUpdate(row=r, col=c, display=cell.stored_value)
                updates.append(update)
                if self.on_cell_update is not None:
                    self.on_cell_update(update)
        finally:
            self._state = RecalcState.IDLE
        logger.debug("Recalculated %d formula cells", len(updates))
        return updates

    # ── Structure ────────────────────────────────────────────────

    def add_row(self) -> List[CellUpdate]:
        cells = self.grid.append_row()
        r = self.grid.n_rows - 1
        return [CellUpdate(row=r, col=c, display=cell.stored_value) for c, cell in enumerate(cells)]

    def remove_row(self) -> bool:
        return self.grid.remove_last_row()

    def add_column(self) -> List[CellUpdate]:
        cells = self.grid.append_column()
        c = self.grid.n_cols - 1
        return [CellUpdate(row=r, col=c, display=cell.stored_value) for r, cell in enumerate(cells)]

    def remove_column(self) -> bool:
        return self.grid.remove_last_column()

    # ── Persistence boundary ─────────────────────────────────────

    def serialize(self) -> list[list[dict]]:
        return [[cell.model_dump() for cell in row] for row in self.grid.rows()]

    def deserialize(self, data: Any) -> List[CellUpdate]:
        """Rebuild the grid from serialize() output, then recalculate.

        The whole payload is validated before the grid is touched, so a
        CorruptState leaves the current sheet as it was.
        """
        try:
            rows = _PERSISTED_GRID.validate_python(data)
        except ValidationError as e:
            raise CorruptState(f"Saved sheet has an invalid shape: {e.error_count()} error(s)") from e

        n_cols = len(rows[0]) if rows else 0
        for r, row in enumerate(rows):
            if len(row) != n_cols:
                raise CorruptState(f"Row {r} has {len(row)} cells, expected {n_cols}")
            for c, cell in enumerate(row):
                if cell.formula_text and not cell.formula_text.startswith(FORMULA_MARKER):
                    raise CorruptState(f"Cell ({r}, {c}) has a formula without '{FORMULA_MARKER}'")

        self.grid.resize_to(len(rows), n_cols)
        for r, row in enumerate(rows):
            for c, cell in enumerate(row):
                self.grid.set(r, c, Cell(stored_value=cell.stored_value, formula_text=cell.formula_text))
        logger.info("Loaded %dx%d sheet", len(rows), n_cols)
        return self.recalc_all()
