import pytest

from gridcalc.engine import SpreadsheetEngine
from gridcalc.formula import parse_address
from gridcalc.grid import GridStore
from gridcalc.models import Cell


def make_grid(values: dict, rows: int = 5, cols: int = 5) -> GridStore:
    """Grid with literal values placed by address, e.g. {"A1": "3"}."""
    grid = GridStore(rows, cols)
    for ref, text in values.items():
        r, c = parse_address(ref)
        grid.set(r, c, Cell(stored_value=text))
    return grid


def put(engine: SpreadsheetEngine, ref: str, text: str):
    r, c = parse_address(ref)
    return engine.set_cell_text(r, c, text)


def shown(engine: SpreadsheetEngine, ref: str) -> str:
    r, c = parse_address(ref)
    return engine.get_display_text(r, c)


@pytest.fixture
def engine() -> SpreadsheetEngine:
    return SpreadsheetEngine(rows=5, cols=5)
