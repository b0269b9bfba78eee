"""Bulk operations over a column/row selection of a sheet.

A selection names columns by letter and an inclusive 1-based row span,
the way a user types it into the toolbar.
"""

import logging
from typing import List

from gridcalc.engine import SpreadsheetEngine
from gridcalc.formula import aggregate, column_name_to_index
from gridcalc.models import CellUpdate, Selection

logger = logging.getLogger(__name__)

DATA_QUALITY = {
    "trim": str.strip,
    "upper": str.upper,
    "lower": str.lower,
}


def selected_cells(engine: SpreadsheetEngine, selection: Selection) -> list[tuple[int, int]]:
    """(row, col) pairs inside the grid, rows outer, columns in the given order."""
    cols = [column_name_to_index(letters.strip()) for letters in selection.columns]
    grid = engine.grid
    return [
        (r, c)
        for r in range(selection.row_start - 1, selection.row_end)
        for c in cols
        if grid.in_bounds(r, c)
    ]


def aggregate_selection(engine: SpreadsheetEngine, selection: Selection, func: str) -> float | str:
    texts = [engine.get_display_text(r, c) for r, c in selected_cells(engine, selection)]
    return aggregate(func, texts)


def apply_data_quality(engine: SpreadsheetEngine, selection: Selection, kind: str) -> List[CellUpdate]:
    transform = DATA_QUALITY.get(kind.lower())
    if transform is None:
        raise ValueError(f"Unknown data quality operation: {kind!r}. Available: {list(DATA_QUALITY)}")
    edits = [
        (r, c, transform(engine.get_cell_text(r, c)))
        for r, c in selected_cells(engine, selection)
    ]
    logger.info("Applied %s to %d cells", kind, len(edits))
    return engine.edit_cells(edits)


def find_replace(engine: SpreadsheetEngine, selection: Selection, find: str, replace: str) -> List[CellUpdate]:
    if not find:
        raise ValueError("Text to find must not be empty")
    edits = []
    for r, c in selected_cells(engine, selection):
        text = engine.get_cell_text(r, c)
        if find in text:
            edits.append((r, c, text.replace(find, replace)))
    logger.info("Replaced %r in %d cells", find, len(edits))
    return engine.edit_cells(edits)


def remove_duplicates(engine: SpreadsheetEngine, row_start: int, row_end: int) -> List[CellUpdate]:
    """Clear every row in the span that repeats an earlier row's cell text.

    Rows compare by editable text, so a formula row and a literal row with
    the same displayed values are both kept.
    """
    grid = engine.grid
    seen: set[tuple[str, ...]] = set()
    edits = []
    for r in range(max(row_start - 1, 0), min(row_end, grid.n_rows)):
        key = tuple(grid.get(r, c).editable_text for c in range(grid.n_cols))
        if key in seen:
            edits.extend((r, c, "") for c in range(grid.n_cols))
        else:
            seen.add(key)
    logger.info("Cleared %d duplicate rows", len(edits) // max(grid.n_cols, 1))
    return engine.edit_cells(edits)
