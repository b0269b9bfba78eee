"""Error types shared by the grid, formula and persistence layers.

Formula failures never leave the evaluator as exceptions; they are turned
into sentinel strings stored in the cell. Only structural and persistence
failures reach the caller.
"""


class GridError(Exception):
    """Base for all gridcalc errors."""


class InvalidAddress(GridError):
    """Text is not a letters+digits cell address (or a range of them)."""


class OutOfBounds(GridError):
    """Direct grid access outside the current dimensions."""

    def __init__(self, row: int, col: int, n_rows: int, n_cols: int):
        super().__init__(f"Cell ({row}, {col}) outside {n_rows}x{n_cols} grid")
        self.row = row
        self.col = col


class CorruptState(GridError):
    """Persisted grid data failed shape validation."""


class FormulaSyntaxError(GridError):
    """Arithmetic text could not be parsed. Converted to #ERROR! by the evaluator."""
