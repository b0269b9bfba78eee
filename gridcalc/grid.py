import logging
from typing import Iterator

from gridcalc.errors import OutOfBounds
from gridcalc.models import Cell

logger = logging.getLogger(__name__)


class GridStore:
    """Rectangular row-major matrix of cells.

    Column count is tracked separately so a grid with zero rows still
    knows how wide a newly appended row must be.
    """

    def __init__(self, rows: int, cols: int):
        self._rows: list[list[Cell]] = []
        self._n_cols = 0
        self.resize_to(rows, cols)

    @property
    def n_rows(self) -> int:
        return len(self._rows)

    @property
    def n_cols(self) -> int:
        return self._n_cols

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < len(self._rows) and 0 <= col < self._n_cols

    def _check(self, row: int, col: int) -> None:
        if not self.in_bounds(row, col):
            raise OutOfBounds(row, col, self.n_rows, self.n_cols)

    def get(self, row: int, col: int) -> Cell:
        self._check(row, col)
        return self._rows[row][col]

    def set(self, row: int, col: int, cell: Cell) -> None:
        self._check(row, col)
        self._rows[row][col] = cell

    def cells(self) -> Iterator[tuple[int, int, Cell]]:
        """Yield (row, col, cell) in row-major order."""
        for r, row in enumerate(self._rows):
            for c, cell in enumerate(row):
                yield r, c, cell

    def rows(self) -> list[list[Cell]]:
        return [list(row) for row in self._rows]

    # ── Structural mutations ──────────────────────────────────────

    def append_row(self) -> list[Cell]:
        row = [Cell() for _ in range(self._n_cols)]
        self._rows.append(row)
        return row

    def remove_last_row(self) -> bool:
        if not self._rows:
            return False
        self._rows.pop()
        return True

    def append_column(self) -> list[Cell]:
        added = []
        for row in self._rows:
            cell = Cell()
            row.append(cell)
            added.append(cell)
        self._n_cols += 1
        return added

    def remove_last_column(self) -> bool:
        if self._n_cols == 0:
            return False
        for row in self._rows:
            row.pop()
        self._n_cols -= 1
        return True

    def resize_to(self, rows: int, cols: int) -> None:
        """Replace the grid with a fresh rows x cols grid of empty literals."""
        if rows < 0 or cols < 0:
            raise ValueError(f"Grid size must be non-negative, got {rows}x{cols}")
        self._rows = [[Cell() for _ in range(cols)] for _ in range(rows)]
        self._n_cols = cols
        logger.debug("Grid resized to %dx%d", rows, cols)
