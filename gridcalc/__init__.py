"""Grid-of-cells calculator: address codec, formula evaluation and recalculation."""

from gridcalc.engine import SpreadsheetEngine
from gridcalc.errors import CorruptState, GridError, InvalidAddress, OutOfBounds

__version__ = "0.1.0"

__all__ = ["SpreadsheetEngine", "GridError", "InvalidAddress", "OutOfBounds", "CorruptState"]
