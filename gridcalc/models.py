from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, StrictStr

FORMULA_MARKER = "="


class RecalcState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class Cell(BaseModel):
    """One grid cell: a literal, or a formula plus its last computed value."""
    stored_value: str = ""
    formula_text: str = ""

    @property
    def is_formula(self) -> bool:
        return bool(self.formula_text)

    @property
    def editable_text(self) -> str:
        return self.formula_text if self.formula_text else self.stored_value

    @classmethod
    def from_text(cls, text: str) -> "Cell":
        raw = text.strip()
        if raw.startswith(FORMULA_MARKER):
            return cls(stored_value="", formula_text=raw)
        return cls(stored_value=raw)


class SerializedCell(BaseModel):
    """Persisted shape of a cell. Strict so malformed saves are rejected, not coerced."""
    model_config = ConfigDict(extra="forbid")

    stored_value: StrictStr
    formula_text: StrictStr


class CellUpdate(BaseModel):
    row: int
    col: int
    display: str


class SheetSnapshot(BaseModel):
    n_rows: int
    n_cols: int
    headers: List[str] = Field(default_factory=list)
    rows: List[List[Cell]] = Field(default_factory=list)
    state: RecalcState = RecalcState.IDLE


class CellView(BaseModel):
    row: int
    col: int
    text: str
    display: str


class CellEdit(BaseModel):
    row: int
    col: int
    text: str


class FormulaPreview(BaseModel):
    formula: str


class FormulaResult(BaseModel):
    formula: str
    result: str


class Selection(BaseModel):
    columns: List[str]  # column letters, e.g. ["A", "C"]
    row_start: int  # 1-based, inclusive
    row_end: int


class SelectionAggregate(BaseModel):
    selection: Selection
    func: str  # SUM | AVERAGE | MAX | MIN | COUNT


class SelectionQuality(BaseModel):
    selection: Selection
    kind: str  # trim | upper | lower


class SelectionReplace(BaseModel):
    selection: Selection
    find: str
    replace: str = ""


class RowSpan(BaseModel):
    row_start: int
    row_end: int


class SaveRequest(BaseModel):
    key: Optional[str] = None
