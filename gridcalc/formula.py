"""Formula engine for gridcalc sheets.

Supports: +, -, *, /, unary -, parentheses, cell refs (A1), and
SUM / AVERAGE / MAX / MIN / COUNT over a ref or a range (A1:B3).

Sentinels written to cells:
  #ERROR!  malformed expression or reference
  #FUNC?   unknown function name

References outside the grid read as blank, so evaluation is total.
"""

import logging
import math
import re
from typing import NamedTuple

from gridcalc.errors import FormulaSyntaxError, GridError, InvalidAddress
from gridcalc.grid import GridStore

logger = logging.getLogger(__name__)

ERROR_SENTINEL = "#ERROR!"
FUNC_SENTINEL = "#FUNC?"

FUNCTIONS = frozenset(("SUM", "AVERAGE", "MAX", "MIN", "COUNT"))

# Largest rectangle a single range may enumerate
MAX_RANGE_CELLS = 1_000_000


# ── Helpers ───────────────────────────────────────────────────────

_COLUMN_RE = re.compile(r'[A-Za-z]+')
_ADDRESS_RE = re.compile(r'([A-Za-z]+)([0-9]+)')
_BARE_REF_RE = re.compile(r'[A-Z]+[0-9]+')
_FUNC_RE = re.compile(r'\s*([A-Z]+)\s*\(([^()]*)\)\s*')
_NUMBER = r'(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?'
_NUMBER_RE = re.compile(_NUMBER)
_NUMERIC_TEXT_RE = re.compile(r'[+-]?' + _NUMBER)


class Address(NamedTuple):
    row: int
    col: int


def column_index_to_name(index: int) -> str:
    """0->A, 1->B, ..., 25->Z, 26->AA."""
    if index < 0:
        raise InvalidAddress(f"Column index must be >= 0: {index}")
    result = ""
    index += 1
    while index > 0:
        index, rem = divmod(index - 1, 26)
        result = chr(rem + ord('A')) + result
    return result


def column_name_to_index(letters: str) -> int:
    """A->0, B->1, ..., Z->25, AA->26."""
    if not _COLUMN_RE.fullmatch(letters):
        raise InvalidAddress(f"Bad column letters: {letters!r}")
    n = 0
    for ch in letters.upper():
        n = n * 26 + (ord(ch) - ord('A') + 1)
    return n - 1


def parse_address(text: str) -> Address:
    """'A1' -> Address(row=0, col=0). Raises InvalidAddress on bad input.

    Row digits '0' give row -1, which is just out of bounds.
    """
    m = _ADDRESS_RE.fullmatch(text.strip())
    if not m:
        raise InvalidAddress(f"Bad cell reference: {text!r}")
    return Address(int(m.group(2)) - 1, column_name_to_index(m.group(1)))


def resolve_range(text: str) -> list[Address]:
    """'A1:B2' -> [(0,0), (0,1), (1,0), (1,1)].

    Enumeration is ascending only: a range whose start lies after its end
    on either axis is empty.
    """
    parts = text.split(':')
    if len(parts) == 1:
        return [parse_address(parts[0])]
    if len(parts) != 2:
        raise InvalidAddress(f"Bad range: {text!r}")
    start = parse_address(parts[0])
    end = parse_address(parts[1])
    n_rows = max(0, end.row - start.row + 1)
    n_cols = max(0, end.col - start.col + 1)
    if n_rows * n_cols > MAX_RANGE_CELLS:
        raise InvalidAddress(f"Range too large: {text!r}")
    return [
        Address(r, c)
        for r in range(start.row, end.row + 1)
        for c in range(start.col, end.col + 1)
    ]


def _stored_text(grid: GridStore, address: Address) -> str:
    if grid.in_bounds(address.row, address.col):
        return grid.get(address.row, address.col).stored_value
    return ""


def resolve_values(text: str, grid: GridStore) -> list[str]:
    """Stored text of every cell in the range; '' for cells outside the grid."""
    return [_stored_text(grid, address) for address in resolve_range(text)]


def to_number(text: str) -> float | None:
    """Parse stored text as a finite float, None if it is not one.

    The whole text must be a plain decimal ('12', '-0.5', '1e-05');
    '1_000', ' 3' and '12kg' are not numbers.
    """
    if not isinstance(text, str) or not _NUMERIC_TEXT_RE.fullmatch(text):
        return None
    value = float(text)
    return value if math.isfinite(value) else None


def format_result(value: float | str) -> str:
    """Format an evaluation result as stored cell text.

    Dependent formulas read this text back, so it must round-trip exactly.
    """
    if isinstance(value, str):
        return value
    if not math.isfinite(value):
        return str(value)
    if value == int(value) and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


# ── Aggregates ────────────────────────────────────────────────────

def _average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


_AGGREGATES = {
    'SUM': lambda values: float(sum(values)),
    'AVERAGE': _average,
    'MAX': lambda values: max(values) if values else 0.0,
    'MIN': lambda values: min(values) if values else 0.0,
}


def aggregate(name: str, texts: list[str]) -> float | str:
    """Apply a named aggregate to raw cell texts.

    COUNT counts entries that parse as finite numbers; the others read
    anything unparsable as 0. Unknown names give #FUNC?.
    """
    name = name.upper()
    if name == 'COUNT':
        return float(sum(1 for t in texts if to_number(t) is not None))
    func = _AGGREGATES.get(name)
    if func is None:
        return FUNC_SENTINEL
    values = [v if v is not None else 0.0 for v in map(to_number, texts)]
    return func(values)


# ── Arithmetic parser (recursive descent, no eval()) ──────────────

def _divide(left: float, right: float) -> float:
    # IEEE semantics instead of ZeroDivisionError
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
    return left / right


class _Parser:
    """Parses and evaluates: +, -, *, /, unary +/-, parentheses, numbers."""
    __slots__ = ('text', 'pos', 'depth')

    MAX_NESTING = 100

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.depth = 0

    def _peek(self):
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1
        return self.text[self.pos] if self.pos < len(self.text) else None

    def _eat(self, expected=None):
        ch = self._peek()
        if ch is None:
            raise FormulaSyntaxError("Unexpected end of expression")
        if expected and ch != expected:
            raise FormulaSyntaxError(f"Expected '{expected}', got '{ch}'")
        self.pos += 1
        return ch

    def _number(self) -> float:
        self._peek()
        m = _NUMBER_RE.match(self.text, self.pos)
        if not m:
            raise FormulaSyntaxError(
                f"Expected number at pos {self.pos}"
                + (f", got '{self.text[self.pos]}'" if self.pos < len(self.text) else "")
            )
        self.pos = m.end()
        return float(m.group(0))

    def _factor(self) -> float:
        sign = 1.0
        while self._peek() in ('+', '-'):
            if self._eat() == '-':
                sign = -sign
        if self._peek() == '(':
            self._eat('(')
            self.depth += 1
            if self.depth > self.MAX_NESTING:
                raise FormulaSyntaxError("Expression nested too deeply")
            val = self._expr()
            self._eat(')')
            self.depth -= 1
            return sign * val
        return sign * self._number()

    def _term(self) -> float:
        left = self._factor()
        while self._peek() in ('*', '/'):
            op = self._eat()
            right = self._factor()
            left = left * right if op == '*' else _divide(left, right)
        return left

    def _expr(self) -> float:
        left = self._term()
        while self._peek() in ('+', '-'):
            op = self._eat()
            right = self._term()
            left = left + right if op == '+' else left - right
        return left

    def parse(self) -> float:
        if self._peek() is None:
            raise FormulaSyntaxError("Empty expression")
        result = self._expr()
        if self._peek() is not None:
            raise FormulaSyntaxError(f"Unexpected '{self.text[self.pos]}' at pos {self.pos}")
        return result


# ── Formula evaluation ────────────────────────────────────────────

def _ref_literal(grid: GridStore, ref: str) -> str:
    value = to_number(_stored_text(grid, parse_address(ref)))
    return repr(value if value is not None else 0.0)


def evaluate(expression: str, grid: GridStore) -> float | str:
    """Evaluate formula text (leading '=' already stripped) against *grid*.

    A whole-text FUNC(range) call is an aggregate; anything else is
    arithmetic after every cell ref has been replaced by its numeric value.
    Returns a float or a sentinel string and never raises.
    """
    expr = expression.strip().upper()
    try:
        m = _FUNC_RE.fullmatch(expr)
        if m:
            name = m.group(1)
            if name not in FUNCTIONS:
                return FUNC_SENTINEL
            return aggregate(name, resolve_values(m.group(2), grid))

        substituted = _BARE_REF_RE.sub(lambda ref: _ref_literal(grid, ref.group(0)), expr)
        return _Parser(substituted).parse()
    except GridError as e:
        logger.debug("Formula %r evaluated to %s: %s", expression, ERROR_SENTINEL, e)
        return ERROR_SENTINEL
