"""
Utility functions for MissionLedger application
"""
from __future__ import annotations
import math
import os
import re
import uuid
from datetime import date, datetime
from typing import Any, List, Optional, Tuple

# Arabic-Indic (U+0660..) and Extended Arabic-Indic / Persian (U+06F0..) digits
_DIGIT_TABLE = str.maketrans(
    "٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹",
    "01234567890123456789",
)
# thousands separators: ASCII comma, Arabic thousands separator, Arabic comma, spaces
_THOUSANDS_RE = re.compile(r"[,٬،\s ]")


def today_str() -> str:
    """Get today's date as ISO string"""
    return date.today().isoformat()


def now_iso() -> str:
    """Current local timestamp, seconds precision"""
    return datetime.now().replace(microsecond=0).isoformat()


def parse_date(s: str) -> date:
    """Parse YYYY-MM-DD date string"""
    return datetime.strptime(s.strip(), "%Y-%m-%d").date()


def new_id(prefix: str = "") -> str:
    """Fresh opaque identifier"""
    uid = str(uuid.uuid4())
    return f"{prefix}_{uid}" if prefix else uid


def normalize_digits(s: str) -> str:
    """Replace Arabic-Indic digits with ASCII digits"""
    return s.translate(_DIGIT_TABLE)


def parse_amount(x: Any, default: float = 0.0) -> float:
    """
    Tolerant number parsing for spreadsheet cells.
    Empty / non-numeric -> default. Thousands separators (including the
    Arabic variants) are stripped and the Arabic decimal mark is accepted.
    """
    if x is None or isinstance(x, bool):
        return default
    if isinstance(x, (int, float)):
        v = float(x)
        return v if math.isfinite(v) else default
    s = normalize_digits(str(x)).strip().replace("٫", ".")
    s = _THOUSANDS_RE.sub("", s)
    if not s:
        return default
    try:
        v = float(s)
    except ValueError:
        return default
    return v if math.isfinite(v) else default


def parse_int(x: Any, default: int = 0) -> int:
    """Tolerant integer parsing (employee codes)"""
    return int(parse_amount(x, float(default)))


def app_dir() -> str:
    """
    Get application data directory: $MISSION_LEDGER_HOME or ~/.mission_ledger
    Creates directory if it doesn't exist.
    """
    path = os.environ.get("MISSION_LEDGER_HOME") or os.path.expanduser("~/.mission_ledger")
    os.makedirs(path, exist_ok=True)
    return path


# ---------- Amount formulas ----------
# Amount fields accept "=2+2" style input. Only numbers, + - * / and
# parentheses are understood; anything else rejects the whole expression.

_TOKEN_RE = re.compile(r"\s*(?:(\d+(?:\.\d*)?|\.\d+)|(.))")


def _tokenize(expr: str) -> Optional[List[Tuple[str, str]]]:
    tokens = []
    for num, op in _TOKEN_RE.findall(expr):
        if num:
            tokens.append(("num", num))
        elif op in "+-*/()":
            tokens.append(("op", op))
        elif op.strip():
            return None
    return tokens


class _ExprParser:
    """Recursive-descent parser over + - * / ( ) and decimal numbers"""

    def __init__(self, tokens: List[Tuple[str, str]]):
        self.tokens = tokens
        self.pos = 0

    def _peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> Tuple[str, str]:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def parse(self) -> float:
        value = self._expr()
        if self._peek() is not None:
            raise ValueError("unexpected trailing input")
        return value

    def _expr(self) -> float:
        value = self._term()
        while self._peek() in (("op", "+"), ("op", "-")):
            _, op = self._take()
            rhs = self._term()
            value = value + rhs if op == "+" else value - rhs
        return value

    def _term(self) -> float:
        value = self._factor()
        while self._peek() in (("op", "*"), ("op", "/")):
            _, op = self._take()
            rhs = self._factor()
            if op == "*":
                value *= rhs
            else:
                if rhs == 0:
                    raise ValueError("division by zero")
                value /= rhs
        return value

    def _factor(self) -> float:
        tok = self._peek()
        if tok is None:
            raise ValueError("unexpected end of expression")
        if tok in (("op", "+"), ("op", "-")):
            self._take()
            value = self._factor()
            return value if tok[1] == "+" else -value
        if tok == ("op", "("):
            self._take()
            value = self._expr()
            if self._peek() != ("op", ")"):
                raise ValueError("missing closing parenthesis")
            self._take()
            return value
        if tok[0] == "num":
            self._take()
            return float(tok[1])
        raise ValueError(f"unexpected token {tok[1]!r}")


def evaluate_amount(text: str) -> Optional[float]:
    """
    Evaluate an amount entry such as "150", "=2+2" or "=(100+50)/3".
    Returns the value rounded to 2 decimals, or None if the input is not a
    valid arithmetic expression.
    """
    expr = normalize_digits(str(text or "")).strip()
    if expr.startswith("="):
        expr = expr[1:]
    tokens = _tokenize(expr)
    if not tokens:
        return None
    try:
        value = _ExprParser(tokens).parse()
    except (ValueError, RecursionError):
        return None
    if not math.isfinite(value):
        return None
    return round(value, 2)
