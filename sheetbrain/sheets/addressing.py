"""A1-notation helpers.

Columns use bijective base-26 (``A=0``, ``Z=25``, ``AA=26``). Whole-column
(``B:B``) and whole-row (``3:3``) ranges have no anchor cell; ``parse_range``
treats them like any other malformed input and returns the default origin.
"""

from __future__ import annotations

import re

from sheetbrain.domain.schemas import ParsedRange


_CELL_RE = re.compile(r"([A-Z]+)([0-9]+)", re.IGNORECASE)
_DEFAULT_ORIGIN = ParsedRange(start_col=0, start_row=1)


def column_letter_to_index(letters: str) -> int:
    normalized = letters.strip().upper()
    if not normalized or not all("A" <= char <= "Z" for char in normalized):
        raise ValueError(f"invalid column letters: {letters!r}")
    value = 0
    for char in normalized:
        value = value * 26 + (ord(char) - ord("A") + 1)
    return value - 1


def index_to_col_letters(index: int) -> str:
    if index < 0:
        raise ValueError(f"column index must be non-negative, got {index}")
    n = index + 1
    letters: list[str] = []
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters.append(chr(ord("A") + rem))
    return "".join(reversed(letters))


def parse_range(range_ref: str | None) -> ParsedRange:
    # A malformed range must never block an audit.
    if not range_ref or not isinstance(range_ref, str):
        return _DEFAULT_ORIGIN
    start = range_ref.split(":", 1)[0]
    # Drop sheet prefixes such as Sheet1! or 'Q1 Budget'!.
    if "!" in start:
        start = start.rsplit("!", 1)[1]
    match = _CELL_RE.search(start.replace("$", ""))
    if match is None:
        return _DEFAULT_ORIGIN
    col, row = match.groups()
    return ParsedRange(start_col=column_letter_to_index(col), start_row=int(row))


def cell_address(col_index: int, row_number: int) -> str:
    return f"{index_to_col_letters(col_index)}{row_number}"
