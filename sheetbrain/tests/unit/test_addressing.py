from __future__ import annotations

import pytest

from sheetbrain.domain.schemas import ParsedRange
from sheetbrain.sheets.addressing import (
    cell_address,
    column_letter_to_index,
    index_to_col_letters,
    parse_range,
)


@pytest.mark.parametrize(
    ("letters", "index"),
    [("A", 0), ("Z", 25), ("AA", 26), ("AZ", 51), ("BA", 52), ("ZZ", 701), ("AAA", 702)],
)
def test_column_letters_map_to_bijective_base26(letters: str, index: int) -> None:
    assert column_letter_to_index(letters) == index
    assert index_to_col_letters(index) == letters


def test_column_round_trip_covers_two_letter_columns() -> None:
    for index in range(0, 702):
        assert column_letter_to_index(index_to_col_letters(index)) == index


def test_lowercase_letters_are_accepted() -> None:
    assert column_letter_to_index("ab") == 27


@pytest.mark.parametrize("letters", ["", "A1", "$A", "Ä"])
def test_invalid_letters_raise(letters: str) -> None:
    with pytest.raises(ValueError):
        column_letter_to_index(letters)


def test_negative_index_raises() -> None:
    with pytest.raises(ValueError):
        index_to_col_letters(-1)


@pytest.mark.parametrize(
    ("range_ref", "expected"),
    [
        ("B3:C4", ParsedRange(start_col=1, start_row=3)),
        ("b3", ParsedRange(start_col=1, start_row=3)),
        ("Sheet1!AA10:AB12", ParsedRange(start_col=26, start_row=10)),
        ("'Q1 Budget'!$C$5:$D$9", ParsedRange(start_col=2, start_row=5)),
    ],
)
def test_parse_range_reads_anchor_cell(range_ref: str, expected: ParsedRange) -> None:
    assert parse_range(range_ref) == expected


@pytest.mark.parametrize("range_ref", ["", None, "garbage", "B:B", "3:3", "!!"])
def test_parse_range_defaults_to_a1(range_ref) -> None:
    assert parse_range(range_ref) == ParsedRange(start_col=0, start_row=1)


def test_cell_address_combines_column_and_row() -> None:
    assert cell_address(27, 14) == "AB14"
