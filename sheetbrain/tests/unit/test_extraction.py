from __future__ import annotations

import logging

from sheetbrain.domain.schemas import FormulaEntry, SheetContext
from sheetbrain.sheets.extraction import extract_formulas


def test_extracts_formulas_row_major_from_range_origin() -> None:
    context = SheetContext.model_validate(
        {"data": {"formulas": [["=SUM(A1:A2)", ""], ["", "=NOW()"]]}}
    )

    entries = extract_formulas(context, "B3")

    assert entries == [
        FormulaEntry(cell="B3", formula="=SUM(A1:A2)"),
        FormulaEntry(cell="C4", formula="=NOW()"),
    ]


def test_falls_back_to_top_level_formulas() -> None:
    context = SheetContext.model_validate({"formulas": [["=A1*2"]]})

    assert extract_formulas(context, "D7:D7") == [FormulaEntry(cell="D7", formula="=A1*2")]


def test_data_formulas_take_precedence() -> None:
    context = SheetContext.model_validate(
        {"data": {"formulas": [["=1+1"]]}, "formulas": [["=2+2"]]}
    )

    assert [entry.formula for entry in extract_formulas(context, "A1")] == ["=1+1"]


def test_non_formula_cells_are_ignored() -> None:
    context = SheetContext.model_validate(
        {"formulas": [["plain", 42, None, " =SUM(A1)", "=TODAY()"]]}
    )

    assert extract_formulas(context, "A1") == [FormulaEntry(cell="E1", formula="=TODAY()")]


def test_malformed_rows_are_skipped_with_warning(caplog) -> None:
    context = SheetContext.model_validate(
        {"formulas": ["=NOT_A_ROW", ["=A1"], {"bad": "row"}]}
    )

    with caplog.at_level(logging.WARNING, logger="sheetbrain.sheets.extraction"):
        entries = extract_formulas(context, "A1")

    # Row offsets still count skipped rows.
    assert entries == [FormulaEntry(cell="A2", formula="=A1")]
    assert sum("formula_row_not_list" in record.message for record in caplog.records) == 2


def test_empty_or_missing_matrix_yields_nothing() -> None:
    assert extract_formulas(SheetContext(), "A1") == []
    assert extract_formulas(SheetContext.model_validate({"data": {"values": [[1]]}}), "A1") == []


def test_malformed_range_uses_a1_origin() -> None:
    context = SheetContext.model_validate({"formulas": [["=A1"]]})

    assert extract_formulas(context, "B:B") == [FormulaEntry(cell="A1", formula="=A1")]


def test_empty_data_matrix_does_not_fall_back() -> None:
    context = SheetContext.model_validate({"data": {"formulas": []}, "formulas": [["=2+2"]]})

    assert extract_formulas(context, "A1") == []
