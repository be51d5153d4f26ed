from __future__ import annotations

import logging
from typing import Any

from sheetbrain.domain.schemas import FormulaEntry, SheetContext
from sheetbrain.sheets.addressing import cell_address, parse_range


logger = logging.getLogger(__name__)

FORMULA_MARKER = "="


def _formula_matrix(context: SheetContext) -> list[Any]:
    # Prefer the structured data payload; older add-on builds send formulas at the top level.
    # A present but empty data matrix still wins over the top-level one.
    if context.data is not None and context.data.formulas is not None:
        return context.data.formulas
    return context.formulas or []


def extract_formulas(context: SheetContext, range_ref: str | None) -> list[FormulaEntry]:
    matrix = _formula_matrix(context)
    if not isinstance(matrix, list) or not matrix:
        return []

    origin = parse_range(range_ref or "A1")
    collected: list[FormulaEntry] = []
    for row_idx, row in enumerate(matrix):
        if not isinstance(row, list):
            logger.warning("formula_row_not_list row=%s type=%s", row_idx, type(row).__name__)
            continue
        for col_idx, value in enumerate(row):
            if isinstance(value, str) and value.startswith(FORMULA_MARKER):
                address = cell_address(origin.start_col + col_idx, origin.start_row + row_idx)
                collected.append(FormulaEntry(cell=address, formula=value))
    return collected
