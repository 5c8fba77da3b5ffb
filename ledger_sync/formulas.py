from __future__ import annotations

import re
from typing import Callable

from openpyxl.formula.tokenizer import Token, Tokenizer, TokenizerError

# A cell reference inside a range operand, e.g. D12, $D12, D$12, AB7.
_REF_RE = re.compile(r"(?<![A-Za-z0-9_.])(\$?[A-Z]{1,3})(\$?)(\d+)(?![A-Za-z0-9_(])")

RowMapper = Callable[[str, int], int]


def _rewrite_refs(value: str, new_row: RowMapper) -> str:
    # References into other sheets are unaffected by row changes here.
    if "!" in value:
        return value

    def _sub(match: "re.Match[str]") -> str:
        column, dollar, row = match.group(1), match.group(2), int(match.group(3))
        return f"{column}{dollar}{new_row(dollar, row)}"

    return _REF_RE.sub(_sub, value)


def _rewrite_formula(formula: str, new_row: RowMapper) -> str:
    """Apply new_row to every same-sheet cell reference; functions and literals are kept."""
    if not isinstance(formula, str) or not formula.startswith("="):
        return formula
    try:
        tokens = Tokenizer(formula).items
    except TokenizerError:
        return formula
    if not tokens:
        return formula
    out = ["="]
    for token in tokens:
        if token.type == Token.OPERAND and token.subtype == Token.RANGE:
            out.append(_rewrite_refs(token.value, new_row))
        else:
            out.append(token.value)
    return "".join(out)


def adjust_formula(formula: str, old_row: int, new_row: int) -> str:
    """
    Re-point a copied row formula: relative references to old_row become
    new_row. Numeric literals, strings, function names, absolute rows ($12)
    and other-sheet references stay.
    """
    if not formula or old_row == new_row:
        return formula

    def _move(dollar: str, row: int) -> int:
        return new_row if row == old_row and not dollar else row

    return _rewrite_formula(formula, _move)


def shift_formula_rows(formula: str, at_row: int, count: int) -> str:
    """
    Rewrite a formula after `count` rows were inserted at `at_row`: references
    to rows at or below the insertion point move down, the rest are kept.
    """
    if count == 0:
        return formula

    def _shift(dollar: str, row: int) -> int:
        return row + count if row >= at_row else row

    return _rewrite_formula(formula, _shift)
