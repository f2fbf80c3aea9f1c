# User value: This file turns operator filters into one backend query so candidate lists match what was asked.
import logging
from typing import Iterable

from schemas.filters import (
    OPERATOR_CONTAINS,
    OPERATOR_EQUALS,
    OPERATOR_GREATER_THAN,
    OPERATOR_IS_NOT_NULL,
    OPERATOR_IS_NULL,
    OPERATOR_LESS_THAN,
    OPERATOR_NOT_EQUALS,
    FilterClause,
    canonical_operator,
)

logger = logging.getLogger("extractor.filters")

JOINER = " && "


def _quote(value) -> str:
    text = "" if value is None else str(value)
    text = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def _bare(value) -> str:
    return "" if value is None else str(value)


# User value: renders one clause; unknown operators, blank fields and numeric comparisons
# without a value yield "" and are dropped by the caller.
def render_clause(clause: FilterClause) -> str:
    field = "" if clause.field is None else str(clause.field)
    op = canonical_operator(clause.operator)
    if not field.strip() or op is None:
        return ""

    if op == OPERATOR_CONTAINS:
        return f"{field}.contains({_quote(clause.value)})"
    if op == OPERATOR_EQUALS:
        return f"{field} == {_quote(clause.value)}"
    if op == OPERATOR_NOT_EQUALS:
        return f"{field} != {_quote(clause.value)}"
    if op in (OPERATOR_GREATER_THAN, OPERATOR_LESS_THAN):
        value = _bare(clause.value)
        if not value.strip():
            return ""
        symbol = ">" if op == OPERATOR_GREATER_THAN else "<"
        return f"{field} {symbol} {value}"
    if op == OPERATOR_IS_NULL:
        return f"{field} == null"
    if op == OPERATOR_IS_NOT_NULL:
        return f"{field} != null"
    return ""


# User value: joins rendered clauses in input order so the backend sees exactly the operator's filter.
def compile_filter(clauses: Iterable[FilterClause]) -> str:
    clauses = list(clauses or [])
    terms = []
    for clause in clauses:
        rendered = render_clause(clause)
        if rendered.strip():
            terms.append(rendered)

    dropped = len(clauses) - len(terms)
    if dropped:
        logger.info("filter_clauses_dropped dropped=%s total=%s", dropped, len(clauses))
    return JOINER.join(terms)
