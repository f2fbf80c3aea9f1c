# User value: This file describes filter clauses so operators can narrow candidate records server-side.
import uuid
from typing import Optional, Union

from pydantic import BaseModel, Field

OPERATOR_EQUALS = "equals"
OPERATOR_NOT_EQUALS = "not_equals"
OPERATOR_CONTAINS = "contains"
OPERATOR_GREATER_THAN = "greater_than"
OPERATOR_LESS_THAN = "less_than"
OPERATOR_IS_NULL = "is_null"
OPERATOR_IS_NOT_NULL = "is_not_null"

OPERATORS = (
    OPERATOR_EQUALS,
    OPERATOR_NOT_EQUALS,
    OPERATOR_CONTAINS,
    OPERATOR_GREATER_THAN,
    OPERATOR_LESS_THAN,
    OPERATOR_IS_NULL,
    OPERATOR_IS_NOT_NULL,
)

# Symbolic spellings used by the operator console.
OPERATOR_ALIASES = {
    "==": OPERATOR_EQUALS,
    "!=": OPERATOR_NOT_EQUALS,
    ">": OPERATOR_GREATER_THAN,
    "<": OPERATOR_LESS_THAN,
}

NULL_OPERATORS = {OPERATOR_IS_NULL, OPERATOR_IS_NOT_NULL}


def canonical_operator(operator: Optional[str]) -> Optional[str]:
    op = str(operator or "").strip()
    op = OPERATOR_ALIASES.get(op, op.lower())
    return op if op in OPERATORS else None


class FilterClause(BaseModel):
    # Operator is kept as free text: unknown operators are tolerated and dropped at compile time.
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    field: str = ""
    operator: str = OPERATOR_EQUALS
    value: Optional[Union[str, int, float]] = None
