from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .attributes import element_type, parse_attribute
from .codec import to_native
from .errors import InvalidOperandError, ValidationError

COMPARISON_OPERATORS = frozenset(
    {
        "EQ",
        "NE",
        "LE",
        "LT",
        "GE",
        "GT",
        "BETWEEN",
        "IN",
        "NULL",
        "NOT_NULL",
        "CONTAINS",
        "NOT_CONTAINS",
        "BEGINS_WITH",
    }
)
NULLARY_OPERATORS = frozenset({"NULL", "NOT_NULL"})


def _split_clause(token: str, clause: Any) -> tuple[str, Any]:
    if not isinstance(clause, tuple):
        return "EQ", clause

    if len(clause) == 1:
        operator, operand = clause[0], None
    elif len(clause) == 2:
        operator, operand = clause
    else:
        raise InvalidOperandError(f"{token}: condition must be (operator,) or (operator, operand)")

    if not isinstance(operator, str):
        raise ValidationError(f"{token}: condition operator must be a string")
    return operator.strip().upper(), operand


def _is_value_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def condition_to_native(token: str, clause: Any) -> tuple[str, dict[str, Any]]:
    name, type_tag = parse_attribute(token)
    operator, operand = _split_clause(token, clause)

    if operator not in COMPARISON_OPERATORS:
        raise ValidationError(f"{token}: unsupported condition operator: {operator}")

    out: dict[str, Any] = {"ComparisonOperator": operator}

    if operator in NULLARY_OPERATORS:
        if operand is not None:
            raise InvalidOperandError(f"{token}: {operator} does not take a value")
        return name, out

    if operand is None:
        raise InvalidOperandError(f"{token}: {operator} requires a value")

    if operator == "BETWEEN":
        if not _is_value_sequence(operand) or len(operand) != 2:
            raise InvalidOperandError(f"{token}: BETWEEN requires exactly two values")
        low, high = operand
        out["AttributeValueList"] = [to_native(low, type_tag), to_native(high, type_tag)]
        return name, out

    if operator == "IN":
        if not _is_value_sequence(operand):
            raise InvalidOperandError(f"{token}: IN requires a sequence of values")
        out["AttributeValueList"] = [to_native(v, type_tag) for v in operand]
        return name, out

    if operator in {"CONTAINS", "NOT_CONTAINS"}:
        # set attributes are matched against a single element
        out["AttributeValueList"] = [to_native(operand, element_type(type_tag))]
        return name, out

    out["AttributeValueList"] = [to_native(operand, type_tag)]
    return name, out


def conditions_to_native(conditions: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Translate ``{"Age::N": ("BETWEEN", [18, 30])}`` into DynamoDB condition maps.

    The result fits ``KeyConditions``, ``QueryFilter``, ``ScanFilter`` and
    ``Expected``. A bare value means equality.
    """
    out: dict[str, dict[str, Any]] = {}
    for token, clause in conditions.items():
        name, native = condition_to_native(token, clause)
        out[name] = native
    return out
