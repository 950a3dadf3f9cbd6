from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .attributes import parse_attribute
from .codec import to_native
from .errors import InvalidOperandError, ValidationError

UPDATE_ACTIONS = frozenset({"PUT", "ADD", "DELETE"})


def _split_update(token: str, clause: Any) -> tuple[str, Any]:
    if not isinstance(clause, tuple):
        return "PUT", clause

    if len(clause) == 1:
        action, value = clause[0], None
    elif len(clause) == 2:
        action, value = clause
    else:
        raise InvalidOperandError(f"{token}: update must be (action,) or (action, value)")

    if not isinstance(action, str):
        raise ValidationError(f"{token}: update action must be a string")
    return action.strip().upper(), value


def updates_to_native(updates: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Translate ``{"Views::N": ("ADD", 1)}`` into ``AttributeUpdates``.

    A bare value is a ``PUT``. ``("DELETE",)`` removes the attribute; with a value
    it removes those elements from a set.
    """
    out: dict[str, dict[str, Any]] = {}
    for token, clause in updates.items():
        name, type_tag = parse_attribute(token)
        action, value = _split_update(token, clause)

        if action not in UPDATE_ACTIONS:
            raise ValidationError(f"{token}: unsupported update action: {action}")

        entry: dict[str, Any] = {"Action": action}
        if value is None:
            if action != "DELETE":
                raise InvalidOperandError(f"{token}: {action} requires a value")
        else:
            entry["Value"] = to_native(value, type_tag)
        out[name] = entry
    return out
