from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .attributes import DEFAULT_TYPE, SEPARATOR, parse_attribute
from .codec import decode, decode_typed, to_native
from .errors import UnsupportedTypeError, ValidationError


def item_to_native(item: Mapping[str, Any]) -> dict[str, Any]:
    if not isinstance(item, Mapping):
        raise ValidationError(f"item must be a mapping, got {type(item).__name__}")

    out: dict[str, Any] = {}
    for token, value in item.items():
        name, type_tag = parse_attribute(token)
        if value is None:
            raise ValidationError(f"attribute {name!r} has no value")
        if name in out:
            raise ValidationError(f"attribute {name!r} appears more than once")
        out[name] = to_native(value, type_tag)
    return out


def item_from_native(native: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Decode a native item; ``None`` means "no item", never an empty dict."""
    if not native:
        return None

    out: dict[str, Any] = {}
    for name, attribute_value in native.items():
        try:
            out[name] = decode(attribute_value)
        except UnsupportedTypeError as err:
            raise UnsupportedTypeError(f"attribute {name!r}: {err}") from err
    return out


def item_to_tokens(native: Mapping[str, Any]) -> dict[str, Any]:
    """Decode a native item back into token form (``{"Id::N": "7"}``).

    Unlike ``item_from_native`` the type tags survive, so the result can be fed
    straight back into ``item_to_native``. String attributes keep their bare name.
    """
    out: dict[str, Any] = {}
    for name, attribute_value in native.items():
        try:
            typed = decode_typed(attribute_value)
        except UnsupportedTypeError as err:
            raise UnsupportedTypeError(f"attribute {name!r}: {err}") from err
        token = name if typed.kind == DEFAULT_TYPE else f"{name}{SEPARATOR}{typed.kind}"
        out[token] = list(typed.payload) if isinstance(typed.payload, tuple) else typed.payload
    return out


def items_from_native(natives: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Decode ``natives`` in order. Empty maps carry no item and are skipped."""
    out: list[dict[str, Any]] = []
    for native in natives:
        item = item_from_native(native)
        if item is not None:
            out.append(item)
    return out
