from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .attributes import DEFAULT_TYPE, SET_TYPES, TYPE_TAGS
from .errors import InvalidOperandError, UnsupportedTypeError

type Scalar = str | bytes


@dataclass(frozen=True)
class TypedValue:
    kind: str
    payload: Scalar | tuple[Scalar, ...]

    @property
    def is_set(self) -> bool:
        return self.kind in SET_TYPES

    def to_native(self) -> dict[str, Any]:
        if isinstance(self.payload, tuple):
            return {self.kind: list(self.payload)}
        return {self.kind: self.payload}


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _as_scalar(value: Any, binary: bool) -> Scalar:
    if binary and isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return str(value)


def encode(value: Any, type_tag: str = DEFAULT_TYPE) -> TypedValue:
    if type_tag not in TYPE_TAGS:
        raise UnsupportedTypeError(f"unsupported attribute type: {type_tag}")
    if value is None:
        raise InvalidOperandError(f"{type_tag} value is required")

    binary = type_tag in {"B", "BS"}

    if type_tag in SET_TYPES:
        if isinstance(value, (set, frozenset)):
            elements = sorted((_as_scalar(v, binary) for v in value), key=lambda v: (type(v).__name__, v))
        elif isinstance(value, (list, tuple)):
            elements = [_as_scalar(v, binary) for v in value]
        else:
            elements = [_as_scalar(value, binary)]
        return TypedValue(kind=type_tag, payload=tuple(elements))

    if _is_collection(value):
        raise InvalidOperandError(f"{type_tag} is a scalar type and does not accept a collection")
    return TypedValue(kind=type_tag, payload=_as_scalar(value, binary))


def to_native(value: Any, type_tag: str = DEFAULT_TYPE) -> dict[str, Any]:
    return encode(value, type_tag).to_native()


def decode_typed(native: Mapping[str, Any]) -> TypedValue:
    if not isinstance(native, Mapping):
        raise UnsupportedTypeError(f"attribute value must be a map, got {type(native).__name__}")

    for tag, payload in native.items():
        match tag:
            case "S" | "N" | "B":
                return TypedValue(kind=tag, payload=payload)
            case "SS" | "NS" | "BS":
                return TypedValue(kind=tag, payload=tuple(payload))
            case _:
                continue

    raise UnsupportedTypeError(f"unsupported attribute value: keys={sorted(native)!r}")


def decode(native: Mapping[str, Any]) -> Any:
    typed = decode_typed(native)
    if isinstance(typed.payload, tuple):
        return list(typed.payload)
    return typed.payload
