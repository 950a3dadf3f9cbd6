from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any


class DynawrapPyError(Exception):
    pass


class ValidationError(DynawrapPyError):
    pass


class UnsupportedTypeError(ValidationError):
    pass


class InvalidOperandError(ValidationError):
    pass


class InvalidOptionError(ValidationError):
    pass


class EmptyBatchError(ValidationError):
    def __init__(self, *, operation: str) -> None:
        super().__init__(f"{operation}: at least one key or item is required")
        self.operation = operation


class PartialBatchFailureError(DynawrapPyError):
    """Retry budget exhausted with entries still unprocessed.

    ``unprocessed`` holds the caller's own keys/items (attribute tokens intact),
    so they can be passed straight back into a new batch call. ``items`` holds
    whatever a batch read collected before giving up.
    """

    def __init__(
        self,
        *,
        operation: str,
        unprocessed: Sequence[Mapping[str, Any]],
        items: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        super().__init__(f"{operation}: retry limit exceeded (unprocessed={len(unprocessed)})")
        self.operation = operation
        self.unprocessed = list(unprocessed)
        self.items = list(items)


class BatchCancelledError(DynawrapPyError):
    def __init__(
        self,
        *,
        operation: str,
        pending: Sequence[Mapping[str, Any]],
        items: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        super().__init__(f"{operation}: cancelled (pending={len(pending)})")
        self.operation = operation
        self.pending = list(pending)
        self.items = list(items)
