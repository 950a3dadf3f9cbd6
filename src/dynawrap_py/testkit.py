from __future__ import annotations

from .mocks import ANY, BatchEchoClient, FakeDynamoDBClient, canonical_numbers, client_error


def no_sleep(_: float) -> None:
    return None


class CancelAfter:
    """Cancel token that reports cancellation after ``checks`` polls."""

    def __init__(self, checks: int) -> None:
        if checks < 0:
            raise ValueError("checks must be >= 0")
        self._remaining = checks

    def is_set(self) -> bool:
        if self._remaining <= 0:
            return True
        self._remaining -= 1
        return False


__all__ = [
    "ANY",
    "BatchEchoClient",
    "CancelAfter",
    "FakeDynamoDBClient",
    "canonical_numbers",
    "client_error",
    "no_sleep",
]
