from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from .errors import (
    BatchCancelledError,
    EmptyBatchError,
    InvalidOptionError,
    PartialBatchFailureError,
    ValidationError,
)
from .items import item_to_native, item_to_tokens, items_from_native
from .store import CancelToken, Store

logger = logging.getLogger(__name__)

BATCH_GET_LIMIT = 100
BATCH_WRITE_LIMIT = 25
DEFAULT_MAX_RETRIES = 3

type WriteMode = Literal["put", "delete"]


def _backoff_seconds(attempt: int) -> float:
    seconds = 0.05 * (2.0 ** (attempt - 1))
    if seconds > 1.0:
        return 1.0
    return seconds


def _chunked[T](items: Sequence[T], size: int) -> Sequence[Sequence[T]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    return [items[i : i + size] for i in range(0, len(items), size)]


@dataclass(frozen=True)
class _Entry:
    source: Mapping[str, Any]
    native: dict[str, Any]


@dataclass(frozen=True)
class _Page:
    entries: list[_Entry]
    attempt: int = 0


def _number_text(value: Any) -> Any:
    try:
        return str(Decimal(value).normalize())
    except (InvalidOperation, TypeError, ValueError):
        return value


def _freeze(native: Mapping[str, Any]) -> tuple[Any, ...]:
    """Hashable fingerprint of a native map.

    The store echoes numbers in canonical form (``"1.0"`` comes back as ``"1"``)
    and sets in any order, so both are normalized before comparing.
    """
    out = []
    for name, attribute_value in native.items():
        if isinstance(attribute_value, Mapping):
            out.append((name, _freeze(attribute_value)))
        elif name == "N":
            out.append((name, _number_text(attribute_value)))
        elif name == "NS" and isinstance(attribute_value, list):
            out.append((name, tuple(sorted(_number_text(v) for v in attribute_value))))
        elif name in {"SS", "BS"} and isinstance(attribute_value, list):
            out.append((name, tuple(sorted(attribute_value))))
        elif isinstance(attribute_value, list):
            out.append((name, tuple(attribute_value)))
        else:
            out.append((name, attribute_value))
    return tuple(sorted(out, key=lambda pair: pair[0]))


def _match_remainder(
    entries: Sequence[_Entry],
    unprocessed: Sequence[dict[str, Any]],
    to_source: Callable[[dict[str, Any]], Mapping[str, Any]],
) -> list[_Entry]:
    by_native: dict[tuple[Any, ...], deque[_Entry]] = {}
    for entry in entries:
        by_native.setdefault(_freeze(entry.native), deque()).append(entry)

    out: list[_Entry] = []
    for native in unprocessed:
        candidates = by_native.get(_freeze(native))
        if candidates:
            out.append(candidates.popleft())
        else:
            out.append(_Entry(source=to_source(native), native=native))
    return out


def _run_pages(
    *,
    operation: str,
    entries: Sequence[_Entry],
    page_size: int,
    submit: Callable[[list[dict[str, Any]]], Sequence[dict[str, Any]]],
    to_source: Callable[[dict[str, Any]], Mapping[str, Any]],
    partial: Callable[[], list[dict[str, Any]]],
    max_retries: int,
    sleep: Callable[[float], None] | None,
    cancel: CancelToken | None,
) -> None:
    """Submit ``entries`` page by page until every page completes.

    Unprocessed entries come back to the front of the queue as their own page
    with the attempt counter bumped; a page that still has leftovers after
    ``max_retries`` retries fails the whole operation. Cancellation is only
    observed between pages.
    """
    if max_retries < 0:
        raise ValidationError("max_retries must be >= 0")

    queue: deque[_Page] = deque(_Page(entries=list(chunk)) for chunk in _chunked(entries, page_size))

    while queue:
        if cancel is not None and cancel.is_set():
            pending = [entry.source for page in queue for entry in page.entries]
            logger.info("%s cancelled with %d entries pending", operation, len(pending))
            raise BatchCancelledError(operation=operation, pending=pending, items=partial())

        page = queue.popleft()
        if page.attempt and sleep is not None:
            sleep(_backoff_seconds(page.attempt))

        logger.debug("%s: submitting %d entries (attempt %d)", operation, len(page.entries), page.attempt)
        unprocessed = submit([entry.native for entry in page.entries])
        if not unprocessed:
            continue

        remainder = _match_remainder(page.entries, unprocessed, to_source)
        if page.attempt >= max_retries:
            raise PartialBatchFailureError(
                operation=operation,
                unprocessed=[entry.source for entry in remainder],
                items=partial(),
            )

        logger.warning(
            "%s: %d of %d entries unprocessed, retrying (attempt %d of %d)",
            operation,
            len(remainder),
            len(page.entries),
            page.attempt + 1,
            max_retries,
        )
        queue.appendleft(_Page(entries=remainder, attempt=page.attempt + 1))


def _resolve_order(order: Mapping[str, Any] | None) -> tuple[str, bool] | None:
    if order is None:
        return None
    if not isinstance(order, Mapping):
        raise InvalidOptionError("Order option must be a mapping with a Key")
    key = order.get("Key")
    if not isinstance(key, str) or not key:
        raise InvalidOptionError("Order option requires Key")
    forward = order.get("Forward", True)
    if forward is None:
        return key, True
    if not isinstance(forward, bool):
        raise InvalidOptionError(f"Order Forward must be a bool, got {forward!r}")
    return key, forward


def _sort_value(value: Any) -> tuple[Any, ...]:
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        value = str(value)
    if isinstance(value, str):
        try:
            number = Decimal(value)
        except InvalidOperation:
            return (1, value)
        if number.is_finite():
            return (0, number)
        return (1, value)
    if isinstance(value, bytes):
        return (2, value)
    if isinstance(value, list):
        return (3, tuple(repr(v) for v in value))
    return (4, repr(value))


def order_items(items: Sequence[Mapping[str, Any]], order: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Stable-sort decoded items by ``order["Key"]``; items without it go last.

    Numeric strings compare as numbers, so ``"10"`` sorts after ``"9"``.
    """
    resolved = _resolve_order(order)
    if resolved is None:
        return list(items)
    key, forward = resolved

    present = [item for item in items if key in item]
    missing = [item for item in items if key not in item]
    present.sort(key=lambda item: _sort_value(item[key]), reverse=not forward)
    return present + missing


def _in_key_order(keys: Sequence[dict[str, Any]], natives: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    if not keys:
        return list(natives)

    key_names = list(keys[0])
    positions: dict[tuple[Any, ...], int] = {}
    for i, key in enumerate(keys):
        positions.setdefault(_freeze(key), i)

    def rank(native: dict[str, Any]) -> int:
        projected = {name: native[name] for name in key_names if name in native}
        return positions.get(_freeze(projected), len(keys))

    return sorted(natives, key=rank)


def batch_get(
    client: Store,
    table_name: str,
    keys: Sequence[Mapping[str, Any]],
    *,
    consistent_read: bool = False,
    order: Mapping[str, Any] | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    sleep: Callable[[float], None] | None = time.sleep,
    cancel: CancelToken | None = None,
) -> list[dict[str, Any]]:
    if not keys:
        raise EmptyBatchError(operation="batch_get")
    _resolve_order(order)

    entries = [_Entry(source=key, native=item_to_native(key)) for key in keys]
    native_keys = [entry.native for entry in entries]
    collected: list[dict[str, Any]] = []

    def decoded() -> list[dict[str, Any]]:
        out = items_from_native(_in_key_order(native_keys, collected))
        if order is not None:
            return [dict(item) for item in order_items(out, order)]
        return out

    def submit(page: list[dict[str, Any]]) -> Sequence[dict[str, Any]]:
        request: dict[str, Any] = {"Keys": page}
        if consistent_read:
            request["ConsistentRead"] = True
        resp = client.batch_get_item(RequestItems={table_name: request})
        collected.extend(resp.get("Responses", {}).get(table_name, []))
        return resp.get("UnprocessedKeys", {}).get(table_name, {}).get("Keys") or []

    _run_pages(
        operation="batch_get",
        entries=entries,
        page_size=BATCH_GET_LIMIT,
        submit=submit,
        to_source=item_to_tokens,
        partial=decoded,
        max_retries=max_retries,
        sleep=sleep,
        cancel=cancel,
    )
    return decoded()


def _write_entries(
    client: Store,
    table_name: str,
    entries: Sequence[_Entry],
    *,
    operation: str,
    max_retries: int,
    sleep: Callable[[float], None] | None,
    cancel: CancelToken | None,
) -> None:
    def submit(page: list[dict[str, Any]]) -> Sequence[dict[str, Any]]:
        resp = client.batch_write_item(RequestItems={table_name: page})
        return resp.get("UnprocessedItems", {}).get(table_name, []) or []

    def to_source(request: dict[str, Any]) -> Mapping[str, Any]:
        for body in request.values():
            for native in body.values():
                return item_to_tokens(native)
        return {}

    _run_pages(
        operation=operation,
        entries=entries,
        page_size=BATCH_WRITE_LIMIT,
        submit=submit,
        to_source=to_source,
        partial=list,
        max_retries=max_retries,
        sleep=sleep,
        cancel=cancel,
    )


def batch_write(
    client: Store,
    table_name: str,
    items: Sequence[Mapping[str, Any]],
    *,
    mode: WriteMode = "put",
    max_retries: int = DEFAULT_MAX_RETRIES,
    sleep: Callable[[float], None] | None = time.sleep,
    cancel: CancelToken | None = None,
) -> bool:
    if mode == "put":
        request_type, entity = "PutRequest", "Item"
    elif mode == "delete":
        request_type, entity = "DeleteRequest", "Key"
    else:
        raise ValidationError(f"unsupported batch write mode: {mode}")

    operation = f"batch_{mode}"
    if not items:
        raise EmptyBatchError(operation=operation)

    entries = [_Entry(source=item, native={request_type: {entity: item_to_native(item)}}) for item in items]
    _write_entries(
        client,
        table_name,
        entries,
        operation=operation,
        max_retries=max_retries,
        sleep=sleep,
        cancel=cancel,
    )
    return True


def _delete_native_keys(
    client: Store,
    table_name: str,
    keys: Sequence[dict[str, Any]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    sleep: Callable[[float], None] | None = time.sleep,
) -> int:
    entries = [
        _Entry(source=item_to_tokens(key), native={"DeleteRequest": {"Key": key}}) for key in keys
    ]
    if entries:
        _write_entries(
            client,
            table_name,
            entries,
            operation="batch_delete",
            max_retries=max_retries,
            sleep=sleep,
            cancel=None,
        )
    return len(entries)
