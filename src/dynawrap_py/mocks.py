from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from botocore.exceptions import ClientError


class _AnySentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _AnySentinel()


def _assert_match(expected: Any, actual: Any, *, path: str) -> None:
    if expected is ANY:
        return

    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            raise AssertionError(f"{path}: expected dict, got {type(actual).__name__}")
        for k, v in expected.items():
            if k not in actual:
                raise AssertionError(f"{path}: missing key {k!r}")
            _assert_match(v, actual[k], path=f"{path}.{k}")
        return

    if isinstance(expected, list):
        if not isinstance(actual, list):
            raise AssertionError(f"{path}: expected list, got {type(actual).__name__}")
        if len(expected) != len(actual):
            raise AssertionError(f"{path}: expected {len(expected)} items, got {len(actual)}")
        for i, (e, a) in enumerate(zip(expected, actual, strict=True)):
            _assert_match(e, a, path=f"{path}[{i}]")
        return

    if expected != actual:
        raise AssertionError(f"{path}: expected {expected!r}, got {actual!r}")


def client_error(code: str, message: str = "", *, operation: str = "DynamoDB") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


def canonical_numbers(native: Any) -> Any:
    """Rewrite ``N``/``NS`` payloads the way DynamoDB echoes them (``"1.0"`` -> ``"1"``)."""
    if isinstance(native, Mapping):
        out: dict[str, Any] = {}
        for name, value in native.items():
            if name == "N" and isinstance(value, str):
                out[name] = format(Decimal(value).normalize(), "f")
            elif name == "NS" and isinstance(value, list):
                out[name] = [format(Decimal(v).normalize(), "f") for v in value]
            else:
                out[name] = canonical_numbers(value)
        return out
    if isinstance(native, list):
        return [canonical_numbers(v) for v in native]
    return native


@dataclass(frozen=True)
class ExpectedCall:
    method: str
    expected: Mapping[str, Any] | Callable[[Mapping[str, Any]], None] | None = None
    response: Mapping[str, Any] | None = None
    error: Exception | None = None


class FakeDynamoDBClient:
    """Scripted stand-in for the boto3 ``dynamodb`` client.

    Each ``expect`` queues one call; calls must arrive in order. ``expected`` is
    either a partial request to match (``ANY`` skips a value) or a callable that
    asserts on the request itself. ``expect_batch_get`` and ``expect_batch_write``
    script the paged batch calls, including their unprocessed remainders.
    """

    def __init__(self) -> None:
        self._expected: list[ExpectedCall] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        method: str,
        expected: Mapping[str, Any] | Callable[[Mapping[str, Any]], None] | None = None,
        *,
        response: Mapping[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        self._expected.append(ExpectedCall(method=method, expected=expected, response=response, error=error))

    def expect_batch_get(
        self,
        table_name: str,
        items: Sequence[Mapping[str, Any]] = (),
        *,
        keys: Sequence[Mapping[str, Any]] | None = None,
        unprocessed: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        """Queue a ``batch_get_item`` page returning native ``items``.

        ``keys`` (native) pins the requested page; ``unprocessed`` keys come back
        under ``UnprocessedKeys``.
        """
        expected = None
        if keys is not None:
            expected = {"RequestItems": {table_name: {"Keys": [dict(k) for k in keys]}}}
        response: dict[str, Any] = {"Responses": {table_name: [dict(i) for i in items]}}
        if unprocessed:
            response["UnprocessedKeys"] = {table_name: {"Keys": [dict(k) for k in unprocessed]}}
        self.expect("batch_get_item", expected, response=response)

    def expect_batch_write(
        self,
        table_name: str,
        requests: Sequence[Mapping[str, Any]] | None = None,
        *,
        unprocessed: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        """Queue a ``batch_write_item`` page; ``unprocessed`` write requests are echoed back."""
        expected = None
        if requests is not None:
            expected = {"RequestItems": {table_name: [dict(r) for r in requests]}}
        response = {"UnprocessedItems": {table_name: [dict(r) for r in unprocessed]} if unprocessed else {}}
        self.expect("batch_write_item", expected, response=response)

    def assert_no_pending(self) -> None:
        if self._expected:
            raise AssertionError(f"pending expected calls: {self._expected!r}")

    def requests(self, method: str) -> list[dict[str, Any]]:
        return [req for name, req in self.calls if name == method]

    def _handle(self, method: str, req: dict[str, Any]) -> Mapping[str, Any]:
        self.calls.append((method, dict(req)))
        if not self._expected:
            raise AssertionError(f"unexpected call: {method}")

        call = self._expected.pop(0)
        if call.method != method:
            raise AssertionError(f"expected {call.method}, got {method}")

        if callable(call.expected):
            call.expected(req)
        elif call.expected is not None:
            _assert_match(dict(call.expected), req, path=method)

        if call.error is not None:
            raise call.error

        return dict(call.response or {})

    def put_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("put_item", kwargs)

    def get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("get_item", kwargs)

    def update_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("update_item", kwargs)

    def delete_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("delete_item", kwargs)

    def query(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("query", kwargs)

    def scan(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("scan", kwargs)

    def batch_get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("batch_get_item", kwargs)

    def batch_write_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("batch_write_item", kwargs)

    def create_table(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("create_table", kwargs)

    def delete_table(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("delete_table", kwargs)

    def describe_table(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle("describe_table", kwargs)


class BatchEchoClient:
    """Batch-only store that answers every page by echoing what was asked for.

    Each requested key comes back as an item with a ``payload`` attribute derived
    from its first key value. ``unprocessed_per_call`` leaves the last N entries
    of successive pages unprocessed; ``reverse`` returns items in reverse order
    and ``canonical`` rewrites numbers the way DynamoDB does.
    """

    def __init__(
        self,
        table_name: str,
        *,
        reverse: bool = False,
        canonical: bool = False,
        unprocessed_per_call: Sequence[int] = (),
    ) -> None:
        self.table_name = table_name
        self._reverse = reverse
        self._canonical = canonical
        self._unprocessed = list(unprocessed_per_call)
        self.get_pages: list[list[dict[str, Any]]] = []
        self.write_pages: list[list[dict[str, Any]]] = []

    def _split(self, requested: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        count = self._unprocessed.pop(0) if self._unprocessed else 0
        if self._canonical:
            requested = canonical_numbers(requested)
        if count == 0:
            return requested, []
        return requested[:-count], requested[-count:]

    def batch_get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        keys = kwargs["RequestItems"][self.table_name]["Keys"]
        self.get_pages.append(keys)
        done, leftover = self._split(keys)

        items = []
        for key in done:
            first = next(iter(key.values()))
            items.append({**key, "payload": {"S": "v" + str(next(iter(first.values())))}})
        if self._reverse:
            items.reverse()

        unprocessed = {self.table_name: {"Keys": leftover}} if leftover else {}
        return {"Responses": {self.table_name: items}, "UnprocessedKeys": unprocessed}

    def batch_write_item(self, **kwargs: Any) -> Mapping[str, Any]:
        requests = kwargs["RequestItems"][self.table_name]
        self.write_pages.append(requests)
        _, leftover = self._split(requests)
        return {"UnprocessedItems": {self.table_name: leftover} if leftover else {}}
