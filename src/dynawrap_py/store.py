from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol


class Store(Protocol):
    """The slice of the boto3 ``dynamodb`` low-level client this package calls.

    Requests and responses use DynamoDB's native attribute-value maps. A real
    ``boto3.client("dynamodb")`` satisfies it, as does ``mocks.FakeDynamoDBClient``.
    """

    def get_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def put_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def update_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def delete_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def batch_get_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def batch_write_item(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def query(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def scan(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def create_table(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def delete_table(self, **kwargs: Any) -> Mapping[str, Any]: ...

    def describe_table(self, **kwargs: Any) -> Mapping[str, Any]: ...


class CancelToken(Protocol):
    def is_set(self) -> bool: ...
