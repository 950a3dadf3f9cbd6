from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any

from botocore.exceptions import ClientError

from .attributes import parse_attribute
from .aws_errors import RESOURCE_IN_USE, error_code, is_conditional_check_failed, is_resource_not_found
from .batch import DEFAULT_MAX_RETRIES, _delete_native_keys, batch_get, batch_write
from .conditions import conditions_to_native
from .errors import ValidationError
from .items import item_from_native, item_to_native, items_from_native
from .runtime import ClientSettings, get_dynamodb_client
from .store import CancelToken, Store
from .updates import updates_to_native

logger = logging.getLogger(__name__)


class DynamoDb:
    """Item and table operations expressed with compact attribute tokens.

    Keys and items are plain mappings such as ``{"Id::N": 7, "Name": "x"}``;
    results come back as ``{"Id": "7", "Name": "x"}``. Native attribute-value
    maps never cross this class's public methods.
    """

    def __init__(
        self,
        client: Store | None = None,
        *,
        settings: ClientSettings | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Callable[[float], None] | None = time.sleep,
        wait_timeout_seconds: float = 300.0,
        poll_interval_seconds: float = 0.25,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self._client: Any = client if client is not None else get_dynamodb_client(settings)
        self._max_retries = max_retries
        self._sleep = sleep
        self._wait_timeout_seconds = wait_timeout_seconds
        self._poll_interval_seconds = poll_interval_seconds

    def get(
        self,
        table_name: str,
        key: Mapping[str, Any],
        *,
        consistent_read: bool = False,
    ) -> dict[str, Any] | None:
        req: dict[str, Any] = {"TableName": table_name, "Key": item_to_native(key)}
        if consistent_read:
            req["ConsistentRead"] = True

        resp = self._client.get_item(**req)
        return item_from_native(resp.get("Item"))

    def batch_get(
        self,
        table_name: str,
        keys: Sequence[Mapping[str, Any]],
        *,
        consistent_read: bool = False,
        order: Mapping[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> list[dict[str, Any]]:
        return batch_get(
            self._client,
            table_name,
            keys,
            consistent_read=consistent_read,
            order=order,
            max_retries=self._max_retries,
            sleep=self._sleep,
            cancel=cancel,
        )

    def put(
        self,
        table_name: str,
        item: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> bool:
        req: dict[str, Any] = {"TableName": table_name, "Item": item_to_native(item)}
        if expected:
            req["Expected"] = conditions_to_native(expected)

        try:
            self._client.put_item(**req)
        except ClientError as err:
            if is_conditional_check_failed(err):
                logger.debug("put on %s rejected by condition", table_name)
                return False
            raise
        return True

    def batch_put(
        self,
        table_name: str,
        items: Sequence[Mapping[str, Any]],
        *,
        cancel: CancelToken | None = None,
    ) -> bool:
        return batch_write(
            self._client,
            table_name,
            items,
            mode="put",
            max_retries=self._max_retries,
            sleep=self._sleep,
            cancel=cancel,
        )

    def update(
        self,
        table_name: str,
        key: Mapping[str, Any],
        updates: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
        return_values: str = "UPDATE_NEW",
    ) -> dict[str, Any] | None:
        if not updates:
            raise ValidationError("no updates provided")

        req: dict[str, Any] = {
            "TableName": table_name,
            "Key": item_to_native(key),
            "AttributeUpdates": updates_to_native(updates),
            "ReturnValues": return_values,
        }
        if expected:
            req["Expected"] = conditions_to_native(expected)

        try:
            resp = self._client.update_item(**req)
        except ClientError as err:
            if is_conditional_check_failed(err):
                logger.debug("update on %s rejected by condition", table_name)
                return None
            raise
        return item_from_native(resp.get("Attributes"))

    def delete(self, table_name: str, key: Mapping[str, Any]) -> dict[str, Any] | None:
        resp = self._client.delete_item(
            TableName=table_name,
            Key=item_to_native(key),
            ReturnValues="ALL_OLD",
        )
        return item_from_native(resp.get("Attributes"))

    def batch_delete(
        self,
        table_name: str,
        keys: Sequence[Mapping[str, Any]],
        *,
        cancel: CancelToken | None = None,
    ) -> bool:
        return batch_write(
            self._client,
            table_name,
            keys,
            mode="delete",
            max_retries=self._max_retries,
            sleep=self._sleep,
            cancel=cancel,
        )

    def query(
        self,
        table_name: str,
        conditions: Mapping[str, Any],
        *,
        index_name: str | None = None,
        limit: int | None = 100,
        consistent_read: bool | None = None,
        exclusive_start_key: Mapping[str, Any] | None = None,
        scan_forward: bool = True,
        query_filter: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        if not conditions:
            raise ValidationError("query requires at least one key condition")
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be > 0")

        req: dict[str, Any] = {
            "TableName": table_name,
            "KeyConditions": conditions_to_native(conditions),
            "ScanIndexForward": scan_forward,
        }
        if limit is not None:
            req["Limit"] = limit
        if consistent_read is not None:
            req["ConsistentRead"] = consistent_read
        if index_name is not None:
            req["IndexName"] = index_name
        if exclusive_start_key is not None:
            req["ExclusiveStartKey"] = item_to_native(exclusive_start_key)
        if query_filter:
            req["QueryFilter"] = conditions_to_native(query_filter)

        resp = self._client.query(**req)
        return items_from_native(resp.get("Items", []))

    def count(
        self,
        table_name: str,
        conditions: Mapping[str, Any],
        *,
        index_name: str | None = None,
    ) -> int:
        if not conditions:
            raise ValidationError("count requires at least one key condition")

        req: dict[str, Any] = {
            "TableName": table_name,
            "KeyConditions": conditions_to_native(conditions),
            "Select": "COUNT",
        }
        if index_name is not None:
            req["IndexName"] = index_name

        total = 0
        while True:
            resp = self._client.query(**req)
            total += int(resp.get("Count", 0))
            last = resp.get("LastEvaluatedKey")
            if not last:
                return total
            req["ExclusiveStartKey"] = last

    def scan(
        self,
        table_name: str,
        filter: Mapping[str, Any] | None = None,
        *,
        limit: int | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Lazily yield every item matching ``filter``, following ``LastEvaluatedKey``.

        ``limit`` caps the number of items yielded across all pages.
        """
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be > 0")

        params: dict[str, Any] = {}
        if filter:
            params["ScanFilter"] = conditions_to_native(filter)
        return self._scan_items(table_name, limit, params)

    def _scan_items(
        self, table_name: str, limit: int | None, params: dict[str, Any]
    ) -> Iterator[dict[str, Any]]:
        for native in self._scan_native(table_name, limit=limit, **params):
            item = item_from_native(native)
            if item is not None:
                yield item

    def _scan_native(
        self, table_name: str, *, limit: int | None = None, **params: Any
    ) -> Iterator[dict[str, Any]]:
        req: dict[str, Any] = {"TableName": table_name, **params}

        remaining = limit
        while True:
            if remaining is not None:
                req["Limit"] = remaining
            resp = self._client.scan(**req)
            for native in resp.get("Items", []):
                yield native
                if remaining is not None:
                    remaining -= 1
                    if remaining <= 0:
                        return

            last = resp.get("LastEvaluatedKey")
            if not last:
                return
            req["ExclusiveStartKey"] = last

    def create_table(
        self,
        table_name: str,
        hash_key: str,
        range_key: str | None = None,
        *,
        local_secondary_indexes: Sequence[Mapping[str, Any]] = (),
        read_capacity: int = 1,
        write_capacity: int = 1,
        wait: bool = True,
    ) -> None:
        """Create a provisioned table keyed by attribute tokens (``"Id::N"``).

        Each local secondary index is ``{"name": "Created::N", "projection_type": "ALL"}``
        and is named ``"<name>Index"``. Requires a range key.
        """
        req = build_create_table_request(
            table_name,
            hash_key,
            range_key,
            local_secondary_indexes=local_secondary_indexes,
            read_capacity=read_capacity,
            write_capacity=write_capacity,
        )

        try:
            self._client.create_table(**req)
        except ClientError as err:
            if error_code(err) != RESOURCE_IN_USE:
                raise
            logger.info("table %s already exists", table_name)

        if wait:
            self._wait_for_table_active(table_name)

    def delete_table(self, table_name: str, *, wait: bool = True, ignore_missing: bool = False) -> None:
        try:
            self._client.delete_table(TableName=table_name)
        except ClientError as err:
            if ignore_missing and is_resource_not_found(err):
                return
            raise

        if wait:
            self._wait_for_table_deleted(table_name)

    def table_exists(self, table_name: str) -> bool:
        try:
            self._client.describe_table(TableName=table_name)
        except ClientError as err:
            if is_resource_not_found(err):
                return False
            raise
        return True

    def empty_table(self, table_name: str) -> int:
        """Delete every item in ``table_name``; returns how many were deleted."""
        resp = self._client.describe_table(TableName=table_name)
        key_schema = resp.get("Table", {}).get("KeySchema", [])
        key_names = [str(entry["AttributeName"]) for entry in key_schema]
        if not key_names:
            raise ValidationError(f"table {table_name} has no key schema")

        names = {f"#k{i}": name for i, name in enumerate(key_names)}
        keys: list[dict[str, Any]] = []
        projection = {"ProjectionExpression": ", ".join(names), "ExpressionAttributeNames": names}
        for native in self._scan_native(table_name, **projection):
            keys.append({name: native[name] for name in key_names})

        deleted = _delete_native_keys(
            self._client,
            table_name,
            keys,
            max_retries=self._max_retries,
            sleep=self._sleep,
        )
        logger.info("emptied table %s (%d items)", table_name, deleted)
        return deleted

    def _wait_for_table_active(self, table_name: str) -> None:
        deadline = time.monotonic() + self._wait_timeout_seconds
        while time.monotonic() < deadline:
            try:
                resp = self._client.describe_table(TableName=table_name)
            except ClientError as err:
                if not is_resource_not_found(err):
                    raise
                resp = {}

            status = str(resp.get("Table", {}).get("TableStatus", ""))
            if status == "ACTIVE":
                return
            self._pause()

        raise ValidationError(f"timed out waiting for table ACTIVE: {table_name}")

    def _wait_for_table_deleted(self, table_name: str) -> None:
        deadline = time.monotonic() + self._wait_timeout_seconds
        while time.monotonic() < deadline:
            if not self.table_exists(table_name):
                return
            self._pause()

        raise ValidationError(f"timed out waiting for table deletion: {table_name}")

    def _pause(self) -> None:
        if self._sleep is not None:
            self._sleep(self._poll_interval_seconds)


def build_create_table_request(
    table_name: str,
    hash_key: str,
    range_key: str | None = None,
    *,
    local_secondary_indexes: Sequence[Mapping[str, Any]] = (),
    read_capacity: int = 1,
    write_capacity: int = 1,
) -> dict[str, Any]:
    if not table_name:
        raise ValidationError("table_name is required")
    if read_capacity <= 0 or write_capacity <= 0:
        raise ValidationError("read_capacity and write_capacity must be > 0")

    attr_types: dict[str, str] = {}

    def key_attribute(token: str) -> str:
        name, type_tag = parse_attribute(token, strict=True)
        if type_tag not in {"S", "N", "B"}:
            raise ValidationError(f"key attribute must be S/N/B: {token}")
        attr_types[name] = type_tag
        return name

    hash_name = key_attribute(hash_key)
    key_schema = [{"AttributeName": hash_name, "KeyType": "HASH"}]
    if range_key is not None:
        key_schema.append({"AttributeName": key_attribute(range_key), "KeyType": "RANGE"})

    lsis: list[dict[str, Any]] = []
    for index in local_secondary_indexes:
        if range_key is None:
            raise ValidationError("local secondary indexes require a range key")
        token = index.get("name")
        if not isinstance(token, str) or not token:
            raise ValidationError("local secondary index requires a name")
        sort_name = key_attribute(token)
        lsis.append(
            {
                "IndexName": f"{sort_name}Index",
                "KeySchema": [
                    {"AttributeName": hash_name, "KeyType": "HASH"},
                    {"AttributeName": sort_name, "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": str(index.get("projection_type") or "ALL")},
            }
        )

    req: dict[str, Any] = {
        "TableName": table_name,
        "KeySchema": key_schema,
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": attr_types[name]} for name in sorted(attr_types)
        ],
        "ProvisionedThroughput": {
            "ReadCapacityUnits": read_capacity,
            "WriteCapacityUnits": write_capacity,
        },
    }
    if lsis:
        req["LocalSecondaryIndexes"] = lsis
    return req
