from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from dynawrap_py import (
    DynamoDb,
    InvalidOperandError,
    PartialBatchFailureError,
    UnsupportedTypeError,
    ValidationError,
    build_create_table_request,
)
from dynawrap_py.testkit import ANY, FakeDynamoDBClient, client_error, no_sleep


def _db(client: FakeDynamoDBClient, **kwargs: object) -> DynamoDb:
    return DynamoDb(client, sleep=no_sleep, **kwargs)  # type: ignore[arg-type]


def test_get_translates_key_and_decodes_item() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "get_item",
        {"TableName": "users", "Key": {"Id": {"N": "7"}}, "ConsistentRead": True},
        response={"Item": {"Id": {"N": "7"}, "Name": {"S": "Ann"}, "Tags": {"SS": ["a"]}}},
    )
    client.expect("get_item", response={})

    db = _db(client)
    assert db.get("users", {"Id::N": 7}, consistent_read=True) == {"Id": "7", "Name": "Ann", "Tags": ["a"]}
    assert db.get("users", {"Id::N": 8}) is None
    assert "ConsistentRead" not in client.calls[1][1]
    client.assert_no_pending()


def test_get_unknown_attribute_type_is_an_error() -> None:
    client = FakeDynamoDBClient()
    client.expect("get_item", response={"Item": {"Id": {"N": "7"}, "Meta": {"M": {}}}})

    with pytest.raises(UnsupportedTypeError):
        _db(client).get("users", {"Id::N": 7})


def test_put_sends_expected_and_reports_condition_failure_as_false() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "put_item",
        {
            "TableName": "users",
            "Item": {"Id": {"N": "7"}, "Name": {"S": "Ann"}},
            "Expected": {"Id": {"ComparisonOperator": "NULL"}},
        },
    )
    client.expect("put_item", error=client_error("ConditionalCheckFailedException"))

    db = _db(client)
    assert db.put("users", {"Id::N": 7, "Name": "Ann"}, expected={"Id": ("NULL",)}) is True
    assert db.put("users", {"Id::N": 7, "Name": "Ann"}, expected={"Id": ("NULL",)}) is False
    client.assert_no_pending()


def test_put_propagates_other_store_errors_unchanged() -> None:
    err = client_error("ProvisionedThroughputExceededException", "slow down")
    client = FakeDynamoDBClient()
    client.expect("put_item", error=err)

    with pytest.raises(ClientError) as excinfo:
        _db(client).put("users", {"Id::N": 7})
    assert excinfo.value is err


def test_put_translation_errors_fire_before_any_call() -> None:
    client = FakeDynamoDBClient()
    with pytest.raises(InvalidOperandError, match="BETWEEN"):
        _db(client).put("users", {"Id::N": 7}, expected={"Age::N": ("BETWEEN", [1])})
    assert client.calls == []


def test_update_translates_key_updates_and_expected() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "update_item",
        {
            "TableName": "users",
            "Key": {"Id": {"N": "7"}},
            "AttributeUpdates": {
                "Views": {"Action": "ADD", "Value": {"N": "1"}},
                "Note": {"Action": "DELETE"},
            },
            "Expected": {"Version": {"ComparisonOperator": "EQ", "AttributeValueList": [{"N": "3"}]}},
            "ReturnValues": "UPDATE_NEW",
        },
        response={"Attributes": {"Views": {"N": "11"}}},
    )
    client.expect("update_item", error=client_error("ConditionalCheckFailedException"))

    db = _db(client)
    updates = {"Views::N": ("ADD", 1), "Note": ("DELETE",)}
    assert db.update("users", {"Id::N": 7}, updates, expected={"Version::N": 3}) == {"Views": "11"}
    assert db.update("users", {"Id::N": 7}, updates, expected={"Version::N": 3}) is None
    client.assert_no_pending()

    with pytest.raises(ValidationError, match="no updates"):
        db.update("users", {"Id::N": 7}, {})


def test_delete_returns_old_item() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "delete_item",
        {"TableName": "users", "Key": {"Id": {"N": "7"}}, "ReturnValues": "ALL_OLD"},
        response={"Attributes": {"Id": {"N": "7"}}},
    )
    client.expect("delete_item", response={})

    db = _db(client)
    assert db.delete("users", {"Id::N": 7}) == {"Id": "7"}
    assert db.delete("users", {"Id::N": 7}) is None


def test_batch_put_and_delete_use_write_pages() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "batch_write_item",
        {"RequestItems": {"users": [{"PutRequest": {"Item": {"Id": {"N": "1"}}}}]}},
        response={"UnprocessedItems": {}},
    )
    client.expect(
        "batch_write_item",
        {"RequestItems": {"users": [{"DeleteRequest": {"Key": {"Id": {"N": "1"}}}}]}},
        response={"UnprocessedItems": {}},
    )

    db = _db(client)
    assert db.batch_put("users", [{"Id::N": 1}]) is True
    assert db.batch_delete("users", [{"Id::N": 1}]) is True
    client.assert_no_pending()


def test_batch_get_uses_configured_retry_budget() -> None:
    key = {"Id": {"N": "1"}}
    client = FakeDynamoDBClient()
    for _ in range(2):
        client.expect(
            "batch_get_item",
            response={"Responses": {"users": []}, "UnprocessedKeys": {"users": {"Keys": [key]}}},
        )

    with pytest.raises(PartialBatchFailureError) as excinfo:
        _db(client, max_retries=1).batch_get("users", [{"Id::N": 1}])
    assert excinfo.value.unprocessed == [{"Id::N": 1}]
    client.assert_no_pending()


def test_query_translates_conditions_and_options() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "query",
        {
            "TableName": "events",
            "KeyConditions": {
                "User": {"ComparisonOperator": "EQ", "AttributeValueList": [{"S": "u1"}]},
                "At": {"ComparisonOperator": "BETWEEN", "AttributeValueList": [{"N": "1"}, {"N": "9"}]},
            },
            "QueryFilter": {"Kind": {"ComparisonOperator": "NOT_NULL"}},
            "ScanIndexForward": False,
            "Limit": 10,
            "IndexName": "AtIndex",
            "ExclusiveStartKey": {"User": {"S": "u1"}, "At": {"N": "0"}},
        },
        response={
            "Items": [
                {"User": {"S": "u1"}, "At": {"N": "3"}},
                {"User": {"S": "u1"}, "At": {"N": "2"}},
            ]
        },
    )

    got = _db(client).query(
        "events",
        {"User": "u1", "At::N": ("BETWEEN", [1, 9])},
        index_name="AtIndex",
        limit=10,
        scan_forward=False,
        exclusive_start_key={"User": "u1", "At::N": 0},
        query_filter={"Kind": ("NOT_NULL",)},
    )
    assert got == [{"User": "u1", "At": "3"}, {"User": "u1", "At": "2"}]
    client.assert_no_pending()


def test_query_defaults_and_validation() -> None:
    client = FakeDynamoDBClient()
    client.expect("query", {"Limit": 100, "ScanIndexForward": True}, response={})

    db = _db(client)
    assert db.query("events", {"User": "u1"}) == []
    assert "ConsistentRead" not in client.calls[0][1]

    with pytest.raises(ValidationError):
        db.query("events", {})
    with pytest.raises(ValidationError):
        db.query("events", {"User": "u1"}, limit=0)


def test_count_sums_pages() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "query",
        {"Select": "COUNT", "IndexName": "ByUser"},
        response={"Count": 3, "LastEvaluatedKey": {"User": {"S": "u1"}}},
    )
    client.expect("query", {"ExclusiveStartKey": {"User": {"S": "u1"}}}, response={"Count": 2})

    assert _db(client).count("events", {"User": "u1"}, index_name="ByUser") == 5
    client.assert_no_pending()


def test_scan_is_lazy_and_follows_pages() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "scan",
        {
            "TableName": "users",
            "ScanFilter": {"Age": {"ComparisonOperator": "GT", "AttributeValueList": [{"N": "18"}]}},
        },
        response={"Items": [{"Id": {"N": "1"}}], "LastEvaluatedKey": {"Id": {"N": "1"}}},
    )
    client.expect(
        "scan",
        {"ExclusiveStartKey": {"Id": {"N": "1"}}},
        response={"Items": [{"Id": {"N": "2"}}]},
    )

    results = _db(client).scan("users", {"Age::N": ("GT", 18)})
    assert client.calls == []
    assert list(results) == [{"Id": "1"}, {"Id": "2"}]
    client.assert_no_pending()


def test_scan_limit_caps_total_items() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "scan",
        {"Limit": 3},
        response={"Items": [{"Id": {"N": "1"}}, {"Id": {"N": "2"}}], "LastEvaluatedKey": {"Id": {"N": "2"}}},
    )
    client.expect("scan", {"Limit": 1}, response={"Items": [{"Id": {"N": "3"}}], "LastEvaluatedKey": ANY})

    assert list(_db(client).scan("users", limit=3)) == [{"Id": "1"}, {"Id": "2"}, {"Id": "3"}]
    client.assert_no_pending()


def test_build_create_table_request_with_lsi() -> None:
    req = build_create_table_request(
        "events",
        "User",
        "At::N",
        local_secondary_indexes=[{"name": "Score::N", "projection_type": "KEYS_ONLY"}],
    )
    assert req == {
        "TableName": "events",
        "KeySchema": [
            {"AttributeName": "User", "KeyType": "HASH"},
            {"AttributeName": "At", "KeyType": "RANGE"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": "At", "AttributeType": "N"},
            {"AttributeName": "Score", "AttributeType": "N"},
            {"AttributeName": "User", "AttributeType": "S"},
        ],
        "ProvisionedThroughput": {"ReadCapacityUnits": 1, "WriteCapacityUnits": 1},
        "LocalSecondaryIndexes": [
            {
                "IndexName": "ScoreIndex",
                "KeySchema": [
                    {"AttributeName": "User", "KeyType": "HASH"},
                    {"AttributeName": "Score", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "KEYS_ONLY"},
            }
        ],
    }


def test_build_create_table_request_validation() -> None:
    with pytest.raises(ValidationError, match="S/N/B"):
        build_create_table_request("t", "Tags::SS")
    with pytest.raises(ValidationError, match="range key"):
        build_create_table_request("t", "Id", local_secondary_indexes=[{"name": "At::N"}])
    with pytest.raises(ValidationError, match="separator"):
        build_create_table_request("t", "Id::N::S")


def test_create_table_waits_for_active() -> None:
    client = FakeDynamoDBClient()
    client.expect("create_table", {"TableName": "users", "KeySchema": ANY})
    client.expect("describe_table", response={"Table": {"TableStatus": "CREATING"}})
    client.expect("describe_table", response={"Table": {"TableStatus": "ACTIVE"}})

    _db(client).create_table("users", "Id::N")
    client.assert_no_pending()


def test_create_table_tolerates_existing_table() -> None:
    client = FakeDynamoDBClient()
    client.expect("create_table", error=client_error("ResourceInUseException"))

    _db(client).create_table("users", "Id::N", wait=False)
    client.assert_no_pending()


def test_delete_table_and_table_exists() -> None:
    client = FakeDynamoDBClient()
    client.expect("delete_table", {"TableName": "users"})
    client.expect("describe_table", response={"Table": {"TableStatus": "DELETING"}})
    client.expect("describe_table", error=client_error("ResourceNotFoundException"))
    client.expect("delete_table", error=client_error("ResourceNotFoundException"))
    client.expect("describe_table", error=client_error("AccessDeniedException"))

    db = _db(client)
    db.delete_table("users")
    db.delete_table("users", ignore_missing=True)
    with pytest.raises(ClientError):
        db.table_exists("users")
    client.assert_no_pending()


def test_empty_table_deletes_by_native_key() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "describe_table",
        response={
            "Table": {
                "KeySchema": [
                    {"AttributeName": "User", "KeyType": "HASH"},
                    {"AttributeName": "At", "KeyType": "RANGE"},
                ]
            }
        },
    )
    client.expect(
        "scan",
        {"ProjectionExpression": "#k0, #k1", "ExpressionAttributeNames": {"#k0": "User", "#k1": "At"}},
        response={
            "Items": [
                {"User": {"S": "u1"}, "At": {"N": "1"}},
                {"User": {"S": "u1"}, "At": {"N": "2"}},
            ]
        },
    )
    client.expect(
        "batch_write_item",
        {
            "RequestItems": {
                "events": [
                    {"DeleteRequest": {"Key": {"User": {"S": "u1"}, "At": {"N": "1"}}}},
                    {"DeleteRequest": {"Key": {"User": {"S": "u1"}, "At": {"N": "2"}}}},
                ]
            }
        },
        response={"UnprocessedItems": {}},
    )

    assert _db(client).empty_table("events") == 2
    client.assert_no_pending()


def test_empty_table_with_no_items_makes_no_writes() -> None:
    client = FakeDynamoDBClient()
    key_schema = [{"AttributeName": "Id", "KeyType": "HASH"}]
    client.expect("describe_table", response={"Table": {"KeySchema": key_schema}})
    client.expect("scan", response={"Items": []})

    assert _db(client).empty_table("users") == 0
    client.assert_no_pending()


def test_constructor_validation() -> None:
    with pytest.raises(ValueError):
        DynamoDb(FakeDynamoDBClient(), max_retries=-1)


def test_empty_table_retry_exhaustion_reports_resubmittable_keys() -> None:
    delete = {"DeleteRequest": {"Key": {"Id": {"N": "7"}}}}
    client = FakeDynamoDBClient()
    key_schema = [{"AttributeName": "Id", "KeyType": "HASH"}]
    client.expect("describe_table", response={"Table": {"KeySchema": key_schema}})
    client.expect("scan", response={"Items": [{"Id": {"N": "7"}}]})
    client.expect_batch_write("users", [delete], unprocessed=[delete])
    client.expect_batch_write("users", [delete])

    db = _db(client, max_retries=0)
    with pytest.raises(PartialBatchFailureError) as excinfo:
        db.empty_table("users")

    assert excinfo.value.operation == "batch_delete"
    assert excinfo.value.unprocessed == [{"Id::N": "7"}]

    assert db.batch_delete("users", excinfo.value.unprocessed) is True
    client.assert_no_pending()
