from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .attributes import TYPE_TAGS, parse_attribute
from .batch import BATCH_GET_LIMIT, BATCH_WRITE_LIMIT, batch_get, batch_write, order_items
from .codec import TypedValue, decode, encode
from .conditions import conditions_to_native
from .errors import (
    BatchCancelledError,
    DynawrapPyError,
    EmptyBatchError,
    InvalidOperandError,
    InvalidOptionError,
    PartialBatchFailureError,
    UnsupportedTypeError,
    ValidationError,
)
from .items import item_from_native, item_to_native, item_to_tokens, items_from_native
from .store import CancelToken, Store
from .updates import updates_to_native

if TYPE_CHECKING:
    from .dynamodb import DynamoDb, build_create_table_request
    from .runtime import (
        AwsCallMetric,
        ClientSettings,
        create_boto3_config,
        get_dynamodb_client,
        instrument_boto3_client,
        log_call_metric,
    )


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except Exception:
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name in {"DynamoDb", "build_create_table_request"}:
        from . import dynamodb

        return getattr(dynamodb, name)
    if name in {
        "AwsCallMetric",
        "ClientSettings",
        "create_boto3_config",
        "get_dynamodb_client",
        "instrument_boto3_client",
        "log_call_metric",
    }:
        from . import runtime

        return getattr(runtime, name)
    raise AttributeError(name)


__all__ = [
    "AwsCallMetric",
    "BATCH_GET_LIMIT",
    "BATCH_WRITE_LIMIT",
    "BatchCancelledError",
    "batch_get",
    "batch_write",
    "build_create_table_request",
    "CancelToken",
    "ClientSettings",
    "conditions_to_native",
    "create_boto3_config",
    "decode",
    "DynamoDb",
    "DynawrapPyError",
    "EmptyBatchError",
    "encode",
    "get_dynamodb_client",
    "instrument_boto3_client",
    "InvalidOperandError",
    "InvalidOptionError",
    "item_from_native",
    "item_to_native",
    "item_to_tokens",
    "items_from_native",
    "log_call_metric",
    "order_items",
    "parse_attribute",
    "PartialBatchFailureError",
    "Store",
    "TYPE_TAGS",
    "TypedValue",
    "UnsupportedTypeError",
    "updates_to_native",
    "ValidationError",
    "__repo_version__",
    "__version__",
]
