from __future__ import annotations

from botocore.exceptions import ClientError

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
RESOURCE_NOT_FOUND = "ResourceNotFoundException"
RESOURCE_IN_USE = "ResourceInUseException"


def error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def error_message(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Message", "")) or str(err)


def is_conditional_check_failed(err: ClientError) -> bool:
    return error_code(err) == CONDITIONAL_CHECK_FAILED


def is_resource_not_found(err: ClientError) -> bool:
    return error_code(err) == RESOURCE_NOT_FOUND
