from typing import Optional

from botocore.exceptions import ClientError

from dynamo_archive.exceptions import (
    BaseDynamoArchiveError,
    CapacityConflictError,
    NotFoundError,
    ThroughputUnchangedError,
    TransientStoreError,
    ValidationError,
)

RESOURCE_NOT_FOUND_ERROR_CODES = frozenset(
    [
        "ResourceNotFoundException",
        "ResourceNotFound",
        "TableNotFoundException",
        "NoSuchKey",
        "NoSuchBucket",
        "NotFound",
        "404",
    ]
)
ACCESS_DENIED_ERROR_CODES = frozenset(
    [
        "AccessDenied",
        "AccessDeniedException",
        "UnauthorizedOperation",
        "UnrecognizedClientException",
        "InvalidClientTokenId",
    ]
)
CAPACITY_CONFLICT_ERROR_CODES = frozenset(
    ["ResourceInUseException", "LimitExceededException"]
)
THROUGHPUT_UNCHANGED_MESSAGE = "will not change"


def get_error_code(e: Optional[Exception]) -> str | None:
    response = getattr(e, "response", None)
    if isinstance(response, dict):
        return response.get("Error", {}).get("Code")
    return None


def is_resource_not_found_exception(e: Optional[Exception]) -> bool:
    return get_error_code(e) in RESOURCE_NOT_FOUND_ERROR_CODES


def is_access_denied_exception(e: Optional[Exception]) -> bool:
    return get_error_code(e) in ACCESS_DENIED_ERROR_CODES


def is_capacity_conflict_exception(e: Optional[Exception]) -> bool:
    return get_error_code(e) in CAPACITY_CONFLICT_ERROR_CODES


def is_throughput_unchanged_exception(e: Optional[Exception]) -> bool:
    return get_error_code(
        e
    ) == "ValidationException" and THROUGHPUT_UNCHANGED_MESSAGE in str(e)


def translate_aws_error(e: Exception, operation: str) -> BaseDynamoArchiveError:
    """Maps a botocore failure onto the transfer error taxonomy."""
    message = f"{operation} failed: {e}"
    if isinstance(e, ClientError):
        if is_resource_not_found_exception(e):
            return NotFoundError(message)
        if is_throughput_unchanged_exception(e):
            return ThroughputUnchangedError(message)
        if is_capacity_conflict_exception(e):
            return CapacityConflictError(message)
        if is_access_denied_exception(e) or get_error_code(e) in (
            "ValidationException",
            "SerializationException",
        ):
            return ValidationError(message)
    return TransientStoreError(message)
