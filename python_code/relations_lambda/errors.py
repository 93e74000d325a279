"""
Typed errors for the Relations Lambda.

Every store-facing operation raises one of these instead of returning a
default value, so the handler can tell "no such record" (which is never an
error) apart from a broken request, an item that does not fit its record
type, or a store that could not be reached.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

# Error codes DynamoDB returns for conditions that may clear up on their own.
RETRYABLE_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailable",
        "LimitExceededException",
    }
)


@dataclass(eq=False)
class RelationsError(Exception):
    """
    Base class for all errors raised by this package.

    Attributes:
        message: Human readable description.
        operation: The store operation that failed (e.g. "GetItem").
        table_name: The table the operation targeted.
        key: The identity of the record involved, when there is one.
        classification: The classification being listed, when there is one.
        retryable: True if repeating the same call may succeed.
        cause: The underlying exception, if any.
    """

    message: str
    operation: Optional[str] = None
    table_name: Optional[str] = None
    key: Optional[Dict[str, Any]] = None
    classification: Optional[str] = None
    retryable: bool = False
    cause: Optional[BaseException] = None

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Structured form used in log payloads."""
        return {
            "error_type": type(self).__name__,
            "error_message": self.message,
            "operation": self.operation,
            "table_name": self.table_name,
            "key": self.key,
            "classification": self.classification,
            "retryable": self.retryable,
        }


@dataclass(eq=False)
class SchemaMismatch(RelationsError):
    """A stored item could not be decoded into the requested record type."""


@dataclass(eq=False)
class StoreUnavailable(RelationsError):
    """Throttling, service-side failure, network failure or timeout."""

    retryable: bool = True


@dataclass(eq=False)
class StoreRejected(RelationsError):
    """The store refused the call (permissions, missing table or index, validation)."""


@dataclass(eq=False)
class MalformedRequest(RelationsError):
    """The inbound event does not describe a known action."""


def translate_store_error(
    error: Exception,
    operation: str,
    table_name: str,
    key: Optional[Dict[str, Any]] = None,
    classification: Optional[str] = None,
) -> RelationsError:
    """
    Maps a botocore exception onto StoreUnavailable or StoreRejected.

    Args:
        error: The ClientError or BotoCoreError raised by the client call.
        operation: The DynamoDB operation name.
        table_name: The table the call targeted.
        key: The plain (undecoded) key of the record, for attribution.
        classification: The classification being queried, for attribution.

    Returns:
        The typed error to raise. The caller is expected to `raise ... from error`.
    """
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "Unknown")
        detail = error.response.get("Error", {}).get("Message", str(error))
        message = f"{operation} on '{table_name}' failed with {code}: {detail}"
        if code in RETRYABLE_ERROR_CODES:
            return StoreUnavailable(
                message,
                operation=operation,
                table_name=table_name,
                key=key,
                classification=classification,
                cause=error,
            )
        return StoreRejected(
            message,
            operation=operation,
            table_name=table_name,
            key=key,
            classification=classification,
            cause=error,
        )

    if isinstance(error, BotoCoreError):
        # Connection failures and read/connect timeouts land here.
        return StoreUnavailable(
            f"{operation} on '{table_name}' could not reach the store: {error}",
            operation=operation,
            table_name=table_name,
            key=key,
            classification=classification,
            cause=error,
        )

    raise TypeError(f"Not a botocore error: {type(error).__name__}")
