"""
Action dispatch for the Relations Lambda.

Translates an inbound invocation event into an `ActionRequest`, runs the
matching generic accessor for the target record type, and assembles the
response envelope. Errors are not caught here; they propagate to the handler.
"""

from typing import Any, Mapping, Optional, Type

from aws_lambda_powertools import Logger
from mypy_boto3_dynamodb.client import DynamoDBClient

from . import codec, core
from .errors import MalformedRequest
from .model import (
    ActionEvent,
    ActionRequest,
    GetByKey,
    ListByClassification,
    R,
    ResponseEnvelope,
)

LIST_ACTIONS = frozenset({"GetDatasets", "ListByClassification"})
GET_ACTIONS = frozenset({"GetByKey", "GetItem"})

# GetItem is the older action name and spells its keys "a" and "b".
_KEY_FIELDS = {"GetByKey": ("pk", "sk"), "GetItem": ("a", "b")}


def parse_action_request(event: ActionEvent) -> ActionRequest:
    """
    Parses the invocation event into an ActionRequest.

    Accepted shapes:
        {"action": "GetDatasets"}
        {"action": {"GetDatasets": {"next_token": "..."}}}
        {"action": {"GetByKey": {"pk": "...", "sk": "..."}}}
        {"action": "GetByKey", "pk": "...", "sk": "..."}
        {"action": {"GetItem": {"a": "...", "b": "..."}}}

    Raises:
        MalformedRequest: The event matches none of the above, or a key is
                          missing, empty or not a string.
    """
    if not isinstance(event, Mapping) or "action" not in event:
        raise MalformedRequest("Event has no 'action'.")

    action = event["action"]
    if isinstance(action, str):
        name, params = action, event
    elif isinstance(action, Mapping) and len(action) == 1:
        name, params = next(iter(action.items()))
        params = params if params is not None else {}
    else:
        raise MalformedRequest(f"Unrecognized action shape: {action!r}")

    if not isinstance(params, Mapping):
        raise MalformedRequest(f"Parameters for '{name}' must be an object.")

    if name in LIST_ACTIONS:
        token = params.get("next_token")
        if token is not None and (not isinstance(token, str) or not token):
            raise MalformedRequest("'next_token' must be a non-empty string.")
        return ListByClassification(next_token=token)

    if name in GET_ACTIONS:
        pk_field, sk_field = _KEY_FIELDS[name]
        return GetByKey(
            partition_key=_required_key(params, pk_field, name),
            sort_key=_required_key(params, sk_field, name),
        )

    raise MalformedRequest(f"Unknown action '{name}'.")


def _required_key(params: Mapping[str, Any], field_name: str, action: str) -> str:
    value = params.get(field_name)
    if not isinstance(value, str) or not value:
        raise MalformedRequest(
            f"'{action}' requires a non-empty string '{field_name}'."
        )
    return value


def dispatch(
    request: ActionRequest,
    client: DynamoDBClient,
    table_name: str,
    record_type: Type[R],
    logger: Logger,
    index_name: Optional[str] = None,
) -> ResponseEnvelope[R]:
    """
    Runs a parsed action against the store and builds the response envelope.

    Args:
        request: The parsed action.
        client: The boto3 DynamoDB client for this invocation.
        table_name: The configured table.
        record_type: The record type the action targets (e.g. Dataset).
        logger: The Powertools Logger instance for structured logging.
        index_name: Optional override for the classification index name.

    Returns:
        The populated ResponseEnvelope.
    """
    if isinstance(request, ListByClassification):
        probe = record_type.empty().with_classification(record_type.CLASSIFICATION)
        start_key = (
            codec.decode_continuation_token(
                request.next_token, core.key_attributes_for(record_type)
            )
            if request.next_token
            else None
        )
        page = core.query_by_classification(
            client,
            table_name,
            record_type,
            probe.classification(),
            logger,
            index_name=index_name,
            exclusive_start_key=start_key,
        )
        return ResponseEnvelope(
            message="",
            dataset=record_type.empty(),
            datasets=page.items,
            next_token=codec.encode_continuation_token(page.last_evaluated_key),
        )

    if isinstance(request, GetByKey):
        probe = record_type.empty().with_identity(request.partition_key, request.sort_key)
        record = core.get_by_key(
            client,
            table_name,
            record_type,
            probe.partition_key(),
            probe.sort_key(),
            logger,
        )
        # The partition key is echoed back as the message for debugging.
        return ResponseEnvelope(
            message=request.partition_key,
            dataset=record if record is not None else record_type.empty(),
            datasets=[],
        )

    raise MalformedRequest(f"Unsupported request type: {type(request).__name__}")

