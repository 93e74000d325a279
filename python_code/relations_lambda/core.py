"""
Generic store access for the Relations Lambda.

These functions work for any record type that satisfies `model.Storable`;
no per-type access code is needed. They are kept free of global state and
receive every dependency (the DynamoDB client and the Powertools logger)
from the caller, so they can be unit-tested against a mocked store.

Store failures are never swallowed or retried here. They are translated into
the typed errors in `errors` and raised to the caller.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

# Import boto3 stubs for full type-safety in function signatures
from mypy_boto3_dynamodb.client import DynamoDBClient

from . import codec
from .errors import RelationsError, SchemaMismatch, translate_store_error
from .model import (
    PARTITION_KEY_ATTRIBUTE,
    SORT_KEY_ATTRIBUTE,
    AttributeMap,
    QueryPage,
    Storable,
)

T = TypeVar("T", bound=Storable)

DEFAULT_BATCH_WORKERS = 8


def build_key(partition_key: str, sort_key: str) -> AttributeMap:
    """Returns the composite primary key map {"pk": {"S": ..}, "sk": {"S": ..}}."""
    key = codec.encode_attribute(PARTITION_KEY_ATTRIBUTE, partition_key)
    key.update(codec.encode_attribute(SORT_KEY_ATTRIBUTE, sort_key))
    return key


def index_name_for(record_type: Type[Storable]) -> str:
    """The GSI name for a record type's classification attribute, e.g. "itemtype-index"."""
    return f"{record_type.classification_attribute}-index"


def key_attributes_for(record_type: Type[Storable]) -> Tuple[str, str, str]:
    """Attribute names that can appear in a classification index's LastEvaluatedKey."""
    return (
        PARTITION_KEY_ATTRIBUTE,
        SORT_KEY_ATTRIBUTE,
        record_type.classification_attribute,
    )


def get_by_key(
    client: DynamoDBClient,
    table_name: str,
    record_type: Type[T],
    partition_key: str,
    sort_key: str,
    logger: Logger,
) -> Optional[T]:
    """
    Point-reads a single record by its exact composite key.

    Args:
        client: The boto3 DynamoDB client.
        table_name: The table to read from.
        record_type: The record type to decode the item into.
        partition_key: Value of the "pk" attribute.
        sort_key: Value of the "sk" attribute.
        logger: The Powertools Logger instance for structured logging.

    Returns:
        The decoded record, or None if no item has that key.

    Raises:
        StoreUnavailable: Throttling, service or network failure, or timeout.
        StoreRejected: Access denied, missing table, or invalid request.
        SchemaMismatch: The stored item does not fit `record_type`.
    """
    plain_key = {PARTITION_KEY_ATTRIBUTE: partition_key, SORT_KEY_ATTRIBUTE: sort_key}
    try:
        response = client.get_item(
            TableName=table_name, Key=build_key(partition_key, sort_key)
        )
    except (ClientError, BotoCoreError) as e:
        error = translate_store_error(e, "GetItem", table_name, key=plain_key)
        logger.error("DynamoDB GetItem failed.", extra=error.to_dict())
        raise error from e

    item = response.get("Item")
    if item is None:
        logger.debug("No item found.", extra={"table_name": table_name, "key": plain_key})
        return None

    try:
        return codec.decode(item, record_type)
    except SchemaMismatch as e:
        e.operation, e.table_name, e.key = "GetItem", table_name, plain_key
        logger.error("Stored item does not match record type.", extra=e.to_dict())
        raise


def query_by_classification(
    client: DynamoDBClient,
    table_name: str,
    record_type: Type[T],
    classification: str,
    logger: Logger,
    index_name: Optional[str] = None,
    exclusive_start_key: Optional[AttributeMap] = None,
    limit: Optional[int] = None,
) -> QueryPage[T]:
    """
    Lists one page of records sharing a classification, via its secondary index.

    Records are returned in the order the store produced them. If the store
    reports more results beyond this page, the continuation key is returned
    on the page rather than followed; callers wanting everything loop by
    passing `page.last_evaluated_key` back as `exclusive_start_key`.

    Args:
        client: The boto3 DynamoDB client.
        table_name: The table to query.
        record_type: The record type to decode each item into.
        classification: Value of the classification attribute, e.g. "dataset".
        logger: The Powertools Logger instance for structured logging.
        index_name: GSI to query; defaults to "<attribute>-index".
        exclusive_start_key: Continuation key from a previous page.
        limit: Optional maximum number of items to evaluate for this page.

    Returns:
        A QueryPage holding the decoded records and the continuation key.

    Raises:
        StoreUnavailable, StoreRejected, SchemaMismatch: as for `get_by_key`.
    """
    attribute = record_type.classification_attribute
    placeholder = f":{attribute}"
    query_input: Dict[str, Any] = {
        "TableName": table_name,
        "IndexName": index_name or index_name_for(record_type),
        "KeyConditionExpression": f"#cls = {placeholder}",
        "ExpressionAttributeNames": {"#cls": attribute},
        "ExpressionAttributeValues": codec.encode_attribute(placeholder, classification),
    }
    if exclusive_start_key:
        query_input["ExclusiveStartKey"] = exclusive_start_key
    if limit is not None:
        query_input["Limit"] = limit

    try:
        response = client.query(**query_input)
    except (ClientError, BotoCoreError) as e:
        error = translate_store_error(
            e, "Query", table_name, classification=classification
        )
        logger.error("DynamoDB Query failed.", extra=error.to_dict())
        raise error from e

    records: List[T] = []
    for item in response.get("Items", []):
        try:
            records.append(codec.decode(item, record_type))
        except SchemaMismatch as e:
            e.operation, e.table_name, e.classification = "Query", table_name, classification
            e.key = {
                PARTITION_KEY_ATTRIBUTE: item.get(PARTITION_KEY_ATTRIBUTE, {}).get("S"),
                SORT_KEY_ATTRIBUTE: item.get(SORT_KEY_ATTRIBUTE, {}).get("S"),
            }
            logger.error("Stored item does not match record type.", extra=e.to_dict())
            raise

    page = QueryPage(items=records, last_evaluated_key=response.get("LastEvaluatedKey"))
    logger.info(
        f"Query returned {len(records)} {classification} record(s).",
        extra={
            "table_name": table_name,
            "index_name": query_input["IndexName"],
            "has_more": page.has_more,
        },
    )
    return page


def get_many_by_key(
    client: DynamoDBClient,
    table_name: str,
    record_type: Type[T],
    keys: Sequence[Tuple[str, str]],
    logger: Logger,
    max_workers: int = DEFAULT_BATCH_WORKERS,
) -> Dict[Tuple[str, str], Optional[T]]:
    """
    Point-reads several records concurrently.

    Each key is fetched with its own independent `get_by_key` call on a
    thread pool (boto3 low-level clients are thread-safe). Duplicate keys
    are fetched once.

    Args:
        client: The boto3 DynamoDB client.
        table_name: The table to read from.
        record_type: The record type to decode items into.
        keys: (partition_key, sort_key) pairs.
        logger: The Powertools Logger instance for structured logging.
        max_workers: Upper bound on concurrent reads.

    Returns:
        A mapping from each requested key to its record, or None on a miss.

    Raises:
        RelationsError: The first failure in request order; the error's `key`
                        names the pair that failed. All reads finish before
                        it is raised.
    """
    unique_keys = list(dict.fromkeys(keys))
    if not unique_keys:
        return {}

    results: Dict[Tuple[str, str], Optional[T]] = {}
    failures: Dict[Tuple[str, str], RelationsError] = {}

    with ThreadPoolExecutor(max_workers=min(max_workers, len(unique_keys))) as executor:
        futures = {
            key: executor.submit(
                get_by_key, client, table_name, record_type, key[0], key[1], logger
            )
            for key in unique_keys
        }
        for key, future in futures.items():
            try:
                results[key] = future.result()
            except RelationsError as e:
                failures[key] = e

    if failures:
        logger.error(
            f"{len(failures)} of {len(unique_keys)} point reads failed.",
            extra={"failed_keys": [list(k) for k in failures]},
        )
        first_failed = next(k for k in unique_keys if k in failures)
        raise failures[first_failed]

    return results
