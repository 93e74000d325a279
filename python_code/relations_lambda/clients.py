"""
A factory module for creating the DynamoDB client.

The handler asks this module for a fresh client on every invocation, which
lets tests substitute a mocked store: when `moto` is active (signalled by the
USE_MOTO environment variable) the boto3 calls below are intercepted and an
in-memory DynamoDB is returned instead of the real service.
"""

import logging
import os
from typing import Optional

import boto3
import botocore.config

from mypy_boto3_dynamodb.client import DynamoDBClient

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_SECONDS = 2
DEFAULT_READ_TIMEOUT_SECONDS = 5


def build_store_config(
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
    read_timeout: float = DEFAULT_READ_TIMEOUT_SECONDS,
) -> botocore.config.Config:
    """
    Returns the botocore configuration used for store calls.

    Automatic retries are disabled: a throttled or failed call surfaces to the
    caller as StoreUnavailable, and retry policy is left to whoever invoked
    the Lambda. The timeouts keep a stalled call from running into the
    host's own invocation deadline.
    """
    return botocore.config.Config(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": 1, "mode": "standard"},
    )


def get_dynamodb_client(
    config: Optional[botocore.config.Config] = None,
) -> DynamoDBClient:
    """
    Returns a low-level DynamoDB client bound to the execution region.

    The AWS region is read explicitly from the environment so every
    invocation talks to the same regional endpoint.

    Args:
        config: Optional botocore config; defaults to `build_store_config()`.

    Returns:
        An initialized boto3 DynamoDB client.
    """
    aws_region = os.environ.get("AWS_REGION")
    if not aws_region:
        # This should ideally not happen in a real Lambda environment.
        logger.warning("AWS_REGION not set, boto3 will attempt to resolve it.")

    if os.environ.get("USE_MOTO"):
        logger.info("MOTO ENABLED: Returning mocked DynamoDB client.")

    dynamodb_client: DynamoDBClient = boto3.client(
        "dynamodb",
        region_name=aws_region,
        config=config or build_store_config(),
    )
    return dynamodb_client
