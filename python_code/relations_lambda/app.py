"""
Main AWS Lambda handler for the Relations Lambda.

This module is the entry point and orchestrator for the function. Its
responsibilities are:
  - Loading and validating configuration from environment variables.
  - Parsing the inbound action before any store call is made.
  - Opening a DynamoDB client for the invocation.
  - Delegating to the dispatcher and generic accessors, then returning the
    response envelope.
  - Logging a structured failure payload and re-raising, so the host
    reports the invocation as failed.
"""

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aws_lambda_powertools import Logger

from . import clients, dispatcher
from .errors import RelationsError
from .model import ActionEvent, Dataset

# --- 1. SETUP: Configuration and Logging ---


def get_env_var(name: str, default: Optional[str] = None) -> str:
    """
    Gets an environment variable or raises a ValueError for fast-failure.

    Args:
        name: The name of the environment variable.
        default: An optional default value. If not provided, the variable is required.

    Returns:
        The value of the environment variable.

    Raises:
        ValueError: If the required environment variable is not set.
    """
    value = os.environ.get(name, default)
    if value is None:
        raise ValueError(f"FATAL: Environment variable '{name}' is not set.")
    return value


# --- Configuration (loaded once at cold start) ---
TABLE_NAME = get_env_var("TABLE_NAME", "relations")
CLASSIFICATION_INDEX = os.environ.get("CLASSIFICATION_INDEX") or None
SERVICE_NAME = get_env_var("SERVICE_NAME", "relations")
LOG_LEVEL = get_env_var("LOG_LEVEL", "WARNING").upper()
STORE_CONNECT_TIMEOUT_SECONDS = float(get_env_var("STORE_CONNECT_TIMEOUT_SECONDS", "2"))
STORE_READ_TIMEOUT_SECONDS = float(get_env_var("STORE_READ_TIMEOUT_SECONDS", "5"))

# --- Global Setup ---
logger = Logger(service=SERVICE_NAME, level=LOG_LEVEL)

STORE_CONFIG = clients.build_store_config(
    connect_timeout=STORE_CONNECT_TIMEOUT_SECONDS,
    read_timeout=STORE_READ_TIMEOUT_SECONDS,
)

# --- 2. LAMBDA HANDLER ---


def handler(event: ActionEvent, context: Any) -> Dict[str, Any]:
    """
    Main Lambda entry point.

    Steps:
    1. Parses the action; a malformed event fails here without touching the store.
    2. Opens a DynamoDB client for this invocation.
    3. Dispatches the action for the Dataset record type.
    4. Returns the serialized response envelope.

    Any RelationsError (or unexpected exception) is logged with a structured
    payload and re-raised.
    """
    start_time = datetime.now(timezone.utc)

    try:
        request = dispatcher.parse_action_request(event)
        logger.info("Received action.", extra={"action": type(request).__name__})

        client = clients.get_dynamodb_client(STORE_CONFIG)
        envelope = dispatcher.dispatch(
            request,
            client,
            TABLE_NAME,
            Dataset,
            logger,
            index_name=CLASSIFICATION_INDEX,
        )
        return envelope.to_dict()

    except RelationsError as e:
        latency_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
        error_payload = dict(e.to_dict(), latency_ms=latency_ms)
        logger.error(f"Invocation failed: {json.dumps(error_payload, default=str)}")
        raise

    except Exception as e:
        latency_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
        error_payload = {"error_type": type(e).__name__, "error_message": str(e), "latency_ms": latency_ms}
        logger.error(f"Invocation failed: {json.dumps(error_payload)}", exc_info=True)
        raise
