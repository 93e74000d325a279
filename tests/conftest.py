"""Shared fixtures: fake AWS credentials and a moto-backed relations table."""

import boto3
import pytest
from aws_lambda_powertools import Logger
from moto import mock_aws

TABLE_NAME = "relations"
INDEX_NAME = "itemtype-index"
REGION = "us-east-1"


@pytest.fixture(autouse=True)
def aws_environment(monkeypatch):
    """Keep every test away from real AWS credentials and endpoints."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_REGION", REGION)
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.setenv("USE_MOTO", "1")


@pytest.fixture
def logger():
    return Logger(service="relations-test", level="INFO")


@pytest.fixture
def dynamodb_client():
    """A mocked DynamoDB client with the relations table and its itemtype GSI."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name=REGION)
        client.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {"AttributeName": "pk", "KeyType": "HASH"},
                {"AttributeName": "sk", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "pk", "AttributeType": "S"},
                {"AttributeName": "sk", "AttributeType": "S"},
                {"AttributeName": "itemtype", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": INDEX_NAME,
                    "KeySchema": [{"AttributeName": "itemtype", "KeyType": "HASH"}],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        yield client


@pytest.fixture
def put_items(dynamodb_client):
    """Writes raw attribute maps straight into the mocked table."""

    def _put(*items):
        for item in items:
            dynamodb_client.put_item(TableName=TABLE_NAME, Item=item)

    return _put


def dataset_item(pk, sk=None, itemtype="dataset", **extra):
    """Builds a raw string-only attribute map for seeding the table."""
    item = {
        "pk": {"S": pk},
        "sk": {"S": sk if sk is not None else pk},
        "itemtype": {"S": itemtype},
    }
    for name, value in extra.items():
        item[name] = {"S": value}
    return item
