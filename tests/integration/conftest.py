"""Integration test configuration and fixtures."""

import time
import uuid
from collections.abc import Generator

import boto3
import pytest
from testcontainers.localstack import LocalStackContainer

from highscores.service import LeaderboardService
from highscores.store import S3Medium, ScoreStore


@pytest.fixture(scope="session")
def localstack_container() -> Generator[LocalStackContainer, None, None]:
    """Start LocalStack container for integration tests."""
    try:
        container = LocalStackContainer(image="localstack/localstack:4.4")
        container.with_services("s3").start()
    except Exception as e:  # noqa: BLE001
        pytest.skip(f"LocalStack unavailable: {e}")

    try:
        # Wait for LocalStack to be ready
        time.sleep(2)
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def s3_client(localstack_container: LocalStackContainer):
    """Create S3 client connected to LocalStack."""
    return boto3.client(
        "s3",
        endpoint_url=localstack_container.get_url(),
        aws_access_key_id="test",
        aws_secret_access_key="test",  # noqa: S106
        region_name="us-east-1",
    )


@pytest.fixture(scope="session")
def scores_bucket(s3_client) -> Generator[str, None, None]:
    """Create the bucket holding score objects."""
    bucket = "highscores-test"
    s3_client.create_bucket(Bucket=bucket)

    yield bucket

    response = s3_client.list_objects_v2(Bucket=bucket)
    for item in response.get("Contents", []):
        s3_client.delete_object(Bucket=bucket, Key=item["Key"])
    s3_client.delete_bucket(Bucket=bucket)


@pytest.fixture
def s3_store(s3_client, scores_bucket: str) -> ScoreStore:
    """Store writing to a fresh object key for each test."""
    key = f"scores-{uuid.uuid4().hex}.json"
    return ScoreStore(S3Medium(scores_bucket, key, client=s3_client))


@pytest.fixture
def s3_service(s3_store: ScoreStore) -> LeaderboardService:
    """Service backed by LocalStack S3."""
    return LeaderboardService(store=s3_store)
