import os
import uuid

import pytest
import redis


@pytest.fixture
def redis_client():
    """
    Yields a Redis client for integration testing.
    Connects to the redis service defined in docker-compose.yml.
    """
    host = os.getenv("REDIS_HOST", "redis")
    port = int(os.getenv("REDIS_PORT", 6379))
    db = int(os.getenv("REDIS_DB", 0))

    client = redis.Redis(host=host, port=port, db=db, decode_responses=True, socket_connect_timeout=2)

    try:
        client.ping()
    except (redis.ConnectionError, redis.TimeoutError):
        pytest.skip("Redis service not available. Skipping integration tests.")

    yield client

    client.close()


@pytest.fixture
def key_prefix(redis_client):
    """A prefix unique to the test; every key under it is removed afterwards."""
    prefix = f"filedrop-test-{uuid.uuid4().hex[:12]}"

    yield prefix

    keys = list(redis_client.scan_iter(match=f"{prefix}:*"))
    if keys:
        redis_client.delete(*keys)
