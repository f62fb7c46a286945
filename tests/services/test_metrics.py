"""Tests for the best-effort metrics recorder."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.services.metrics import (
    DAILY_COUNTER_TTL_SECONDS,
    EVENT_LOG_LIMIT,
    MetricEvent,
    MetricsRecorder,
)


@pytest.fixture
def pipeline():
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    return pipe


@pytest.fixture
def redis_client(pipeline):
    client = MagicMock()
    client.pipeline.return_value = pipeline
    client.get = AsyncMock(return_value="7")
    return client


@pytest.mark.asyncio
async def test_without_redis_nothing_happens():
    metrics = MetricsRecorder()
    await metrics.track(MetricEvent.AGENT_TOOL_USED, user_id="u1", tool="get_expiry")
    assert await metrics.get_count(MetricEvent.AGENT_TOOL_USED) == 0


@pytest.mark.asyncio
async def test_track_updates_counters_and_event_log(redis_client, pipeline):
    metrics = MetricsRecorder(redis_client)

    await metrics.track(MetricEvent.AGENT_TOOL_USED, user_id="u1", tool="get_expiry")

    pipeline.incr.assert_any_call("metrics:total:agent_tool_used")
    daily_key = pipeline.incr.call_args_list[1].args[0]
    assert daily_key.startswith("metrics:daily:")
    assert daily_key.endswith(":agent_tool_used")
    pipeline.expire.assert_called_once_with(daily_key, DAILY_COUNTER_TTL_SECONDS)
    key, entry = pipeline.lpush.call_args.args
    assert key == "metrics:events"
    assert json.loads(entry)["tool"] == "get_expiry"
    pipeline.ltrim.assert_called_once_with("metrics:events", 0, EVENT_LOG_LIMIT - 1)
    pipeline.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_failure_is_swallowed(redis_client, pipeline, caplog):
    pipeline.execute.side_effect = RedisConnectionError("down")
    metrics = MetricsRecorder(redis_client)

    await metrics.track(MetricEvent.ERROR_OCCURRED, user_id="u1", code="E-3001")

    assert "Failed to record metric error_occurred" in caplog.text


@pytest.mark.asyncio
async def test_get_count(redis_client):
    metrics = MetricsRecorder(redis_client)
    assert await metrics.get_count(MetricEvent.FLOW_CANCELLED) == 7
    redis_client.get.assert_awaited_once_with("metrics:total:flow_cancelled")


@pytest.mark.asyncio
async def test_get_count_when_redis_is_down(redis_client):
    redis_client.get.side_effect = RedisConnectionError("down")
    assert await MetricsRecorder(redis_client).get_count(MetricEvent.FLOW_CANCELLED) == 0
