"""Best-effort usage metrics.

Events increment a total counter and a per-day counter in Redis and are
appended to a capped event log. Metrics must never affect the user's
request: every failure is logged and swallowed.

Usage:
    metrics = MetricsRecorder(redis)
    await metrics.track(MetricEvent.AGENT_TOOL_USED, user_id="u1", tool="check_availability")
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

METRICS_PREFIX = "metrics"
EVENT_LOG_LIMIT = 10_000
DAILY_COUNTER_TTL_SECONDS = 90 * 24 * 3600


class MetricEvent(str, Enum):
    AGENT_SESSION_STARTED = "agent_session_started"
    AGENT_SESSION_COMPLETED = "agent_session_completed"
    AGENT_TOOL_USED = "agent_tool_used"
    AGENT_AWAITING_ACTION = "agent_awaiting_action"
    AGENT_MAX_TURNS = "agent_max_turns"
    ERROR_OCCURRED = "error_occurred"
    TRANSACTION_SIGNED = "transaction_signed"
    TRANSACTION_REJECTED = "transaction_rejected"
    COMMIT_COMPLETED = "commit_completed"
    REGISTRATION_COMPLETED = "registration_completed"
    BRIDGE_INITIATED = "bridge_initiated"
    FLOW_CANCELLED = "flow_cancelled"


class MetricsRecorder:
    """Redis-backed counters. With no client, events are only logged at DEBUG.

    Attributes:
        redis: Async Redis client, or None.
    """

    def __init__(self, redis: Redis | None = None) -> None:
        self.redis = redis

    async def track(self, event: MetricEvent, **metadata: Any) -> None:
        logger.debug("metric %s %s", event.value, metadata)
        if self.redis is None:
            return
        day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        entry = json.dumps(
            {
                "event": event.value,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **metadata,
            },
            default=str,
        )
        daily_key = f"{METRICS_PREFIX}:daily:{day}:{event.value}"
        try:
            pipe = self.redis.pipeline()
            pipe.incr(f"{METRICS_PREFIX}:total:{event.value}")
            pipe.incr(daily_key)
            pipe.expire(daily_key, DAILY_COUNTER_TTL_SECONDS)
            pipe.lpush(f"{METRICS_PREFIX}:events", entry)
            pipe.ltrim(f"{METRICS_PREFIX}:events", 0, EVENT_LOG_LIMIT - 1)
            await pipe.execute()
        except (RedisError, OSError) as e:
            logger.warning("Failed to record metric %s: %s", event.value, e)

    async def get_count(self, event: MetricEvent) -> int:
        if self.redis is None:
            return 0
        try:
            value = await self.redis.get(f"{METRICS_PREFIX}:total:{event.value}")
        except RedisError as e:
            logger.warning("Failed to read metric %s: %s", event.value, e)
            return 0
        return int(value) if value is not None else 0
