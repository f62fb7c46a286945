"""Flow repository: CRUD over the secure state store, keyed by (user, conversation).

At most one flow exists per key; ``set_active_flow`` replaces whatever was
there. Every write refreshes ``updated_at`` and the TTL. Status changes
are validated against the per-type transition table, and updates to a
missing flow raise without writing.
"""

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.errors.domain import FlowNotFoundError, InvalidFlowTransition
from src.orchestrator.models.flow import (
    Flow,
    FlowStatus,
    FlowType,
    allowed_transitions,
    flow_from_dict,
    flow_to_dict,
    now_ms,
)
from src.services.state_store import SecureStateStore, escape_glob, escape_key_part

logger = logging.getLogger(__name__)

FLOW_KEY_PREFIX = "flow"
DEFAULT_FLOW_TTL_SECONDS = 30 * 60


def flow_key(user_id: str, conversation_id: str) -> str:
    return f"{FLOW_KEY_PREFIX}:{escape_key_part(user_id)}:{escape_key_part(conversation_id)}"


class FlowRepository:
    """Persistence for in-flight operations.

    Attributes:
        store: Secure state store holding the envelopes.
        ttl_seconds: Expiry applied on every write.
    """

    def __init__(
        self, store: SecureStateStore, ttl_seconds: int = DEFAULT_FLOW_TTL_SECONDS
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    async def _load(self, key: str) -> tuple[Flow, bool] | None:
        record = await self.store.read(key)
        if record is None:
            return None
        try:
            return flow_from_dict(record.data), record.verified
        except PydanticValidationError as e:
            logger.error("Discarding unreadable flow at %s: %s", key, e)
            await self.store.delete(key)
            return None

    async def _save(self, flow: Flow) -> Flow:
        flow.updated_at = max(now_ms(), flow.started_at)
        await self.store.set(
            flow_key(flow.user_id, flow.conversation_id),
            flow_to_dict(flow),
            self.ttl_seconds,
        )
        return flow

    async def get_active_flow(self, user_id: str, conversation_id: str) -> Flow | None:
        """Load the flow for (user, conversation).

        Args:
            user_id: Chat user id.
            conversation_id: Conversation id.

        Returns:
            The flow, or None when absent, expired or unreadable.
        """
        loaded = await self._load(flow_key(user_id, conversation_id))
        return None if loaded is None else loaded[0]

    async def read_active_flow(
        self, user_id: str, conversation_id: str
    ) -> tuple[Flow, bool] | None:
        """Like get_active_flow, but also reports whether the read was verified."""
        return await self._load(flow_key(user_id, conversation_id))

    async def set_active_flow(self, flow: Flow) -> Flow:
        """Upsert; replaces any existing flow for the key."""
        saved = await self._save(flow)
        logger.info(
            "Set %s flow for %s:%s (status=%s)",
            flow.type, flow.user_id, flow.conversation_id, flow.status.value,
        )
        return saved

    async def update_flow_data(
        self, user_id: str, conversation_id: str, partial: dict[str, Any]
    ) -> Flow:
        """Shallow-merge ``partial`` into the flow's data and re-validate.

        Raises:
            FlowNotFoundError: If no flow exists for the key (nothing is written).
        """
        flow = await self.get_active_flow(user_id, conversation_id)
        if flow is None:
            raise FlowNotFoundError(user_id, conversation_id)
        merged = flow_to_dict(flow)
        merged["data"] = {**merged["data"], **partial}
        updated = flow_from_dict(merged)
        return await self._save(updated)

    async def update_flow_status(
        self, user_id: str, conversation_id: str, status: FlowStatus
    ) -> Flow:
        """Move the flow to ``status`` if the state machine allows it.

        Raises:
            FlowNotFoundError: If no flow exists for the key.
            InvalidFlowTransition: If ``status`` is not a successor of the
                current status (nothing is written).
        """
        flow = await self.get_active_flow(user_id, conversation_id)
        if flow is None:
            raise FlowNotFoundError(user_id, conversation_id)
        allowed = allowed_transitions(flow.flow_type, flow.status)
        if status not in allowed:
            raise InvalidFlowTransition(flow.flow_type, flow.status, status, allowed)
        previous = flow.status
        flow.status = status
        await self._save(flow)
        logger.info(
            "Flow %s:%s %s -> %s",
            user_id, conversation_id, previous.value, status.value,
        )
        return flow

    async def clear_active_flow(self, user_id: str, conversation_id: str) -> bool:
        """Delete the flow for (user, conversation).

        Args:
            user_id: Chat user id.
            conversation_id: Conversation id.

        Returns:
            True if a flow was removed, False if there was none.
        """
        removed = await self.store.delete(flow_key(user_id, conversation_id))
        return removed > 0

    async def _user_flow_keys(self, user_id: str) -> list[str]:
        pattern = f"{FLOW_KEY_PREFIX}:{escape_glob(escape_key_part(user_id))}:*"
        return sorted(await self.store.scan(pattern))

    async def has_any_active_flow(self, user_id: str) -> tuple[str, Flow] | None:
        """Find a live flow for the user in any conversation.

        Entries that fail verification are removed by the store as they are
        read. Flows whose stored owner differs from ``user_id`` are skipped.

        Args:
            user_id: Chat user id.

        Returns:
            (conversation_id, flow) for the first live, non-terminal flow,
            or None.
        """
        for key in await self._user_flow_keys(user_id):
            loaded = await self._load(key)
            if loaded is None:
                continue
            flow = loaded[0]
            if flow.user_id != user_id or flow.is_terminal:
                continue
            return flow.conversation_id, flow
        return None

    async def clear_all_user_flows(self, user_id: str) -> int:
        """Delete every flow the user owns, across all conversations.

        Args:
            user_id: Chat user id.

        Returns:
            Number of flows removed.
        """
        keys = await self._user_flow_keys(user_id)
        if not keys:
            return 0
        removed = await self.store.delete(*keys)
        logger.info("Cleared %d flow(s) for user %s", removed, user_id)
        return removed

    async def scan_flows(
        self,
        flow_type: FlowType | None = None,
        status: FlowStatus | None = None,
    ) -> list[Flow]:
        """Load every stored flow matching the filters (used for recovery)."""
        flows: list[Flow] = []
        for key in sorted(await self.store.scan(f"{FLOW_KEY_PREFIX}:*")):
            loaded = await self._load(key)
            if loaded is None:
                continue
            flow = loaded[0]
            if flow_type is not None and flow.flow_type != flow_type:
                continue
            if status is not None and flow.status != status:
                continue
            flows.append(flow)
        return flows
