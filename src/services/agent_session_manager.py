"""Conversation session store and per-conversation locking.

Sessions live in the secure state store keyed by (user, conversation) with
a 30-minute sliding TTL. Message history is capped at the most recent 20
entries.

Every path that reads, mutates and writes state for a conversation (a new
message, a resume signal, the commit-reveal continuation) holds the
conversation's lock from ``KeyedLocks`` for the whole read-modify-write, so
two events for the same key never interleave. Different keys never
contend.

Example:
    locks = KeyedLocks()
    sessions = ConversationSessionStore(store)
    async with locks.hold(identity.key):
        session = await sessions.get_or_create(identity)
        session.add_message("user", "check alice.eth")
        await sessions.save(session)
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from pydantic import ValidationError as PydanticValidationError

from src.orchestrator.models.flow import now_ms
from src.orchestrator.models.session import ConversationIdentity, ConversationSession
from src.services.state_store import SecureStateStore, escape_key_part

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "agent:session"
DEFAULT_SESSION_TTL_SECONDS = 30 * 60


def session_key(user_id: str, conversation_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}:{escape_key_part(user_id)}:{escape_key_part(conversation_id)}"


class KeyedLocks:
    """Registry of asyncio locks, one per conversation key.

    Locks are reference-counted and dropped once no task holds or waits on
    them, so the registry does not grow with the number of conversations
    ever seen.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class ConversationSessionStore:
    """Persistence for ConversationSession records.

    Attributes:
        store: Secure state store holding the envelopes.
        ttl_seconds: Sliding expiry refreshed on every save.
    """

    def __init__(
        self, store: SecureStateStore, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    async def get(self, user_id: str, conversation_id: str) -> ConversationSession | None:
        """Get a session without auto-creating. Returns None if not found."""
        key = session_key(user_id, conversation_id)
        data = await self.store.get(key)
        if data is None:
            return None
        try:
            return ConversationSession.model_validate(data)
        except PydanticValidationError as e:
            logger.error("Discarding unreadable session at %s: %s", key, e)
            await self.store.delete(key)
            return None

    async def get_or_create(self, identity: ConversationIdentity) -> ConversationSession:
        """Return the live session for the conversation, creating one if needed.

        Sessions in a terminal status (complete, error) are replaced with a
        fresh one.
        """
        session = await self.get(identity.user_id, identity.conversation_id)
        if session is not None and not session.is_terminal:
            if session.channel_id != identity.channel_id:
                session.channel_id = identity.channel_id
            return session

        session = ConversationSession.for_identity(identity)
        await self.save(session)
        logger.info(
            "Created new agent session %s for %s", session.session_id, identity.key
        )
        return session

    async def save(self, session: ConversationSession) -> ConversationSession:
        session.last_activity_at = now_ms()
        await self.store.set(
            session_key(session.user_id, session.conversation_id),
            session.model_dump(mode="json"),
            self.ttl_seconds,
        )
        return session

    async def delete(self, user_id: str, conversation_id: str) -> None:
        removed = await self.store.delete(session_key(user_id, conversation_id))
        if removed:
            logger.info("Removed agent session for %s:%s", user_id, conversation_id)
