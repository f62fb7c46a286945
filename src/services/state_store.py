"""Tamper-evident, expiring key/value state store.

Every value is wrapped in a versioned JSON envelope before it reaches the
backend:

    {"data": <payload>, "signature": <hex>, "timestamp": <ms>, "version": 1}

The signature is HMAC-SHA256 over ``canonical_json(data) + "|" + timestamp``
using a server-held secret. Reads recompute it and compare in constant
time. Any of the following fail closed (the entry is deleted, a security
incident is logged, and the read returns None):

    - signature mismatch
    - unknown envelope version
    - timestamp in the future
    - age above ``max_age_seconds``, even when the backend TTL has not fired
    - an envelope that does not parse

Without a secret the store runs in insecure mode: it still writes
envelopes (with an empty signature) but skips verification, and every read
is returned with ``verified=False``.

Integers whose magnitude exceeds 2**53 - 1 are written as the tagged object
``{"$bigint": "<decimal digits>"}`` so non-Python readers of the backend
never see a lossy JSON number, and are restored by a JSON object hook.
"""

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("src.security")

ENVELOPE_VERSION = 1
MIN_SECRET_LENGTH = 32
DEFAULT_MAX_AGE_SECONDS = 30 * 60

_BIGINT_TAG = "$bigint"
_MAX_SAFE_INT = 2**53 - 1


class StateBackendError(Exception):
    """Raised when the key-value backend cannot be reached."""


class KeyValueBackend(Protocol):
    """Minimal async key-value contract: atomic get/set with per-key expiry."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def scan(self, pattern: str) -> list[str]: ...


class RedisKeyValueBackend:
    """KeyValueBackend over ``redis.asyncio``.

    Attributes:
        redis: Async Redis client (created with decode_responses=True).
        key_prefix: Namespace prepended to every key.
    """

    def __init__(self, redis: Redis, key_prefix: str = "") -> None:
        self.redis = redis
        self.key_prefix = key_prefix

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    def _strip_key(self, key: str | bytes) -> str:
        if isinstance(key, bytes):
            key = key.decode()
        if self.key_prefix and key.startswith(self.key_prefix + ":"):
            return key[len(self.key_prefix) + 1:]
        return key

    async def get(self, key: str) -> str | None:
        try:
            value = await self.redis.get(self._make_key(key))
        except RedisError as e:
            logger.error("Redis GET failed for %s: %s", key, e)
            raise StateBackendError(str(e)) from e
        if isinstance(value, bytes):
            return value.decode()
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.redis.setex(self._make_key(key), ttl_seconds, value)
        except RedisError as e:
            logger.error("Redis SETEX failed for %s: %s", key, e)
            raise StateBackendError(str(e)) from e

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self.redis.delete(*(self._make_key(k) for k in keys))
        except RedisError as e:
            logger.error("Redis DELETE failed for %s: %s", keys, e)
            raise StateBackendError(str(e)) from e

    async def scan(self, pattern: str) -> list[str]:
        try:
            return [
                self._strip_key(k)
                async for k in self.redis.scan_iter(match=self._make_key(pattern))
            ]
        except RedisError as e:
            logger.error("Redis SCAN failed for %s: %s", pattern, e)
            raise StateBackendError(str(e)) from e


def escape_key_part(value: str) -> str:
    """Percent-encode the key separator so an id can never span two key parts.

    ``"%"`` is encoded first, which keeps the mapping injective: user
    ``"a:b"`` becomes ``"a%3Ab"`` and can no longer be read as user ``"a"``
    with conversation ``"b"``.
    """
    return value.replace("%", "%25").replace(":", "%3A")


def escape_glob(value: str) -> str:
    """Escape glob metacharacters so ids can be embedded in scan patterns."""
    out = []
    for ch in value:
        if ch in "*?[]\\":
            out.append("\\")
        out.append(ch)
    return "".join(out)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _tag_bigints(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if abs(value) > _MAX_SAFE_INT:
            return {_BIGINT_TAG: str(value)}
        return value
    if isinstance(value, dict):
        return {k: _tag_bigints(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_tag_bigints(v) for v in value]
    return value


def _untag_bigint(obj: dict) -> Any:
    if len(obj) == 1 and _BIGINT_TAG in obj:
        return int(obj[_BIGINT_TAG])
    return obj


def serialize_data(data: Any) -> str:
    """Canonical JSON for signing: sorted keys, no whitespace, tagged big ints."""
    return json.dumps(_tag_bigints(data), sort_keys=True, separators=(",", ":"))


def deserialize_data(raw: str) -> Any:
    return json.loads(raw, object_hook=_untag_bigint)


def sign(secret: str, serialized: str, timestamp: int) -> str:
    message = f"{serialized}|{timestamp}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify(secret: str, serialized: str, timestamp: int, signature: str) -> bool:
    expected = sign(secret, serialized, timestamp)
    return hmac.compare_digest(expected, signature)


class IntegrityViolation(Exception):
    """Envelope failed verification. ``reason`` is a stable incident tag."""

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason


@dataclass
class StateRecord:
    """A successfully read value.

    Attributes:
        data: The decoded payload.
        timestamp: Write time in ms since epoch.
        verified: True only when the signature was checked. Insecure-mode
            reads are always False.
    """

    data: Any
    timestamp: int
    verified: bool


class SecureStateStore:
    """Signed, versioned, TTL'd persistence over a KeyValueBackend.

    Attributes:
        backend: The underlying key-value backend.
        max_age_seconds: Hard age limit applied on read, independent of TTL.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        secret: str | None,
        max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            backend: Key-value backend with per-key expiry.
            secret: HMAC secret, at least 32 characters. None or empty
                enables insecure mode.
            max_age_seconds: Maximum accepted envelope age.
            clock: Returns the current time in seconds.

        Raises:
            ValueError: If the secret is set but shorter than 32 characters.
        """
        if secret and len(secret) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"State integrity secret must be at least {MIN_SECRET_LENGTH} characters"
            )
        self.backend = backend
        self.max_age_seconds = max_age_seconds
        self._secret = secret or None
        self._clock = clock
        if self._secret is None:
            logger.warning(
                "!!! STATE INTEGRITY DISABLED: no integrity secret configured. "
                "Stored flows and sessions are NOT tamper-evident. "
                "Set REDIS_INTEGRITY_SECRET (32+ chars) in production. !!!"
            )

    @property
    def insecure(self) -> bool:
        return self._secret is None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def seal(self, data: Any, timestamp: int | None = None) -> str:
        """Wrap data in a signed envelope and return its JSON text."""
        ts = self._now_ms() if timestamp is None else timestamp
        serialized = serialize_data(data)
        signature = sign(self._secret, serialized, ts) if self._secret else ""
        return json.dumps(
            {
                "data": json.loads(serialized),
                "signature": signature,
                "timestamp": ts,
                "version": ENVELOPE_VERSION,
            },
            separators=(",", ":"),
        )

    def open(self, raw: str) -> StateRecord:
        """Parse and verify an envelope.

        Raises:
            IntegrityViolation: On any verification failure.
        """
        try:
            envelope = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise IntegrityViolation("malformed", str(e)) from e
        if not isinstance(envelope, dict) or not {"data", "timestamp", "version"} <= envelope.keys():
            raise IntegrityViolation("malformed", "missing envelope fields")

        if envelope["version"] != ENVELOPE_VERSION:
            raise IntegrityViolation("version", f"unknown version {envelope['version']!r}")

        timestamp = envelope["timestamp"]
        if not isinstance(timestamp, int) or isinstance(timestamp, bool):
            raise IntegrityViolation("malformed", "timestamp is not an integer")

        serialized = json.dumps(envelope["data"], sort_keys=True, separators=(",", ":"))
        verified = False
        if self._secret:
            signature = envelope.get("signature")
            if not isinstance(signature, str) or not verify(
                self._secret, serialized, timestamp, signature
            ):
                raise IntegrityViolation("tampered", "signature mismatch")
            verified = True

        age_ms = self._now_ms() - timestamp
        if age_ms < 0:
            raise IntegrityViolation("future", f"timestamp {-age_ms}ms ahead")
        if age_ms > self.max_age_seconds * 1000:
            raise IntegrityViolation("expired", f"age {age_ms}ms")

        return StateRecord(
            data=deserialize_data(serialized),
            timestamp=timestamp,
            verified=verified,
        )

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Seal ``value`` in a signed envelope and write it with an expiry.

        Args:
            key: Backend key.
            value: JSON-compatible payload; big integers are tagged.
            ttl_seconds: Backend expiry.
        """
        await self.backend.set(key, self.seal(value), ttl_seconds)

    async def read(self, key: str) -> StateRecord | None:
        """Read and verify a key.

        Returns:
            StateRecord, or None when the key is absent or failed verification.
        """
        raw = await self.backend.get(key)
        if raw is None:
            return None
        try:
            record = self.open(raw)
        except IntegrityViolation as e:
            security_logger.error(
                "SECURITY INCIDENT [%s] key=%s: discarding state", e.reason, key
            )
            await self.backend.delete(key)
            return None
        if not record.verified:
            logger.warning("Unverified state read for %s (insecure mode)", key)
        return record

    async def get(self, key: str) -> Any | None:
        """Read a key and return only its payload (None when absent or discarded)."""
        record = await self.read(key)
        return None if record is None else record.data

    async def delete(self, *keys: str) -> int:
        """Delete keys.

        Returns:
            Number of keys that existed.
        """
        return await self.backend.delete(*keys)

    async def scan(self, pattern: str) -> list[str]:
        """List keys matching a glob pattern without reading or verifying them.

        Args:
            pattern: Glob pattern; embed ids with ``escape_glob``.

        Returns:
            Matching keys, in backend order.
        """
        return await self.backend.scan(pattern)
