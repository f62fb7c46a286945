"""In-memory KeyValueBackend with expiry driven by an injectable clock.

Scan patterns follow Redis glob rules (``*``, ``?``, ``[...]`` and
backslash escapes), so keys built with ``escape_glob`` behave the same as
against a real server.
"""

import re
import time
from collections.abc import Callable


def glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a Redis-style glob into an anchored regex."""
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        elif ch == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(ch))
            else:
                out.append("[" + pattern[i + 1:end].replace("\\", "\\\\") + "]")
                i = end
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


class InMemoryKeyValueStore:
    """Dict-backed stand-in for RedisKeyValueBackend.

    Attributes:
        ttls: Last TTL written per key, for assertions.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self.ttls: dict[str, int] = {}

    def _expired(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return True
        if entry[1] <= self._clock():
            del self._data[key]
            return True
        return False

    async def get(self, key: str) -> str | None:
        if self._expired(key):
            return None
        return self._data[key][0]

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)
        self.ttls[key] = ttl_seconds

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if not self._expired(key):
                del self._data[key]
                removed += 1
        return removed

    async def scan(self, pattern: str) -> list[str]:
        regex = glob_to_regex(pattern)
        return [k for k in list(self._data) if not self._expired(k) and regex.match(k)]

    # Direct access for tampering tests

    def raw(self, key: str) -> str | None:
        entry = self._data.get(key)
        return None if entry is None else entry[0]

    def put_raw(self, key: str, value: str, ttl_seconds: int = 3600) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)

    def __contains__(self, key: str) -> bool:
        return not self._expired(key)

    def keys(self) -> list[str]:
        return [k for k in list(self._data) if not self._expired(k)]
