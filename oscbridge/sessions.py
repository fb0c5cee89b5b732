"""
Client session bookkeeping.

Every visualizer that calls /start gets a session id. Any request carrying
the id in an X-Session-ID header refreshes it; sessions idle longer than the
TTL are dropped by the periodic expiry task. The listener stays up while at
least one session remains.
"""

import threading
import time
import uuid
from typing import Dict, List, Optional


class SessionRegistry:
    """Thread-safe map of session id to last-seen time.

    Args:
        ttl_s: Idle time after which a session expires
        clock: Time source in seconds (injectable for tests)
    """

    def __init__(self, ttl_s: float = 300.0, clock=time.monotonic):
        self.ttl_s = ttl_s
        self._clock = clock
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def create(self) -> str:
        session_id = str(uuid.uuid4())
        with self._lock:
            self._last_seen[session_id] = self._clock()
        return session_id

    def touch(self, session_id: Optional[str]) -> bool:
        """Refresh a session. Returns False for unknown ids."""
        with self._lock:
            if session_id not in self._last_seen:
                return False
            self._last_seen[session_id] = self._clock()
            return True

    def remove(self, session_id: Optional[str]) -> bool:
        with self._lock:
            return self._last_seen.pop(session_id, None) is not None

    def expire(self, now: Optional[float] = None) -> List[str]:
        """Drop sessions idle longer than the TTL.

        Returns:
            Ids of the sessions removed (empty if none); safe to call repeatedly
        """
        if now is None:
            now = self._clock()
        with self._lock:
            expired = [session_id for session_id, seen in self._last_seen.items()
                       if now - seen > self.ttl_s]
            for session_id in expired:
                del self._last_seen[session_id]
        return expired

    def clear(self) -> None:
        with self._lock:
            self._last_seen.clear()

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._last_seen)

    def count(self) -> int:
        with self._lock:
            return len(self._last_seen)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._last_seen
