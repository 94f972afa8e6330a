from __future__ import annotations

import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any


@dataclass
class RegistryEntry:
    engine: Any
    connected: bool = True
    updated_at: float = field(default_factory=time.time)


class SessionRegistry:
    """
    Engines by session id. An entry outlives its socket so the results
    route can still answer from memory until the cleanup TTL passes.
    """

    def __init__(self):
        self._lock = Lock()
        self._entries: dict[str, RegistryEntry] = {}

    def register(self, session_id: str, engine) -> bool:
        """Returns False when the id already belongs to a connected session."""
        with self._lock:
            existing = self._entries.get(str(session_id))
            if existing is not None and existing.connected:
                return False
            self._entries[str(session_id)] = RegistryEntry(engine=engine)
            return True

    def touch(self, session_id: str) -> None:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is not None:
                entry.updated_at = time.time()

    def mark_disconnected(self, session_id: str, engine=None) -> None:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return
            # a teardown only ever disconnects its own engine
            if engine is not None and entry.engine is not engine:
                return
            entry.connected = False
            entry.updated_at = time.time()

    def get(self, session_id: str) -> RegistryEntry | None:
        with self._lock:
            return self._entries.get(session_id)

    def results_for(self, session_id: str) -> tuple[dict, bool] | None:
        """Results payload of a finished in-memory session, with whether its socket is still open."""
        entry = self.get(session_id)
        if entry is None:
            return None
        payload = entry.engine.results_payload()
        if payload is None:
            return None
        return payload, entry.connected

    def connected_count(self) -> int:
        with self._lock:
            return sum(1 for entry in self._entries.values() if entry.connected)

    def cleanup_disconnected(self, ttl_sec: float) -> int:
        cutoff = time.time() - max(30.0, float(ttl_sec or 900.0))
        with self._lock:
            stale = [
                session_id
                for session_id, entry in self._entries.items()
                if not entry.connected and entry.updated_at <= cutoff
            ]
            for session_id in stale:
                self._entries.pop(session_id, None)
        return len(stale)


session_registry = SessionRegistry()
