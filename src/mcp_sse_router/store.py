from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from .channel import Channel
from .model import Session


@runtime_checkable
class SessionRegistry(Protocol):
    def register(self, session_id: str, channel: Channel) -> None: ...

    def lookup(self, session_id: str) -> Channel | None: ...

    def remove(self, session_id: str) -> None: ...

    def contains(self, session_id: str) -> bool: ...

    def session_ids(self) -> list[str]: ...


class InMemorySessionRegistry:
    """Process-local map of session id to open channel.

    Every operation takes the lock briefly and never awaits, so the registry
    is safe to share between the event loop and worker threads.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def register(self, session_id: str, channel: Channel) -> None:
        with self._lock:
            self._sessions[session_id] = Session(id=session_id, channel=channel)

    def lookup(self, session_id: str) -> Channel | None:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return None
        return session.channel

    def remove(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def contains(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
