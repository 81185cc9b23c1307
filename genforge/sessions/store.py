"""Session store abstraction and its in-memory implementation.

The pipeline only talks to the :class:`SessionStore` protocol, so an
external store (Redis, a database) can replace :class:`InMemorySessionStore`
without touching request handling.

Two locking levels exist:

* Individual operations are atomic. The in-memory store never awaits in the
  middle of a mutation, so no other task can observe a half-applied append.
* :meth:`SessionStore.turn` serialises whole conversation turns (read
  history, call the model, append both messages) for one session id.
  Different session ids never wait on each other.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol, runtime_checkable

from genforge.utils import KeyedLocks, timestamp_id

from .models import Message, Role, Session


@runtime_checkable
class SessionStore(Protocol):
    async def get_or_create(self, session_id: str | None = None) -> tuple[str, list[Message]]: ...
    async def append(self, session_id: str, role: Role, text: str) -> Message: ...
    async def history(self, session_id: str) -> list[Message]: ...
    async def evict(self, session_id: str) -> bool: ...
    def turn(self, session_id: str) -> AbstractAsyncContextManager[None]: ...


class InMemorySessionStore:
    """Process-local session table.

    Sessions live until :meth:`evict` or :meth:`clear` is called. History is
    unbounded unless *max_messages* is given, in which case the oldest
    messages are dropped once a session grows past it.
    """

    def __init__(self, max_messages: int | None = None) -> None:
        if max_messages is not None and max_messages < 1:
            raise ValueError("max_messages must be positive")
        self.max_messages = max_messages
        self._sessions: dict[str, Session] = {}
        self._locks = KeyedLocks()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def _new_id(self) -> str:
        session_id = timestamp_id()
        while session_id in self._sessions:
            session_id = timestamp_id()
        return session_id

    async def get_or_create(self, session_id: str | None = None) -> tuple[str, list[Message]]:
        """Return ``(session_id, history)``, creating the session if needed.

        A missing *session_id* gets a fresh timestamp-derived identifier.
        """
        if not session_id:
            session_id = self._new_id()
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = Session(id=session_id)
        return session_id, list(session.messages)

    async def append(self, session_id: str, role: Role, text: str) -> Message:
        """Append one message, creating the session if it does not exist."""
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = Session(id=session_id)

        message = Message(role=Role(role), text=text)
        session.messages.append(message)
        if self.max_messages is not None and len(session.messages) > self.max_messages:
            del session.messages[: len(session.messages) - self.max_messages]
        session.updated_at = message.created_at
        return message

    async def history(self, session_id: str) -> list[Message]:
        """Return a copy of the session's messages (empty if unknown)."""
        session = self._sessions.get(session_id)
        return list(session.messages) if session else []

    async def evict(self, session_id: str) -> bool:
        """Forget a session. Returns ``True`` if it existed."""
        return self._sessions.pop(session_id, None) is not None

    def turn(self, session_id: str) -> AbstractAsyncContextManager[None]:
        """Hold the session's lock for the duration of one conversation turn."""
        return self._locks.hold(session_id)

    def clear(self) -> None:
        """Drop every session."""
        self._sessions.clear()

