"""Conversation history for multi-turn project generation.

Usage::

    from genforge.sessions import InMemorySessionStore, Role

    store = InMemorySessionStore()
    session_id, history = await store.get_or_create(None)
    async with store.turn(session_id):
        await store.append(session_id, Role.USER, "Build a todo app")
"""

from genforge.sessions.models import Message, Role, Session
from genforge.sessions.store import InMemorySessionStore, SessionStore

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "Message",
    "Role",
    "Session",
]
