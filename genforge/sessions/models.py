"""Pydantic v2 models for conversation sessions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Author of a message in a conversation."""
    SYSTEM = "system"
    USER = "user"
    MODEL = "model"


class Message(BaseModel):
    """A single role-tagged message."""
    role: Role = Field(..., description="Who authored the message")
    text: str = Field(..., description="Message text")
    created_at: datetime = Field(default_factory=_utcnow)


class Session(BaseModel):
    """An append-only conversation keyed by ``id``."""
    id: str = Field(..., description="Session (conversation) identifier")
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
