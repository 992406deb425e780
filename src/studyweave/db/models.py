"""Domain models for the StudyWeave database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field


@dataclass
class Document:
    id: str
    user_id: str
    title: str
    content: str
    subject_id: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    file_type: str | None = None
    word_count: int | None = None
    page_count: int | None = None
    metadata: str = field(default_factory=lambda: "{}")
    embedding: list[float] | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None


@dataclass
class Conversation:
    id: str
    user_id: str
    title: str
    subject_id: str | None = None
    description: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Message:
    """One appended conversation message.

    ``content`` is the raw user text, or for assistant turns the serialized
    StructuredResponse JSON. ``sources`` lists the ids of the documents that
    were retrieved as context for the turn.
    """

    id: str
    conversation_id: str
    role: str  # user | assistant | system
    content: str
    metadata: str | None = None
    sources: list[str] = field(default_factory=list)
    token_count: int | None = None
    created_at: str | None = None

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata) if self.metadata else {}
