"""Exception hierarchy for the StudyWeave pipeline.

Only InvalidInputError and the *NotFoundError types are meant to reach a
caller of the chat turn API. Provider failures (EmbeddingError,
GenerationError) are consumed inside the retrieval and generation fallback
chains.
"""

from __future__ import annotations


class StudyWeaveError(Exception):
    """Base class for all StudyWeave errors."""


class InvalidInputError(StudyWeaveError, ValueError):
    """Raised when caller input is rejected before any pipeline work starts."""


class ConversationNotFoundError(StudyWeaveError, LookupError):
    """Conversation does not exist or belongs to another user."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class DocumentNotFoundError(StudyWeaveError, LookupError):
    """Document does not exist or belongs to another user."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class EmbeddingError(StudyWeaveError):
    """Embedding provider failed or returned an unusable vector."""


class GenerationError(StudyWeaveError):
    """A single generative model attempt failed."""

    def __init__(self, model: str, cause: Exception | str) -> None:
        super().__init__(f"Generation with '{model}' failed: {cause}")
        self.model = model


class TurnPersistenceError(StudyWeaveError):
    """Storing the assistant side of a turn failed after the user message was saved."""
