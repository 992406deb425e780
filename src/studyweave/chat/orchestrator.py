"""Conversation orchestrator: one user turn, end to end.

Turn order:
  1. Validate input, check conversation ownership.
  2. Load the last ``history_limit`` messages as history.
  3. Retrieve documents for the new message.
  4. Persist the user message (sources = retrieved ids).
  5. Generate (already reconciled against the retrieved set).
  6. Persist the assistant message with its metadata.
  7. Title the conversation after its first exchange; touch updated_at.

The user message is persisted before generation starts and the assistant
message after it ends, so readers never see a reply without its question.
Streaming turns persist nothing until the final response is resolved.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from studyweave.chat.requests import (
    CreateConversationRequest,
    GetMessagesRequest,
    ListConversationsRequest,
    SendMessageRequest,
    validate_request,
)
from studyweave.config import StudyWeaveConfig
from studyweave.db.models import Conversation, Message
from studyweave.db.repository import Repository
from studyweave.errors import ConversationNotFoundError, InvalidInputError, TurnPersistenceError
from studyweave.rag.embeddings import EmbeddingProvider
from studyweave.rag.generator import (
    GenerationResult,
    GeneratorConfig,
    ResponseGenerator,
    ResponseStream,
)
from studyweave.rag.retriever import Embedder, RetrievedDocument, retrieve
from studyweave.rag.schemas import PartialStructuredResponse, StructuredResponse

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """Everything a caller needs to render one completed turn.

    Attributes:
        user_message: The stored user message.
        assistant_message: The stored assistant message (StructuredResponse JSON).
        sources: ``{id, title, fileName, similarity}`` per retrieved document.
        anti_hallucination_data: The reconciled StructuredResponse.
    """

    user_message: Message
    assistant_message: Message
    sources: list[dict] = field(default_factory=list)
    anti_hallucination_data: StructuredResponse | None = None


class TurnStream:
    """A streaming turn: iterate for partial snapshots, call result() to finish.

    result() resolves the final response and only then persists the user and
    assistant messages. Abandoning the iteration without calling result()
    leaves the conversation untouched.
    """

    def __init__(
        self,
        stream: ResponseStream,
        finalize: Callable[[GenerationResult], TurnResult],
        sources: list[dict],
    ) -> None:
        self._stream = stream
        self._finalize = finalize
        self.sources = sources
        self._result: TurnResult | None = None

    def __iter__(self) -> Iterator[PartialStructuredResponse]:
        return iter(self._stream)

    def result(self) -> TurnResult:
        if self._result is None:
            self._result = self._finalize(self._stream.result())
        return self._result


@dataclass
class _Turn:
    conversation: Conversation
    content: str
    history: list[dict]
    documents: list[RetrievedDocument]
    started: float


class ChatService:
    """Sequences retrieval, generation and persistence for chat turns.

    Args:
        repo: Store for documents, conversations and messages.
        embedder: Query embedding provider.
        generator: Response generator; built from *config* when omitted.
        config: Full configuration; defaults apply when omitted.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        generator: ResponseGenerator | None = None,
        config: StudyWeaveConfig | None = None,
    ) -> None:
        self.repo = repo
        self.embedder = embedder
        self.config = config or StudyWeaveConfig()
        self.generator = generator or ResponseGenerator(
            GeneratorConfig.from_config(self.config.generation)
        )

    @classmethod
    def from_config(cls, conn: sqlite3.Connection, config: StudyWeaveConfig) -> ChatService:
        """Wire a service over *conn* with the configured embedding and generation models."""
        return cls(
            Repository(conn, embedding_dimensions=config.embedding.dimensions),
            EmbeddingProvider(config.embedding.model, config.embedding.dimensions),
            config=config,
        )

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def send_message(
        self,
        conversation_id: str,
        user_id: str,
        content: str,
        subject_id: str | None = None,
    ) -> TurnResult:
        """Run one complete turn and return both stored messages.

        Raises:
            InvalidInputError: Malformed or oversized input.
            ConversationNotFoundError: Unknown conversation or not owned by *user_id*.
            TurnPersistenceError: The turn could not be stored.
        """
        turn = self._prepare_turn(conversation_id, user_id, content, subject_id)
        is_first = self._is_first_exchange(turn.conversation.id)
        user_message = self._persist_user_message(turn)
        generation = self.generator.generate(turn.content, turn.history, turn.documents)
        return self._complete_turn(turn, user_message, generation, is_first)

    def send_message_stream(
        self,
        conversation_id: str,
        user_id: str,
        content: str,
        subject_id: str | None = None,
    ) -> TurnStream:
        """Start a streaming turn; retrieval runs now, persistence on result().

        Raises:
            InvalidInputError: Malformed or oversized input.
            ConversationNotFoundError: Unknown conversation or not owned by *user_id*.
        """
        turn = self._prepare_turn(conversation_id, user_id, content, subject_id)
        stream = self.generator.generate_stream(turn.content, turn.history, turn.documents)

        def finalize(generation: GenerationResult) -> TurnResult:
            is_first = self._is_first_exchange(turn.conversation.id)
            user_message = self._persist_user_message(turn)
            return self._complete_turn(turn, user_message, generation, is_first)

        return TurnStream(stream, finalize, _source_entries(turn.documents))

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create_conversation(
        self, user_id: str, subject_id: str | None = None, title: str | None = None
    ) -> Conversation:
        request = validate_request(CreateConversationRequest, subject_id=subject_id, title=title)
        conversation = Conversation(
            id=str(uuid.uuid4()),
            user_id=user_id,
            subject_id=request.subject_id,
            title=request.title or self.config.chat.default_title,
        )
        self.repo.add_conversation(conversation)
        return self.repo.get_conversation(conversation.id, user_id) or conversation

    def get_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        conversation = self.repo.get_conversation(conversation_id, user_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def list_conversations(
        self,
        user_id: str,
        subject_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Conversation]:
        """Return the user's conversations, most recently updated first."""
        request = validate_request(
            ListConversationsRequest, subject_id=subject_id, limit=limit, offset=offset
        )
        return self.repo.list_conversations(
            user_id, subject_id=request.subject_id, limit=request.limit, offset=request.offset
        )

    def get_messages(
        self, conversation_id: str, user_id: str, limit: int = 50, offset: int = 0
    ) -> list[Message]:
        """Return a page of messages, oldest first."""
        request = validate_request(
            GetMessagesRequest, conversation_id=conversation_id, limit=limit, offset=offset
        )
        self.get_conversation(request.conversation_id, user_id)
        return self.repo.list_messages(
            request.conversation_id, limit=request.limit, offset=request.offset
        )

    def delete_conversation(self, conversation_id: str, user_id: str) -> None:
        """Delete a conversation and, by cascade, its messages."""
        self.get_conversation(conversation_id, user_id)
        self.repo.delete_conversation(conversation_id)
        logger.info("Deleted conversation %s", conversation_id)

    # ------------------------------------------------------------------
    # Turn steps
    # ------------------------------------------------------------------

    def _prepare_turn(
        self,
        conversation_id: str,
        user_id: str,
        content: str,
        subject_id: str | None,
    ) -> _Turn:
        started = time.perf_counter()
        request = validate_request(
            SendMessageRequest,
            conversation_id=conversation_id,
            content=content,
            subject_id=subject_id,
        )
        limit = self.config.chat.max_message_length
        if len(request.content) > limit:
            raise InvalidInputError(f"Message is longer than {limit} characters")

        conversation = self.get_conversation(request.conversation_id, user_id)
        history = [
            {"role": m.role, "content": m.content}
            for m in self.repo.recent_messages(
                conversation.id, limit=self.config.generation.history_limit
            )
        ]
        documents = retrieve(
            request.content,
            self.repo,
            self.embedder,
            user_id,
            subject_id=request.subject_id or conversation.subject_id,
            config=self.config.retrieval,
        )
        logger.info(
            "Turn in %s: %d history message(s), %d document(s) retrieved",
            conversation.id,
            len(history),
            len(documents),
        )
        return _Turn(conversation, request.content, history, documents, started)

    def _is_first_exchange(self, conversation_id: str) -> bool:
        return self.repo.count_messages(conversation_id) == 0

    def _persist_user_message(self, turn: _Turn) -> Message:
        try:
            return self.repo.add_message(
                Message(
                    id=str(uuid.uuid4()),
                    conversation_id=turn.conversation.id,
                    role="user",
                    content=turn.content,
                    sources=[d.id for d in turn.documents],
                )
            )
        except sqlite3.Error as exc:
            raise TurnPersistenceError(f"Could not store user message: {exc}") from exc

    def _complete_turn(
        self,
        turn: _Turn,
        user_message: Message,
        generation: GenerationResult,
        is_first: bool,
    ) -> TurnResult:
        response = generation.response
        processing_ms = int((time.perf_counter() - turn.started) * 1000)
        metadata = {
            "isStructured": True,
            "fileUsagePercentage": response.metadata.file_usage_percentage,
            "averageConfidence": response.metadata.average_confidence,
            "processingTime": processing_ms,
            "model": generation.model,
        }
        try:
            assistant_message = self.repo.add_message(
                Message(
                    id=str(uuid.uuid4()),
                    conversation_id=turn.conversation.id,
                    role="assistant",
                    content=response.to_json(),
                    metadata=json.dumps(metadata),
                    sources=[d.id for d in turn.documents],
                    token_count=generation.token_count,
                )
            )
            if is_first and turn.conversation.title == self.config.chat.default_title:
                self.repo.update_conversation_title(
                    turn.conversation.id,
                    derive_title(
                        turn.content,
                        self.config.chat.title_words,
                        self.config.chat.default_title,
                    ),
                )
            self.repo.touch_conversation(turn.conversation.id)
        except sqlite3.Error as exc:
            logger.error(
                "Storing reply for conversation %s failed; user message %s has no reply",
                turn.conversation.id,
                user_message.id,
            )
            raise TurnPersistenceError(f"Could not store assistant reply: {exc}") from exc

        logger.info(
            "Turn complete in %d ms: %d%% from files, model=%s",
            processing_ms,
            response.metadata.file_usage_percentage,
            generation.model or "fallback",
        )
        return TurnResult(
            user_message=user_message,
            assistant_message=assistant_message,
            sources=_source_entries(turn.documents),
            anti_hallucination_data=response,
        )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def derive_title(text: str, max_words: int = 6, default: str = "New Conversation") -> str:
    """First *max_words* words of *text*, with "..." when truncated."""
    words = text.split()
    if not words:
        return default
    title = " ".join(words[:max_words])
    if len(words) > max_words:
        title += "..."
    return title


def _source_entries(documents: list[RetrievedDocument]) -> list[dict]:
    return [
        {
            "id": d.id,
            "title": d.title,
            "fileName": d.file_name,
            "similarity": d.similarity,
        }
        for d in documents
    ]
