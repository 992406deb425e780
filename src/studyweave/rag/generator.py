"""Response generator: schema-constrained generation with a model fallback chain.

For each attempt the configured models are tried in priority order (primary
fast model first, then progressively more conservative fallbacks). The first
model that returns a schema-valid answer wins; its output is reconciled
against the retrieved documents before it is returned. When every model
fails, a deterministic fallback response is synthesized, so generate() never
raises.

Streaming: generate_stream() yields PartialStructuredResponse snapshots while
the primary (or first working) model decodes, then result() resolves the
final value. Opening the stream and resolving the final object each run the
fallback chain independently.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import ValidationError

from studyweave.config import GenerationCfg
from studyweave.errors import GenerationError
from studyweave.rag.llm_client import complete_structured, stream_structured
from studyweave.rag.prompts import PromptConfig, build_messages
from studyweave.rag.reconciler import compute_metadata, reconcile
from studyweave.rag.retriever import RetrievedDocument
from studyweave.rag.schemas import (
    GENERATED,
    GeneratedAnswer,
    PartialStructuredResponse,
    ResponseSegment,
    StructuredResponse,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

FALLBACK_CONFIDENCE = 1.0
_FALLBACK_TITLE_LIMIT = 3


@dataclass
class GeneratorConfig:
    """Configuration for the response generator.

    Attributes:
        models: LiteLLM model strings in fallback priority order.
        temperature: Low by default; attribution accuracy beats variety.
        max_tokens: Maximum output tokens per attempt.
        max_retries: Schema re-asks per model (instructor).
        history_limit: Prior messages replayed to the model.
        max_document_chars: Per-document content cap in the system prompt.
    """

    models: list[str] = field(
        default_factory=lambda: ["gemini/gemini-2.0-flash", "gemini/gemini-1.5-pro"]
    )
    temperature: float = 0.4
    max_tokens: int = 2_048
    max_retries: int = 1
    history_limit: int = 10
    max_document_chars: int = 1_500

    @classmethod
    def from_config(cls, cfg: GenerationCfg) -> GeneratorConfig:
        return cls(
            models=list(cfg.models),
            temperature=cfg.temperature,
            max_tokens=cfg.max_tokens,
            max_retries=cfg.max_retries,
            history_limit=cfg.history_limit,
            max_document_chars=cfg.max_document_chars,
        )

    @property
    def prompt(self) -> PromptConfig:
        return PromptConfig(
            max_document_chars=self.max_document_chars,
            history_limit=self.history_limit,
        )


@dataclass
class GenerationResult:
    """A reconciled response plus best-effort usage data.

    Attributes:
        response: Reconciled StructuredResponse.
        token_count: Total tokens reported by the provider, or None.
        model: Model that produced the answer; None for the fallback response.
    """

    response: StructuredResponse
    token_count: int | None = None
    model: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.model is None


class ResponseStream:
    """Partial snapshots of an answer in progress, plus its final resolution.

    Iterate to receive PartialStructuredResponse snapshots (possibly
    incomplete). Call result() for the validated, reconciled final value;
    it drains any snapshots not yet consumed. Stopping iteration early is
    safe and has no side effects.
    """

    def __init__(
        self,
        snapshots: Iterator[PartialStructuredResponse],
        resolve: Callable[[], GenerationResult],
    ) -> None:
        self._snapshots = snapshots
        self._resolve = resolve
        self._result: GenerationResult | None = None

    def __iter__(self) -> Iterator[PartialStructuredResponse]:
        return self._snapshots

    def result(self) -> GenerationResult:
        if self._result is None:
            for _ in self._snapshots:
                pass
            self._result = self._resolve()
        return self._result


@dataclass
class _StreamState:
    model: str | None = None
    last: Any = None
    completed: bool = False


class ResponseGenerator:
    """Generate source-attributed answers from a question, history and documents."""

    def __init__(self, config: GeneratorConfig | None = None) -> None:
        self.config = config or GeneratorConfig()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        user_message: str,
        history: Sequence[dict],
        documents: Sequence[RetrievedDocument],
    ) -> GenerationResult:
        """Return a reconciled answer; falls back to a synthesized one on total failure."""
        messages = build_messages(user_message, history, documents, self.config.prompt)
        return self._generate_from_messages(messages, documents)

    def generate_stream(
        self,
        user_message: str,
        history: Sequence[dict],
        documents: Sequence[RetrievedDocument],
    ) -> ResponseStream:
        """Stream partial snapshots; the returned stream's result() is the final answer."""
        messages = build_messages(user_message, history, documents, self.config.prompt)
        state = _StreamState()
        return ResponseStream(
            self._stream_snapshots(messages, state),
            lambda: self._resolve_stream(state, messages, documents),
        )

    # ------------------------------------------------------------------
    # Fallback chain
    # ------------------------------------------------------------------

    def _run_chain(self, attempt: Callable[[str], T]) -> tuple[str, T] | None:
        """Try *attempt* with each model in order; return (model, value) of the first success."""
        for model in self.config.models:
            try:
                return model, attempt(model)
            except Exception as exc:
                logger.warning("Model %s failed: %s", model, _compact_error(exc))
        return None

    def _generate_from_messages(
        self, messages: list[dict], documents: Sequence[RetrievedDocument]
    ) -> GenerationResult:
        outcome = self._run_chain(
            lambda model: complete_structured(
                model,
                messages,
                GeneratedAnswer,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                max_retries=self.config.max_retries,
            )
        )
        if outcome is None:
            logger.error(
                "All models failed (%s); returning fallback response",
                ", ".join(self.config.models),
            )
            return GenerationResult(response=fallback_response(documents))

        model, (answer, token_count) = outcome
        logger.info("Answer generated by %s (%s tokens)", model, token_count)
        return GenerationResult(
            response=reconcile(answer, documents), token_count=token_count, model=model
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def _open_stream(self, model: str, messages: list[dict]) -> tuple[Iterator[Any], Any]:
        """Start a partial stream and pull its first snapshot."""
        stream = iter(
            stream_structured(
                model,
                messages,
                GeneratedAnswer,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        )
        try:
            first = next(stream)
        except StopIteration:
            raise GenerationError(model, "stream ended before any output") from None
        return stream, first

    def _stream_snapshots(
        self, messages: list[dict], state: _StreamState
    ) -> Iterator[PartialStructuredResponse]:
        established = self._run_chain(lambda model: self._open_stream(model, messages))
        if established is None:
            logger.error("Could not open a response stream with any model")
            return

        state.model, (stream, first) = established
        try:
            for partial in itertools.chain([first], stream):
                state.last = partial
                snapshot = _to_snapshot(partial)
                if snapshot is not None:
                    yield snapshot
            state.completed = True
        except Exception as exc:
            logger.warning("Stream from %s broke off: %s", state.model, _compact_error(exc))

    def _resolve_stream(
        self,
        state: _StreamState,
        messages: list[dict],
        documents: Sequence[RetrievedDocument],
    ) -> GenerationResult:
        if state.completed and state.last is not None:
            try:
                answer = GeneratedAnswer.model_validate(_as_dict(state.last))
            except ValidationError as exc:
                logger.warning(
                    "Final streamed object from %s is invalid: %s",
                    state.model,
                    _compact_error(exc),
                )
            else:
                return GenerationResult(
                    response=reconcile(answer, documents), model=state.model
                )
        return self._generate_from_messages(messages, documents)


# ------------------------------------------------------------------
# Fallback response
# ------------------------------------------------------------------


def fallback_response(documents: Sequence[RetrievedDocument]) -> StructuredResponse:
    """Deterministic single-segment answer used when every model failed.

    The text differs depending on whether any documents were retrieved, since
    the remedy differs (retry vs. upload materials).
    """
    if documents:
        titles = ", ".join(f'"{doc.title}"' for doc in documents[:_FALLBACK_TITLE_LIMIT])
        text = (
            "I'm having trouble generating an answer right now, but I did find "
            f"relevant study materials: {titles}. Please try again in a moment."
        )
    else:
        text = (
            "I'm having trouble generating an answer right now, and I couldn't find "
            "any study materials for this question yet. Upload your notes or readings "
            "for this subject, then try again."
        )
    segments = [ResponseSegment(text=text, type=GENERATED, confidence=FALLBACK_CONFIDENCE)]
    return StructuredResponse(response=segments, metadata=compute_metadata(segments))


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _as_dict(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    return obj


def _to_snapshot(partial: Any) -> PartialStructuredResponse | None:
    data = _as_dict(partial)
    if isinstance(data, dict) and isinstance(data.get("response"), list):
        data = {**data, "response": [s for s in data["response"] if s is not None]}
    try:
        return PartialStructuredResponse.model_validate(data)
    except ValidationError:
        return None


def _compact_error(err: Exception, limit: int = 320) -> str:
    text = str(err or "").replace("\n", " ").strip() or type(err).__name__
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
