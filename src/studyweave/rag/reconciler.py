"""Attribution reconciler: repair model citations against the retrieved set.

Schema-constrained decoding guarantees the *shape* of a response, not that a
cited document id was actually among the documents handed to the model. This
pass:
  1. Demotes ``from_file`` segments citing an unknown id to ``generated``
     (source fields nulled, confidence reset to NEUTRAL_CONFIDENCE).
  2. Replaces the model's copy of a valid source title with the canonical one.
  3. Clears stray source fields on ``generated`` segments.
  4. Recomputes all metadata from the repaired segments.

Pure function of its inputs; reconciling a reconciled response is a no-op.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from typing import Protocol

from studyweave.rag.schemas import (
    FROM_FILE,
    GENERATED,
    PrimarySource,
    ResponseMetadata,
    ResponseSegment,
    StructuredResponse,
)

logger = logging.getLogger(__name__)

NEUTRAL_CONFIDENCE = 0.5


class _HasSegments(Protocol):
    response: list[ResponseSegment]


class _Citable(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def title(self) -> str: ...


def reconcile(
    response: _HasSegments,
    available_documents: Iterable[_Citable],
) -> StructuredResponse:
    """Return a StructuredResponse whose citations all point into *available_documents*.

    Args:
        response: Raw generator output (GeneratedAnswer or StructuredResponse).
        available_documents: The documents passed to the generator this turn.
    """
    titles = {doc.id: doc.title for doc in available_documents}
    segments = [_repair_segment(segment, titles) for segment in response.response]
    return StructuredResponse(response=segments, metadata=compute_metadata(segments))


def _repair_segment(segment: ResponseSegment, titles: dict[str, str]) -> ResponseSegment:
    if segment.type == FROM_FILE:
        doc_id = segment.source_document_id
        if doc_id is None or doc_id not in titles:
            logger.warning(
                "Demoting segment citing unknown document %r to generated", doc_id
            )
            return segment.model_copy(
                update={
                    "type": GENERATED,
                    "source_document_id": None,
                    "source_document_title": None,
                    "confidence": NEUTRAL_CONFIDENCE,
                }
            )
        canonical = titles[doc_id]
        if segment.source_document_title != canonical:
            return segment.model_copy(update={"source_document_title": canonical})
        return segment

    if segment.source_document_id is not None or segment.source_document_title is not None:
        return segment.model_copy(
            update={"source_document_id": None, "source_document_title": None}
        )
    return segment


def compute_metadata(segments: Sequence[ResponseSegment]) -> ResponseMetadata:
    """Aggregate counters, usage percentage, mean confidence and primary sources."""
    total = len(segments)
    file_based = sum(1 for s in segments if s.type == FROM_FILE)
    generated = total - file_based

    usage: dict[str, PrimarySource] = {}
    for segment in segments:
        if segment.type != FROM_FILE or segment.source_document_id is None:
            continue
        entry = usage.get(segment.source_document_id)
        if entry is None:
            usage[segment.source_document_id] = PrimarySource(
                document_id=segment.source_document_id,
                document_title=segment.source_document_title or "",
                usage_count=1,
            )
        else:
            entry.usage_count += 1

    # sorted() is stable: ties keep first-citation order
    primary = sorted(usage.values(), key=lambda p: p.usage_count, reverse=True)

    return ResponseMetadata(
        total_segments=total,
        file_based_segments=file_based,
        generated_segments=generated,
        file_usage_percentage=_round_half_up(100 * file_based / total) if total else 0,
        average_confidence=min(1.0, sum(s.confidence for s in segments) / total) if total else 0.0,
        primary_sources=primary,
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
