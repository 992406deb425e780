"""Pydantic schemas for source-attributed responses.

Field names are snake_case in Python and camelCase on the wire (persisted
message content, the JSON schema handed to the model), matching what the UI
consumes.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SegmentType = Literal["from_file", "generated"]

FROM_FILE: SegmentType = "from_file"
GENERATED: SegmentType = "generated"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResponseSegment(_CamelModel):
    """One presentation unit of an answer (sentence, bullet or paragraph)."""

    text: str = Field(min_length=1, description="A coherent chunk of the answer")
    type: SegmentType = Field(
        description="'from_file' if grounded in a listed document, otherwise 'generated'"
    )
    source_document_id: str | None = Field(
        default=None, description="ID of the source document when type is 'from_file'"
    )
    source_document_title: str | None = Field(
        default=None, description="Title of the source document when type is 'from_file'"
    )
    confidence: float = Field(
        ge=0.0, le=1.0, description="Confidence in the attribution, between 0 and 1"
    )


class GeneratedAnswer(_CamelModel):
    """Schema the model is constrained to; metadata is derived afterwards."""

    response: list[ResponseSegment] = Field(
        min_length=1, description="Ordered answer segments, each tagged with its origin"
    )


class PrimarySource(_CamelModel):
    document_id: str
    document_title: str
    usage_count: int


class ResponseMetadata(_CamelModel):
    total_segments: int = Field(ge=0)
    file_based_segments: int = Field(ge=0)
    generated_segments: int = Field(ge=0)
    file_usage_percentage: int = Field(ge=0, le=100)
    average_confidence: float = Field(ge=0.0, le=1.0)
    primary_sources: list[PrimarySource] = Field(default_factory=list)


class StructuredResponse(_CamelModel):
    """The complete answer for one assistant turn."""

    response: list[ResponseSegment] = Field(min_length=1)
    metadata: ResponseMetadata

    def to_json(self) -> str:
        """Serialize for persistence as message content."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> StructuredResponse:
        return cls.model_validate_json(raw)

    def plain_text(self) -> str:
        """Segment texts joined with spaces, as replayed in conversation history."""
        return " ".join(segment.text for segment in self.response)


# ------------------------------------------------------------------
# Streaming snapshots
# ------------------------------------------------------------------


class PartialSegment(_CamelModel):
    """A segment that may still be mid-decode; any field can be missing."""

    text: str | None = None
    type: str | None = None  # may be a truncated literal mid-stream
    source_document_id: str | None = None
    source_document_title: str | None = None
    confidence: float | None = None


class PartialStructuredResponse(_CamelModel):
    """Possibly-incomplete view of a response while it streams.

    Never a substitute for the final StructuredResponse: it carries no
    metadata and its attributions are not yet reconciled.
    """

    response: list[PartialSegment] = Field(default_factory=list)

    def plain_text(self) -> str:
        return " ".join(s.text for s in self.response if s.text)
