"""Tests for response schemas."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from studyweave.rag.reconciler import compute_metadata
from studyweave.rag.schemas import (
    GeneratedAnswer,
    PartialStructuredResponse,
    ResponseSegment,
    StructuredResponse,
)


def _segment(**kw) -> ResponseSegment:
    data = {"text": "x", "type": "generated", "confidence": 0.5}
    data.update(kw)
    return ResponseSegment(**data)


def test_segment_accepts_camel_case_input():
    seg = ResponseSegment.model_validate(
        {
            "text": "Chlorophyll absorbs light.",
            "type": "from_file",
            "sourceDocumentId": "doc-1",
            "sourceDocumentTitle": "Biology Notes",
            "confidence": 0.9,
        }
    )
    assert seg.source_document_id == "doc-1"
    assert seg.source_document_title == "Biology Notes"


@pytest.mark.parametrize(
    "bad",
    [
        {"text": ""},
        {"type": "quoted"},
        {"confidence": 1.5},
        {"confidence": -0.1},
    ],
)
def test_segment_rejects_invalid_fields(bad):
    with pytest.raises(ValidationError):
        _segment(**bad)


def test_generated_answer_requires_a_segment():
    with pytest.raises(ValidationError):
        GeneratedAnswer(response=[])


def test_to_json_uses_camel_case_keys():
    segments = [_segment(type="from_file", source_document_id="d1", source_document_title="T")]
    response = StructuredResponse(response=segments, metadata=compute_metadata(segments))
    data = json.loads(response.to_json())
    assert data["response"][0]["sourceDocumentId"] == "d1"
    assert data["metadata"]["fileUsagePercentage"] == 100
    assert data["metadata"]["primarySources"][0]["usageCount"] == 1


def test_from_json_reads_persisted_content():
    segments = [_segment(text="a"), _segment(text="b")]
    original = StructuredResponse(response=segments, metadata=compute_metadata(segments))
    restored = StructuredResponse.from_json(original.to_json())
    assert restored == original
    assert restored.plain_text() == "a b"


def test_partial_response_tolerates_missing_fields():
    partial = PartialStructuredResponse.model_validate(
        {"response": [{"text": "Photo"}, {"type": "from_f"}]}
    )
    assert partial.response[0].type is None
    assert partial.plain_text() == "Photo"


def test_partial_response_defaults_empty():
    assert PartialStructuredResponse().response == []
