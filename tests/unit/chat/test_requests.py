"""Tests for chat request validation."""

from __future__ import annotations

import pytest

from studyweave.chat.requests import (
    CreateConversationRequest,
    GetMessagesRequest,
    ListConversationsRequest,
    SendMessageRequest,
    validate_request,
)
from studyweave.errors import InvalidInputError


def test_send_message_valid():
    req = validate_request(SendMessageRequest, conversation_id="c1", content="Hi", subject_id=None)
    assert req.content == "Hi"


@pytest.mark.parametrize("content", ["", "   \n", "x" * 10_001])
def test_send_message_rejects_bad_content(content):
    with pytest.raises(InvalidInputError, match="content"):
        validate_request(SendMessageRequest, conversation_id="c1", content=content)


def test_send_message_accepts_max_length():
    req = validate_request(SendMessageRequest, conversation_id="c1", content="x" * 10_000)
    assert len(req.content) == 10_000


def test_send_message_requires_conversation_id():
    with pytest.raises(InvalidInputError, match="conversation_id"):
        validate_request(SendMessageRequest, conversation_id="", content="hi")


@pytest.mark.parametrize("limit", [0, 101])
def test_list_limit_bounds(limit):
    with pytest.raises(InvalidInputError, match="limit"):
        validate_request(ListConversationsRequest, limit=limit)


def test_negative_offset_rejected():
    with pytest.raises(InvalidInputError, match="offset"):
        validate_request(GetMessagesRequest, conversation_id="c1", offset=-1)


def test_defaults():
    assert validate_request(ListConversationsRequest).limit == 20
    assert validate_request(GetMessagesRequest, conversation_id="c1").limit == 50


def test_blank_title_becomes_none():
    assert validate_request(CreateConversationRequest, title="  ").title is None
    assert validate_request(CreateConversationRequest, title=" Exam prep ").title == "Exam prep"


def test_invalid_input_is_a_value_error():
    with pytest.raises(ValueError):
        validate_request(ListConversationsRequest, limit="many")
