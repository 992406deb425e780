"""Request models for the chat turn API.

Input is validated here, before any retrieval or generation work starts.
"""

from __future__ import annotations

from typing import TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from studyweave.errors import InvalidInputError

MAX_MESSAGE_LENGTH = 10_000
MAX_PAGE_SIZE = 100

R = TypeVar("R", bound=BaseModel)


class SendMessageRequest(BaseModel):
    conversation_id: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    subject_id: str | None = None

    @field_validator("content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value


class CreateConversationRequest(BaseModel):
    subject_id: str | None = None
    title: str | None = Field(default=None, max_length=200)

    @field_validator("title")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


class ListConversationsRequest(BaseModel):
    subject_id: str | None = None
    limit: int = Field(default=20, ge=1, le=MAX_PAGE_SIZE)
    offset: int = Field(default=0, ge=0)


class GetMessagesRequest(BaseModel):
    conversation_id: str = Field(min_length=1)
    limit: int = Field(default=50, ge=1, le=MAX_PAGE_SIZE)
    offset: int = Field(default=0, ge=0)


def validate_request(model: type[R], **data: object) -> R:
    """Build *model* from *data*, converting validation failures to InvalidInputError."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidInputError(f"Invalid request: {problems}") from exc
