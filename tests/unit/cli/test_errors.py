"""Tests for studyweave rich error messages."""

from __future__ import annotations

import pytest

from studyweave.cli.errors import (
    err_config,
    err_conversation_not_found,
    err_document_not_found,
    err_invalid_input,
    err_no_db,
    err_turn_not_saved,
    warn_no_api_key,
    warn_not_embedded,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _has_action(msg: str) -> bool:
    """Every error must say what to do next."""
    lower = msg.lower()
    return any(
        kw in lower for kw in ["run:", "studyweave ", "fix ", "retry", "check ", "re-add"]
    )


# ---------------------------------------------------------------------------
# err_no_db
# ---------------------------------------------------------------------------


def test_err_no_db_contains_path() -> None:
    msg = err_no_db("/tmp/notes.db")
    assert "/tmp/notes.db" in msg


def test_err_no_db_suggests_adding_material() -> None:
    msg = err_no_db()
    assert "studyweave docs add" in msg
    assert ".studyweave.db" in msg


# ---------------------------------------------------------------------------
# Not-found errors
# ---------------------------------------------------------------------------


def test_err_conversation_not_found() -> None:
    msg = err_conversation_not_found("conv-42")
    assert "conv-42" in msg
    assert "studyweave chat list" in msg


def test_err_document_not_found() -> None:
    msg = err_document_not_found("doc-7")
    assert "doc-7" in msg
    assert "studyweave docs list" in msg


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


def test_warn_no_api_key_mentions_fallback() -> None:
    msg = warn_no_api_key("Set the GEMINI_API_KEY environment variable.")
    assert "GEMINI_API_KEY" in msg
    assert "fallback" in msg.lower()
    assert msg.startswith("[yellow]Warning:")


def test_warn_not_embedded_names_document() -> None:
    msg = warn_not_embedded("Biology Notes")
    assert "Biology Notes" in msg
    assert "keyword" in msg


# ---------------------------------------------------------------------------
# All messages: cause and action
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "msg",
    [
        err_no_db(),
        err_conversation_not_found("c1"),
        err_document_not_found("d1"),
        err_config("bad value"),
        err_turn_not_saved("disk full"),
        warn_not_embedded("Notes"),
    ],
)
def test_messages_have_action(msg: str) -> None:
    assert _has_action(msg)


@pytest.mark.parametrize(
    "msg",
    [
        err_no_db(),
        err_conversation_not_found("c1"),
        err_document_not_found("d1"),
        err_invalid_input("Invalid request: content: too long"),
        err_config("bad value"),
        err_turn_not_saved("disk full"),
    ],
)
def test_errors_use_red_prefix(msg: str) -> None:
    assert msg.startswith("[red]Error:[/]")


def test_err_invalid_input_passes_detail_through() -> None:
    assert "content: too long" in err_invalid_input("content: too long")
