"""Tests for database schema initialization."""

from __future__ import annotations

import sqlite3

import pytest

from studyweave.db.schema import CURRENT_VERSION, initialize


def _table_columns(conn, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row["name"] for row in rows}


def _table_exists(conn, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    return row is not None


def test_documents_columns(tmp_db):
    cols = _table_columns(tmp_db, "documents")
    assert cols == {
        "id", "user_id", "subject_id", "title", "content", "file_name", "file_size",
        "file_type", "word_count", "page_count", "metadata", "embedding",
        "created_at", "updated_at",
    }


def test_conversations_columns(tmp_db):
    cols = _table_columns(tmp_db, "conversations")
    assert cols == {
        "id", "user_id", "subject_id", "title", "description", "created_at", "updated_at"
    }


def test_messages_columns(tmp_db):
    cols = _table_columns(tmp_db, "messages")
    assert cols == {
        "id", "conversation_id", "role", "content", "metadata", "sources",
        "token_count", "created_at",
    }


def test_schema_version_recorded(tmp_db):
    version = tmp_db.execute("SELECT version FROM schema_version").fetchone()[0]
    assert version == CURRENT_VERSION


def test_initialize_idempotent(tmp_db):
    # Calling initialize twice must not raise and version must stay the same
    initialize(tmp_db)
    rows = tmp_db.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert rows == 1


def test_document_timestamps_have_milliseconds(tmp_db):
    tmp_db.execute(
        "INSERT INTO documents (id, user_id, title, content) VALUES ('d', 'u', 't', 'c')"
    )
    created = tmp_db.execute("SELECT created_at FROM documents").fetchone()[0]
    assert "." in created


def test_messages_cascade_with_conversation(tmp_db):
    tmp_db.execute(
        "INSERT INTO conversations (id, user_id, title) VALUES ('c-1', 'u', 'Chat')"
    )
    tmp_db.execute(
        "INSERT INTO messages (id, conversation_id, role, content) "
        "VALUES ('m-1', 'c-1', 'user', 'hi')"
    )
    tmp_db.execute("DELETE FROM conversations WHERE id = 'c-1'")
    tmp_db.commit()
    count = tmp_db.execute("SELECT COUNT(*) FROM messages").fetchone()[0]
    assert count == 0


def test_message_role_is_checked(tmp_db):
    tmp_db.execute(
        "INSERT INTO conversations (id, user_id, title) VALUES ('c-2', 'u', 'Chat')"
    )
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO messages (id, conversation_id, role, content) "
            "VALUES ('m-2', 'c-2', 'robot', 'hi')"
        )


def test_message_requires_existing_conversation(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO messages (id, conversation_id, role, content) "
            "VALUES ('m-3', 'missing', 'user', 'hi')"
        )
