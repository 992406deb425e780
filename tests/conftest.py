"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from studyweave.db.connection import Database
from studyweave.db.repository import Repository
from studyweave.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".studyweave.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    """Repository over tmp_db accepting 3-dimensional embeddings."""
    return Repository(tmp_db, embedding_dimensions=3)
