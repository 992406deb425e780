"""Fixtures isolating CLI tests from the user's config and providers."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from studyweave.db.connection import Database
from studyweave.db.repository import Repository
from studyweave.db.schema import initialize


class FakeEmbeddingProvider:
    """Stands in for the LiteLLM-backed provider; every text maps to one axis."""

    def __init__(self, model: str = "fake/embed", dimensions: int = 3) -> None:
        self.model = model
        self.dimensions = dimensions

    def embed(self, text: str) -> list[float]:
        return [1.0, 0.0, 0.0]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch) -> Path:
    """Run each CLI test in tmp_path with 3-dimensional embeddings and no global config."""
    for var in (
        "STUDYWEAVE_GENERATION_MODEL",
        "STUDYWEAVE_EMBEDDING_MODEL",
        "STUDYWEAVE_DB",
        "STUDYWEAVE_USER",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(
        "studyweave.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global" / "config.yaml"
    )
    (tmp_path / "studyweave.yaml").write_text(
        yaml.dump({"embedding": {"dimensions": 3}, "generation": {"models": ["test/a"]}}),
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def fake_embeddings(monkeypatch) -> None:
    monkeypatch.setattr("studyweave.cli.docs.EmbeddingProvider", FakeEmbeddingProvider)
    monkeypatch.setattr("studyweave.chat.orchestrator.EmbeddingProvider", FakeEmbeddingProvider)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """An initialized, empty database file."""
    path = tmp_path / ".studyweave.db"
    conn = Database(path).connect()
    initialize(conn)
    conn.close()
    return path


@pytest.fixture
def cli_repo(db_path: Path):
    """Repository over db_path for seeding and inspecting CLI state."""
    conn = Database(db_path).connect()
    yield Repository(conn, embedding_dimensions=3)
    conn.close()
