"""Shared CLI plumbing: database/user options, config loading, rendering."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from studyweave.cli.errors import err_config
from studyweave.config import ConfigError, StudyWeaveConfig, load_config
from studyweave.db.connection import Database
from studyweave.db.schema import initialize
from studyweave.rag.schemas import FROM_FILE, StructuredResponse

console = Console()

DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the StudyWeave database (default: .studyweave.db)."),
]
UserOption = Annotated[
    str | None,
    typer.Option("--user", help="User id that owns documents and conversations."),
]
SubjectOption = Annotated[
    str | None,
    typer.Option("--subject", help="Subject id to scope to."),
]
YesOption = Annotated[
    bool,
    typer.Option("--yes", "-y", help="Skip confirmation prompt."),
]


def load_settings(db: Path | None, user: str | None) -> StudyWeaveConfig:
    """Load layered config, then apply the --db/--user flags on top."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    if db is not None:
        cfg.db_path = str(db)
    if user is not None:
        cfg.user_id = user
    return cfg


def open_db(db_path: Path | str) -> sqlite3.Connection:
    db = Database(db_path)
    conn = db.connect()
    initialize(conn)
    return conn


def render_response(response: StructuredResponse) -> None:
    """Print each segment with its origin tag, then the attribution summary."""
    for segment in response.response:
        if segment.type == FROM_FILE:
            console.print(
                f"[green]\\[file][/] {segment.text} "
                f"[dim]({segment.source_document_title}, {segment.confidence:.0%})[/]"
            )
        else:
            console.print(f"[blue]\\[generated][/] {segment.text} [dim]({segment.confidence:.0%})[/]")

    meta = response.metadata
    sources = ", ".join(f"{p.document_title} ×{p.usage_count}" for p in meta.primary_sources)
    console.print(
        f"\n[dim]From your files: {meta.file_usage_percentage}%  |  "
        f"Avg confidence: {meta.average_confidence:.2f}"
        + (f"  |  Sources: {sources}" if sources else "")
        + "[/]"
    )
