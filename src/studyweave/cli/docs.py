"""studyweave docs: manage study materials.

Commands:
  studyweave docs add FILE      extract, embed and store a document
  studyweave docs list          show the user's documents
  studyweave docs remove ID     permanently delete a document
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from studyweave.cli.common import (
    DbOption,
    SubjectOption,
    UserOption,
    YesOption,
    console,
    load_settings,
    open_db,
)
from studyweave.cli.errors import (
    err_document_not_found,
    err_invalid_input,
    err_no_db,
    warn_not_embedded,
)
from studyweave.config import StudyWeaveConfig
from studyweave.db.repository import Repository
from studyweave.documents import DocumentLibrary
from studyweave.errors import DocumentNotFoundError, InvalidInputError
from studyweave.rag.embeddings import EmbeddingProvider

docs_app = typer.Typer(
    name="docs",
    help="Manage study materials (add, list, remove).",
    add_completion=False,
)


def _library(conn: sqlite3.Connection, cfg: StudyWeaveConfig) -> DocumentLibrary:
    repo = Repository(conn, embedding_dimensions=cfg.embedding.dimensions)
    return DocumentLibrary(repo, EmbeddingProvider(cfg.embedding.model, cfg.embedding.dimensions))


@docs_app.command("add")
def docs_add_cmd(
    file: Annotated[Path, typer.Argument(help="Text, Markdown, reStructuredText or PDF file.")],
    title: Annotated[
        str | None, typer.Option("--title", help="Document title (default: file name).")
    ] = None,
    subject: SubjectOption = None,
    db: DbOption = None,
    user: UserOption = None,
) -> None:
    """Add a study-material file to the library."""
    cfg = load_settings(db, user)
    conn = open_db(cfg.db_path)
    try:
        library = _library(conn, cfg)
        with console.status(f"Embedding {file.name}…"):
            document = library.add_file(cfg.user_id, file, title=title, subject_id=subject)
    except InvalidInputError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    console.print(f"[green]✓[/] Added [bold]{document.title}[/] ({document.word_count} words)")
    console.print(f"  ID: {document.id}")
    method = document.metadata_dict.get("extraction_method")
    if method:
        pages = f", {document.page_count} pages" if document.page_count else ""
        console.print(f"  Extracted: {method}{pages}")
    if not document.has_embedding:
        console.print(warn_not_embedded(document.title))


@docs_app.command("list")
def docs_list_cmd(
    subject: SubjectOption = None,
    db: DbOption = None,
    user: UserOption = None,
) -> None:
    """List documents, newest first."""
    cfg = load_settings(db, user)
    if not Path(cfg.db_path).exists():
        console.print(err_no_db(cfg.db_path))
        raise typer.Exit(1)

    conn = open_db(cfg.db_path)
    try:
        documents = Repository(conn).list_documents(cfg.user_id, subject_id=subject)
    finally:
        conn.close()

    if not documents:
        console.print("[yellow]No documents yet.[/]  Run:  studyweave docs add FILE")
        raise typer.Exit(0)

    table = Table(title="Study Materials", show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Subject")
    table.add_column("Words", justify="right")
    table.add_column("Embedded")
    table.add_column("Added")

    for doc in documents:
        table.add_row(
            doc.id,
            doc.title,
            doc.subject_id or "",
            str(doc.word_count or 0),
            "[green]✓[/]" if doc.has_embedding else "[yellow]✗[/]",
            (doc.created_at or "")[:16],
        )
    console.print(table)


@docs_app.command("remove")
def docs_remove_cmd(
    document_id: Annotated[str, typer.Argument(help="Document ID (see docs list).")],
    yes: YesOption = False,
    db: DbOption = None,
    user: UserOption = None,
) -> None:
    """Permanently delete a document."""
    cfg = load_settings(db, user)
    if not Path(cfg.db_path).exists():
        console.print(err_no_db(cfg.db_path))
        raise typer.Exit(1)

    conn = open_db(cfg.db_path)
    try:
        library = _library(conn, cfg)
        try:
            document = library.get(document_id, cfg.user_id)
        except DocumentNotFoundError:
            console.print(err_document_not_found(document_id))
            raise typer.Exit(1)

        console.print(f"\nRemove document: [bold]{document.title}[/]")
        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        library.delete(document_id, cfg.user_id)
        console.print(f"[green]✓[/] Removed: {document.title}")
    finally:
        conn.close()
