"""StudyWeave CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from studyweave.cli.chat import chat_app
from studyweave.cli.docs import docs_app
from studyweave.logging_setup import setup_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("studyweave")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"studyweave {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="studyweave",
    help=(
        "StudyWeave: study assistant that answers from your own materials.\n\n"
        "  studyweave docs  Add and manage study materials.\n"
        "  studyweave chat  Ask questions; every answer segment is tagged with its source."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log pipeline decisions (INFO)."),
    ] = False,
) -> None:
    """StudyWeave: study assistant that answers from your own materials."""
    setup_logging("INFO" if verbose else None)


app.add_typer(docs_app, name="docs")
app.add_typer(chat_app, name="chat")


@app.command("version")
def version_cmd() -> None:
    """Show the installed StudyWeave version."""
    typer.echo(f"studyweave {_installed_version()}")
