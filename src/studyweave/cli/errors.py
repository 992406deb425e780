"""StudyWeave rich error messages: actionable feedback.

Every error shown to the user states what went wrong and the exact action
that fixes it.

Usage:
    from studyweave.cli.errors import err_no_db
    console.print(err_no_db(".studyweave.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str = ".studyweave.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Add study material first:  studyweave docs add FILE"
    )


def err_conversation_not_found(conversation_id: str) -> str:
    return (
        f"[red]Error:[/] Conversation not found: '{conversation_id}'.\n"
        "  Run:  studyweave chat list  to see your conversations."
    )


def err_document_not_found(document_id: str) -> str:
    return (
        f"[red]Error:[/] Document not found: '{document_id}'.\n"
        "  Run:  studyweave docs list  to see your documents."
    )


def err_invalid_input(detail: str) -> str:
    return f"[red]Error:[/] {detail}"


def err_config(detail: str) -> str:
    """Config file could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration: {detail}\n"
        "  Fix studyweave.yaml or ~/.studyweave/config.yaml and retry."
    )


def err_turn_not_saved(detail: str) -> str:
    """The reply was generated but could not be stored."""
    return (
        f"[red]Error:[/] {detail}\n"
        "  Your message may be saved without a reply. Send it again to retry."
    )


def warn_no_api_key(detail: str) -> str:
    """Primary model has no API key; the fallback chain will still run."""
    return (
        f"[yellow]Warning:[/] {detail}\n"
        "  Answers may come from a fallback model or the offline fallback response."
    )


def warn_not_embedded(title: str) -> str:
    """Document stored without an embedding."""
    return (
        f"[yellow]Warning:[/] '{title}' was stored without an embedding.\n"
        "  It is only found by keyword search until the document is updated.\n"
        "  Check your embedding model and API key, then re-add the document."
    )
