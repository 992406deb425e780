"""studyweave chat: source-attributed conversations over your materials.

Commands:
  studyweave chat new                       start a conversation
  studyweave chat send ID MESSAGE           ask a question (optionally --stream)
  studyweave chat list                      show conversations, latest first
  studyweave chat show ID                   replay a conversation
  studyweave chat delete ID                 delete a conversation and its messages
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.live import Live
from rich.table import Table
from rich.text import Text

from studyweave.chat.orchestrator import ChatService, TurnResult
from studyweave.cli.common import (
    DbOption,
    SubjectOption,
    UserOption,
    YesOption,
    console,
    load_settings,
    open_db,
    render_response,
)
from studyweave.cli.errors import (
    err_conversation_not_found,
    err_invalid_input,
    err_no_db,
    err_turn_not_saved,
    warn_no_api_key,
)
from studyweave.errors import ConversationNotFoundError, InvalidInputError, TurnPersistenceError
from studyweave.rag.llm_client import validate_api_key
from studyweave.rag.schemas import StructuredResponse

chat_app = typer.Typer(
    name="chat",
    help="Chat with your study materials (new, send, list, show, delete).",
    add_completion=False,
)

ConversationArg = Annotated[str, typer.Argument(help="Conversation ID (see chat list).")]


@chat_app.command("new")
def chat_new_cmd(
    subject: SubjectOption = None,
    title: Annotated[str | None, typer.Option("--title", help="Conversation title.")] = None,
    db: DbOption = None,
    user: UserOption = None,
) -> None:
    """Start a new conversation."""
    cfg = load_settings(db, user)
    conn = open_db(cfg.db_path)
    try:
        conversation = ChatService.from_config(conn, cfg).create_conversation(
            cfg.user_id, subject_id=subject, title=title
        )
    except InvalidInputError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    console.print(f"[green]✓[/] Started [bold]{conversation.title}[/]")
    console.print(f"  ID: {conversation.id}")


@chat_app.command("send")
def chat_send_cmd(
    conversation_id: ConversationArg,
    message: Annotated[str, typer.Argument(help="Your question.")],
    subject: SubjectOption = None,
    stream: Annotated[
        bool, typer.Option("--stream", help="Show the answer while it is generated.")
    ] = False,
    db: DbOption = None,
    user: UserOption = None,
) -> None:
    """Ask a question and print the source-attributed answer."""
    cfg = load_settings(db, user)
    if not Path(cfg.db_path).exists():
        console.print(err_no_db(cfg.db_path))
        raise typer.Exit(1)

    try:
        validate_api_key(cfg.generation.models[0])
    except EnvironmentError as exc:
        console.print(warn_no_api_key(str(exc)))

    conn = open_db(cfg.db_path)
    try:
        service = ChatService.from_config(conn, cfg)
        if stream:
            turn = _send_streaming(service, conversation_id, cfg.user_id, message, subject)
        else:
            with console.status("Thinking…"):
                turn = service.send_message(
                    conversation_id, cfg.user_id, message, subject_id=subject
                )
    except ConversationNotFoundError:
        console.print(err_conversation_not_found(conversation_id))
        raise typer.Exit(1)
    except InvalidInputError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1)
    except TurnPersistenceError as exc:
        console.print(err_turn_not_saved(str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    console.print()
    render_response(turn.anti_hallucination_data)
    if turn.sources:
        console.print(
            "[dim]Retrieved: "
            + ", ".join(f"{s['title']} ({s['similarity']:.2f})" for s in turn.sources)
            + "[/]"
        )


def _send_streaming(
    service: ChatService,
    conversation_id: str,
    user_id: str,
    message: str,
    subject: str | None,
) -> TurnResult:
    turn_stream = service.send_message_stream(
        conversation_id, user_id, message, subject_id=subject
    )
    with Live(Text(""), console=console, transient=True, refresh_per_second=8) as live:
        for snapshot in turn_stream:
            live.update(Text(snapshot.plain_text()))
    return turn_stream.result()


@chat_app.command("list")
def chat_list_cmd(
    subject: SubjectOption = None,
    limit: Annotated[int, typer.Option("--limit", help="Maximum conversations shown.")] = 20,
    db: DbOption = None,
    user: UserOption = None,
) -> None:
    """List conversations, most recently active first."""
    cfg = load_settings(db, user)
    if not Path(cfg.db_path).exists():
        console.print(err_no_db(cfg.db_path))
        raise typer.Exit(1)

    conn = open_db(cfg.db_path)
    try:
        service = ChatService.from_config(conn, cfg)
        conversations = service.list_conversations(cfg.user_id, subject_id=subject, limit=limit)
        counts = {c.id: service.repo.count_messages(c.id) for c in conversations}
    except InvalidInputError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    if not conversations:
        console.print("[yellow]No conversations yet.[/]  Run:  studyweave chat new")
        raise typer.Exit(0)

    table = Table(title="Conversations", show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Subject")
    table.add_column("Messages", justify="right")
    table.add_column("Updated")

    for conv in conversations:
        table.add_row(
            conv.id,
            conv.title,
            conv.subject_id or "",
            str(counts[conv.id]),
            (conv.updated_at or "")[:16],
        )
    console.print(table)


@chat_app.command("show")
def chat_show_cmd(
    conversation_id: ConversationArg,
    db: DbOption = None,
    user: UserOption = None,
) -> None:
    """Replay a conversation."""
    cfg = load_settings(db, user)
    if not Path(cfg.db_path).exists():
        console.print(err_no_db(cfg.db_path))
        raise typer.Exit(1)

    conn = open_db(cfg.db_path)
    try:
        service = ChatService.from_config(conn, cfg)
        conversation = service.get_conversation(conversation_id, cfg.user_id)
        messages = service.get_messages(conversation_id, cfg.user_id, limit=100)
    except ConversationNotFoundError:
        console.print(err_conversation_not_found(conversation_id))
        raise typer.Exit(1)
    finally:
        conn.close()

    console.print(f"[bold]{conversation.title}[/]\n")
    if not messages:
        console.print("[dim]No messages yet.[/]")
        return

    for msg in messages:
        if msg.role == "user":
            console.print(f"[bold cyan]You:[/] {msg.content}\n")
            continue
        try:
            response = StructuredResponse.from_json(msg.content)
        except ValidationError:
            console.print(f"[bold magenta]Assistant:[/] {msg.content}\n")
            continue
        console.print("[bold magenta]Assistant:[/]")
        render_response(response)
        console.print()


@chat_app.command("delete")
def chat_delete_cmd(
    conversation_id: ConversationArg,
    yes: YesOption = False,
    db: DbOption = None,
    user: UserOption = None,
) -> None:
    """Delete a conversation and all its messages."""
    cfg = load_settings(db, user)
    if not Path(cfg.db_path).exists():
        console.print(err_no_db(cfg.db_path))
        raise typer.Exit(1)

    conn = open_db(cfg.db_path)
    try:
        service = ChatService.from_config(conn, cfg)
        try:
            conversation = service.get_conversation(conversation_id, cfg.user_id)
        except ConversationNotFoundError:
            console.print(err_conversation_not_found(conversation_id))
            raise typer.Exit(1)

        console.print(f"\nDelete conversation: [bold]{conversation.title}[/]")
        if not yes:
            if not typer.confirm("Confirm deletion?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        service.delete_conversation(conversation_id, cfg.user_id)
        console.print(f"[green]✓[/] Deleted: {conversation.title}")
    finally:
        conn.close()
