"""Command-line interface for the email dispatch service.

Usage:
    email-dispatch serve --port 8000
    email-dispatch send --owner-ref billing --from noreply@acme.io --to ann@acme.io \\
        --subject "Invoice" --text "Your invoice is ready"
    email-dispatch list --page 0 --size 10 --sort sentAt --direction asc
    email-dispatch list --all --json
    email-dispatch show 5f0c7c7e-2b3a-4d7e-9c55-3f6f3c2e1a10

Every command reads the same configuration as the server; use ``--config``
to point at a specific INI file.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from email_dispatch import __version__
from email_dispatch.config_loader import build_core, load_settings
from email_dispatch.core import EmailDispatchCore, EmailValidationError
from email_dispatch.logger import configure_logging
from email_dispatch.models import EmailRecord, EmailStatus
from email_dispatch.persistence import PersistenceError

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def _status_markup(status: EmailStatus) -> str:
    if status is EmailStatus.SENT:
        return "[green]SENT[/green]"
    return "[red]ERROR[/red]"


def _records_table(records: list[EmailRecord], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Owner")
    table.add_column("To")
    table.add_column("Subject")
    table.add_column("Sent at")
    table.add_column("Status")
    for record in records:
        table.add_row(
            record.id,
            record.owner_ref,
            record.email_to,
            record.subject,
            record.sent_at.strftime("%Y-%m-%d %H:%M:%S"),
            _status_markup(record.status),
        )
    return table


def _get_core(ctx: click.Context) -> EmailDispatchCore:
    core = ctx.obj.get("core")
    if core is None:
        core = build_core(ctx.obj["settings"])
        ctx.obj["core"] = core
    return core


@click.group()
@click.version_option(__version__)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Path to the INI configuration file.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None) -> None:
    """Email dispatch service: send emails and browse the dispatch history."""
    ctx.ensure_object(dict)
    if "settings" not in ctx.obj:
        try:
            ctx.obj["settings"] = load_settings(config_path)
        except FileNotFoundError as exc:
            raise click.ClickException(str(exc)) from exc


@main.command("serve")
@click.option("--host", "-h", default=None, help="Host to bind to (default: from config).")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default: from config).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from email_dispatch.server import build_app

    settings = ctx.obj["settings"]
    configure_logging(str(settings["log_level"]))
    app = build_app(settings)
    uvicorn.run(app, host=host or str(settings["http_host"]), port=port or int(settings["http_port"]))


@main.command("send")
@click.option("--owner-ref", required=True, help="Reference of the requesting service.")
@click.option("--from", "email_from", required=True, help="Sender address.")
@click.option("--to", "email_to", required=True, help="Recipient address.")
@click.option("--subject", required=True, help="Message subject.")
@click.option("--text", required=True, help="Plain-text body.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def send(ctx: click.Context, owner_ref: str, email_from: str, email_to: str,
         subject: str, text: str, as_json: bool) -> None:
    """Send one email and record the outcome."""
    core = _get_core(ctx)
    payload = {
        "ownerRef": owner_ref,
        "emailFrom": email_from,
        "emailTo": email_to,
        "subject": subject,
        "text": text,
    }

    async def _send():
        await core.init()
        return await core.send_and_record(payload)

    try:
        record = run_async(_send())
    except EmailValidationError as exc:
        print_error(str(exc))
        sys.exit(2)
    except PersistenceError as exc:
        print_error(f"Email was not recorded: {exc}")
        sys.exit(1)

    if as_json:
        print_json(record.model_dump(mode="json", by_alias=True))
        return
    if record.status is EmailStatus.SENT:
        print_success(f"Email {record.id} sent to {record.email_to}")
    else:
        print_error(f"Delivery of email {record.id} failed; recorded with status ERROR")


@main.command("list")
@click.option("--page", type=int, default=0, show_default=True, help="Zero-based page index.")
@click.option("--size", type=int, default=5, show_default=True, help="Records per page.")
@click.option("--sort", default="id", show_default=True, help="Sort field.")
@click.option("--direction", type=click.Choice(["asc", "desc"], case_sensitive=False),
              default="desc", show_default=True)
@click.option("--all", "show_all", is_flag=True, help="List every record without paging.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_emails(ctx: click.Context, page: int, size: int, sort: str, direction: str,
                show_all: bool, as_json: bool) -> None:
    """List recorded emails."""
    core = _get_core(ctx)

    async def _list():
        await core.init()
        if show_all:
            return await core.list_all()
        return await core.list_paged(page=page, size=size, sort=sort, direction=direction)

    try:
        result = run_async(_list())
    except EmailValidationError as exc:
        print_error(str(exc))
        sys.exit(2)

    if show_all:
        if as_json:
            print_json([r.model_dump(mode="json", by_alias=True) for r in result])
            return
        if not result:
            console.print("[dim]No emails recorded.[/dim]")
            return
        console.print(_records_table(result, "Emails"))
        return

    if as_json:
        print_json(result.model_dump(mode="json", by_alias=True))
        return
    if not result.content:
        console.print(f"[dim]No emails on page {result.page}.[/dim]")
        return
    title = f"Emails (page {result.page + 1}/{max(result.total_pages, 1)}, {result.total_elements} total)"
    console.print(_records_table(result.content, title))


@main.command("show")
@click.argument("email_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, email_id: str, as_json: bool) -> None:
    """Show details for a recorded email."""
    core = _get_core(ctx)

    async def _show():
        await core.init()
        return await core.find_by_id(email_id)

    record = run_async(_show())
    if record is None:
        print_error("Email not found.")
        sys.exit(1)

    if as_json:
        print_json(record.model_dump(mode="json", by_alias=True))
        return

    console.print(f"\n[bold cyan]Email: {record.id}[/bold cyan]\n")
    console.print(f"  Owner:   {record.owner_ref}")
    console.print(f"  From:    {record.email_from}")
    console.print(f"  To:      {record.email_to}")
    console.print(f"  Subject: {record.subject}")
    console.print(f"  Sent at: {record.sent_at.isoformat()}")
    console.print(f"  Status:  {_status_markup(record.status)}")
    console.print()
    console.print(record.text)


if __name__ == "__main__":
    main()
