"""Aria CLI - Main entry point."""

import asyncio
import json
import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from aria_core import __version__
from aria_core.attention import AttentionEngine
from aria_core.config import Settings, get_settings
from aria_core.conversation import ConversationOrchestrator, MissingCredentialError
from aria_core.core.logging import bind_context, clear_context, setup_logging
from aria_core.storage import InMemoryStorage, SQLStorage, StorageBackend

console = Console()

EXIT_COMMANDS = {"exit", "quit", ":q"}


@click.group()
@click.version_option(version=__version__, prog_name="aria")
@click.option("--log-level", envvar="ARIA_LOG_LEVEL", default=None, help="Logging level")
@click.option("--log-format", type=click.Choice(["json", "pretty", "simple"]), default=None,
              help="Logging format")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], log_format: Optional[str]):
    """Aria - personal assistant core.

    \b
    Examples:
      aria chat
      aria chat --message "what's on my calendar today"
      aria attention --seed records.json
    """
    ctx.ensure_object(dict)

    settings = get_settings()
    setup_logging(
        level=log_level or settings.log_level,
        format=log_format or settings.log_format,
        service_name=settings.service_name,
    )
    ctx.obj["settings"] = settings


# =============================================================================
# Chat
# =============================================================================


@cli.command("chat")
@click.option("--message", "-m", default=None, help="Send a single message and exit")
@click.pass_context
def chat(ctx: click.Context, message: Optional[str]):
    """Talk to Aria over a live text session."""
    settings: Settings = ctx.obj["settings"]
    try:
        asyncio.run(_run_chat(settings, message))
    except MissingCredentialError as e:
        console.print(f"[red]✗[/red] {e.message}")
        sys.exit(1)


async def _run_chat(settings: Settings, message: Optional[str]) -> None:
    orchestrator = ConversationOrchestrator(settings)
    orchestrator.on_response = lambda text: console.print(text, end="", soft_wrap=True)
    orchestrator.on_error = lambda error: console.print(f"\n[red]✗[/red] {error}")

    bind_context(command="chat")
    try:
        if not await orchestrator.connect():
            raise click.ClickException("Could not connect to the live session")

        if message is not None:
            await orchestrator.process_text(message)
            console.print()
            return

        console.print("[green]✓[/green] Connected. Type 'exit' to quit.")
        while True:
            try:
                line = await asyncio.to_thread(console.input, "[bold cyan]you>[/bold cyan] ")
            except EOFError:
                break
            if line.strip().lower() in EXIT_COMMANDS:
                break
            if not line.strip():
                continue
            await orchestrator.process_text(line)
            console.print()
    finally:
        await orchestrator.close()
        clear_context()


# =============================================================================
# Attention
# =============================================================================


@cli.command("attention")
@click.option("--seed", type=click.Path(exists=True, dir_okay=False),
              help="JSON file of records keyed by entity type")
@click.option("--database-url", default=None, help="Read records from this database instead")
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table",
              help="Output format")
@click.pass_context
def attention(ctx: click.Context, seed: Optional[str], database_url: Optional[str], output: str):
    """Show what needs attention right now."""
    settings: Settings = ctx.obj["settings"]
    items = asyncio.run(_run_attention(settings, seed, database_url))

    if output == "json":
        click.echo(json.dumps([item.to_dict() for item in items], indent=2))
        return

    if not items:
        console.print("Nothing needs your attention.")
        return

    table = Table(title="Needs Attention")
    table.add_column("Urgency", justify="right", style="bold")
    table.add_column("Type", style="cyan")
    table.add_column("Title")
    table.add_column("Details", style="dim")
    table.add_column("Actions")

    for item in items:
        table.add_row(
            f"{item.urgency:.2f}",
            item.type.value,
            item.title,
            item.subtitle or "",
            ", ".join(action.title for action in item.actions),
        )

    console.print(table)


async def _run_attention(settings: Settings, seed: Optional[str], database_url: Optional[str]):
    storage: StorageBackend
    if database_url:
        storage = SQLStorage(database_url)
        await storage.create_all()
    else:
        storage = InMemoryStorage()

    bind_context(command="attention")
    try:
        if seed:
            with open(seed) as f:
                records = json.load(f)
            for entity_type, entries in records.items():
                for entry in entries:
                    await storage.put(entity_type, str(entry["id"]), entry)

        engine = AttentionEngine(settings.attention, storage=storage)
        await engine.start()
        try:
            return engine.items
        finally:
            await engine.close()
    finally:
        await storage.close()
        clear_context()


def main():
    """Main entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
