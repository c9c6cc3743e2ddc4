"""Typer CLI for working with CloudEvents."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.table import Table

from ce_platform.binding.encoding import with_force_binary, with_force_structured
from ce_platform.binding.event_message import EventMessage
from ce_platform.client import Client
from ce_platform.config.loader import load_client_config
from ce_platform.config.models import ClientConfig
from ce_platform.context import Context, background, with_cancel
from ce_platform.event.event import Event
from ce_platform.event.marshal import unmarshal_event
from ce_platform.log import configure_logging
from ce_platform.protocol.result import is_ack

logger = structlog.get_logger()
console = Console()
app = typer.Typer(name="ce", help="CloudEvents CLI")


def _load_event(event_path: str) -> Event:
    path = Path(event_path)
    if not path.exists():
        console.print(f"[red]Event file not found: {path}[/red]")
        raise typer.Exit(1)
    return unmarshal_event(path.read_bytes())


def _load_config(config_path: str | None) -> ClientConfig:
    config = load_client_config(Path(config_path) if config_path else None)
    configure_logging(config.log_level, json=config.log_json)
    return config


def _attributes_table(event: Event) -> Table:
    table = Table(title=f"CloudEvent {event.specversion}")
    table.add_column("Attribute", style="cyan")
    table.add_column("Value")
    table.add_row("id", event.id)
    table.add_row("source", event.source)
    table.add_row("type", event.type)
    for name, value in (
        ("datacontenttype", event.datacontenttype),
        ("dataschema", event.dataschema),
        ("subject", event.subject),
        ("time", event.time),
    ):
        if value is not None:
            table.add_row(name, str(value))
    for name, value in sorted(event.extensions.items()):
        table.add_row(f"{name} (ext)", str(value))
    return table


@app.command()
def validate(
    event_path: str = typer.Argument(..., help="Path to a JSON-encoded CloudEvent"),
) -> None:
    """Decode and validate a structured JSON CloudEvent."""
    try:
        event = _load_event(event_path)
        event.validate()
    except typer.Exit:
        raise
    except Exception as exc:
        console.print(f"[red]Invalid event:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Valid[/green] id={event.id}")
    console.print(_attributes_table(event))
    data = event.data
    console.print(f"  data: {len(data) if data else 0} bytes")


@app.command()
def convert(
    event_path: str = typer.Argument(..., help="Path to a JSON-encoded CloudEvent"),
    to: str = typer.Option("binary", "--to", help="binary | structured"),
    protocol: str = typer.Option("http", "--protocol", help="http | kafka"),
) -> None:
    """Print the protocol carrier for an event in the chosen mode."""
    if to not in ("binary", "structured"):
        console.print(f"[red]Unknown mode: {to}[/red]")
        raise typer.Exit(1)
    if protocol not in ("http", "kafka"):
        console.print(f"[red]Unknown protocol: {protocol}[/red]")
        raise typer.Exit(1)
    try:
        event = _load_event(event_path)
        event.validate()
    except typer.Exit:
        raise
    except Exception as exc:
        console.print(f"[red]Invalid event:[/red] {exc}")
        raise typer.Exit(1) from exc

    ctx = background()
    ctx = with_force_binary(ctx) if to == "binary" else with_force_structured(ctx)
    message = EventMessage(event)

    table = Table(title=f"{protocol} ({to})")
    table.add_column("Header", style="cyan")
    table.add_column("Value")
    if protocol == "http":
        from ce_platform.protocol.http.write import write_headers_and_body

        headers, body, _ = write_headers_and_body(ctx, message)
        for name, value in headers.items():
            table.add_row(name, value)
    else:
        from ce_platform.protocol.kafka.write import ProducerMessage, write_producer_message

        record = write_producer_message(ctx, message, ProducerMessage())
        for name, raw in record.headers:
            table.add_row(name, raw.decode("utf-8", errors="replace"))
        if record.key is not None:
            table.add_row("(key)", record.key.decode("utf-8", errors="replace"))
        body = record.value or b""

    console.print(table)
    if body:
        console.print(body.decode("utf-8", errors="replace"), markup=False, soft_wrap=True)


@app.command()
def send(
    event_path: str = typer.Argument(..., help="Path to a JSON-encoded CloudEvent"),
    config_path: str | None = typer.Option(None, "--config", help="Client YAML"),
) -> None:
    """Send one event using the configured protocol."""
    try:
        config = _load_config(config_path)
        event = _load_event(event_path)
    except typer.Exit:
        raise
    except Exception as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    async def _send() -> None:
        client = Client.from_config(config)
        ctx = background()
        try:
            result = await client.send(ctx, event)
        finally:
            if client.closer is not None:
                await client.closer.close(ctx)
        if not is_ack(result):
            console.print(f"[red]Not delivered:[/red] {result}")
            raise typer.Exit(1)
        console.print(f"[green]Sent[/green] id={event.id} result={result or 'ack'}")

    try:
        asyncio.run(_send())
    except typer.Exit:
        raise
    except Exception as exc:
        console.print(f"[red]Send failed:[/red] {exc}")
        raise typer.Exit(1) from exc


@app.command()
def serve(
    config_path: str | None = typer.Option(None, "--config", help="Client YAML"),
) -> None:
    """Receive events and print them until interrupted."""
    try:
        config = _load_config(config_path)
    except Exception as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    async def _on_event(ctx: Context, event: Event) -> None:
        console.print(_attributes_table(event))
        data = event.data
        if data:
            console.print(data.decode("utf-8", errors="replace"), markup=False, soft_wrap=True)

    async def _serve() -> None:
        client = Client.from_config(config)
        ctx, cancel = with_cancel(background())
        console.print(f"[yellow]Receiving over:[/yellow] {config.protocol}")
        try:
            await client.start_receiver(ctx, _on_event)
        finally:
            cancel()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")
