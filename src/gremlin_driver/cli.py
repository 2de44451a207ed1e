"""Command line tools for inspecting status codes and replaying frame traces."""

from __future__ import annotations

import asyncio
import json
from collections import deque
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from gremlin_driver.config import DriverSettings
from gremlin_driver.connection import Connection
from gremlin_driver.errors import ResponseError, UnknownStatusCodeError
from gremlin_driver.logging_utils import configure_logging
from gremlin_driver.messages import RequestMessage, ResponseFrame, new_request_id
from gremlin_driver.sink import ResultSink
from gremlin_driver.status import ResponseStatusCode, classify, describe
from gremlin_driver.transport import LoopbackTransport

app = typer.Typer(
    name="gremlin-driver",
    help="Inspect response status handling of the traversal driver.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log driver events at DEBUG level."),
) -> None:
    # Without --verbose the level comes from DriverSettings.log_level.
    configure_logging(profile="cli", level="DEBUG" if verbose else None)


@app.command("codes")
def codes() -> None:
    """List every status code the driver understands."""
    table = Table(title="Response status codes")
    table.add_column("Code", justify="right")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Error")
    table.add_column("Meaning")
    for code in ResponseStatusCode:
        classification = classify(code)
        table.add_row(
            str(int(code)),
            code.name,
            classification.kind.value,
            "yes" if classification.is_error else "no",
            describe(code),
        )
    console.print(table)


@app.command("classify")
def classify_code(
    code: int = typer.Argument(..., help="Numeric status code"),
    empty: bool = typer.Option(False, "--empty", help="Treat the frame as carrying no payload."),
) -> None:
    """Show how one status code is classified."""
    try:
        classification = classify(code, has_payload=not empty)
    except UnknownStatusCodeError as error:
        console.print(f"[red]{error}[/red]")
        raise typer.Exit(2) from error
    name = ResponseStatusCode(code).name
    console.print(f"{code} {name}: kind={classification.kind.value} error={str(classification.is_error).lower()}")


@app.command("replay")
def replay(
    trace: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON-lines trace file"),
) -> None:
    """Replay a trace of submits and server frames through a loopback connection.

    Each line is either a submit record ``{"submit": "<id>", "args": {...}}``,
    a retry id record ``{"next_id": "<id>"}`` naming the id the next
    resubmission will use, or a frame ``{"request_id": ..., "status": ...,
    "payload": ...}``.
    """
    records = [json.loads(line) for line in trace.read_text(encoding="utf-8").splitlines() if line.strip()]
    outcomes = asyncio.run(_replay(records))
    table = Table(title=f"Replay of {trace.name}")
    table.add_column("Request")
    table.add_column("Attempts", justify="right")
    table.add_column("Outcome")
    table.add_column("Detail")
    for request_id, attempts, outcome, detail in outcomes:
        table.add_row(request_id, str(attempts), outcome, detail)
    console.print(table)


async def _replay(records: list[dict[str, Any]]) -> list[tuple[str, int, str, str]]:
    retry_ids: deque[str] = deque()

    def _next_id() -> str:
        return retry_ids.popleft() if retry_ids else new_request_id()

    settings = DriverSettings(
        rate_limit_base_delay=0.0,
        conflict_base_delay=0.0,
        jitter=0.0,
        request_timeout_seconds=None,
    )
    transport = LoopbackTransport()
    connection = Connection(transport, settings, id_factory=_next_id)
    sinks: list[ResultSink] = []
    connection.start()
    for record in records:
        if "submit" in record:
            message = RequestMessage(request_id=str(record["submit"]), args=dict(record.get("args") or {}))
            sinks.append(await connection.submit(message))
        elif "next_id" in record:
            retry_ids.append(str(record["next_id"]))
        else:
            transport.push(ResponseFrame.from_mapping(record))
        await _settle(connection)
    transport.close()
    await _settle(connection)
    await connection.close()
    return [_outcome(sink) for sink in sinks]


async def _settle(connection: Connection) -> None:
    for _ in range(3):
        await asyncio.sleep(0)
    await connection.tasks.join()


def _outcome(sink: ResultSink) -> tuple[str, int, str, str]:
    error = sink.exception()
    if error is None and sink.done() and not sink.cancelled():
        results = sink.results_nowait()
        return sink.original_request_id, sink.attempts, "completed", json.dumps(results, default=str)
    if isinstance(error, ResponseError):
        return sink.original_request_id, sink.attempts, error.category.value, str(error)
    return sink.original_request_id, sink.attempts, "pending", ""


if __name__ == "__main__":
    app()
