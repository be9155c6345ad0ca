"""Command-line interface for tsbatch."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from tsbatch.base import TimeUnit, TsBatchError
from tsbatch.client import TimeSeriesClient
from tsbatch.config import ClientConfig
from tsbatch.frame import read_frame
from tsbatch.log import configure_logging

app = typer.Typer(
    name="tsbatch",
    help="Buffered line-protocol writes for time-series databases",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


# =============================================================================
# Type Aliases
# =============================================================================

UrlOpt = Annotated[
    Optional[str],
    typer.Option("--url", help="Server URL (default from TSBATCH_URL)"),
]

UsernameOpt = Annotated[
    Optional[str],
    typer.Option("--username", "-u", help="User to connect as"),
]

PasswordOpt = Annotated[
    Optional[str],
    typer.Option("--password", "-p", help="Password of that user"),
]

ConfigOpt = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="YAML, JSON or TOML config file"),
]

VerboseOpt = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Log at DEBUG level"),
]


# =============================================================================
# Helper Functions
# =============================================================================


def load_config(
    config_file: Path | None,
    url: str | None,
    username: str | None,
    password: str | None,
) -> ClientConfig:
    """Load settings from the config file or environment, then apply options."""
    if config_file is not None:
        config = ClientConfig.from_file(config_file)
    else:
        config = ClientConfig.from_env()
    return config.merge(url=url, username=username, password=password)


def build_client(config: ClientConfig) -> TimeSeriesClient:
    """Create the client for a command."""
    return TimeSeriesClient.from_config(config)


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


def _connect(
    config_file: Path | None,
    url: str | None,
    username: str | None,
    password: str | None,
    verbose: bool,
) -> TimeSeriesClient:
    if verbose:
        configure_logging("DEBUG")
    try:
        return build_client(load_config(config_file, url, username, password))
    except TsBatchError as e:
        raise _fail(str(e))


# =============================================================================
# Commands
# =============================================================================


@app.command(name="ping")
def ping_cmd(
    url: UrlOpt = None,
    username: UsernameOpt = None,
    password: PasswordOpt = None,
    config_file: ConfigOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Check that the server answers and show its version."""
    client = _connect(config_file, url, username, password, verbose)
    try:
        pong = client.ping()
    except TsBatchError as e:
        raise _fail(str(e))
    console.print(
        f"[green]OK[/green] version [bold]{pong.version}[/bold] "
        f"({pong.response_time_ms:.1f} ms)"
    )


@app.command(name="databases")
def databases_cmd(
    url: UrlOpt = None,
    username: UsernameOpt = None,
    password: PasswordOpt = None,
    config_file: ConfigOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """List databases."""
    client = _connect(config_file, url, username, password, verbose)
    try:
        names = client.describe_databases()
    except TsBatchError as e:
        raise _fail(str(e))
    for name in names:
        typer.echo(name)


@app.command(name="write")
def write_cmd(
    file: Annotated[Path, typer.Argument(help="CSV, Parquet or NDJSON file")],
    database: Annotated[str, typer.Option("--database", "-d", help="Target database")],
    measurement: Annotated[str, typer.Option("--measurement", "-m", help="Measurement name")],
    tags: Annotated[
        Optional[list[str]],
        typer.Option("--tag", "-t", help="Column written as a tag (repeatable)"),
    ] = None,
    time_column: Annotated[
        Optional[str],
        typer.Option("--time-column", help="Column holding the timestamp"),
    ] = None,
    precision: Annotated[
        str,
        typer.Option("--precision", help="Unit of an integer time column (ns, u, ms, s, m, h)"),
    ] = "ns",
    retention_policy: Annotated[
        Optional[str],
        typer.Option("--retention-policy", "-r", help="Target retention policy"),
    ] = None,
    actions: Annotated[
        int,
        typer.Option("--actions", help="Points per flush"),
    ] = 1000,
    interval: Annotated[
        float,
        typer.Option("--interval", help="Flush interval"),
    ] = 1.0,
    unit: Annotated[
        str,
        typer.Option("--unit", help="Unit of --interval"),
    ] = "seconds",
    url: UrlOpt = None,
    username: UsernameOpt = None,
    password: PasswordOpt = None,
    config_file: ConfigOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Write every row of a file through the batching client."""
    if not file.exists():
        raise _fail(f"File not found: {file}")

    try:
        point_precision = TimeUnit.from_string(precision)
        interval_unit = TimeUnit.from_string(unit)
        frame = read_frame(str(file))
    except ValueError as e:
        raise _fail(str(e))

    client = _connect(config_file, url, username, password, verbose)
    try:
        client.enable_batch(actions, interval, interval_unit)
        try:
            count = client.write_frame(
                database,
                retention_policy,
                frame,
                measurement,
                tag_columns=tags or (),
                time_column=time_column,
                precision=point_precision,
            )
        finally:
            client.close()
    except (TsBatchError, ValueError) as e:
        raise _fail(str(e))

    console.print(f"Wrote [bold]{count:,}[/bold] point(s) from {file}")
    _print_stats(client)


def _print_stats(client: TimeSeriesClient) -> None:
    table = Table(title="Write counters", show_header=True, header_style="bold magenta")
    table.add_column("Counter", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")

    for name, value in client.metrics.to_dict().items():
        table.add_row(name, f"{value:,}")
    flush = client.flush_metrics
    table.add_row("flushes", f"{flush.flush_count:,}")
    table.add_row("points_dropped", f"{flush.points_dropped:,}")
    console.print(table)


def main() -> None:
    """Entry point for the ``tsbatch`` console script."""
    app()


if __name__ == "__main__":
    main()
