"""CLI entrypoint for vault metrics."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Awaitable, Callable, TypeVar

import typer

from .domain import TimeFilter
from .logger import setup_logging
from .orchestrator import get_bulk_metrics
from .pricing import PriceUnavailableError, fetch_token_price
from .report import (
    format_apr_panel,
    format_bulk_table,
    format_last_request,
    format_pps_table,
    format_settlements_table,
    format_tvl_table,
    format_vaults_table,
)
from .service import NoDataError, VaultMetricsService
from .settings import MetricsSettings
from .state import AppState
from .store import EventStore, InMemoryEventStore, UpstreamUnavailableError
from .vaults import (
    UnsupportedDecimalsError,
    VaultInactiveError,
    VaultNotFoundError,
    VaultRegistry,
)

T = TypeVar("T")

EXIT_CONFIG_ERROR = 1
EXIT_NOT_FOUND = 2
EXIT_UPSTREAM_UNAVAILABLE = 3

app = typer.Typer(
    add_completion=False,
    no_args_is_help=False,
    add_help_option=True,
    pretty_exceptions_enable=True,
    pretty_exceptions_short=True,
    pretty_exceptions_show_locals=False,
    rich_markup_mode="rich",
    help="Price-per-share, APR and TVL analytics for vaults.",
)


class AprPeriod(str, Enum):
    NET = "net"
    THIRTY_DAYS = "30"
    SEVEN_DAYS = "7"


APR_LABELS = {
    AprPeriod.NET: "Net APR",
    AprPeriod.THIRTY_DAYS: "30-day APR",
    AprPeriod.SEVEN_DAYS: "7-day APR",
}


@dataclass
class CliContext:
    state: AppState
    json_output: bool
    events_file: Path | None


def _build_logger() -> logging.Logger:
    """Build a logger instance."""
    return logging.getLogger("vault_metrics")


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2))


def _fail(message: str, code: int) -> typer.Exit:
    typer.secho(f"Error: {message}", err=True, fg=typer.colors.RED)
    return typer.Exit(code=code)


def _open_store(cli: CliContext) -> EventStore | None:
    """In-memory store for ``--events-file``; ``None`` lets the service open MongoDB."""
    if cli.events_file is None:
        return None
    if not cli.events_file.exists():
        raise _fail(f"Events file not found: {cli.events_file}", EXIT_CONFIG_ERROR)
    return InMemoryEventStore.from_json(cli.events_file)


def _run_query(
    ctx: typer.Context, query: Callable[[VaultMetricsService], Awaitable[T]]
) -> T:
    """Run ``query`` against a fresh service and map domain errors to exit codes."""
    cli: CliContext = ctx.obj
    store = _open_store(cli)
    try:
        service = VaultMetricsService.from_state(cli.state, store=store)
    except ValueError as e:
        raise _fail(f"{e} (--mongo-uri or VAULT_METRICS_MONGO_URI)", EXIT_CONFIG_ERROR)

    async def _execute() -> T:
        try:
            return await query(service)
        finally:
            await service.close()

    try:
        return asyncio.run(_execute())
    except (VaultNotFoundError, NoDataError) as e:
        raise _fail(str(e), EXIT_NOT_FOUND)
    except (UnsupportedDecimalsError, VaultInactiveError) as e:
        raise _fail(str(e), EXIT_CONFIG_ERROR)
    except UpstreamUnavailableError as e:
        raise _fail(f"{e} (retry recommended)", EXIT_UPSTREAM_UNAVAILABLE)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to a TOML config file (can include [vault_metrics] table).",
        ),
    ] = None,
    mongo_uri: Annotated[
        str | None,
        typer.Option(
            "--mongo-uri",
            help="MongoDB connection string of the event store.",
        ),
    ] = None,
    events_file: Annotated[
        Path | None,
        typer.Option(
            "--events-file",
            help="Read events from a JSON export ({vault_id: [documents]}) instead of MongoDB.",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Override logging verbosity (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL).",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print raw JSON instead of tables."),
    ] = False,
    show_config: Annotated[
        bool,
        typer.Option(
            "--show-config",
            help="Print effective config (with secrets redacted) and exit.",
        ),
    ] = False,
):
    """Load configuration and logging shared by every command."""
    if config_path:
        os.environ["VAULT_METRICS_CONFIG"] = str(config_path)

    init_kwargs: dict[str, str] = {}
    if mongo_uri is not None:
        init_kwargs["mongo_uri"] = mongo_uri
    if log_level is not None:
        init_kwargs["log_level"] = log_level.upper()

    try:
        settings = MetricsSettings(**init_kwargs)
    except ValueError as e:
        raise _fail(f"Invalid configuration: {e}", EXIT_CONFIG_ERROR)

    setup_logging(settings.log_level)
    state = AppState(settings=settings, logger=_build_logger())

    if show_config:
        _echo_json(settings.as_safe_dict())
        raise typer.Exit(code=0)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)

    ctx.obj = CliContext(state=state, json_output=json_output, events_file=events_file)


@app.command()
def pps(
    ctx: typer.Context,
    vault_id: Annotated[str, typer.Argument(help="Vault id.")],
    time_filter: Annotated[
        TimeFilter, typer.Option("--time", "-t", help="Time window.")
    ] = TimeFilter.ALL,
    since: Annotated[
        int | None, typer.Option("--since", help="Only events at or after this unix timestamp.")
    ] = None,
    latest: Annotated[bool, typer.Option("--latest", help="Only the latest point.")] = False,
):
    """Price-per-share series reconstructed from settlement events."""
    cli: CliContext = ctx.obj
    if latest:
        point = _run_query(ctx, lambda s: s.get_latest_pps(vault_id))
        points = [point]
    else:
        points = _run_query(
            ctx, lambda s: s.get_pps_series(vault_id, since, time_filter=time_filter)
        )

    if cli.json_output:
        _echo_json([p.to_dict() for p in points])
    else:
        format_pps_table(vault_id, points)


@app.command()
def apr(
    ctx: typer.Context,
    vault_id: Annotated[str, typer.Argument(help="Vault id.")],
    period: Annotated[
        AprPeriod, typer.Option("--period", "-p", help="net, 30 or 7 (days).")
    ] = AprPeriod.NET,
):
    """Annualized yield of an active vault."""
    cli: CliContext = ctx.obj
    if period is AprPeriod.NET:
        result = _run_query(ctx, lambda s: s.get_net_apr(vault_id))
    else:
        result = _run_query(ctx, lambda s: s.get_period_apr(vault_id, int(period.value)))

    if cli.json_output:
        _echo_json(result.to_dict())
    else:
        format_apr_panel(vault_id, APR_LABELS[period], result)


@app.command()
def tvl(
    ctx: typer.Context,
    vault_id: Annotated[str, typer.Argument(help="Vault id.")],
    time_filter: Annotated[
        TimeFilter, typer.Option("--time", "-t", help="Time window.")
    ] = TimeFilter.ALL,
    latest: Annotated[bool, typer.Option("--latest", help="Only the latest point.")] = False,
):
    """Deduplicated total value locked series."""
    cli: CliContext = ctx.obj
    if latest:
        points = [_run_query(ctx, lambda s: s.get_latest_tvl(vault_id))]
    else:
        points = _run_query(ctx, lambda s: s.get_tvl_series(vault_id, time_filter))

    if cli.json_output:
        _echo_json([p.to_dict() for p in points])
    else:
        vault = VaultRegistry.from_configs(cli.state.settings.vaults).get_vault_config(vault_id)
        format_tvl_table(vault, points)


@app.command()
def settlements(
    ctx: typer.Context,
    vault_id: Annotated[str, typer.Argument(help="Vault id.")],
    time_filter: Annotated[
        TimeFilter, typer.Option("--time", "-t", help="Time window.")
    ] = TimeFilter.ALL,
):
    """Deposit and redeem settlements, newest first."""
    cli: CliContext = ctx.obj
    result = _run_query(ctx, lambda s: s.get_settlements(vault_id, time_filter))
    if cli.json_output:
        _echo_json([item.to_dict() for item in result])
    else:
        format_settlements_table(vault_id, result)


@app.command("last-request")
def last_request(
    ctx: typer.Context,
    vault_id: Annotated[str, typer.Argument(help="Vault id.")],
    user_address: Annotated[str, typer.Argument(help="Controller address.")],
):
    """Latest deposit and redeem request ids of a user."""
    cli: CliContext = ctx.obj
    result = _run_query(ctx, lambda s: s.get_last_request(vault_id, user_address))
    if cli.json_output:
        _echo_json(result.to_dict())
    else:
        format_last_request(vault_id, user_address, result)


@app.command()
def bulk(
    ctx: typer.Context,
    vault_ids: Annotated[list[str], typer.Argument(help="Vault ids.")],
):
    """TVL and APRs of several active vaults at once."""
    cli: CliContext = ctx.obj
    result = _run_query(ctx, lambda s: get_bulk_metrics(s, vault_ids))
    if cli.json_output:
        _echo_json({vault_id: m.to_dict() for vault_id, m in result.items()})
    else:
        format_bulk_table(result)


@app.command()
def price(
    ctx: typer.Context,
    token: Annotated[str, typer.Argument(help="Underlying token symbol, e.g. USDC.")],
):
    """USD price of a vault's underlying token."""
    cli: CliContext = ctx.obj
    try:
        quote = asyncio.run(fetch_token_price(cli.state.settings, token))
    except VaultNotFoundError as e:
        raise _fail(f"Token not found: {e.vault_id}", EXIT_NOT_FOUND)
    except PriceUnavailableError as e:
        raise _fail(str(e), EXIT_UPSTREAM_UNAVAILABLE)

    if cli.json_output:
        _echo_json(quote.to_dict())
    else:
        typer.echo(f"{quote.token}: {quote.price_usd} USD ({quote.source})")


@app.command()
def vaults(ctx: typer.Context):
    """List configured vaults."""
    cli: CliContext = ctx.obj
    registry = VaultRegistry.from_configs(cli.state.settings.vaults)
    if cli.json_output:
        _echo_json([vault.model_dump() for vault in registry.all()])
    else:
        format_vaults_table(registry.all())


def run() -> None:
    """Entrypoint used by the console script."""
    app()


if __name__ == "__main__":
    run()
