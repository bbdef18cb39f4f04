"""Rich console tables for CLI output."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table

from ..domain import AprResult, LastRequest, PpsPoint, Settlement, TvlPoint, VaultMetrics
from ..vaults import VaultConfig


def _format_timestamp(timestamp: int) -> str:
    """Render a unix timestamp as ISO-8601 UTC."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _truncate_hash(value: str) -> str:
    return f"{value[:10]}...{value[-4:]}" if len(value) > 16 else value


def _format_apr(value: float | None) -> str:
    return "[dim]<N/A>[/]" if value is None else f"{value:.2f}%"


def format_pps_table(vault_id: str, points: Sequence[PpsPoint], console: Console | None = None) -> None:
    console = console or Console()

    table = Table(expand=True)
    table.add_column("Timestamp", style="dim", no_wrap=True)
    table.add_column("Transaction", style="cyan")
    table.add_column("PPS (raw)", justify="right", style="dim")
    table.add_column("PPS", justify="right", style="green")
    table.add_column("Source", style="yellow")

    for point in points:
        source = f"{point.source} [red](fallback)[/]" if point.fallback else point.source
        table.add_row(
            _format_timestamp(point.block_timestamp),
            _truncate_hash(point.transaction_hash),
            f"{point.pps_raw:,}",
            f"{point.pps_formatted:.6f}",
            source,
        )

    console.print(
        Panel(table, title=f"[bold]PPS · {vault_id}[/] ({len(points)} points)", border_style="cyan")
    )


def format_apr_panel(
    vault_id: str, label: str, result: AprResult, console: Console | None = None
) -> None:
    console = console or Console()

    summary = Table(show_header=False, box=None, padding=(0, 1))
    summary.add_column("Key", style="dim")
    summary.add_column("Value", style="green")
    summary.add_row("APR", f"[bold]{result.apr:.2f}%[/]")
    summary.add_row("Return", f"{result.total_return:.6f}%")
    summary.add_row("Duration (years)", f"{result.duration_in_years:.8f}")

    if result.is_neutral:
        summary.add_row("Note", "[yellow]fewer than two PPS points[/]")
    else:
        assert result.start_event is not None and result.end_event is not None
        summary.add_row(
            "Start",
            f"{_format_timestamp(result.start_event.block_timestamp)}  PPS {result.start_pps:.6f}",
        )
        summary.add_row(
            "End",
            f"{_format_timestamp(result.end_event.block_timestamp)}  PPS {result.end_pps:.6f}",
        )

    parts: list[object] = [summary]
    if result.interpolation is not None:
        interp = result.interpolation
        detail = Table(show_header=False, box=None, padding=(0, 1))
        detail.add_column("Key", style="dim")
        detail.add_column("Value", style="yellow")
        detail.add_row("Target", _format_timestamp(interp.target_timestamp))
        detail.add_row("Before", f"{_format_timestamp(interp.before.block_timestamp)}  PPS {interp.before.pps_formatted:.6f}")
        detail.add_row("After", f"{_format_timestamp(interp.after.block_timestamp)}  PPS {interp.after.pps_formatted:.6f}")
        detail.add_row("Factor", f"{interp.factor:.6f}")
        detail.add_row("Interpolated PPS", f"{interp.pps:.6f}")
        parts += ["", Panel(detail, title="[bold]Interpolation[/]", border_style="dim")]

    console.print(
        Panel(Group(*parts), title=f"[bold]{label} · {vault_id}[/]", border_style="green")
    )


def format_tvl_table(
    vault: VaultConfig, points: Sequence[TvlPoint], console: Console | None = None
) -> None:
    console = console or Console()

    table = Table(expand=True)
    table.add_column("Timestamp", style="dim", no_wrap=True)
    table.add_column(f"Total assets ({vault.underlying_token})", justify="right", style="green")
    table.add_column("Event", style="yellow")

    for point in points:
        table.add_row(
            _format_timestamp(point.block_timestamp), point.total_assets, point.event_type
        )

    console.print(
        Panel(table, title=f"[bold]TVL · {vault.id}[/] ({len(points)} points)", border_style="blue")
    )


def format_settlements_table(
    vault_id: str, settlements: Sequence[Settlement], console: Console | None = None
) -> None:
    console = console or Console()

    table = Table(expand=True)
    table.add_column("Timestamp", style="dim", no_wrap=True)
    table.add_column("PPS", justify="right", style="green")
    table.add_column("Total assets", justify="right")
    table.add_column("Total supply", justify="right")
    table.add_column("Seq", justify="right", style="dim")

    for settlement in settlements:
        table.add_row(
            _format_timestamp(settlement.block_timestamp),
            settlement.pps,
            settlement.total_assets,
            settlement.total_supply,
            str(settlement.sequence),
        )

    console.print(Panel(table, title=f"[bold]Settlements · {vault_id}[/]", border_style="cyan"))


def format_last_request(
    vault_id: str, user: str, request: LastRequest, console: Console | None = None
) -> None:
    console = console or Console()

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Key", style="dim")
    table.add_column("Value", style="cyan")
    table.add_row("Controller", user.lower())
    table.add_row("Last deposit request", request.last_deposit_request_id or "[dim]<none>[/]")
    table.add_row("Last redeem request", request.last_redeem_request_id or "[dim]<none>[/]")

    console.print(Panel(table, title=f"[bold]Last request · {vault_id}[/]", border_style="blue"))


def format_bulk_table(metrics: dict[str, VaultMetrics], console: Console | None = None) -> None:
    console = console or Console()

    table = Table(expand=True)
    table.add_column("Vault", style="cyan", no_wrap=True)
    table.add_column("TVL", justify="right", style="green")
    table.add_column("Net APR", justify="right", style="yellow")
    table.add_column("30d APR", justify="right", style="yellow")
    table.add_column("7d APR", justify="right", style="yellow")

    for vault_id, vault_metrics in sorted(metrics.items()):
        table.add_row(
            vault_id,
            vault_metrics.tvl.total_assets if vault_metrics.tvl else "[dim]<N/A>[/]",
            _format_apr(vault_metrics.net_apr),
            _format_apr(vault_metrics.thirty_day_apr),
            _format_apr(vault_metrics.seven_day_apr),
        )

    console.print(Panel(table, title="[bold]Vault Metrics[/]", border_style="white"))


def format_vaults_table(vaults: Sequence[VaultConfig], console: Console | None = None) -> None:
    console = console or Console()

    table = Table(expand=True)
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Token", style="yellow")
    table.add_column("Decimals", justify="right")
    table.add_column("Network", style="dim")
    table.add_column("Active", justify="center")

    for vault in vaults:
        table.add_row(
            vault.id,
            vault.name,
            vault.underlying_token,
            str(vault.underlying_token_decimals),
            vault.network,
            "[green]yes[/]" if vault.is_active else "[red]no[/]",
        )

    console.print(table)
