#!/usr/bin/env python3
"""
lockrelease CLI - token release schedules from the terminal

Every command loads the ledger from a JSON state file, applies one
operation and writes the state back atomically.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, List, Optional

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lockrelease.core.config import ConfigManager
from lockrelease.core.exceptions import LedgerError
from lockrelease.core.logging_config import setup_from_config
from lockrelease.events import EVENT_TYPES
from lockrelease.ledger import LockReleaseLedger
from lockrelease.persistence import load_state, save_state

logger = logging.getLogger(__name__)

# Rich console for terminal output
console = Console()


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _load(ctx: click.Context, metrics: Any = None) -> LockReleaseLedger:
    config: ConfigManager = ctx.obj["config"]
    fixed_now: Optional[int] = ctx.obj["now"]
    time_provider = (lambda: fixed_now) if fixed_now is not None else None
    return load_state(
        ctx.obj["state_path"],
        time_provider=time_provider,
        metrics=metrics,
        event_page_size=config.ledger.event_page_size,
        custodian=config.ledger.default_custodian,
    )


def _save(ctx: click.Context, ledger: LockReleaseLedger) -> None:
    save_state(ledger, ctx.obj["state_path"])


def _emit(ctx: click.Context, payload: Dict[str, Any], title: str) -> None:
    if ctx.obj["json_output"]:
        click.echo(json.dumps(payload, indent=2))
        return
    table = Table(show_header=False, box=box.ROUNDED)
    for key, value in payload.items():
        table.add_row(f"[bold cyan]{key}", str(value))
    console.print(Panel(table, title=f"[bold green]{title}", border_style="green"))


def _emit_rows(ctx: click.Context, rows: List[Dict[str, Any]], title: str, columns: List[str]) -> None:
    if ctx.obj["json_output"]:
        click.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        console.print(f"[yellow]No entries for {title.lower()}[/]")
        return
    table = Table(title=title, box=box.ROUNDED)
    for column in columns:
        table.add_column(column, style="cyan" if column == columns[0] else "white")
    for row in rows:
        table.add_row(*(str(row.get(column, "")) for column in columns))
    console.print(table)


# ============================================================================
# CLI Group
# ============================================================================

@click.group()
@click.option(
    '--state',
    'state_path',
    envvar='LOCKRELEASE_STATE',
    type=click.Path(dir_okay=False),
    help='Ledger state file (defaults to storage.state_path)',
)
@click.option('--now', type=int, help='Fixed current time in seconds (defaults to wall clock)')
@click.option('--environment', help='Configuration environment')
@click.option('--config-dir', type=click.Path(file_okay=False), help='Directory holding YAML configs')
@click.option('--json-output', is_flag=True, help='Output raw JSON')
@click.option('--verbose', '-v', is_flag=True, help='Emit structured logs')
@click.pass_context
def cli(
    ctx: click.Context,
    state_path: Optional[str],
    now: Optional[int],
    environment: Optional[str],
    config_dir: Optional[str],
    json_output: bool,
    verbose: bool,
):
    """
    lockrelease - linear token release schedules

    Lock tokens for a beneficiary, release them as they mature and query
    checkpointed balance history.
    """
    ctx.ensure_object(dict)
    try:
        config = ConfigManager(
            environment=environment,
            config_dir=config_dir,
            cli_overrides={"storage.state_path": state_path},
        )
    except LedgerError as exc:
        _cli_fail(exc)

    package_logger = logging.getLogger("lockrelease")
    if verbose:
        setup_from_config(config)
    elif not package_logger.handlers:
        package_logger.addHandler(logging.NullHandler())

    ctx.obj['config'] = config
    ctx.obj['state_path'] = config.storage.state_path
    ctx.obj['now'] = now
    ctx.obj['json_output'] = json_output


# ============================================================================
# Token Commands
# ============================================================================

@cli.group()
def token():
    """Checkpointed ERC20 tokens"""
    pass


@token.command('create')
@click.option('--creator', required=True, help='Owner address')
@click.option('--name', required=True, help='Token name')
@click.option('--symbol', required=True, help='Token symbol')
@click.option('--decimals', default=18, type=int, show_default=True)
@click.option('--supply', default=0, type=int, help='Initial supply in base units')
@click.option('--max-supply', default=0, type=int, help='Supply cap (0 = unlimited)')
@click.option('--fee-bps', default=0, type=int, help='Transfer fee burned, in basis points')
@click.option('--mint-to', help='Receiver of the initial supply (defaults to creator)')
@click.option('--custodian', help='Escrow address (defaults to ledger.default_custodian)')
@click.pass_context
def token_create(ctx: click.Context, creator: str, name: str, symbol: str, decimals: int,
                 supply: int, max_supply: int, fee_bps: int, mint_to: Optional[str],
                 custodian: Optional[str]):
    """Deploy a token and register custody for it"""
    try:
        ledger = _load(ctx)
        created = ledger.deploy_token(
            creator,
            name,
            symbol,
            decimals=decimals,
            initial_supply=supply,
            max_supply=max_supply,
            transfer_fee_bps=fee_bps,
            mint_to=mint_to,
            custodian=custodian,
        )
        _save(ctx, ledger)
        _emit(
            ctx,
            {
                "address": created.address,
                "name": created.name,
                "symbol": created.symbol,
                "total_supply": created.total_supply,
                "custodian": ledger.custodian_for(created.address),
            },
            "Token Created",
        )
    except (LedgerError, ValueError) as exc:
        _cli_fail(exc)


@token.command('mint')
@click.argument('asset')
@click.option('--minter', required=True, help='Token owner')
@click.option('--to', 'recipient', required=True, help='Receiver')
@click.option('--amount', required=True, type=int)
@click.pass_context
def token_mint(ctx: click.Context, asset: str, minter: str, recipient: str, amount: int):
    """Mint new tokens (owner only)"""
    try:
        ledger = _load(ctx)
        minted = ledger.get_token(asset)
        minted.mint(minter, recipient, amount)
        _save(ctx, ledger)
        _emit(
            ctx,
            {"asset": minted.address, "to": recipient, "amount": amount, "total_supply": minted.total_supply},
            "Tokens Minted",
        )
    except (LedgerError, ValueError) as exc:
        _cli_fail(exc)


@token.command('approve')
@click.argument('asset')
@click.option('--owner', required=True, help='Token holder')
@click.option('--spender', help='Approved address (defaults to the custodian)')
@click.option('--amount', required=True, type=int)
@click.pass_context
def token_approve(ctx: click.Context, asset: str, owner: str, spender: Optional[str], amount: int):
    """Approve a spender, usually the custodian before creating a schedule"""
    try:
        ledger = _load(ctx)
        approved = ledger.get_token(asset)
        target = spender or ledger.custodian_for(asset)
        approved.approve(owner, target, amount)
        _save(ctx, ledger)
        _emit(
            ctx,
            {"asset": approved.address, "owner": owner, "spender": target, "allowance": amount},
            "Allowance Set",
        )
    except (LedgerError, ValueError) as exc:
        _cli_fail(exc)


@token.command('balance')
@click.argument('asset')
@click.argument('address')
@click.pass_context
def token_balance(ctx: click.Context, asset: str, address: str):
    """Show a token balance"""
    try:
        ledger = _load(ctx)
        held = ledger.get_token(asset)
        _emit(
            ctx,
            {"asset": held.address, "address": address, "balance": held.balance_of(address)},
            "Token Balance",
        )
    except (LedgerError, ValueError) as exc:
        _cli_fail(exc)


# ============================================================================
# Schedule Commands
# ============================================================================

@cli.group()
def schedule():
    """Release schedules"""
    pass


@schedule.command('create')
@click.argument('asset')
@click.argument('beneficiary')
@click.option('--total', required=True, type=int, help='Units to lock')
@click.option('--start', required=True, type=int, help='Release start (seconds)')
@click.option('--duration', required=True, type=int, help='Release duration (seconds)')
@click.option('--payer', required=True, help='Address funding the schedule')
@click.pass_context
def schedule_create(ctx: click.Context, asset: str, beneficiary: str, total: int,
                    start: int, duration: int, payer: str):
    """Lock tokens for a beneficiary"""
    try:
        ledger = _load(ctx)
        created = ledger.create_schedule(asset, beneficiary, total, start, duration, payer=payer)
        _save(ctx, ledger)
        _emit(ctx, {"asset": asset, "beneficiary": beneficiary, **created.to_dict()}, "Schedule Created")
    except (LedgerError, ValueError) as exc:
        _cli_fail(exc)


@schedule.command('show')
@click.argument('asset')
@click.argument('beneficiary')
@click.pass_context
def schedule_show(ctx: click.Context, asset: str, beneficiary: str):
    """Show a schedule with matured and releasable amounts"""
    try:
        ledger = _load(ctx)
        info = ledger.schedule_info(asset, beneficiary)
        if info is None:
            raise click.ClickException(f"No schedule for {asset} => {beneficiary}")
        _emit(ctx, info, "Release Schedule")
    except LedgerError as exc:
        _cli_fail(exc)


@schedule.command('release')
@click.argument('asset')
@click.argument('beneficiary')
@click.option('--amount', type=int, help='Units to release (defaults to everything releasable)')
@click.option('--caller', required=True, help='Address triggering the release')
@click.pass_context
def schedule_release(ctx: click.Context, asset: str, beneficiary: str, amount: Optional[int], caller: str):
    """Release matured tokens to the beneficiary"""
    try:
        ledger = _load(ctx)
        released = ledger.release(asset, beneficiary, amount, caller=caller)
        _save(ctx, ledger)
        _emit(ctx, {"asset": asset, "recipient": beneficiary, "released": released}, "Tokens Released")
    except (LedgerError, ValueError) as exc:
        _cli_fail(exc)


@schedule.command('release-to')
@click.argument('asset')
@click.argument('recipient')
@click.option('--amount', type=int, help='Units to release (defaults to everything releasable)')
@click.option('--caller', required=True, help='Beneficiary releasing their own tokens')
@click.pass_context
def schedule_release_to(ctx: click.Context, asset: str, recipient: str, amount: Optional[int], caller: str):
    """Release the caller's matured tokens to another address"""
    try:
        ledger = _load(ctx)
        released = ledger.release_to(asset, recipient, amount, caller=caller)
        _save(ctx, ledger)
        _emit(ctx, {"asset": asset, "recipient": recipient, "released": released}, "Tokens Released")
    except (LedgerError, ValueError) as exc:
        _cli_fail(exc)


# ============================================================================
# Vest listing
# ============================================================================

@cli.command('vests')
@click.option('--search', 'address', help='Only vests where ADDRESS is beneficiary, creator or asset')
@click.pass_context
def vests(ctx: click.Context, address: Optional[str]):
    """List every vest, newest first"""
    try:
        ledger = _load(ctx)
        records = ledger.search(address) if address is not None else ledger.recompute_all()
        if ctx.obj["json_output"]:
            click.echo(json.dumps([record.to_dict() for record in records], indent=2))
            return
        if not records:
            console.print("[yellow]No vests found[/]")
            return
        table = Table(title=f"Vests - {len(records)}", box=box.ROUNDED)
        table.add_column("Status")
        table.add_column("Beneficiary", style="cyan")
        table.add_column("Asset")
        table.add_column("Total", justify="right")
        table.add_column("Matured", justify="right")
        table.add_column("Released", justify="right")
        table.add_column("Releasable", justify="right", style="green")
        for record in records:
            table.add_row(
                f"{record.status.emoji} {record.status.description}",
                record.beneficiary,
                record.asset,
                str(record.total),
                str(record.matured),
                str(record.released),
                str(record.releasable),
            )
        console.print(table)
    except LedgerError as exc:
        _cli_fail(exc)


# ============================================================================
# Checkpoint Commands
# ============================================================================

@cli.group()
def checkpoints():
    """Checkpointed balance history"""
    pass


@checkpoints.command('show')
@click.argument('asset')
@click.argument('account', required=False)
@click.pass_context
def checkpoints_show(ctx: click.Context, asset: str, account: Optional[str]):
    """List checkpoints of ACCOUNT, or of the total supply when omitted"""
    ledger = _load(ctx)
    series = ledger.checkpoints.series(asset, account)
    rows = [{"pos": pos, "marker": cp.marker, "value": cp.value} for pos, cp in enumerate(series)]
    _emit_rows(ctx, rows, f"Checkpoints - {account or 'total supply'}", ["pos", "marker", "value"])


@checkpoints.command('past-votes')
@click.argument('asset')
@click.argument('account')
@click.argument('timepoint', type=int)
@click.pass_context
def checkpoints_past_votes(ctx: click.Context, asset: str, account: str, timepoint: int):
    """Balance of ACCOUNT at TIMEPOINT"""
    try:
        ledger = _load(ctx)
        value = ledger.votes.get_past_votes(asset, account, timepoint)
        _emit(ctx, {"account": account, "timepoint": timepoint, "votes": value}, "Past Votes")
    except LedgerError as exc:
        _cli_fail(exc)


@checkpoints.command('past-supply')
@click.argument('asset')
@click.argument('timepoint', type=int)
@click.pass_context
def checkpoints_past_supply(ctx: click.Context, asset: str, timepoint: int):
    """Total supply at TIMEPOINT"""
    try:
        ledger = _load(ctx)
        value = ledger.votes.get_past_total_supply(asset, timepoint)
        _emit(ctx, {"asset": asset, "timepoint": timepoint, "total_supply": value}, "Past Total Supply")
    except LedgerError as exc:
        _cli_fail(exc)


@checkpoints.command('advance')
@click.argument('marker', type=int, required=False)
@click.pass_context
def checkpoints_advance(ctx: click.Context, marker: Optional[int]):
    """Settle history up to MARKER (defaults to now)"""
    try:
        ledger = _load(ctx)
        clock = ledger.advance_clock(marker)
        _save(ctx, ledger)
        _emit(ctx, {"clock": clock}, "Clock Advanced")
    except LedgerError as exc:
        _cli_fail(exc)


# ============================================================================
# Events
# ============================================================================

@cli.command('events')
@click.option('--type', 'event_type', type=click.Choice(sorted(EVENT_TYPES)))
@click.option('--limit', default=50, type=click.IntRange(min=0), show_default=True, help='Maximum events to show')
@click.pass_context
def events(ctx: click.Context, event_type: Optional[str], limit: int):
    """Show the event log, newest first"""
    ledger = _load(ctx)
    rows: List[Dict[str, Any]] = []
    for page in ledger.event_pages(event_type):
        rows.extend(event.to_dict() for event in page)
        if len(rows) >= limit:
            break
    rows = rows[:limit]
    _emit_rows(ctx, rows, "Events", ["seq", "event_type", "timestamp", "asset", "beneficiary"])


# ============================================================================
# Server
# ============================================================================

@cli.command('serve')
@click.option('--host', help='Bind address (defaults to api.host)')
@click.option('--port', type=int, help='Port (defaults to api.port)')
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]):
    """Serve the read-only HTTP API over the current state"""
    from lockrelease.api import create_app
    from lockrelease.core.metrics import get_ledger_metrics

    config: ConfigManager = ctx.obj["config"]
    metrics = get_ledger_metrics() if config.metrics.enabled else None
    ledger = _load(ctx, metrics=metrics)
    app = create_app(ledger, config)
    bind_host = host or config.api.host
    bind_port = port or config.api.port
    console.print(f"[bold green]Serving[/] {ctx.obj['state_path']} on http://{bind_host}:{bind_port}{config.api.prefix}")
    app.run(host=bind_host, port=bind_port)


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == '__main__':
    main()
