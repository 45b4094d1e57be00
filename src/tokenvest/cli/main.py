#!/usr/bin/env python3
"""
tokenvest CLI - Vesting Vault Operations

Operates a vault persisted in a local SQLite database:
- Vault initialization, token minting and approvals
- Schedule creation (single and batch from a YAML/JSON file)
- Claims, previews and schedule listings
- Recovery and administrator/recovery-account changes
- Serving the HTTP API
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

import click
import yaml
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tokenvest.config_manager import ConfigManager, get_config_manager
from tokenvest.core.exceptions import VestingError
from tokenvest.core.logging_config import setup_logging_from_config
from tokenvest.core.token import ERC20Token
from tokenvest.core.vault import VestingVault
from tokenvest.database.vault_repository import VaultRepository

logger = logging.getLogger(__name__)
console = Console()

BATCH_KEYS = ("beneficiary", "total_amount", "upfront_percent", "cliff_time", "ramp_end")


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _emit(ctx: click.Context, payload: Dict[str, Any], title: str) -> None:
    """Print a result as JSON or as a rich key/value panel."""
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(show_header=False, box=box.ROUNDED)
    for key, value in payload.items():
        table.add_row(f"[bold cyan]{key}", str(value))
    console.print(Panel(table, title=f"[bold green]{title}", border_style="green"))


def _time_provider(ctx: click.Context) -> Optional[Callable[[], int]]:
    """Clock pinned to ``--now`` when given, otherwise the vault default."""
    now = ctx.obj.get("now")
    return (lambda: now) if now is not None else None


@contextmanager
def _open_vault(ctx: click.Context, save: bool = False) -> Iterator[VestingVault]:
    """Load the vault, optionally saving it when the block completes without error."""
    with VaultRepository(ctx.obj["db_path"]) as repository:
        vault = repository.load(time_provider=_time_provider(ctx))
        yield vault
        if save:
            repository.save(vault)


def _custody_token(vault: VestingVault) -> ERC20Token:
    return vault.token_ledger.token


def _load_batch_file(path: Path) -> Dict[str, List[Any]]:
    """Read schedule entries from YAML or JSON and split them into parallel lists."""
    with open(path, "r") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    entries = data.get("schedules") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise click.ClickException("Batch file must contain a list of schedules")

    columns: Dict[str, List[Any]] = {key: [] for key in BATCH_KEYS}
    for position, entry in enumerate(entries):
        missing = [key for key in BATCH_KEYS if key not in entry]
        if missing:
            raise click.ClickException(
                f"Schedule #{position} is missing: {', '.join(missing)}"
            )
        for key in BATCH_KEYS:
            columns[key].append(entry[key])
    return columns


@click.group()
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Vault database file (defaults to storage settings)",
)
@click.option("--config-dir", type=click.Path(file_okay=False), default=None, help="Configuration directory")
@click.option("--environment", default=None, help="Configuration environment")
@click.option("--now", type=int, default=None, help="Override the current Unix timestamp")
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.option("--verbose", is_flag=True, help="Log to the console")
@click.pass_context
def cli(
    ctx: click.Context,
    db_path: Optional[Path],
    config_dir: Optional[str],
    environment: Optional[str],
    now: Optional[int],
    json_output: bool,
    verbose: bool,
):
    """tokenvest - custodial token vesting vault."""
    try:
        config = get_config_manager(
            environment=environment,
            config_dir=config_dir,
            force_reload=True,
        )
    except VestingError as exc:
        _handle_cli_error(exc)

    setup_logging_from_config(
        config.logging,
        environment=config.environment.value,
        level="DEBUG" if verbose else None,
        enable_console=verbose,
    )

    ctx.ensure_object(dict)
    ctx.obj.update(
        {
            "config": config,
            "db_path": db_path or config.storage.database_path,
            "now": now,
            "json_output": json_output,
        }
    )


@cli.command("init")
@click.option("--admin", required=True, help="Administrator address (also token owner)")
@click.option("--recovery", required=True, help="Recovery account address")
@click.option("--supply", type=int, default=0, help="Initial supply minted to the administrator")
@click.option("--custody", default="", help="Vault custody address (generated if omitted)")
@click.option("--force", is_flag=True, help="Overwrite an existing vault")
@click.pass_context
def init_vault(ctx: click.Context, admin: str, recovery: str, supply: int, custody: str, force: bool):
    """
    Deploy a token and a vault and store them in the database.

    Example:
        tokenvest init --admin 0xadmin --recovery 0xsafe --supply 1000000
    """
    config: ConfigManager = ctx.obj["config"]
    try:
        with VaultRepository(ctx.obj["db_path"]) as repository:
            if repository.exists() and not force:
                raise click.ClickException("Vault already initialized (use --force to overwrite)")

            token = ERC20Token(
                name=config.vault.token_name,
                symbol=config.vault.token_symbol,
                decimals=config.vault.token_decimals,
                owner=admin,
            )
            if supply:
                token.mint(admin, admin, supply)

            vault = VestingVault.deploy(
                token,
                administrator=admin,
                recovery_account=recovery,
                custody_address=custody,
                max_schedules_per_beneficiary=config.vault.max_schedules_per_beneficiary,
                max_batch_size=config.vault.max_batch_size,
            )
            repository.save(vault)

        _emit(
            ctx,
            {
                "administrator": vault.administrator,
                "recovery_account": vault.recovery_account,
                "custody_address": vault.custody_address,
                "token": token.symbol,
                "supply": token.total_supply,
            },
            "Vault Initialized",
        )
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("mint")
@click.option("--caller", required=True, help="Token owner address")
@click.option("--to", "to_address", required=True, help="Recipient address")
@click.option("--amount", type=int, required=True, help="Amount in base units")
@click.pass_context
def mint(ctx: click.Context, caller: str, to_address: str, amount: int):
    """Mint vesting tokens (token owner only)."""
    try:
        with _open_vault(ctx, save=True) as vault:
            token = _custody_token(vault)
            token.mint(caller, to_address, amount)
            balance = token.balance_of(to_address)
        _emit(ctx, {"to": to_address.lower(), "amount": amount, "balance": balance}, "Tokens Minted")
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("approve")
@click.option("--owner", required=True, help="Address granting the allowance")
@click.option("--amount", type=int, required=True, help="Allowance for the vault custody address")
@click.pass_context
def approve(ctx: click.Context, owner: str, amount: int):
    """Allow the vault to pull tokens from an address."""
    try:
        with _open_vault(ctx, save=True) as vault:
            _custody_token(vault).approve(owner, vault.custody_address, amount)
            spender = vault.custody_address
        _emit(ctx, {"owner": owner.lower(), "spender": spender, "allowance": amount}, "Allowance Set")
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("create")
@click.option("--caller", required=True, help="Administrator address")
@click.option("--beneficiary", required=True, help="Beneficiary address")
@click.option("--amount", type=int, required=True, help="Total amount in base units")
@click.option("--upfront", type=int, default=0, show_default=True, help="Upfront unlock percent")
@click.option("--cliff", type=int, required=True, help="Cliff timestamp (ramp start)")
@click.option("--end", "ramp_end", type=int, required=True, help="Ramp end timestamp")
@click.pass_context
def create(
    ctx: click.Context,
    caller: str,
    beneficiary: str,
    amount: int,
    upfront: int,
    cliff: int,
    ramp_end: int,
):
    """
    Create a vesting schedule funded by the administrator.

    Example:
        tokenvest create --caller 0xadmin --beneficiary 0xalice --amount 1000 \\
            --upfront 10 --cliff 1735689600 --end 1767225600
    """
    try:
        with _open_vault(ctx, save=True) as vault:
            index = vault.create_schedule(caller, beneficiary, amount, upfront, cliff, ramp_end)
        _emit(
            ctx,
            {"beneficiary": beneficiary.lower(), "index": index, "total_amount": amount},
            "Schedule Created",
        )
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("batch")
@click.option("--caller", required=True, help="Administrator address")
@click.argument("batch_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def batch(ctx: click.Context, caller: str, batch_file: Path):
    """Create every schedule listed in a YAML/JSON file, all or nothing."""
    try:
        columns = _load_batch_file(batch_file)
        with _open_vault(ctx, save=True) as vault:
            indices = vault.create_schedules_batch(
                caller,
                columns["beneficiary"],
                columns["total_amount"],
                columns["upfront_percent"],
                columns["cliff_time"],
                columns["ramp_end"],
            )
        _emit(
            ctx,
            {"count": len(indices), "indices": indices, "total_amount": sum(columns["total_amount"])},
            "Batch Created",
        )
    except (VestingError, yaml.YAMLError, json.JSONDecodeError) as exc:
        _handle_cli_error(exc)


@cli.command("claim")
@click.option("--caller", required=True, help="Beneficiary address")
@click.pass_context
def claim(ctx: click.Context, caller: str):
    """Claim everything unlocked for a beneficiary."""
    try:
        with _open_vault(ctx, save=True) as vault:
            amount = vault.claim(caller)
            balance = _custody_token(vault).balance_of(caller)
        _emit(ctx, {"beneficiary": caller.lower(), "amount": amount, "balance": balance}, "Tokens Claimed")
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("preview")
@click.argument("beneficiary")
@click.pass_context
def preview(ctx: click.Context, beneficiary: str):
    """Show what a beneficiary could claim right now."""
    try:
        with _open_vault(ctx) as vault:
            summary = vault.beneficiary_summary(beneficiary)
        _emit(ctx, {"beneficiary": beneficiary.lower(), **summary}, "Claimable")
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("schedules")
@click.argument("beneficiary")
@click.pass_context
def schedules(ctx: click.Context, beneficiary: str):
    """List a beneficiary's schedules."""
    try:
        with _open_vault(ctx) as vault:
            records = vault.get_schedules(beneficiary)
            claimables = vault.preview_schedule_claimables(beneficiary)
    except VestingError as exc:
        _handle_cli_error(exc)
        return

    rows = [
        {**record.to_dict(), "index": index, "claimable": claimable}
        for index, (record, claimable) in enumerate(zip(records, claimables))
    ]
    if ctx.obj.get("json_output"):
        click.echo(json.dumps({"beneficiary": beneficiary.lower(), "schedules": rows}, indent=2))
        return

    if not rows:
        console.print(f"[yellow]No schedules for {beneficiary}[/]")
        return

    table = Table(title=f"Schedules for {beneficiary}", box=box.ROUNDED)
    for column in ("#", "Total", "Claimed", "Upfront", "Cliff", "Ramp End", "Claimable"):
        table.add_column(column, justify="right")
    for row in rows:
        table.add_row(
            str(row["index"]),
            str(row["total_amount"]),
            str(row["claimed_amount"]),
            str(row["upfront_amount"]),
            str(row["cliff_time"]),
            str(row["ramp_end"]),
            f"[green]{row['claimable']}",
        )
    console.print(table)


@cli.command("recover")
@click.option("--caller", required=True, help="Administrator address")
@click.argument("beneficiary")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def recover(ctx: click.Context, caller: str, beneficiary: str, yes: bool):
    """Sweep a beneficiary's unpaid balance to the recovery account."""
    if not yes and not ctx.obj.get("json_output"):
        click.confirm(
            f"Recover all unpaid tokens of {beneficiary} and delete its schedules?",
            abort=True,
        )
    try:
        with _open_vault(ctx, save=True) as vault:
            amount = vault.recover(caller, beneficiary)
            recovery_account = vault.recovery_account
        _emit(
            ctx,
            {"beneficiary": beneficiary.lower(), "recovery_account": recovery_account, "amount": amount},
            "Tokens Recovered",
        )
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("set-recovery")
@click.option("--caller", required=True, help="Administrator address")
@click.argument("account")
@click.pass_context
def set_recovery(ctx: click.Context, caller: str, account: str):
    """Change the recovery account."""
    try:
        with _open_vault(ctx, save=True) as vault:
            current = vault.set_recovery_account(caller, account)
        _emit(ctx, {"recovery_account": current}, "Recovery Account Changed")
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("transfer-admin")
@click.option("--caller", required=True, help="Current administrator address")
@click.argument("new_admin")
@click.pass_context
def transfer_admin(ctx: click.Context, caller: str, new_admin: str):
    """Hand administration to another address."""
    try:
        with _open_vault(ctx, save=True) as vault:
            current = vault.transfer_administrator(caller, new_admin)
        _emit(ctx, {"administrator": current}, "Administrator Changed")
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("status")
@click.pass_context
def status(ctx: click.Context):
    """Show vault configuration and custody solvency."""
    try:
        with _open_vault(ctx) as vault:
            payload = {
                "administrator": vault.administrator,
                "recovery_account": vault.recovery_account,
                "custody_address": vault.custody_address,
                "beneficiaries": len(vault.store.beneficiaries()),
                "schedules": len(vault.store),
                **vault.check_solvency(),
            }
        _emit(ctx, payload, "Vault Status")
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("serve")
@click.option("--host", default=None, help="Bind address (defaults to api settings)")
@click.option("--port", type=int, default=None, help="Port (defaults to api settings)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]):
    """Serve the vesting HTTP API for the stored vault."""
    from tokenvest.api.app import create_app

    config: ConfigManager = ctx.obj["config"]
    try:
        repository = VaultRepository(ctx.obj["db_path"])
        vault = repository.load(time_provider=_time_provider(ctx))
    except VestingError as exc:
        _handle_cli_error(exc)
        return

    app = create_app(vault, repository=repository, config=config)
    try:
        # Vault operations are serialized; one request at a time.
        app.run(host=host or config.api.host, port=port or config.api.port, threaded=False)
    finally:
        repository.close()


def main() -> int:
    cli(obj={})
    return 0


if __name__ == "__main__":
    sys.exit(main() or 0)
