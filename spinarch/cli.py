import asyncio
from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from spinarch import __version__
from spinarch.accounts import AccountStore
from spinarch.config import coerce_value, load_config, resolve_settings, save_global_config
from spinarch.control import TerminalEventSource
from spinarch.errors import ConfigError, DevnetError, ProvisionError
from spinarch.orchestrator import DevnetOrchestrator
from spinarch.project import Project
from spinarch.render import DevnetConsole, accounts_table, mnemonics_table
from spinarch.runtime import create_runtime
from spinarch.snapshot import list_snapshots


@click.group()
@click.version_option(version=__version__)
def main():
    """spinarch: single-node Archway devnet with funded test accounts."""


async def _serve(orchestrator, console, reset_state, update_image, restore):
    await orchestrator.bootstrap(reset_state=reset_state, update_image=update_image, restore=restore)
    await orchestrator.run(TerminalEventSource(console))


@main.command()
@click.option("--project-id", default=None, help="Your project ID. Enables persistent state.")
@click.option("--chain-id", default=None, help="Chain ID (default: spinarch-1).")
@click.option("--num-accounts", type=int, default=None, help="Number of accounts to generate (default: 10).")
@click.option("--balance", type=int, default=None, help="Balance of each generated account.")
@click.option("--update-image", is_flag=True, help="Pull the latest node image before starting.")
@click.option("--reset-state", is_flag=True, help="Reset the blockchain to the genesis state.")
@click.option("--restore", "restore_name", default=None, help="Restore a snapshot before starting.")
def start(project_id, chain_id, num_accounts, balance, update_image, reset_state, restore_name):
    """Start a devnet. Without --project-id its state is discarded on exit.

    Example: spinarch start --project-id my-dapp --num-accounts 3
    """
    console = DevnetConsole()

    # Validate everything before touching the container runtime
    try:
        settings = resolve_settings(
            load_config(), chain_id=chain_id, num_accounts=num_accounts, balance=balance,
        )
        project = Project.create(project_id, chain_id=settings.chain_id)
    except ConfigError as e:
        console.error(e.describe())
        raise SystemExit(1)

    console.app(f"spinarch {__version__} - {project.id}")
    orchestrator = DevnetOrchestrator(project, settings, create_runtime(), console)
    try:
        asyncio.run(_serve(orchestrator, console, reset_state, update_image, restore_name))
    except DevnetError as e:
        console.error(e.describe())
        raise SystemExit(1)
    except KeyboardInterrupt:
        console.error("Interrupted")
        raise SystemExit(130)


def _persistent_project(project_id):
    try:
        return Project.create(project_id)
    except ConfigError as e:
        raise click.BadParameter(str(e), param_hint="--project-id")


@main.command()
@click.option("--project-id", required=True, help="Project whose snapshots to list.")
def snapshots(project_id):
    """List a project's snapshots, oldest first."""
    console = Console()
    project = _persistent_project(project_id)
    snapshot_list = list_snapshots(project)
    if not snapshot_list:
        console.print("[dim]No snapshots found.[/dim]")
        return

    table = Table(title=f"Snapshots — {project.id}")
    table.add_column("Name", style="bold cyan")
    table.add_column("Created", style="dim")
    table.add_column("Size", style="dim", justify="right")
    for s in snapshot_list:
        size_mb = s.archive_path.stat().st_size / 1_000_000
        table.add_row(s.name, s.created_at.strftime("%Y-%m-%d %H:%M:%S"), f"{size_mb:.1f}MB")
    console.print(table)
    console.print(f"[dim]Restore with: spinarch start --project-id {project.id} --restore <name>[/dim]")


@main.command()
@click.option("--project-id", required=True, help="Project whose accounts to show.")
def accounts(project_id):
    """Show the accounts generated for a persistent project."""
    console = Console()
    project = _persistent_project(project_id)
    try:
        account_list = AccountStore(project.accounts_path).load()
    except ProvisionError as e:
        click.echo(e.describe(), err=True)
        raise SystemExit(1)
    if not account_list:
        console.print(f"[dim]No accounts generated for {project.id} yet.[/dim]")
        return
    console.print(accounts_table(account_list))
    console.print(mnemonics_table(account_list))


@main.command()
@click.option("-n", "--limit", default=20, help="Number of log entries to show.")
@click.option("--project-id", default=None, help="Only show entries for this project.")
def logs(limit, project_id):
    """Show the devnet lifecycle log."""
    from spinarch.log import read_logs

    console = Console()
    entries = read_logs(project_id)
    if not entries:
        console.print("[dim]No logs found.[/dim]")
        return

    table = Table(title="Devnet Log")
    table.add_column("Time", style="dim")
    table.add_column("Event", style="bold")
    table.add_column("Project", style="cyan")
    table.add_column("Snapshot", style="dim")
    table.add_column("Result", style="bold")

    for entry in entries[-limit:]:
        ts = entry.get("timestamp", "")
        if ts:
            try:
                ts = datetime.fromisoformat(ts).strftime("%m-%d %H:%M")
            except ValueError:
                pass
        result = entry.get("result", "")
        result_style = {"ok": "[green]ok[/green]", "failed": "[red]failed[/red]"}.get(result, result)
        table.add_row(ts, entry.get("event", ""), entry.get("project", ""),
                      entry.get("snapshot", ""), result_style)

    console.print(table)


@main.command("config")
@click.argument("key")
@click.argument("value")
def config_cmd(key, value):
    """Save a default setting to ~/.spinarch/config.json.

    Example: spinarch config num_accounts 3
    """
    try:
        coerced = coerce_value(key, value)
        # Reject values `start` would refuse later
        resolve_settings(load_config(), **{key: coerced})
        save_global_config({key: coerced})
    except ConfigError as e:
        click.echo(str(e), err=True)
        raise SystemExit(1)
    click.echo(f"Saved {key} = {coerced!r}")
