"""leaselock command line

Commands:
- migrate: Create / upgrade the lock table
- list: Show active locks
- info: Show one lock
- release: Force-release a lock (operator)
- cleanup: Sweep stale locks now
- stats: Lock statistics
- run: Run a command while holding a lock
"""

import json
import logging
import subprocess
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from tabulate import tabulate

from leaselock import __version__
from leaselock.core.config import get_config
from leaselock.core.locks import LeaseHeartbeat, LockError, LockManager
from leaselock.core.time import iso_z
from leaselock.store.migrator import get_migration_status

logger = logging.getLogger(__name__)

console = Console(stderr=True)

# sysexits.h EX_TEMPFAIL: lock busy, try again later
EXIT_LOCK_BUSY = 75


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else get_config().log_level
    root = logging.getLogger()
    root.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(
            RichHandler(
                console=console,
                rich_tracebacks=True,
                show_time=True,
                show_path=False,
            )
        )


def _manager(ctx: click.Context) -> LockManager:
    return ctx.obj["manager_factory"]()


def _fail(message: str) -> None:
    console.print(f"[red]✗ {message}[/red]")
    raise click.Abort()


@click.group()
@click.version_option(version=__version__, prog_name="leaselock")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Lock database file (default: LEASELOCK_DB_PATH or ~/.leaselock/store/locks.sqlite)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, db_path: Optional[Path], verbose: bool):
    """leaselock - inspect and operate lease-based locks."""
    _setup_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path or get_config().resolved_db_path
    ctx.obj.setdefault(
        "manager_factory",
        lambda: LockManager.from_config(db_path=ctx.obj["db_path"]),
    )


@cli.command()
@click.pass_context
def migrate(ctx):
    """Create or upgrade the lock table."""
    try:
        _manager(ctx)
    except LockError as e:
        _fail(f"Error: {e}")

    status = get_migration_status(ctx.obj["db_path"])
    click.echo(f"Database: {ctx.obj['db_path']}")
    click.echo(f"Schema version: v{status['current_version']:02d}")
    click.echo(f"Pending migrations: {status['pending_count']}")


@cli.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def list_locks(ctx, as_json: bool):
    """Show active (live) locks."""
    try:
        leases = _manager(ctx).get_active_locks()
    except LockError as e:
        _fail(f"Error: {e}")

    if as_json:
        click.echo(json.dumps([lease.to_dict() for lease in leases], indent=2))
        return

    if not leases:
        click.echo("No active locks")
        return

    rows = [
        [
            lease.lock_name,
            lease.owner,
            iso_z(lease.acquired_at),
            iso_z(lease.expires_at),
            iso_z(lease.heartbeat_at),
            lease.timeout_seconds,
        ]
        for lease in leases
    ]
    click.echo(
        tabulate(
            rows,
            headers=["Lock", "Owner", "Acquired", "Expires", "Heartbeat", "Timeout (s)"],
            tablefmt="simple",
        )
    )


@cli.command()
@click.argument("lock_name")
@click.pass_context
def info(ctx, lock_name: str):
    """Show details of LOCK_NAME."""
    try:
        manager = _manager(ctx)
        lease = manager.get_lock_info(lock_name)
        live = manager.is_locked(lock_name)
    except LockError as e:
        _fail(f"Error: {e}")

    if lease is None:
        click.echo(f"{lock_name}: not locked")
        return

    data = lease.to_dict()
    data["live"] = live
    click.echo(json.dumps(data, indent=2))


@cli.command()
@click.argument("lock_name")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def release(ctx, lock_name: str, yes: bool):
    """Force-release LOCK_NAME regardless of its owner.

    Only use this when the holder is known to be gone: a live holder keeps
    running while another process may now take the same lock.
    """
    if not yes:
        click.confirm(f"Force release '{lock_name}'?", abort=True)

    try:
        released = _manager(ctx).force_release(lock_name)
    except LockError as e:
        _fail(f"Error: {e}")

    if released:
        click.echo(f"✓ Released: {lock_name}")
    else:
        click.echo(f"{lock_name}: not locked")


@cli.command()
@click.pass_context
def cleanup(ctx):
    """Delete stale locks now (ignores the sweep interval)."""
    try:
        deleted = _manager(ctx).cleanup_stale_locks(force=True)
    except LockError as e:
        _fail(f"Error: {e}")

    click.echo(f"✓ Deleted: {deleted} stale locks")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show lock statistics."""
    try:
        statistics = _manager(ctx).get_statistics()
    except LockError as e:
        _fail(f"Error: {e}")

    click.echo(f"Active locks: {statistics.total_active_locks}")
    click.echo(f"Locks acquired today: {statistics.total_locks_today}")
    click.echo(f"Average held duration: {statistics.average_lock_duration:.1f}s")

    longest = statistics.longest_held_lock
    if longest:
        click.echo(
            f"Longest held: {longest['lock_name']} by {longest['owner']} "
            f"({longest['duration']:.1f}s)"
        )

    if statistics.locks_by_owner:
        click.echo("")
        click.echo(
            tabulate(
                sorted(statistics.locks_by_owner.items()),
                headers=["Owner", "Locks"],
                tablefmt="simple",
            )
        )


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("lock_name")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option("--timeout", type=int, default=None, help="Lease duration in seconds")
@click.option("--wait", "wait_timeout", type=float, default=0, help="Seconds to wait for the lock")
@click.option(
    "--heartbeat",
    "heartbeat_interval",
    type=float,
    default=None,
    help="Heartbeat interval in seconds while the command runs",
)
@click.pass_context
def run(ctx, lock_name: str, command, timeout, wait_timeout: float, heartbeat_interval):
    """Run COMMAND while holding LOCK_NAME.

    Exits with 75 when the lock is busy, otherwise with the command's exit
    code. Typical use is keeping cron jobs from overlapping:

        leaselock run nightly-report --timeout 3600 -- ./report.sh
    """
    metadata = {"command": list(command)}

    try:
        manager = _manager(ctx)
        if wait_timeout > 0:
            acquired = manager.wait_and_acquire(
                lock_name, timeout, wait_timeout=wait_timeout, metadata=metadata
            )
        else:
            acquired = manager.acquire(lock_name, timeout, metadata)
    except LockError as e:
        _fail(f"Error: {e}")

    if not acquired:
        console.print(f"[yellow]Lock busy: {lock_name}[/yellow]")
        ctx.exit(EXIT_LOCK_BUSY)

    keeper = LeaseHeartbeat(manager, lock_name, heartbeat_interval) if heartbeat_interval else None
    try:
        if keeper is not None:
            keeper.start()
        returncode = subprocess.call(list(command))
    finally:
        if keeper is not None:
            keeper.stop()
        manager.release(lock_name)

    ctx.exit(returncode)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
