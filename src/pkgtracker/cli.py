"""CLI for the package tracker.

Convention-based: discovers .pkgtracker/ by walking up from cwd.

Usage:
    pkgtracker init --token=SECRET             # Initialize .pkgtracker/ in cwd
    pkgtracker packager-add 42 alice           # Register a packager
    pkgtracker assign foo 42                   # Assign package foo to packager 42
    pkgtracker mark foo stuck --by=42          # Flag foo as stuck
    pkgtracker unmark foo                      # Drop attention marks from foo
    pkgtracker list --json                     # Working list + mark list
    pkgtracker complete foo ftbfs              # Run the completion workflow
    pkgtracker serve --port=8380               # Start the HTTP server
"""

from __future__ import annotations

import asyncio
import json as json_mod
import sys
from pathlib import Path

import click

from pkgtracker import __version__
from pkgtracker.core import (
    ATTENTION_MARKS,
    DB_FILENAME,
    TRACKER_DIR_NAME,
    PackageDB,
    find_tracker_root,
    write_config,
)
from pkgtracker.dashboard import build_context
from pkgtracker.db_marks import normalize_mark_name
from pkgtracker.errors import NotFoundError, StoreError
from pkgtracker.notifier import TelegramNotifier
from pkgtracker.workflow import Outcome, complete_package


def _get_db() -> PackageDB:
    """Discover .pkgtracker/ and return an initialized PackageDB."""
    try:
        tracker_dir = find_tracker_root()
    except FileNotFoundError:
        click.echo(f"No {TRACKER_DIR_NAME}/ found. Run 'pkgtracker init' first.", err=True)
        sys.exit(1)
    db = PackageDB(tracker_dir / DB_FILENAME)
    try:
        db.initialize()
    except StoreError as e:
        click.echo(str(e), err=True)
        sys.exit(1)
    return db


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="pkgtracker")
def cli() -> None:
    """pkgtracker: package assignment tracker with chat notifications."""


@cli.command()
@click.option("--token", default="", help="Secret required by the completion endpoint")
@click.option("--bot-token", default="", help="Telegram bot token")
@click.option("--chat-id", default="", help="Telegram chat that receives notifications")
def init(token: str, bot_token: str, chat_id: str) -> None:
    """Initialize .pkgtracker/ in the current directory."""
    cwd = Path.cwd()
    tracker_dir = cwd / TRACKER_DIR_NAME

    if tracker_dir.exists():
        click.echo(f"{TRACKER_DIR_NAME}/ already exists in {cwd}")
        with PackageDB(tracker_dir / DB_FILENAME) as db:
            db.initialize()
        return

    tracker_dir.mkdir()
    write_config(tracker_dir, {"version": 1, "token": token, "bot_token": bot_token, "chat_id": chat_id})
    with PackageDB(tracker_dir / DB_FILENAME) as db:
        db.initialize()

    click.echo(f"Initialized {TRACKER_DIR_NAME}/ in {cwd}")
    click.echo(f"  Database: {tracker_dir / DB_FILENAME}")
    if not token:
        click.echo("  Warning: no --token given; completion requests will be rejected")


@cli.command("packager-add")
@click.argument("tg_uid", type=int)
@click.argument("alias")
def packager_add(tg_uid: int, alias: str) -> None:
    """Register a packager (or rename an existing one)."""
    with _get_db() as db:
        try:
            packager = db.add_packager(tg_uid, alias)
        except (ValueError, StoreError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    click.echo(f"Packager {packager.tg_uid}: {packager.alias}")


@cli.command()
@click.argument("pkgname")
@click.argument("tg_uid", type=int)
def assign(pkgname: str, tg_uid: int) -> None:
    """Assign PKGNAME to the packager TG_UID."""
    with _get_db() as db:
        try:
            db.assign_package(pkgname, tg_uid)
        except (ValueError, NotFoundError, StoreError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    click.echo(f"Assigned {pkgname} to {tg_uid}")


@cli.command()
@click.argument("pkgname")
@click.argument("name")
@click.option("--by", "marked_by", type=int, default=None, help="Telegram id of the packager setting the mark")
@click.option("--msg-id", type=int, default=0, help="Chat message the mark refers to")
@click.option("--comment", default=None, help="Free-form note")
def mark(pkgname: str, name: str, marked_by: int | None, msg_id: int, comment: str | None) -> None:
    """Attach mark NAME to PKGNAME."""
    with _get_db() as db:
        try:
            name = normalize_mark_name(name)
            added = db.add_mark(pkgname, name, marked_by=marked_by, msg_id=msg_id, comment=comment)
        except (ValueError, StoreError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    if added:
        click.echo(f"Marked {pkgname} as {name}")
    else:
        click.echo(f"{pkgname} is already marked as {name}")


@cli.command()
@click.argument("pkgname")
@click.argument("names", nargs=-1)
@click.option("--all", "remove_all", is_flag=True, help="Remove every mark, not only attention marks")
def unmark(pkgname: str, names: tuple[str, ...], remove_all: bool) -> None:
    """Remove marks from PKGNAME (default: all attention marks)."""
    if remove_all and names:
        click.echo("Error: pass mark names or --all, not both", err=True)
        sys.exit(1)
    match = None if remove_all else (names or ATTENTION_MARKS)
    with _get_db() as db:
        try:
            removed = db.remove_marks(pkgname, match)
        except StoreError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    click.echo(f"Removed from {pkgname}: {', '.join(removed) or 'nothing'}")


@cli.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_cmd(as_json: bool) -> None:
    """Show current assignments and marks."""
    with _get_db() as db:
        try:
            work_list = db.get_working_list()
            mark_list = db.get_mark_list()
        except StoreError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if as_json:
        click.echo(json_mod.dumps({"workList": work_list, "markList": mark_list}, indent=2))
        return

    click.echo("Assignments:")
    if not work_list:
        click.echo("  (none)")
    for unit in work_list:
        pkgs = ", ".join(a["pkg"] for a in unit["assignments"])
        click.echo(f"  {unit['packager']['alias']} ({unit['packager']['tg_uid']}): {pkgs}")
    click.echo("Marks:")
    if not mark_list:
        click.echo("  (none)")
    for munit in mark_list:
        click.echo(f"  {munit['pkg']}: {', '.join(m['name'] for m in munit['marks'])}")


@cli.command()
@click.argument("pkgname")
@click.argument("status")
@click.option("--token", default=None, help="Secret to present (default: the configured one)")
def complete(pkgname: str, status: str, token: str | None) -> None:
    """Report PKGNAME as finished with STATUS (ftbfs or leaf) and notify the chat."""
    try:
        ctx = build_context()
    except (FileNotFoundError, ValueError, StoreError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    async def _run() -> Outcome:
        try:
            return await complete_package(ctx, pkgname, status, ctx.token if token is None else token)
        finally:
            if isinstance(ctx.notifier, TelegramNotifier):
                await ctx.notifier.aclose()

    try:
        outcome = asyncio.run(_run())
    finally:
        if isinstance(ctx.store, PackageDB):
            ctx.store.close()

    if outcome.ok:
        click.echo(f"{pkgname}: {outcome.detail}")
    else:
        click.echo(f"Error ({outcome.http_status}) {outcome.msg}: {outcome.detail}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--port", default=None, type=int, help="Port to listen on (default: config, then 8380)")
@click.option("--host", default="127.0.0.1", help="Interface to bind")
def serve(port: int | None, host: str) -> None:
    """Start the HTTP server."""
    from pkgtracker.dashboard import main as dashboard_main

    try:
        dashboard_main(port=port, host=host)
    except (FileNotFoundError, ValueError, StoreError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def main() -> None:
    """Entry point for the pkgtracker CLI."""
    cli()


if __name__ == "__main__":
    main()
