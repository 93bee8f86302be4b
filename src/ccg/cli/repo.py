"""Repository commands: push, pull, metadata, stat, identify."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.table import Table

from ._common import CCG_HOME, console, fail, open_engine
from ..errors import CCGError
from ..identity import repository_identifier_hex
from ..ledger import parse_history
from ..models import VersionRecord


def _records_json(records: list[VersionRecord]) -> str:
    return json.dumps([r.model_dump(by_alias=True) for r in records], indent=2)


def register_repo_commands(main: click.Group) -> None:
    """Register push, pull, metadata, stat and identify."""

    @main.command("push")
    @click.argument("repo")
    @click.argument("bundle_path", type=click.Path(exists=True, dir_okay=False))
    @click.argument("commit_hash")
    @click.option("--home", default=CCG_HOME, type=click.Path())
    def push(repo, bundle_path, commit_hash, home):
        """Seal a git bundle, upload it, and anchor it.

        Prints the anchor transaction hash. The transaction is
        submitted, not confirmed.

        Examples:

            git bundle create repo.bundle --all
            ccg push acme/widgets repo.bundle $(git rev-parse HEAD)
        """
        engine = open_engine(home)
        bundle = Path(bundle_path).read_bytes()

        try:
            tx_hash = engine.push(repo, bundle, commit_hash)
        except CCGError as exc:
            fail(exc)

        console.print(f"\n  Pushed [cyan]{repo}[/] at [bold]{commit_hash}[/]")
        console.print("  [dim]Transaction (unconfirmed):[/]")
        click.echo(tx_hash)

    @main.command("pull")
    @click.argument("repo")
    @click.argument("output_path", type=click.Path(dir_okay=False))
    @click.option("--home", default=CCG_HOME, type=click.Path())
    def pull(repo, output_path, home):
        """Fetch the latest bundle into OUTPUT_PATH and print its history."""
        engine = open_engine(home)

        try:
            result = engine.pull(repo)
            if result is None:
                console.print(f"[yellow]Nothing anchored for {repo}.[/]")
                sys.exit(1)
            history = _records_json(parse_history(result.history))
        except CCGError as exc:
            fail(exc)

        Path(output_path).write_bytes(result.bundle)
        console.print(
            f"\n  Wrote [cyan]{len(result.bundle)}[/] bytes to {output_path}"
        )
        click.echo(history)

    @main.command("metadata")
    @click.argument("repo")
    @click.option("--home", default=CCG_HOME, type=click.Path())
    @click.option("--table", "as_table", is_flag=True, help="Render as a table.")
    def metadata(repo, home, as_table):
        """Print the version history of REPO as JSON.

        Prints [] for a repository that was never pushed.
        """
        engine = open_engine(home)

        try:
            records = engine.history(repo)
        except CCGError as exc:
            fail(exc)

        if not as_table:
            click.echo(_records_json(records))
            return

        table = Table(title=f"{repo} versions")
        table.add_column("Version", justify="right", style="bold")
        table.add_column("Commit", style="cyan")
        for record in records:
            table.add_row(str(record.version), record.commit_hash)
        console.print(table)

    @main.command("stat")
    @click.argument("content_id")
    @click.option("--home", default=CCG_HOME, type=click.Path())
    def stat(content_id, home):
        """Show the size and type of a stored object without opening it."""
        engine = open_engine(home)

        try:
            info = engine.store.info(content_id)
        except CCGError as exc:
            fail(exc)

        click.echo(info.model_dump_json(indent=2))

    @main.command("identify")
    @click.argument("repo")
    def identify(repo):
        """Print the on-chain identifier for REPO (SHA-256 of its name)."""
        click.echo(repository_identifier_hex(repo))
