"""
ccg CLI — cold-chain git on the command line.

The main Click group is defined here and every subcommand module
registers itself through a register function.

Entry point: ccg.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="ccg")
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline progress.")
def main(verbose: bool):
    """ccg — encrypted git bundles, anchored on-chain.

    Bundles are sealed with your key, pinned to content-addressed
    storage, and pointed at from a registry contract.
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .repo import register_repo_commands
from .config_cmd import register_config_commands

register_repo_commands(main)
register_config_commands(main)
