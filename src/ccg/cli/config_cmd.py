"""Setup commands: keygen, config show, config init."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.panel import Panel

from ._common import CCG_HOME, console, fail
from ..config import load_config, resolve_home, save_config
from ..crypto import generate_key
from ..errors import CCGError
from ..models import AnchorType, CCGConfig, ChainConfig, StoreConfig, StoreType


def register_config_commands(main: click.Group) -> None:
    """Register keygen and the config group."""

    @main.command("keygen")
    def keygen():
        """Print a fresh base64 key for CCG_SECRET_KEY.

        Keep it somewhere safe. Without it no pushed bundle can be
        opened again.

        Examples:

            export CCG_SECRET_KEY=$(ccg keygen)
        """
        click.echo(generate_key())

    @main.group()
    def config():
        """Inspect or create ~/.ccg/config.yaml."""

    @config.command("show")
    @click.option("--home", default=CCG_HOME, type=click.Path())
    def config_show(home):
        """Show the effective configuration (secrets are never stored)."""
        try:
            cfg = load_config(Path(home).expanduser())
        except CCGError as exc:
            fail(exc)

        console.print()
        console.print(
            Panel(
                f"Store: [cyan]{cfg.store.store_type.value}[/]\n"
                f"  upload: {cfg.store.upload_url}\n"
                f"  gateway: {cfg.store.gateway_url}\n"
                f"Anchor: [cyan]{cfg.chain.anchor_type.value}[/]\n"
                f"  rpc: {cfg.chain.rpc_url}\n"
                f"  chain id: {cfg.chain.chain_id}\n"
                f"  contract: {cfg.chain.contract_address or '[yellow]unset[/]'}",
                title="ccg config",
                border_style="cyan",
            )
        )

    @config.command("init")
    @click.option("--home", default=CCG_HOME, type=click.Path())
    @click.option(
        "--store", "store_type",
        type=click.Choice([t.value for t in StoreType]),
        default=StoreType.LIGHTHOUSE.value,
    )
    @click.option(
        "--anchor", "anchor_type",
        type=click.Choice([t.value for t in AnchorType]),
        default=AnchorType.EVM.value,
    )
    @click.option("--contract", default=None, help="Registry contract address.")
    @click.option("--rpc-url", default=None, help="Chain JSON-RPC endpoint.")
    @click.option("--chain-id", type=int, default=None)
    @click.option("--force", is_flag=True, help="Overwrite an existing config.")
    def config_init(home, store_type, anchor_type, contract, rpc_url, chain_id, force):
        """Write a starter config.yaml."""
        home_path = resolve_home(Path(home))
        if (home_path / "config.yaml").exists() and not force:
            console.print(
                "[yellow]config.yaml already exists.[/] Use --force to overwrite."
            )
            sys.exit(1)

        chain = ChainConfig(anchor_type=AnchorType(anchor_type))
        if contract:
            chain.contract_address = contract
        if rpc_url:
            chain.rpc_url = rpc_url
        if chain_id is not None:
            chain.chain_id = chain_id

        cfg = CCGConfig(
            store=StoreConfig(store_type=StoreType(store_type)),
            chain=chain,
        )
        path = save_config(cfg, home_path)
        console.print(f"\n  Wrote [cyan]{path}[/]\n")
