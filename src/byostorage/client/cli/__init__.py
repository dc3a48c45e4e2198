"""Command-line interface for byostorage.

This module provides the main CLI entry point and assembles all commands.

Commands:
- login / logout: Manage the Dropbox access token
- keygen: Create the key pair owning your channels
- mkdir / rmdir: Create or delete a channel's directory
- post / delete: Write or delete records
- sign / pubkey: Sign a directory or verify its owner
- subscribe: Stream a channel's records
"""

from __future__ import annotations

import logging

import click

from byostorage.client.cli.account import keygen, login, logout
from byostorage.client.cli.channels import (
    delete,
    mkdir,
    post,
    pubkey,
    rmdir,
    sign,
    subscribe,
)
from byostorage.client.cli.config import (
    get_cache_path,
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)


@click.group()
@click.version_option(package_name="byostorage")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """byostorage - Private channels on your own cloud storage."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Account commands
cli.add_command(login)
cli.add_command(logout)
cli.add_command(keygen)

# Channel commands
cli.add_command(mkdir)
cli.add_command(rmdir)
cli.add_command(post)
cli.add_command(delete)
cli.add_command(sign)
cli.add_command(pubkey)
cli.add_command(subscribe)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_cache_path",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
]
