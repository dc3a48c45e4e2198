"""Account commands for the byostorage CLI.

Commands:
- login: Store a Dropbox access token
- logout: Forget the stored access token
- keygen: Create the Ed25519 key pair that owns your channels
"""

from __future__ import annotations

import sys

import click

from byostorage.client.cli.config import load_config, save_config
from byostorage.client.cli.credentials import delete_token, save_seed, save_token
from byostorage.core.crypto import base64_encode
from byostorage.core.signing import generate_seed, public_key_from_seed


@click.command()
@click.option("--token", prompt="Dropbox access token", hide_input=True, help="Dropbox OAuth2 access token.")
@click.option("--root-folder", default=None, help="Dropbox folder holding channel directories.")
def login(token: str, root_folder: str | None) -> None:
    """Store a Dropbox access token in the OS keyring."""
    save_token(token.strip())
    if root_folder:
        config = load_config()
        config["root_folder"] = root_folder
        save_config(config)
    click.echo("Access token saved.")


@click.command()
def logout() -> None:
    """Forget the stored Dropbox access token."""
    delete_token()
    click.echo("Logged out.")


@click.command()
@click.option("--force", is_flag=True, help="Replace an existing key pair.")
def keygen(force: bool) -> None:
    """Generate the Ed25519 key pair that owns your channels.

    The public key is the owner key every channel directory is derived
    from: replacing it moves all your channels to new directories.
    """
    config = load_config()
    if config.get("public_key") and not force:
        click.echo("Error: A key pair already exists. Use --force to replace it.", err=True)
        sys.exit(1)

    seed = generate_seed()
    save_seed(seed)
    public_key = base64_encode(public_key_from_seed(seed))
    config["public_key"] = public_key
    save_config(config)
    click.echo(f"Public key: {public_key}")
