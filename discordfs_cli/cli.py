"""
The cli module defines the discordfs CLI interface. It does not have any domain logic of its own. It
is dedicated to parsing, resolving arguments, and delegating to the appropriate module.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import click

from discordfs import ROOT_INODE, VERSION, Config, OperationDispatcher

logger = logging.getLogger(__name__)


@dataclass
class Context:
    config: Config


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Emit verbose logging.")
@click.option("--config", "-c", type=click.Path(path_type=Path), help="Override the config file location.")  # fmt: skip
@click.pass_context
def cli(cc: click.Context, verbose: bool, config: Path | None = None) -> None:
    """An in-memory filesystem mounted with FUSE."""

    cc.obj = Context(
        config=Config.parse(config_path_override=config),
    )
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.command()
def version() -> None:
    """Print version."""

    click.echo(VERSION)


@cli.group()
def fs() -> None:
    """Manage the virtual filesystem."""


@fs.command()
@click.option("--foreground", "-f", is_flag=True, help="Run the FUSE controller in the foreground (default: daemon).")  # fmt: skip
@click.pass_obj
def mount(ctx: Context, foreground: bool) -> None:
    """Mount the virtual filesystem."""
    from discordfs_vfs import mount_virtualfs

    if not foreground:
        daemonize()

    debug = logging.getLogger().getEffectiveLevel() == logging.DEBUG
    logger.info(f"Mounting {ctx.config.vfs.fsname} at {ctx.config.vfs.mount_dir}")
    mount_virtualfs(ctx.config, debug=debug)


@fs.command()
@click.pass_obj
def unmount(ctx: Context) -> None:
    """Unmount the virtual filesystem."""
    from discordfs_vfs import unmount_virtualfs

    unmount_virtualfs(ctx.config)


@fs.command()
@click.pass_obj
def seeds(ctx: Context) -> None:
    """Print the files that are created on mount."""
    if not ctx.config.seed_files:
        click.echo("Seed files are disabled.")
        return
    dispatcher = OperationDispatcher()
    dispatcher.seed()
    for entry in dispatcher.readdir(ROOT_INODE):
        if entry.name == "..":
            continue
        click.echo(f"{entry.name}\t{entry.attrs.size}")
    click.echo(f"total\t{dispatcher.recompute_size()}")


def daemonize() -> None:
    """Forks into a background daemon and exits the foreground process."""
    pid = os.fork()
    if pid == 0:
        # Child process. Detach and keep going!
        os.setsid()
        return
    # Parent process, let's exit now!
    os._exit(0)
