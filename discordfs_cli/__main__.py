import sys

import click

from discordfs_cli.cli import cli


def main() -> None:
    from discordfs import DiscordFSExpectedError

    try:
        cli()
    except DiscordFSExpectedError as e:
        click.secho(f"{e.__class__.__module__}.{e.__class__.__name__}: ", fg="red", nl=False)
        click.secho(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
