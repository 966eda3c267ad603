import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from click.testing import CliRunner

from discordfs.config import Config, VirtualFSConfig
from discordfs.dispatcher import OperationDispatcher

logger = logging.getLogger(__name__)


@pytest.fixture(autouse=True)
def debug_logging() -> None:
    logging.getLogger().setLevel(logging.DEBUG)


@pytest.fixture()
def isolated_dir() -> Iterator[Path]:
    with CliRunner().isolated_filesystem():
        yield Path.cwd()


@pytest.fixture()
def config(isolated_dir: Path) -> Config:
    mount_dir = isolated_dir / "mount"
    mount_dir.mkdir()

    return Config(
        seed_files=True,
        vfs=VirtualFSConfig(
            mount_dir=mount_dir,
            fsname="discordfs",
            read_write=True,
            # Tests run as an ordinary user, which may not be allowed to pass allow_other.
            auto_unmount=False,
            allow_other=False,
        ),
    )


@pytest.fixture()
def dispatcher() -> OperationDispatcher:
    return OperationDispatcher()


@pytest.fixture()
def seeded_dispatcher(dispatcher: OperationDispatcher) -> OperationDispatcher:
    dispatcher.seed()
    return dispatcher
