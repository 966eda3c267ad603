"""
The config module provides the configuration schema and parsing logic.

The configuration file is optional: without one, we mount at `./discordfs` with the default options.
When a configuration file is present, we provide detailed errors for invalid values and emit
warnings when unrecognized keys are found.
"""

from __future__ import annotations

import logging
import tomllib
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import appdirs

from discordfs.common import DiscordFSExpectedError

XDG_CONFIG_DISCORDFS = Path(appdirs.user_config_dir("discordfs"))
CONFIG_PATH = XDG_CONFIG_DISCORDFS / "config.toml"

DEFAULT_MOUNT_DIR = Path("./discordfs")
DEFAULT_FSNAME = "discordfs"

logger = logging.getLogger(__name__)


class ConfigNotFoundError(DiscordFSExpectedError):
    pass


class ConfigDecodeError(DiscordFSExpectedError):
    pass


class InvalidConfigValueError(DiscordFSExpectedError, ValueError):
    pass


def _parse_bool(cfgpath: Path, data: dict[str, Any], key: str, accessor: str, default: bool) -> bool:
    """Modifies `data` by deleting the key if read."""
    try:
        value = data[key]
        del data[key]
        if not isinstance(value, bool):
            raise ValueError(f"Must be a bool: got {type(value)}")
    except KeyError:
        return default
    except ValueError as e:
        raise InvalidConfigValueError(f"Invalid value for {accessor} in configuration file ({cfgpath}): {e}") from e
    return value


@dataclass(frozen=True)
class VirtualFSConfig:
    mount_dir: Path
    fsname: str
    read_write: bool
    auto_unmount: bool
    allow_other: bool

    @classmethod
    def default(cls) -> VirtualFSConfig:
        return cls(
            mount_dir=DEFAULT_MOUNT_DIR,
            fsname=DEFAULT_FSNAME,
            read_write=True,
            auto_unmount=True,
            allow_other=True,
        )

    @classmethod
    def parse(cls, cfgpath: Path, data: dict[str, Any]) -> VirtualFSConfig:
        """Modifies `data` by deleting any keys read."""
        try:
            mount_dir = Path(data["mount_dir"]).expanduser()
            del data["mount_dir"]
        except KeyError:
            mount_dir = DEFAULT_MOUNT_DIR
        except (ValueError, TypeError) as e:
            raise InvalidConfigValueError(
                f"Invalid value for vfs.mount_dir in configuration file ({cfgpath}): must be a path"
            ) from e

        try:
            fsname = data["fsname"]
            del data["fsname"]
            if not isinstance(fsname, str) or not fsname:
                raise ValueError(f"Must be a non-empty str: got {fsname!r}")
        except KeyError:
            fsname = DEFAULT_FSNAME
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid value for vfs.fsname in configuration file ({cfgpath}): {e}"
            ) from e

        return VirtualFSConfig(
            mount_dir=mount_dir,
            fsname=fsname,
            read_write=_parse_bool(cfgpath, data, "read_write", "vfs.read_write", True),
            auto_unmount=_parse_bool(cfgpath, data, "auto_unmount", "vfs.auto_unmount", True),
            allow_other=_parse_bool(cfgpath, data, "allow_other", "vfs.allow_other", True),
        )


@dataclass(frozen=True)
class Config:
    # Whether to create the hello.txt and amongus.txt files on mount.
    seed_files: bool

    vfs: VirtualFSConfig

    @classmethod
    def default(cls) -> Config:
        return cls(seed_files=True, vfs=VirtualFSConfig.default())

    @classmethod
    def parse(cls, config_path_override: Path | None = None) -> Config:
        # As we parse, delete consumed values from the data dictionary. If any are left over at the
        # end of the config, warn that unknown config keys were found.
        cfgpath = config_path_override or CONFIG_PATH
        try:
            with cfgpath.open("r") as fp:
                data = tomllib.loads(fp.read())
        except FileNotFoundError as e:
            if config_path_override is None:
                logger.debug(f"No configuration file at {cfgpath}, using defaults")
                return cls.default()
            raise ConfigNotFoundError(f"Configuration file not found ({cfgpath})") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigDecodeError(f"Failed to decode configuration file: invalid TOML: {e}") from e

        seed_files = _parse_bool(cfgpath, data, "seed_files", "seed_files", True)

        vfs_data = data.get("vfs", {})
        if not isinstance(vfs_data, dict):
            raise InvalidConfigValueError(f"Invalid value for vfs in configuration file ({cfgpath}): must be a table")
        vfs_config = VirtualFSConfig.parse(cfgpath, vfs_data)
        if not vfs_data:
            data.pop("vfs", None)

        if data:
            unrecognized_accessors: list[str] = []
            # Do a DFS over the data keys to assemble the map of unknown keys. State is a tuple of
            # ("accessor", node).
            dfs_state: deque[tuple[str, dict[str, Any]]] = deque([("", data)])
            while dfs_state:
                accessor, node = dfs_state.pop()
                if isinstance(node, dict):
                    for k, v in node.items():
                        child_accessor = k if not accessor else f"{accessor}.{k}"
                        dfs_state.append((child_accessor, v))
                    continue
                unrecognized_accessors.append(accessor)
            if unrecognized_accessors:
                logger.warning(f"Unrecognized options found in configuration file: {', '.join(unrecognized_accessors)}")

        return Config(seed_files=seed_files, vfs=vfs_config)
