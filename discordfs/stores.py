"""
The stores module contains the data model of the filesystem. There are four small pieces:

1. InodeAllocator: A counter that hands out new inodes. Inodes are never reused.

2. NamespaceStore: The canonical answer to "what files exist." It maps a name to its Attributes. The
   root directory lives in here too, under a reserved name, so that the aggregate size bookkeeping
   has a single place to write to.

3. DataStore: Maps an inode to the bytes of the file.

4. PathIndex: Maps an inode back to its name, for the handlers that only receive an inode.

None of these are thread-safe. The filesystem dispatches one request at a time.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterator
from dataclasses import dataclass

from discordfs.common import EntryNotFoundError

logger = logging.getLogger(__name__)

ROOT_INODE = 1
# Root's namespace entry is keyed by this name. It is never shown as a child in listings.
ROOT_NAME = "."
BLOCK_SIZE = 512


class FileKind(enum.Enum):
    DIRECTORY = "directory"
    REGULAR_FILE = "regular_file"


def calculate_blocks(size: int) -> int:
    """Always at least one block, even for an empty file."""
    return size // BLOCK_SIZE + 1


@dataclass(slots=True)
class Attributes:
    inode: int
    size: int
    blocks: int
    kind: FileKind
    perm: int
    nlink: int
    uid: int
    gid: int
    rdev: int = 0
    flags: int = 0
    blksize: int = BLOCK_SIZE
    # We do not track time. Everything lives at the epoch.
    atime_ns: int = 0
    mtime_ns: int = 0
    ctime_ns: int = 0
    crtime_ns: int = 0

    @classmethod
    def root(cls) -> Attributes:
        return cls(
            inode=ROOT_INODE,
            size=0,
            blocks=0,
            kind=FileKind.DIRECTORY,
            perm=0o755,
            nlink=2,
            uid=502,
            gid=20,
        )

    @classmethod
    def regular_file(cls, inode: int, size: int) -> Attributes:
        return cls(
            inode=inode,
            size=size,
            blocks=calculate_blocks(size),
            kind=FileKind.REGULAR_FILE,
            perm=0o755,
            nlink=2,
            uid=501,
            gid=20,
        )


class InodeAllocator:
    def __init__(self) -> None:
        self._last = ROOT_INODE

    def allocate(self) -> int:
        # Increment to infinity.
        self._last += 1
        return self._last


class NamespaceStore:
    """
    NamespaceStore maps names to attributes. It also keeps an inode -> name index next to the
    name-keyed map so that getattr does not need to scan every entry. The two maps are only ever
    mutated together.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Attributes] = {ROOT_NAME: Attributes.root()}
        self._names_by_inode: dict[int, str] = {ROOT_INODE: ROOT_NAME}

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def insert(self, name: str, attrs: Attributes) -> None:
        """Inserts or overwrites the entry for `name`."""
        if name == ROOT_NAME or attrs.inode == ROOT_INODE:
            raise ValueError("The root entry is reserved")
        previous = self._entries.get(name)
        if previous is not None:
            del self._names_by_inode[previous.inode]
        self._entries[name] = attrs
        self._names_by_inode[attrs.inode] = name

    def get(self, name: str) -> Attributes:
        try:
            return self._entries[name]
        except KeyError as e:
            raise EntryNotFoundError(f"No entry named {name!r}") from e

    def get_by_inode(self, inode: int) -> Attributes:
        try:
            return self._entries[self._names_by_inode[inode]]
        except KeyError as e:
            raise EntryNotFoundError(f"No entry with inode {inode}") from e

    def remove(self, name: str) -> Attributes:
        if name == ROOT_NAME:
            raise EntryNotFoundError("The root entry cannot be removed")
        try:
            attrs = self._entries.pop(name)
        except KeyError as e:
            raise EntryNotFoundError(f"No entry named {name!r}") from e
        del self._names_by_inode[attrs.inode]
        return attrs

    def list_all(self) -> list[tuple[str, Attributes]]:
        """All entries, root included, in insertion order."""
        return list(self._entries.items())

    def children(self) -> Iterator[tuple[str, Attributes]]:
        for name, attrs in self._entries.items():
            if name != ROOT_NAME:
                yield name, attrs

    @property
    def root(self) -> Attributes:
        return self._entries[ROOT_NAME]

    def update_root_size(self, size: int, blocks: int) -> None:
        root = self._entries[ROOT_NAME]
        root.size = size
        root.blocks = blocks


class DataStore:
    def __init__(self) -> None:
        self._blobs: dict[int, bytearray] = {}

    def put(self, inode: int, data: bytes) -> None:
        self._blobs[inode] = bytearray(data)

    def get(self, inode: int) -> bytearray:
        try:
            return self._blobs[inode]
        except KeyError as e:
            raise EntryNotFoundError(f"No data for inode {inode}") from e

    def contains(self, inode: int) -> bool:
        return inode in self._blobs

    def remove(self, inode: int) -> None:
        self._blobs.pop(inode, None)


class PathIndex:
    def __init__(self) -> None:
        self._names: dict[int, str] = {}

    def insert(self, inode: int, name: str) -> None:
        self._names[inode] = name

    def lookup(self, inode: int) -> str:
        try:
            return self._names[inode]
        except KeyError as e:
            raise EntryNotFoundError(f"No path for inode {inode}") from e

    def remove(self, inode: int) -> None:
        self._names.pop(inode, None)
