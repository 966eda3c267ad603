"""
The dispatcher module implements the filesystem logic, one method per protocol callback. It is freed
from the implementation details of `llfuse`: it accepts str names and integer inodes, returns
Attributes records, and raises EntryNotFoundError for every failure. The llfuse adapter in
`discordfs_vfs` translates both directions.

A few behaviors worth knowing about:

1. Size accounting: The root directory's size is the sum of the sizes of every file. It is
   recomputed on open, write, flush, release, and when a truncate changes a file.

2. Writes overwrite at the offset. The file grows if the write extends past the end, and a gap
   between the old end and the offset is zero-filled.

3. setattr only honors size changes (truncate/extend). Everything else is ignored, because we do
   not track modes, owners, or times.

4. Unlink removes all three records of a file: the namespace entry, the data, and the path index.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from discordfs.common import EntryNotFoundError
from discordfs.stores import (
    ROOT_INODE,
    Attributes,
    DataStore,
    FileKind,
    InodeAllocator,
    NamespaceStore,
    PathIndex,
    calculate_blocks,
)

logger = logging.getLogger(__name__)

# Files created on startup, before the filesystem becomes visible.
SEED_FILES: list[tuple[str, bytes]] = [
    ("hello.txt", b"Hello, World!"),
    ("amongus.txt", b"YOOO I DID IT LETS GOOO"),
]


@dataclass(frozen=True, slots=True)
class DirEntry:
    inode: int
    kind: FileKind
    name: str
    attrs: Attributes
    # Position of the *next* entry. Passing it back as the offset resumes the listing right after
    # this entry.
    cookie: int


@dataclass(frozen=True, slots=True)
class OpenReply:
    fh: int
    flags: int


class OperationDispatcher:
    def __init__(self) -> None:
        self.inodes = InodeAllocator()
        self.namespace = NamespaceStore()
        self.data = DataStore()
        self.paths = PathIndex()

    @staticmethod
    def _check_root(inode: int) -> None:
        if inode != ROOT_INODE:
            raise EntryNotFoundError(f"Inode {inode} is not the root directory")

    def _check_data(self, inode: int) -> None:
        if not self.data.contains(inode):
            raise EntryNotFoundError(f"No data for inode {inode}")

    def add_file(self, name: str, data: bytes) -> Attributes:
        """Register a new file in all three stores at once. An existing file of that name is replaced."""
        if name in self.namespace:
            self.unlink(ROOT_INODE, name)
        inode = self.inodes.allocate()
        attrs = Attributes.regular_file(inode, len(data))
        self.namespace.insert(name, attrs)
        self.data.put(inode, data)
        self.paths.insert(inode, name)
        logger.debug(f"LOGICAL: Added file {name=} with {inode=} and {len(data)=}")
        return attrs

    def seed(self, files: list[tuple[str, bytes]] | None = None) -> None:
        for name, data in SEED_FILES if files is None else files:
            self.add_file(name, data)

    def recompute_size(self) -> int:
        size = 0
        for _, attrs in self.namespace.children():
            if self.data.contains(attrs.inode):
                size += len(self.data.get(attrs.inode))
        self.namespace.update_root_size(size, calculate_blocks(size))
        logger.debug(f"LOGICAL: Recomputed filesystem size to {size=}")
        return size

    def lookup(self, parent_inode: int, name: str) -> Attributes:
        self._check_root(parent_inode)
        return self.namespace.get(name)

    def getattr(self, inode: int) -> Attributes:
        return self.namespace.get_by_inode(inode)

    def read(self, inode: int, offset: int, size: int | None = None) -> bytes:
        # `size` is accepted for protocol compatibility, but we always return everything from the
        # offset to the end of the file.
        data = self.data.get(inode)
        offset = max(0, offset)
        if offset >= len(data):
            return b""
        return bytes(data[offset:])

    def readdir(self, inode: int, offset: int = 0) -> Iterator[DirEntry]:
        """
        Yields the listing of the root directory starting after `offset`. The caller may stop
        consuming at any point (e.g. when its reply buffer is full) and resume later by passing the
        cookie of the last entry it consumed as the new offset.
        """
        self._check_root(inode)
        root = self.namespace.root
        listing: list[tuple[str, Attributes]] = [("..", root)]
        listing.extend(self.namespace.children())
        logger.debug(f"LOGICAL: Built listing of {len(listing)} entries for readdir {offset=}")
        for i, (name, attrs) in enumerate(listing):
            if i < offset:
                continue
            yield DirEntry(inode=attrs.inode, kind=attrs.kind, name=name, attrs=attrs, cookie=i + 1)

    def mknod(self, parent_inode: int, name: str, mode: int = 0, rdev: int = 0) -> Attributes:
        # Caller supplied mode and device are ignored: we only make regular files with the default
        # attributes.
        self._check_root(parent_inode)
        return self.add_file(name, b"\x00")

    def unlink(self, parent_inode: int, name: str) -> None:
        self._check_root(parent_inode)
        attrs = self.namespace.remove(name)
        self.data.remove(attrs.inode)
        self.paths.remove(attrs.inode)
        logger.debug(f"LOGICAL: Removed file {name=} with inode={attrs.inode}")

    def open(self, inode: int, flags: int) -> OpenReply:
        self._check_data(inode)
        self.recompute_size()
        return OpenReply(fh=0, flags=flags)

    def write(self, inode: int, offset: int, data: bytes) -> int:
        attrs = self.namespace.get(self.paths.lookup(inode))
        blob = self.data.get(inode)
        offset = max(0, offset)
        end = offset + len(data)
        if offset > len(blob):
            blob.extend(b"\x00" * (offset - len(blob)))
        blob[offset:end] = data
        if end > attrs.size:
            attrs.size = end
            attrs.blocks = calculate_blocks(end)
        self.recompute_size()
        return len(data)

    def flush(self, inode: int) -> None:
        self._check_data(inode)
        self.recompute_size()

    def release(self, inode: int) -> None:
        self._check_data(inode)
        self.recompute_size()

    def setattr(self, inode: int, size: int | None = None) -> Attributes:
        if inode == ROOT_INODE:
            return self.namespace.root
        attrs = self.namespace.get(self.paths.lookup(inode))
        if size is not None:
            blob = self.data.get(inode)
            size = max(0, size)
            if size < len(blob):
                del blob[size:]
            else:
                blob.extend(b"\x00" * (size - len(blob)))
            attrs.size = size
            attrs.blocks = calculate_blocks(size)
            logger.debug(f"LOGICAL: Truncated {inode=} to {size=}")
            self.recompute_size()
        return attrs
