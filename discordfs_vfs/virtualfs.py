"""
The virtualfs module mounts the in-memory file collection with `llfuse`. It is written in an
Object-Oriented style because that's how the FUSE libraries tend to be implemented.

The filesystem logic lives in `discordfs.dispatcher.OperationDispatcher`. The VirtualFS class in
this module only handles the annoying implementation details of a low-level virtual filesystem:

1. Names arrive as bytes; the dispatcher wants str.
2. Attributes must be converted into `llfuse.EntryAttributes`.
3. llfuse only passes the file handle to read/write/flush/release, not the inode. Since the
   dispatcher hands out the same file handle for every open file, we give the kernel the inode
   number as the file handle instead, and unwrap it on the way back in.
4. Every EntryNotFoundError is converted into an ENOENT FUSEError.
"""

from __future__ import annotations

import errno
import logging
import random
import stat
import subprocess
from collections.abc import Iterator
from typing import Any

import llfuse

from discordfs import (
    Attributes,
    Config,
    DiscordFSExpectedError,
    EntryNotFoundError,
    FileKind,
    OperationDispatcher,
)

logger = logging.getLogger(__name__)

# Kernel caches entries and attributes for one second.
TTL_SECONDS = 1


class VirtualFS(llfuse.Operations):  # type: ignore
    """
    This is the virtual filesystem class, which implements commands by delegating the logic to
    OperationDispatcher. One instance is created per mount and lives for the whole process.
    """

    def __init__(self, dispatcher: OperationDispatcher | None = None):
        super().__init__()
        self.fs = dispatcher or OperationDispatcher()
        self.default_attrs = {
            # We do not persist inodes across restarts, so any generation will do.
            "generation": random.randint(0, 1000000),
            "entry_timeout": TTL_SECONDS,
            "attr_timeout": TTL_SECONDS,
        }

    def make_entry_attributes(self, attrs: Attributes) -> llfuse.EntryAttributes:
        entry = llfuse.EntryAttributes()
        for k, v in self.default_attrs.items():
            setattr(entry, k, v)
        filetype = stat.S_IFDIR if attrs.kind == FileKind.DIRECTORY else stat.S_IFREG
        entry.st_ino = attrs.inode
        entry.st_mode = filetype | attrs.perm
        entry.st_nlink = attrs.nlink
        entry.st_uid = attrs.uid
        entry.st_gid = attrs.gid
        entry.st_rdev = attrs.rdev
        entry.st_size = attrs.size
        entry.st_blksize = attrs.blksize
        entry.st_blocks = attrs.blocks
        entry.st_atime_ns = attrs.atime_ns
        entry.st_mtime_ns = attrs.mtime_ns
        entry.st_ctime_ns = attrs.ctime_ns
        return entry

    @staticmethod
    def decode_name(name: bytes) -> str:
        try:
            return name.decode()
        except UnicodeDecodeError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e

    def lookup(self, parent_inode: int, name: bytes, _: Any) -> llfuse.EntryAttributes:
        logger.debug(f"FUSE: Received lookup for {parent_inode=}/{name=}")
        try:
            attrs = self.fs.lookup(parent_inode, self.decode_name(name))
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e
        logger.debug(f"FUSE: Resolved lookup {parent_inode=}/{name=} to inode={attrs.inode}")
        return self.make_entry_attributes(attrs)

    def getattr(self, inode: int, _: Any) -> llfuse.EntryAttributes:
        logger.debug(f"FUSE: Received getattr for {inode=}")
        try:
            attrs = self.fs.getattr(inode)
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e
        return self.make_entry_attributes(attrs)

    def setattr(
        self,
        inode: int,
        attr: llfuse.EntryAttributes,
        fields: llfuse.SetattrFields,
        fh: int | None,
        _: Any,
    ) -> llfuse.EntryAttributes:
        logger.debug(f"FUSE: Received setattr for {inode=} {fields=} {fh=}")
        size = attr.st_size if fields.update_size else None
        try:
            attrs = self.fs.setattr(inode, size=size)
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e
        return self.make_entry_attributes(attrs)

    def opendir(self, inode: int, _: Any) -> int:
        logger.debug(f"FUSE: Received opendir for {inode=}")
        # The directory's file handle is its inode; readdir validates it.
        return inode

    def readdir(self, fh: int, offset: int = 0) -> Iterator[tuple[bytes, llfuse.EntryAttributes, int]]:
        logger.debug(f"FUSE: Received readdir for {fh=} {offset=}")
        # llfuse stops consuming this generator once the kernel's buffer is full, and calls us again
        # with the last cookie it consumed.
        try:
            for entry in self.fs.readdir(fh, offset):
                yield entry.name.encode(), self.make_entry_attributes(entry.attrs), entry.cookie
                logger.debug(f"FUSE: Yielded entry {entry.cookie=} in readdir of {fh=}")
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e

    def releasedir(self, fh: int) -> None:
        logger.debug(f"FUSE: Received releasedir for {fh=}")

    def mknod(self, parent_inode: int, name: bytes, mode: int, rdev: int, _: Any) -> llfuse.EntryAttributes:
        logger.debug(f"FUSE: Received mknod for {parent_inode=}/{name=} {mode=}")
        try:
            attrs = self.fs.mknod(parent_inode, self.decode_name(name), mode, rdev)
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e
        return self.make_entry_attributes(attrs)

    def create(
        self,
        parent_inode: int,
        name: bytes,
        mode: int,
        flags: int,
        ctx: Any,
    ) -> tuple[int, llfuse.EntryAttributes]:
        logger.debug(f"FUSE: Received create for {parent_inode=}/{name=} {flags=}")
        entry = self.mknod(parent_inode, name, mode, 0, ctx)
        logger.debug(f"FUSE: Created inode {entry.st_ino} for {name=}; now delegating to open call")
        fh = self.open(entry.st_ino, flags, ctx)
        return fh, entry

    def unlink(self, parent_inode: int, name: bytes, _: Any) -> None:
        logger.debug(f"FUSE: Received unlink for {parent_inode=}/{name=}")
        try:
            self.fs.unlink(parent_inode, self.decode_name(name))
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e

    def open(self, inode: int, flags: int, _: Any) -> int:
        logger.debug(f"FUSE: Received open for {inode=} {flags=}")
        try:
            reply = self.fs.open(inode, flags)
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e
        logger.debug(f"FUSE: Opened {inode=} with {reply=}; handing out the inode as the file handle")
        return inode

    def read(self, fh: int, offset: int, length: int) -> bytes:
        logger.debug(f"FUSE: Received read for {fh=} {offset=} {length=}")
        try:
            # The kernel rejects replies longer than the requested length.
            return self.fs.read(fh, offset, length)[:length]
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e

    def write(self, fh: int, offset: int, data: bytes) -> int:
        logger.debug(f"FUSE: Received write for {fh=} {offset=} {len(data)=}")
        try:
            return self.fs.write(fh, offset, data)
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e

    def flush(self, fh: int) -> None:
        logger.debug(f"FUSE: Received flush for {fh=}")
        try:
            self.fs.flush(fh)
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e

    def release(self, fh: int) -> None:
        logger.debug(f"FUSE: Received release for {fh=}")
        try:
            self.fs.release(fh)
        except EntryNotFoundError as e:
            raise llfuse.FUSEError(errno.ENOENT) from e

    # ============================================================================================
    # Unimplemented stubs. Tools expect these syscalls to exist, so we implement versions of them
    # that do not error, but also do not do anything.
    # ============================================================================================

    def forget(self, inode_list: list[tuple[int, int]]) -> None:
        logger.debug(f"FUSE: Received forget for {inode_list=}")

    def getxattr(self, inode: int, name: bytes, _: Any) -> bytes:
        logger.debug(f"FUSE: Received getxattr for {inode=} {name=}")
        raise llfuse.FUSEError(llfuse.ENOATTR)

    def setxattr(self, inode: int, name: bytes, value: bytes, _: Any) -> None:
        logger.debug(f"FUSE: Received setxattr for {inode=} {name=} {value=}")

    def listxattr(self, inode: int, _: Any) -> Iterator[bytes]:
        logger.debug(f"FUSE: Received listxattr for {inode=}")
        return iter([])

    def removexattr(self, inode: int, name: bytes, _: Any) -> None:
        logger.debug(f"FUSE: Received removexattr for {inode=} {name=}")
        raise llfuse.FUSEError(llfuse.ENOATTR)


def mount_options(c: Config, debug: bool = False) -> set[str]:
    options = set(llfuse.default_options)
    # Permissions are not enforced by us, so the kernel must not enforce them either.
    options.discard("default_permissions")
    options.add(f"fsname={c.vfs.fsname}")
    options.add("rw" if c.vfs.read_write else "ro")
    if c.vfs.auto_unmount:
        options.add("auto_unmount")
    if c.vfs.allow_other:
        options.add("allow_other")
    if debug:
        options.add("debug")
    return options


def mount_virtualfs(c: Config, debug: bool = False) -> None:
    dispatcher = OperationDispatcher()
    if c.seed_files:
        dispatcher.seed()
    c.vfs.mount_dir.mkdir(parents=True, exist_ok=True)
    llfuse.init(VirtualFS(dispatcher), str(c.vfs.mount_dir), mount_options(c, debug))
    try:
        # One worker: the dispatcher is not thread-safe.
        llfuse.main(workers=1)
    except BaseException:
        llfuse.close(unmount=False)
        raise
    llfuse.close()


class UnmountError(DiscordFSExpectedError):
    pass


def unmount_virtualfs(c: Config) -> None:
    mount_dir = str(c.vfs.mount_dir)
    # fusermount is the unprivileged path on Linux; umount covers systems without it (macOS).
    for cmd in (["fusermount", "-u", mount_dir], ["umount", mount_dir]):
        try:
            res = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            logger.debug(f"Unmount command {cmd[0]} not found, trying the next one")
            continue
        if res.returncode != 0:
            reason = res.stderr.strip() or f"{cmd[0]} exited with {res.returncode}"
            raise UnmountError(f"Failed to unmount {mount_dir}: {reason}")
        logger.info(f"Unmounted virtual filesystem at {mount_dir}")
        return
    raise UnmountError(f"Failed to unmount {mount_dir}: neither fusermount nor umount is installed")
