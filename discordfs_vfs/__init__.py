from discordfs import initialize_logging
from discordfs_vfs.virtualfs import UnmountError, VirtualFS, mount_virtualfs, unmount_virtualfs

__all__ = [
    "UnmountError",
    "VirtualFS",
    "mount_virtualfs",
    "unmount_virtualfs",
]

initialize_logging(__name__)
