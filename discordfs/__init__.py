from discordfs.common import (
    VERSION,
    DiscordFSError,
    DiscordFSExpectedError,
    EntryNotFoundError,
    initialize_logging,
)
from discordfs.config import Config, VirtualFSConfig
from discordfs.dispatcher import SEED_FILES, DirEntry, OpenReply, OperationDispatcher
from discordfs.stores import (
    ROOT_INODE,
    Attributes,
    DataStore,
    FileKind,
    InodeAllocator,
    NamespaceStore,
    PathIndex,
)

__all__ = [
    # Plumbing
    "initialize_logging",
    "VERSION",
    # Errors
    "DiscordFSError",
    "DiscordFSExpectedError",
    "EntryNotFoundError",
    # Configuration
    "Config",
    "VirtualFSConfig",
    # Data Model
    "ROOT_INODE",
    "Attributes",
    "FileKind",
    "InodeAllocator",
    "NamespaceStore",
    "DataStore",
    "PathIndex",
    # Operations
    "SEED_FILES",
    "DirEntry",
    "OpenReply",
    "OperationDispatcher",
]

initialize_logging(__name__)
