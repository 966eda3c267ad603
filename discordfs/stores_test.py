import pytest

from discordfs.common import EntryNotFoundError
from discordfs.stores import (
    ROOT_INODE,
    ROOT_NAME,
    Attributes,
    DataStore,
    FileKind,
    InodeAllocator,
    NamespaceStore,
    PathIndex,
    calculate_blocks,
)


def test_inode_allocator_starts_above_root_and_never_repeats() -> None:
    alloc = InodeAllocator()
    inodes = [alloc.allocate() for _ in range(5)]
    assert inodes == [2, 3, 4, 5, 6]
    assert ROOT_INODE not in inodes


def test_calculate_blocks() -> None:
    assert calculate_blocks(0) == 1
    assert calculate_blocks(511) == 1
    assert calculate_blocks(512) == 2
    assert calculate_blocks(1537) == 4


def test_namespace_store_has_root() -> None:
    ns = NamespaceStore()
    assert ns.root.inode == ROOT_INODE
    assert ns.root.kind == FileKind.DIRECTORY
    assert ns.get(ROOT_NAME) is ns.root
    assert ns.get_by_inode(ROOT_INODE) is ns.root
    assert list(ns.children()) == []


def test_namespace_store_insert_get_remove() -> None:
    ns = NamespaceStore()
    attrs = Attributes.regular_file(2, 13)
    ns.insert("hello.txt", attrs)
    assert ns.get("hello.txt") is attrs
    assert ns.get_by_inode(2) is attrs
    assert "hello.txt" in ns

    assert ns.remove("hello.txt") is attrs
    with pytest.raises(EntryNotFoundError):
        ns.get("hello.txt")
    with pytest.raises(EntryNotFoundError):
        ns.get_by_inode(2)
    with pytest.raises(EntryNotFoundError):
        ns.remove("hello.txt")


def test_namespace_store_overwrite_keeps_inode_index_consistent() -> None:
    ns = NamespaceStore()
    ns.insert("a", Attributes.regular_file(2, 1))
    ns.insert("a", Attributes.regular_file(3, 1))
    assert ns.get("a").inode == 3
    assert ns.get_by_inode(3).inode == 3
    with pytest.raises(EntryNotFoundError):
        ns.get_by_inode(2)


def test_namespace_store_protects_root() -> None:
    ns = NamespaceStore()
    with pytest.raises(EntryNotFoundError):
        ns.remove(ROOT_NAME)
    with pytest.raises(ValueError):
        ns.insert(ROOT_NAME, Attributes.regular_file(2, 1))
    with pytest.raises(ValueError):
        ns.insert("x", Attributes.root())


def test_namespace_store_list_all_preserves_insertion_order() -> None:
    ns = NamespaceStore()
    ns.insert("zzz", Attributes.regular_file(2, 1))
    ns.insert("aaa", Attributes.regular_file(3, 1))
    assert [name for name, _ in ns.list_all()] == [ROOT_NAME, "zzz", "aaa"]
    assert [name for name, _ in ns.children()] == ["zzz", "aaa"]


def test_namespace_store_update_root_size() -> None:
    ns = NamespaceStore()
    ns.update_root_size(1024, 3)
    assert ns.root.size == 1024
    assert ns.root.blocks == 3
    assert ns.root.perm == 0o755


def test_data_store() -> None:
    ds = DataStore()
    assert not ds.contains(2)
    with pytest.raises(EntryNotFoundError):
        ds.get(2)
    ds.put(2, b"abc")
    assert ds.contains(2)
    assert ds.get(2) == b"abc"
    ds.put(2, b"de")
    assert ds.get(2) == b"de"
    ds.remove(2)
    assert not ds.contains(2)


def test_path_index() -> None:
    pi = PathIndex()
    pi.insert(2, "hello.txt")
    assert pi.lookup(2) == "hello.txt"
    pi.remove(2)
    with pytest.raises(EntryNotFoundError):
        pi.lookup(2)
