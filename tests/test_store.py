"""Tests for the in-memory record store."""

import pytest

from asar_toolkit.history import ArchiveMeta, FileModification, MemoryRecordStore, Snapshot


def make_meta(record_id: str, **kwargs) -> ArchiveMeta:
    return ArchiveMeta(id=record_id, name=f"{record_id}.asar", size=10, **kwargs)


class TestArchiveRecords:
    def test_save_and_get(self):
        store = MemoryRecordStore()
        store.save("R-1", b"data", make_meta("R-1", hash="abc"))
        assert store.get("R-1") == b"data"
        assert store.get_meta("R-1").hash == "abc"

    def test_unknown(self):
        store = MemoryRecordStore()
        assert store.get("nope") is None
        assert store.get_meta("nope") is None

    def test_id_mismatch(self):
        with pytest.raises(ValueError):
            MemoryRecordStore().save("R-1", b"", make_meta("R-2"))

    def test_meta_is_copied(self):
        store = MemoryRecordStore()
        meta = make_meta("R-1")
        store.save("R-1", b"", meta)
        meta.name = "changed"
        assert store.get_meta("R-1").name == "R-1.asar"

    def test_list_all_newest_first(self):
        store = MemoryRecordStore()
        store.save("R-1", b"", make_meta("R-1", imported_at=1.0))
        store.save("R-2", b"", make_meta("R-2", imported_at=2.0))
        assert [m.id for m in store.list_all()] == ["R-2", "R-1"]

    def test_list_by_hash(self):
        store = MemoryRecordStore()
        store.save("R-1", b"", make_meta("R-1", hash="aa"))
        store.save("R-2", b"", make_meta("R-2", hash="bb"))
        assert [m.id for m in store.list_by_hash("bb")] == ["R-2"]
        assert store.list_by_hash("cc") == []

    def test_list_by_parent(self):
        store = MemoryRecordStore()
        store.save("R-1", b"", make_meta("R-1"))
        store.save("R-2", b"", make_meta("R-2", parent_id="R-1"))
        assert [m.id for m in store.list_by_parent("R-1")] == ["R-2"]

    def test_delete_cascades(self):
        store = MemoryRecordStore()
        store.save("R-1", b"", make_meta("R-1"))
        store.save_snapshot(Snapshot(id="S-1", archive_id="R-1", name="snap"))
        store.save_modification(FileModification(id="M-1", archive_id="R-1", path="/a", content=b"x"))

        store.delete("R-1")
        assert store.get("R-1") is None
        assert store.get_snapshots("R-1") == []
        assert store.get_modifications("R-1") == []


class TestModifications:
    def test_replaces_same_path(self):
        store = MemoryRecordStore()
        store.save_modification(FileModification(id="M-1", archive_id="R-1", path="/a", content=b"1"))
        store.save_modification(FileModification(id="M-2", archive_id="R-1", path="/a", content=b"2"))
        assert [m.id for m in store.get_modifications("R-1")] == ["M-2"]
        assert store.get_modification("R-1", "/a").content == b"2"

    def test_scoped_by_archive(self):
        store = MemoryRecordStore()
        store.save_modification(FileModification(id="M-1", archive_id="R-1", path="/a", content=b"1"))
        store.save_modification(FileModification(id="M-2", archive_id="R-2", path="/a", content=b"2"))
        assert store.get_modification("R-1", "/a").content == b"1"
        assert len(store.get_modifications("R-2")) == 1

    def test_delete_and_clear(self):
        store = MemoryRecordStore()
        store.save_modification(FileModification(id="M-1", archive_id="R-1", path="/a", content=b"1"))
        store.save_modification(FileModification(id="M-2", archive_id="R-1", path="/b", content=b"2"))

        store.delete_modification("R-1", "/a")
        assert store.get_modification("R-1", "/a") is None
        store.clear_modifications("R-1")
        assert store.get_modifications("R-1") == []


class TestSnapshots:
    def test_newest_first(self):
        store = MemoryRecordStore()
        store.save_snapshot(Snapshot(id="S-1", archive_id="R-1", name="old", created_at=1.0))
        store.save_snapshot(Snapshot(id="S-2", archive_id="R-1", name="new", created_at=2.0))
        assert [s.name for s in store.get_snapshots("R-1")] == ["new", "old"]

    def test_duplicate_id(self):
        store = MemoryRecordStore()
        store.save_snapshot(Snapshot(id="S-1", archive_id="R-1", name="a"))
        with pytest.raises(ValueError):
            store.save_snapshot(Snapshot(id="S-1", archive_id="R-1", name="b"))

    def test_delete_removes_snapshot_modifications(self):
        store = MemoryRecordStore()
        store.save_snapshot(Snapshot(id="S-1", archive_id="R-1", name="a"))
        store.save_modification(
            FileModification(id="M-1", archive_id="R-1", path="/a", content=b"1", snapshot_id="S-1")
        )
        store.save_modification(FileModification(id="M-2", archive_id="R-1", path="/b", content=b"2"))

        store.delete_snapshot("S-1")
        assert store.get_snapshots("R-1") == []
        assert [m.id for m in store.get_modifications("R-1")] == ["M-2"]
