"""Tests for ArchiveSession."""

import base64
import hashlib

import httpx
import pytest

from asar_toolkit.archive.header import FileNode, find_node, parse_header
from asar_toolkit.archive.reader import extract_file, list_package
from asar_toolkit.archive.writer import ArchiveEntry, create_package
from asar_toolkit.config import ToolkitConfig
from asar_toolkit.errors import DispatchError, NoArchiveLoaded
from asar_toolkit.history import MemoryRecordStore
from asar_toolkit.session import ArchiveSession, decode_data_url


def sample_archive() -> bytes:
    return create_package({"a.txt": "hi", "dir/b.txt": "bye"}, flat=True)


@pytest.fixture
def session():
    with ArchiveSession(ToolkitConfig(max_workers=2)) as s:
        yield s


@pytest.fixture
def stored_session():
    with ArchiveSession(ToolkitConfig(max_workers=2), store=MemoryRecordStore()) as s:
        yield s


def mock_httpx(monkeypatch, handler):
    """Route every httpx.Client through a mock transport."""
    real_client = httpx.Client

    def client(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "Client", client)


class TestLoading:
    def test_load_bytes(self, session):
        data = sample_archive()
        meta = session.load_bytes(data, name="app.asar")

        assert meta.id.startswith("R-")
        assert meta.name == "app.asar"
        assert meta.size == len(data)
        assert meta.hash == hashlib.sha256(data).hexdigest()
        assert session.archive_id == meta.id
        assert session.read_file("/dir/b.txt") == b"bye"

    def test_custom_id_prefix(self):
        with ArchiveSession(ToolkitConfig(id_prefix="X")) as s:
            assert s.load_bytes(sample_archive()).id.startswith("X-")

    def test_ids_are_unique(self, session):
        first = session.load_bytes(sample_archive()).id
        second = session.load_bytes(sample_archive()).id
        assert first != second

    def test_load_file(self, session, tmp_path):
        path = tmp_path / "app.asar"
        path.write_bytes(sample_archive())
        meta = session.load_file(path)
        assert meta.name == "app.asar"
        assert meta.source == "file"

    def test_load_malformed(self, stored_session):
        with pytest.raises(DispatchError, match="too small"):
            stored_session.load_bytes(b"\x00" * 8)
        assert not stored_session.loaded
        assert len(stored_session.store) == 0

    def test_close(self, session):
        session.load_bytes(sample_archive())
        session.close()
        assert not session.loaded
        assert not session.fs.exists("/a.txt")
        with pytest.raises(NoArchiveLoaded):
            session.export()


class TestLoadUrl:
    def test_data_url(self, session):
        data = sample_archive()
        url = "data:application/octet-stream;base64," + base64.b64encode(data).decode("ascii")
        meta = session.load_url(url)
        assert meta.name == "data-url.asar"
        assert meta.source == "data-url"
        assert session.read_file("/a.txt") == b"hi"

    def test_malformed_data_url(self):
        with pytest.raises(ValueError):
            decode_data_url("data:application/octet-stream;base64")

    def test_http_url(self, session, monkeypatch):
        data = sample_archive()
        requested = []

        def handler(request):
            requested.append(str(request.url))
            return httpx.Response(200, content=data)

        mock_httpx(monkeypatch, handler)
        meta = session.load_url("https://example.com/releases/app.asar")

        assert requested == ["https://example.com/releases/app.asar"]
        assert meta.name == "app.asar"
        assert meta.source == "url"
        assert meta.source_url == "https://example.com/releases/app.asar"
        assert session.read_file("/dir/b.txt") == b"bye"

    def test_http_url_without_name(self, session, monkeypatch):
        mock_httpx(monkeypatch, lambda request: httpx.Response(200, content=sample_archive()))
        assert session.load_url("https://example.com/").name == "remote.asar"

    def test_http_error(self, session, monkeypatch):
        mock_httpx(monkeypatch, lambda request: httpx.Response(404))
        with pytest.raises(httpx.HTTPStatusError):
            session.load_url("https://example.com/missing.asar")
        assert not session.loaded

    def test_unsupported_scheme(self, session):
        with pytest.raises(ValueError, match="scheme"):
            session.load_url("ftp://example.com/app.asar")


class TestEditing:
    def test_save_file_and_export(self, session):
        session.load_bytes(sample_archive())
        session.save_file("/a.txt", "HI")

        assert session.modified_files() == ["/a.txt"]
        assert session.has_modifications

        exported = session.export()
        assert extract_file(exported, "/a.txt") == b"HI"
        assert extract_file(exported, "/dir/b.txt") == b"bye"

    def test_save_file_uses_configured_encoding(self):
        with ArchiveSession(ToolkitConfig(text_encoding="utf-16-le")) as s:
            s.load_bytes(sample_archive())
            s.save_file("/a.txt", "hi")
            assert s.read_file("/a.txt") == "hi".encode("utf-16-le")

    def test_export_includes_deletions(self, session):
        session.load_bytes(sample_archive())
        session.fs.delete("/dir", recursive=True)
        assert list_package(session.export()) == ["/a.txt"]

    def test_reset_file(self, session):
        session.load_bytes(sample_archive())
        session.save_file("/a.txt", "HI")
        session.reset_file("/a.txt")
        assert not session.has_modifications
        assert session.read_file("/a.txt") == b"hi"

    def test_reset_all(self, session):
        session.load_bytes(sample_archive())
        session.save_file("/a.txt", "HI")
        session.save_file("/c.txt", "new")
        session.reset_all()
        assert session.modified_files() == []
        assert not session.fs.exists("/c.txt")

    def test_save_without_archive(self, session):
        with pytest.raises(NoArchiveLoaded):
            session.save_file("/a.txt", "x")


class TestExport:
    def test_export_async(self, session):
        session.load_bytes(sample_archive())
        session.save_file("/a.txt", "HI")
        request_id = session.export_async()
        exported = session.collect_export(request_id, timeout=5)
        assert extract_file(exported, "/a.txt") == b"HI"

    def test_stale_export_is_dropped(self, session):
        session.load_bytes(sample_archive())
        session.save_file("/a.txt", "HI")
        request_id = session.export_async()

        session.load_bytes(sample_archive())
        assert session.collect_export(request_id) is None
        assert request_id not in session.dispatcher.pending()

    def test_export_after_close_is_dropped(self, session):
        session.load_bytes(sample_archive())
        request_id = session.export_async()
        session.close()
        assert session.collect_export(request_id) is None

    def test_export_keeps_unpacked_entries(self, session):
        session.load_bytes(
            create_package(
                {
                    "a.txt": "hi",
                    "native.node": FileNode(size=100, unpacked=True),
                    "run.sh": ArchiveEntry("abc", executable=True),
                },
                flat=True,
            )
        )
        assert not session.fs.exists("/native.node")
        session.save_file("/a.txt", "HI")

        exported = session.export()
        assert list_package(exported) == ["/a.txt", "/native.node", "/run.sh"]
        assert extract_file(exported, "/a.txt") == b"HI"
        root = parse_header(exported).root
        assert find_node(root, "/native.node").unpacked
        assert find_node(root, "/run.sh").executable

    def test_save_original(self, session, tmp_path):
        data = sample_archive()
        session.load_bytes(data)
        session.save_file("/a.txt", "HI")
        path = session.save_original(tmp_path / "original.asar")
        assert path.read_bytes() == data

    def test_save_modified(self, session, tmp_path):
        session.load_bytes(sample_archive())
        session.save_file("/a.txt", "HI")
        path = session.save_modified(tmp_path / "app-modified.asar")
        assert extract_file(path.read_bytes(), "/a.txt") == b"HI"


class TestPersistence:
    def test_load_saves_record(self, stored_session):
        data = sample_archive()
        meta = stored_session.load_bytes(data, name="app.asar")
        assert stored_session.store.get(meta.id) == data
        assert stored_session.store.get_meta(meta.id).name == "app.asar"

    def test_same_bytes_reuse_record(self, stored_session):
        first = stored_session.load_bytes(sample_archive())
        second = stored_session.load_bytes(sample_archive())
        assert first.id == second.id
        assert len(stored_session.store) == 1

    def test_persist_and_restore(self, stored_session):
        meta = stored_session.load_bytes(sample_archive())
        stored_session.save_file("/a.txt", "HI")
        stored_session.save_file("/dir/c.txt", "new")
        assert stored_session.persist_modifications() == 2

        stored_session.load_bytes(sample_archive())
        assert stored_session.archive_id == meta.id
        assert stored_session.modified_files() == []

        assert stored_session.restore_modifications() == 2
        assert stored_session.read_file("/a.txt") == b"HI"
        assert stored_session.read_file("/dir/c.txt") == b"new"

    def test_persist_replaces_previous_content(self, stored_session):
        meta = stored_session.load_bytes(sample_archive())
        stored_session.save_file("/a.txt", "one")
        stored_session.persist_modifications()
        stored_session.save_file("/a.txt", "two")
        stored_session.persist_modifications()

        (mod,) = stored_session.store.get_modifications(meta.id)
        assert mod.content == b"two"

    def test_create_snapshot(self, stored_session):
        meta = stored_session.load_bytes(sample_archive())
        stored_session.save_file("/a.txt", "HI")
        snapshot = stored_session.create_snapshot("first edit", description="uppercase")

        assert snapshot.modified_files == ["/a.txt"]
        (stored,) = stored_session.store.get_snapshots(meta.id)
        assert stored.name == "first edit"
        assert stored.description == "uppercase"
        (mod,) = stored_session.store.get_modifications(meta.id)
        assert mod.snapshot_id == snapshot.id

    def test_save_modified_records_parent(self, stored_session, tmp_path):
        meta = stored_session.load_bytes(sample_archive())
        stored_session.save_file("/a.txt", "HI")
        stored_session.save_modified(tmp_path / "out.asar")

        (child,) = stored_session.store.list_by_parent(meta.id)
        assert child.name == "out.asar"
        assert extract_file(stored_session.store.get(child.id), "/a.txt") == b"HI"

    def test_load_record(self, stored_session, tmp_path):
        meta = stored_session.load_bytes(sample_archive())
        stored_session.save_file("/a.txt", "HI")
        stored_session.save_modified(tmp_path / "out.asar")
        (child,) = stored_session.store.list_by_parent(meta.id)

        stored_session.load_record(child.id)
        assert stored_session.archive_id == child.id
        assert stored_session.read_file("/a.txt") == b"HI"

    def test_persistence_needs_store(self, session):
        session.load_bytes(sample_archive())
        with pytest.raises(RuntimeError, match="store"):
            session.persist_modifications()
