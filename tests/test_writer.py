"""Tests for the archive builder."""

import pytest

from asar_toolkit.archive.header import FileNode, NodeKind, find_node, iter_files, parse_header
from asar_toolkit.archive.reader import extract_all, extract_file
from asar_toolkit.archive.writer import (
    ArchiveEntry,
    build_header,
    create_package,
    flatten_tree,
    make_nested_tree,
    pack_directory,
    to_bytes,
    write_package,
)


def sample_tree() -> dict:
    return {
        "package.json": '{"name": "app"}',
        "lib": {
            "index.js": b"module.exports = 1;\n",
            "empty.txt": b"",
            "deep": {"x.bin": bytes(range(7))},
        },
        "README": "readme",
    }


class TestMakeNestedTree:
    def test_nests_paths(self):
        tree = make_nested_tree({"a.txt": b"1", "dir/b.txt": b"2", "/dir/sub/c": b"3"})
        assert tree == {"a.txt": b"1", "dir": {"b.txt": b"2", "sub": {"c": b"3"}}}

    def test_file_directory_conflict(self):
        with pytest.raises(ValueError, match="conflicts"):
            make_nested_tree({"dir": b"1", "dir/b.txt": b"2"})

    def test_directory_file_conflict(self):
        with pytest.raises(ValueError, match="conflicts"):
            make_nested_tree({"dir/b.txt": b"2", "dir": b"1"})

    def test_empty_path(self):
        with pytest.raises(ValueError, match="Empty"):
            make_nested_tree({"/": b"1"})


class TestBuild:
    """Tests for create_package."""

    def test_round_trip_header(self):
        tree = sample_tree()
        assert parse_header(create_package(tree)).root == build_header(tree)

    def test_round_trip_contents(self):
        data = create_package(sample_tree())
        assert extract_file(data, "/lib/deep/x.bin") == bytes(range(7))
        assert extract_file(data, "/package.json") == b'{"name": "app"}'
        assert extract_file(data, "/lib/empty.txt") == b""

    def test_idempotent_rebuild(self):
        first = create_package(sample_tree())
        rebuilt = create_package(extract_all(first), flat=True)
        assert rebuilt == first

    def test_deterministic(self):
        assert create_package(sample_tree()) == create_package(sample_tree())

    def test_flat_and_nested_agree(self):
        tree = sample_tree()
        assert create_package(flatten_tree(tree), flat=True) == create_package(tree)

    def test_offsets_are_monotonic(self):
        root = parse_header(create_package(sample_tree())).root
        expected = 0
        for _, node in iter_files(root):
            assert node.offset == expected
            expected += node.size

    def test_offsets_within_directory(self):
        root = build_header({"d": {"a": b"12", "b": b"345", "c": b"6"}})
        d = root.files["d"]
        assert [d.files[n].offset for n in ("a", "b", "c")] == [0, 2, 5]

    def test_empty_archive(self):
        data = create_package({})
        header = parse_header(data)
        assert header.root.files == {}
        assert header.descriptors() == []

    def test_empty_directory_kept(self):
        header = parse_header(create_package({"empty": {}, "a": b"x"}))
        assert header.root.files["empty"].kind is NodeKind.DIRECTORY

    def test_unicode_names(self):
        data = create_package({"日本語.txt": "テキスト"})
        assert extract_file(data, "/日本語.txt") == "テキスト".encode("utf-8")

    def test_unsupported_content(self):
        with pytest.raises(TypeError):
            to_bytes(42)


class TestLeafMetadata:
    def test_unpacked_placeholder(self):
        data = create_package(
            {"a.txt": "hi", "native.node": FileNode(size=100, unpacked=True), "b.txt": "yo"},
            flat=True,
        )
        root = parse_header(data).root
        node = find_node(root, "/native.node")
        assert node.unpacked
        assert node.offset is None
        # No payload and no offset slot for the unpacked entry
        assert find_node(root, "/b.txt").offset == 2
        assert extract_file(data, "/b.txt") == b"yo"

    def test_placeholder_must_be_unpacked(self):
        with pytest.raises(ValueError, match="unpacked"):
            create_package({"a.txt": FileNode(size=1)})

    def test_archive_entry_flags(self):
        data = create_package(
            {"run.sh": ArchiveEntry("abc", executable=True, extra={"link": "x"})}
        )
        node = find_node(parse_header(data).root, "/run.sh")
        assert node.executable
        assert node.extra == {"link": "x"}
        assert node.size == 3
        assert extract_file(data, "/run.sh") == b"abc"


class TestDisk:
    def test_pack_directory(self, tmp_path):
        source = tmp_path / "src"
        (source / "lib").mkdir(parents=True)
        (source / "main.js").write_text("console.log(1)")
        (source / "lib" / "util.js").write_bytes(b"x")

        data = pack_directory(source)
        assert [d.path for d in parse_header(data).descriptors()] == ["/lib/util.js", "/main.js"]
        assert extract_file(data, "/main.js") == b"console.log(1)"

    def test_write_package(self, tmp_path):
        output = write_package({"a.txt": "hi"}, tmp_path / "out.asar")
        assert extract_file(output.read_bytes(), "/a.txt") == b"hi"
