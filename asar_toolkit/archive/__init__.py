"""ASAR archive codec: header parsing, extraction, building and patching."""

from .dispatch import ArchiveDispatcher, DispatchOp, ParsedHeader
from .header import (
    ArchiveHeader,
    DirectoryNode,
    FileDescriptor,
    FileNode,
    NodeKind,
    find_node,
    list_entries,
    parse_header,
    read_header,
)
from .patch import add_files, delete_files, modify_package, patch_package
from .reader import (
    ArchiveReader,
    extract_all,
    extract_file,
    extract_files,
    list_package,
    read_file_text,
)
from .writer import ArchiveEntry, create_package, pack_directory, write_package

__all__ = [
    "ArchiveDispatcher",
    "ArchiveEntry",
    "ArchiveHeader",
    "ArchiveReader",
    "DirectoryNode",
    "DispatchOp",
    "FileDescriptor",
    "FileNode",
    "NodeKind",
    "ParsedHeader",
    "add_files",
    "create_package",
    "delete_files",
    "extract_all",
    "extract_file",
    "extract_files",
    "find_node",
    "list_entries",
    "list_package",
    "modify_package",
    "pack_directory",
    "parse_header",
    "patch_package",
    "read_file_text",
    "read_header",
    "write_package",
]
