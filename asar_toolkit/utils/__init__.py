"""Shared binary and path helpers."""

from .binary import align_int
from .packer import Packer, PackerReader
from .paths import basename, dirname, join_path, normalize_path, split_path

__all__ = [
    "align_int",
    "Packer",
    "PackerReader",
    "basename",
    "dirname",
    "join_path",
    "normalize_path",
    "split_path",
]
