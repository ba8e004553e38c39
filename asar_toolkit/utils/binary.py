"""Little-endian binary helpers shared by the packer and the header codec."""

import struct

# sizeof(T) on the wire
SIZE_INT32 = 4
SIZE_UINT32 = 4
SIZE_FLOAT = 4
SIZE_DOUBLE = 8


def align_int(value: int, alignment: int) -> int:
    """Round value up to the next multiple of alignment."""
    return value + (alignment - value % alignment) % alignment


def read_u32_le(data: bytes, offset: int = 0) -> int:
    """Read a little-endian 32-bit unsigned integer from bytes."""
    return struct.unpack_from("<I", data, offset)[0]


def read_i32_le(data: bytes, offset: int = 0) -> int:
    """Read a little-endian 32-bit signed integer from bytes."""
    return struct.unpack_from("<i", data, offset)[0]


def write_u32_le(value: int) -> bytes:
    """Write a little-endian 32-bit unsigned integer."""
    return struct.pack("<I", value)


def write_i32_le(value: int) -> bytes:
    """Write a little-endian 32-bit signed integer."""
    return struct.pack("<i", value)
