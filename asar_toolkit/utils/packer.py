"""Length-prefixed binary value packer.

The archive header is serialized through this packer. A packer buffer is a
4-byte little-endian payload length followed by the payload. Every value
written to the payload is padded with zeros to a 4-byte boundary, and every
read advances the cursor by the same aligned size.
"""

import struct
from typing import Union

from ..errors import BoundsError
from .binary import (
    SIZE_DOUBLE,
    SIZE_FLOAT,
    SIZE_INT32,
    SIZE_UINT32,
    align_int,
    read_i32_le,
    read_u32_le,
    write_i32_le,
    write_u32_le,
)

# Allocation granularity of the payload region
PAYLOAD_UNIT = 64

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
UINT32_MAX = 2**32 - 1


class PackerReader:
    """Cursor over the payload of a Packer."""

    def __init__(self, packer: "Packer"):
        self._data = packer.buffer
        self._payload_offset = packer.header_size
        self._read_index = 0
        self._end_index = packer.payload_size

    def tell(self) -> int:
        return self._read_index

    def remaining(self) -> int:
        """Return number of payload bytes left to read."""
        return self._end_index - self._read_index

    def read_bool(self) -> bool:
        return self.read_int32() != 0

    def read_int32(self) -> int:
        return read_i32_le(self._data, self._take(SIZE_INT32))

    def read_uint32(self) -> int:
        return read_u32_le(self._data, self._take(SIZE_UINT32))

    def read_float32(self) -> float:
        offset = self._take(SIZE_FLOAT)
        return struct.unpack_from("<f", self._data, offset)[0]

    def read_float64(self) -> float:
        offset = self._take(SIZE_DOUBLE)
        return struct.unpack_from("<d", self._data, offset)[0]

    def read_string(self) -> str:
        """Read an int32 length followed by that many UTF-8 bytes."""
        length = self.read_int32()
        if length < 0:
            self._read_index = self._end_index
            raise BoundsError(f"Negative string length: {length}")
        return self.read_bytes(length).decode("utf-8")

    def read_bytes(self, length: int) -> bytes:
        offset = self._take(length)
        return bytes(self._data[offset : offset + length])

    def _take(self, length: int) -> int:
        """Return the absolute offset of the next value and advance past it.

        A read that does not fit in the payload pins the cursor at the end.
        """
        if length > self._end_index - self._read_index:
            self._read_index = self._end_index
            raise BoundsError(f"Failed to read data with length of {length}")
        offset = self._payload_offset + self._read_index
        aligned = align_int(length, SIZE_UINT32)
        if self._end_index - self._read_index < aligned:
            self._read_index = self._end_index
        else:
            self._read_index += aligned
        return offset


class Packer:
    """Growable buffer of 4-byte aligned values behind a payload length prefix."""

    def __init__(self):
        self._buffer = bytearray()
        self._header_size = SIZE_UINT32
        self._capacity = 0
        self._write_offset = 0
        self._read_only = False
        self._resize(PAYLOAD_UNIT)
        self._set_payload_size(0)

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, memoryview]) -> "Packer":
        """Wrap existing packer bytes for reading.

        The header size is whatever precedes the declared payload. When it is
        larger than the buffer or not 4-byte aligned the buffer is treated as
        headerless and the payload is empty.
        """
        packer = cls.__new__(cls)
        packer._buffer = bytes(data)
        packer._capacity = 0
        packer._write_offset = 0
        packer._read_only = True

        payload_size = read_u32_le(packer._buffer) if len(packer._buffer) >= SIZE_UINT32 else 0
        header_size = len(packer._buffer) - payload_size
        if (
            header_size < 0
            or header_size > len(packer._buffer)
            or header_size != align_int(header_size, SIZE_UINT32)
            or header_size < SIZE_UINT32
        ):
            packer._buffer = b""
            header_size = 0
        packer._header_size = header_size
        return packer

    @property
    def buffer(self) -> Union[bytes, bytearray]:
        return self._buffer

    @property
    def header_size(self) -> int:
        return self._header_size

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def payload_size(self) -> int:
        if len(self._buffer) < SIZE_UINT32:
            return 0
        return read_u32_le(self._buffer)

    def reader(self) -> PackerReader:
        return PackerReader(self)

    def to_bytes(self) -> bytes:
        return bytes(self._buffer[: self._header_size + self.payload_size])

    def write_bool(self, value: bool) -> bool:
        return self.write_int32(1 if value else 0)

    def write_int32(self, value: int) -> bool:
        if not INT32_MIN <= value <= INT32_MAX:
            return False
        return self.write_bytes(write_i32_le(value))

    def write_uint32(self, value: int) -> bool:
        if not 0 <= value <= UINT32_MAX:
            return False
        return self.write_bytes(write_u32_le(value))

    def write_float32(self, value: float) -> bool:
        return self._write_struct("<f", value, SIZE_FLOAT)

    def write_float64(self, value: float) -> bool:
        return self._write_struct("<d", value, SIZE_DOUBLE)

    def write_string(self, value: str) -> bool:
        """Write an int32 byte length followed by the UTF-8 encoded text."""
        encoded = value.encode("utf-8")
        if not self.write_int32(len(encoded)):
            return False
        return self.write_bytes(encoded)

    def write_bytes(self, data: Union[bytes, bytearray, memoryview]) -> bool:
        if self._read_only:
            return False
        length = len(data)
        start = self._reserve(length)
        self._buffer[start : start + length] = data
        self._commit(length)
        return True

    def _write_struct(self, fmt: str, value, size: int) -> bool:
        if self._read_only:
            return False
        start = self._reserve(size)
        struct.pack_into(fmt, self._buffer, start, value)
        self._commit(size)
        return True

    def _reserve(self, length: int) -> int:
        """Grow the buffer to fit an aligned value and return its start offset."""
        new_size = self._write_offset + align_int(length, SIZE_UINT32)
        if new_size > self._capacity:
            self._resize(max(self._capacity * 2, new_size))
        return self._header_size + self._write_offset

    def _commit(self, length: int) -> None:
        """Zero fill the alignment tail and publish the new payload size."""
        aligned = align_int(length, SIZE_UINT32)
        start = self._header_size + self._write_offset
        self._buffer[start + length : start + aligned] = bytes(aligned - length)
        self._write_offset += aligned
        self._set_payload_size(self._write_offset)

    def _set_payload_size(self, payload_size: int) -> None:
        self._buffer[:SIZE_UINT32] = write_u32_le(payload_size)

    def _resize(self, new_capacity: int) -> None:
        new_capacity = align_int(new_capacity, PAYLOAD_UNIT)
        self._buffer.extend(bytes(self._header_size + new_capacity - len(self._buffer)))
        self._capacity = new_capacity

    def __repr__(self) -> str:
        return f"Packer(payload_size={self.payload_size}, capacity={self._capacity})"
