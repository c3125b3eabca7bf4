from __future__ import annotations

import struct
from typing import Union

from pexray.errors import OutOfBounds

BytesLike = Union[bytes, bytearray, memoryview]

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")


class BoundedReader:
    """
    Read-only, bounds-checked view over a caller-owned buffer.
    All integers are little-endian. Any access outside the buffer raises
    OutOfBounds instead of returning a partial value.
    """

    __slots__ = ("_data",)

    def __init__(self, data: BytesLike) -> None:
        self._data = memoryview(data).cast("B").toreadonly()

    def __len__(self) -> int:
        return len(self._data)

    def require(self, offset: int, length: int) -> None:
        if offset < 0 or length < 0 or offset + length > len(self._data):
            raise OutOfBounds(offset=offset, length=length, buffer_length=len(self._data))

    def remaining(self, offset: int) -> int:
        if offset < 0 or offset >= len(self._data):
            return 0
        return len(self._data) - offset

    def _unpack(self, fmt: struct.Struct, offset: int) -> int:
        self.require(offset, fmt.size)
        return fmt.unpack_from(self._data, offset)[0]

    def read_u8(self, offset: int) -> int:
        return self._unpack(_U8, offset)

    def read_u16(self, offset: int) -> int:
        return self._unpack(_U16, offset)

    def read_u32(self, offset: int) -> int:
        return self._unpack(_U32, offset)

    def read_u64(self, offset: int) -> int:
        return self._unpack(_U64, offset)

    def read_bytes(self, offset: int, length: int) -> bytes:
        self.require(offset, length)
        return self._data[offset : offset + length].tobytes()
