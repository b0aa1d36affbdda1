import struct
from typing import Union

from .exceptions import TruncatedReadError

Buffer = Union[bytes, bytearray, memoryview]


class ByteCursor:
    """Sequential little-endian reader over an in-memory buffer.
    Every read is checked against the end of the buffer. A read that would
    go past the end raises TruncatedReadError and leaves the position alone."""

    def __init__(self, data: Buffer, offset: int = 0):
        self._view = memoryview(data).toreadonly()
        self._offset = offset

    def __len__(self) -> int:
        return len(self._view)

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return max(0, len(self._view) - self._offset)

    def at_end(self) -> bool:
        return self.remaining == 0

    def _check(self, size: int):
        if size < 0 or self._offset < 0 or size > self.remaining:
            raise TruncatedReadError(
                f"Cannot read {size} bytes at offset 0x{self._offset:x} (buffer size 0x{len(self._view):x})"
            )

    def unpack(self, struct_fmt: str) -> tuple:
        size = struct.calcsize(struct_fmt)
        self._check(size)
        items = struct.unpack_from(struct_fmt, self._view, offset=self._offset)
        self._offset += size
        return items

    def read_u8(self) -> int:
        (value,) = self.unpack("<B")
        return value

    def read_u16(self) -> int:
        (value,) = self.unpack("<H")
        return value

    def read_u32(self) -> int:
        (value,) = self.unpack("<I")
        return value

    def read_u64(self) -> int:
        (value,) = self.unpack("<Q")
        return value

    def read_bytes(self, size: int) -> bytes:
        self._check(size)
        data = bytes(self._view[self._offset : self._offset + size])
        self._offset += size
        return data

    def skip(self, size: int):
        self._check(size)
        self._offset += size

    def seek(self, offset: int):
        if not 0 <= offset <= len(self._view):
            raise TruncatedReadError(f"Cannot seek to offset 0x{offset:x}")
        self._offset = offset

    def peek_bytes(self, offset: int, size: int) -> bytes:
        """Return up to `size` bytes at the absolute `offset` without moving."""
        if offset < 0:
            return b""
        return bytes(self._view[offset : offset + size])
