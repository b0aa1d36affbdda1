import io
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Union

from .exceptions import DirectoryBoundsError, SourceOpenError

logger = logging.getLogger(__name__)


class ByteSource:
    """Seekable, readable binary stream with a total size query.
    Reads return the bytes actually available, so a request near
    the end of the stream can come back short."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        try:
            position = stream.tell()
            self._size = stream.seek(0, io.SEEK_END)
            stream.seek(position, io.SEEK_SET)
        except (OSError, ValueError) as ex:
            raise SourceOpenError(f"Cannot determine size of stream: {ex}") from ex

    @classmethod
    def from_bytes(cls, data: bytes) -> "ByteSource":
        return cls(io.BytesIO(data))

    @classmethod
    @contextmanager
    def open(cls, filepath: Union[str, Path]) -> Iterator["ByteSource"]:
        try:
            f = Path(filepath).open("rb")
        except OSError as ex:
            raise SourceOpenError(f"{filepath} : {ex.strerror}") from ex

        with f:
            yield cls(f)

    @property
    def size(self) -> int:
        return self._size

    def seek(self, offset: int):
        try:
            self._stream.seek(offset, io.SEEK_SET)
        except (OSError, ValueError) as ex:
            raise SourceOpenError(f"Cannot seek to offset 0x{offset:x}") from ex

    def read(self, size: int) -> bytes:
        try:
            return self._stream.read(size)
        except (OSError, ValueError) as ex:
            raise SourceOpenError(f"Cannot read {size} bytes") from ex

    def read_at(self, offset: int, size: int) -> bytes:
        if offset < 0 or size < 0:
            return b""
        self.seek(offset)
        return self.read(size)

    def read_region(self, offset: int, size: int) -> bytes:
        """Read exactly `size` bytes at `offset` after making sure the whole
        region lies inside the source."""
        self.check_region(offset, size)
        return self.read_at(offset, size)

    def check_region(self, offset: int, size: int):
        # Python ints cannot overflow, but the operands may still be negative.
        if offset < 0 or size < 0 or offset + size > self._size:
            raise DirectoryBoundsError(
                f"Region 0x{offset:x}+0x{size:x} is past the end of the file (size 0x{self._size:x})"
            )

    def read_string(self, offset: int, max_length: int = 0) -> bytes:
        """Read a null-terminated string one chunk at a time.
        Stop at the first null, the end of the source or after max_length bytes."""
        if offset < 0 or offset >= self._size:
            return b""

        self.seek(offset)
        result = bytearray()
        while True:
            chunk_size = 64 if not max_length else min(64, max_length - len(result))
            chunk = self.read(chunk_size)
            if not chunk:
                break

            (head, sep, _) = chunk.partition(b"\x00")
            result += head
            if sep or (max_length and len(result) >= max_length):
                break

        return bytes(result)
