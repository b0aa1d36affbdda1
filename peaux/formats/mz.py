from dataclasses import dataclass
import struct


class MZHeaderNotFoundError(ValueError):
    """MZ magic string not found"""


@dataclass(frozen=True)
class ImageDosHeader:
    """The two IMAGE_DOS_HEADER fields needed to find the PE header
    and the Rich block. The rest of the 64-byte header is skipped."""

    e_magic: bytes
    e_lfanew: int

    # e_magic at 0, e_lfanew at 0x3C
    STRUCT_FMT = "<2s58xI"

    @classmethod
    def size(cls) -> int:
        return struct.calcsize(cls.STRUCT_FMT)

    @classmethod
    def from_memory(cls, data: bytes, offset: int) -> tuple["ImageDosHeader", int]:
        if len(data) < offset + cls.size() or not cls.taste(data, offset):
            raise MZHeaderNotFoundError
        (e_magic, e_lfanew) = struct.unpack_from(cls.STRUCT_FMT, data, offset)
        return cls(e_magic, e_lfanew), offset + cls.size()

    @classmethod
    def taste(cls, data: bytes, offset: int) -> bool:
        return data[offset : offset + 2] == b"MZ"
