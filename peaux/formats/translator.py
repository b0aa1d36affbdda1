from enum import Enum
from typing import Protocol

from .pe import PEDataDirectoryItemHeader, PEDataDirectoryItemType


class PEWidth(Enum):
    """Address width of the image: PE32 or PE32+."""

    PE32 = 32
    PE32_PLUS = 64

    @property
    def pointer_size(self) -> int:
        return self.value // 8

    @property
    def struct_fmt(self) -> str:
        return "<I" if self is PEWidth.PE32 else "<Q"

    @property
    def mask(self) -> int:
        return (1 << self.value) - 1

    @property
    def ordinal_flag(self) -> int:
        """IMAGE_ORDINAL_FLAG32 / IMAGE_ORDINAL_FLAG64"""
        return 1 << (self.value - 1)

    @classmethod
    def from_magic(cls, magic: int) -> "PEWidth":
        return cls.PE32_PLUS if magic == 0x20B else cls.PE32


class AddressTranslator(Protocol):
    """What the directory decoders need to know about the host image.
    rva_to_offset raises InvalidVirtualAddressError for an address
    that is not backed by the file."""

    @property
    def image_base(self) -> int: ...

    @property
    def size_of_image(self) -> int: ...

    def rva_to_offset(self, rva: int) -> int: ...

    def offset_to_rva(self, offset: int) -> int: ...

    def rva_to_va(self, rva: int) -> int: ...

    def get_directory(self, t: PEDataDirectoryItemType) -> PEDataDirectoryItemHeader: ...
