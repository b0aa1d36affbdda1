"""
Just enough of the PE header to locate the auxiliary directories.
Based on the following resources:
- Windows SDK Headers
- PE: https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
"""

import dataclasses
from enum import IntEnum
import logging
import struct
from typing import Optional

from .exceptions import InvalidVirtualAddressError
from .mz import ImageDosHeader

logger = logging.getLogger(__name__)


class PEHeaderNotFoundError(ValueError):
    """PE magic string not found."""


class PEMachine(IntEnum):
    IMAGE_FILE_MACHINE_UNKNOWN = 0x0
    IMAGE_FILE_MACHINE_AMD64 = 0x8664
    IMAGE_FILE_MACHINE_ARM = 0x1C0
    IMAGE_FILE_MACHINE_ARM64 = 0xAA64
    IMAGE_FILE_MACHINE_ARMNT = 0x1C4
    IMAGE_FILE_MACHINE_I386 = 0x14C
    IMAGE_FILE_MACHINE_IA64 = 0x200
    IMAGE_FILE_MACHINE_THUMB = 0x1C2


class PEDataDirectoryItemType(IntEnum):
    EXPORT_TABLE = 0
    IMPORT_TABLE = 1
    RESOURCE_TABLE = 2
    EXCEPTION_TABLE = 3
    CERTIFICATE_TABLE = 4
    BASE_RELOCATION_TABLE = 5
    DEBUG = 6
    ARCHITECTURE = 7
    GLOBAL_PTR = 8
    TLS_TABLE = 9
    LOAD_CONFIG_TABLE = 10
    BOUND_IMPORT = 11
    IAT = 12
    DELAY_IMPORT_DESCRIPTOR = 13
    CLR_RUNTIME_HEADER = 14
    RESERVED_INDEX_0XF = 15


@dataclasses.dataclass(frozen=True)
class PEDataDirectoryItemHeader:
    # For CERTIFICATE_TABLE this is a file offset, not an RVA.
    rva: int
    virtual_size: int


# pylint: disable=too-many-instance-attributes
@dataclasses.dataclass(frozen=True)
class PEImageFileHeader:
    signature: bytes
    machine: int
    number_of_sections: int
    time_date_stamp: int
    pointer_to_symbol_table: int
    number_of_symbols: int
    size_of_optional_header: int
    characteristics: int

    STRUCT_FMT = "<4s2H3I2H"

    @classmethod
    def from_memory(cls, data: bytes, offset: int) -> tuple["PEImageFileHeader", int]:
        if not cls.taste(data, offset):
            raise PEHeaderNotFoundError
        items = struct.unpack_from(cls.STRUCT_FMT, data, offset=offset)
        return cls(*items), offset + struct.calcsize(cls.STRUCT_FMT)

    @classmethod
    def taste(cls, data: bytes, offset: int) -> bool:
        return data[offset : offset + 4] == b"PE\x00\x00"

    @property
    def machine_name(self) -> str:
        try:
            return PEMachine(self.machine).name
        except ValueError:
            return f"0x{self.machine:x}"


@dataclasses.dataclass(frozen=True)
class PEImageOptionalHeader:
    """Only the fields the directory decoders care about."""

    magic: int
    image_base: int
    section_alignment: int
    file_alignment: int
    size_of_image: int
    size_of_headers: int
    number_of_rva_and_sizes: int
    directories: tuple[PEDataDirectoryItemHeader, ...]

    @property
    def is_pe32_plus(self) -> bool:
        return self.magic == 0x20B

    @classmethod
    def from_memory(
        cls, data: bytes, offset: int
    ) -> tuple["PEImageOptionalHeader", int]:
        (magic,) = struct.unpack_from("<H", data, offset=offset)
        if magic not in (0x10B, 0x20B):  # PE32, PE32+
            raise PEHeaderNotFoundError(f"Unknown optional header magic 0x{magic:x}")

        if magic == 0x20B:
            # ImageBase is a qword and BaseOfData is gone.
            (image_base, section_alignment, file_alignment) = struct.unpack_from(
                "<Q2I", data, offset=offset + 24
            )
        else:
            (image_base, section_alignment, file_alignment) = struct.unpack_from(
                "<3I", data, offset=offset + 28
            )

        (size_of_image, size_of_headers) = struct.unpack_from(
            "<2I", data, offset=offset + 56
        )

        count_offset = offset + (108 if magic == 0x20B else 92)
        (count_directories,) = struct.unpack_from("<I", data, offset=count_offset)

        # The loader never looks past 16 entries, whatever the header says.
        dir_offset = count_offset + 4
        available = max(0, (len(data) - dir_offset) // 8)
        count = min(count_directories, 16, available)
        directories = tuple(
            PEDataDirectoryItemHeader(*item)
            for item in struct.iter_unpack(
                "<II", data[dir_offset : dir_offset + 8 * count]
            )
        )
        return (
            cls(
                magic=magic,
                image_base=image_base,
                section_alignment=section_alignment,
                file_alignment=file_alignment,
                size_of_image=size_of_image,
                size_of_headers=size_of_headers,
                number_of_rva_and_sizes=count_directories,
                directories=directories,
            ),
            dir_offset + 8 * count,
        )


@dataclasses.dataclass(frozen=True)
class PEImageSectionHeader:
    name: str
    virtual_size: int
    virtual_address: int
    size_of_raw_data: int
    pointer_to_raw_data: int
    pointer_to_relocations: int
    pointer_to_line_numbers: int
    number_of_relocations: int
    number_of_line_numbers: int
    characteristics: int

    STRUCT_FMT = "<8s6I2HI"

    @classmethod
    def from_memory(
        cls, data: bytes, offset: int, count: int
    ) -> tuple[tuple["PEImageSectionHeader", ...], int]:
        s_size = struct.calcsize(cls.STRUCT_FMT)
        # Cut off a truncated section table instead of failing.
        count = min(count, max(0, (len(data) - offset) // s_size))
        items = tuple(
            cls(
                members[0].rstrip(b"\x00").decode("latin-1"),
                *members[1:],
            )
            for members in struct.iter_unpack(
                cls.STRUCT_FMT, data[offset : offset + count * s_size]
            )
        )
        return items, offset + count * s_size

    @property
    def extent(self) -> int:
        return max(self.size_of_raw_data, self.virtual_size)

    def contains_rva(self, rva: int) -> bool:
        return self.virtual_address <= rva < self.virtual_address + self.extent


@dataclasses.dataclass
class PEHeader:
    """Host image header. Implements the AddressTranslator contract."""

    mz_header: ImageDosHeader
    header: PEImageFileHeader
    optional_header: PEImageOptionalHeader
    section_headers: tuple[PEImageSectionHeader, ...]

    @classmethod
    def from_memory(cls, data: bytes) -> "PEHeader":
        mz_header, _ = ImageDosHeader.from_memory(data, offset=0)
        header, offset_optional = PEImageFileHeader.from_memory(
            data, offset=mz_header.e_lfanew
        )
        optional_header, _ = PEImageOptionalHeader.from_memory(
            data, offset=offset_optional
        )
        # Section table location comes from SizeOfOptionalHeader, not from
        # the number of data directories we actually parsed.
        section_headers, _ = PEImageSectionHeader.from_memory(
            data,
            offset=offset_optional + header.size_of_optional_header,
            count=header.number_of_sections,
        )
        logger.debug(
            "PE header: machine %s, %d sections, image base 0x%x",
            header.machine_name,
            len(section_headers),
            optional_header.image_base,
        )
        return cls(
            mz_header=mz_header,
            header=header,
            optional_header=optional_header,
            section_headers=section_headers,
        )

    @property
    def image_base(self) -> int:
        return self.optional_header.image_base

    @property
    def size_of_image(self) -> int:
        return self.optional_header.size_of_image

    def get_directory(self, t: PEDataDirectoryItemType) -> PEDataDirectoryItemHeader:
        try:
            return self.optional_header.directories[t.value]
        except IndexError:
            return PEDataDirectoryItemHeader(rva=0, virtual_size=0)

    def get_section_by_rva(self, rva: int) -> Optional[PEImageSectionHeader]:
        return next(
            (section for section in self.section_headers if section.contains_rva(rva)),
            None,
        )

    def rva_to_offset(self, rva: int) -> int:
        section = self.get_section_by_rva(rva)
        if section is not None:
            # The loader rounds the raw pointer down to a sector boundary.
            return (section.pointer_to_raw_data & ~0x1FF) + (
                rva - section.virtual_address
            )

        # Addresses inside the headers map 1:1.
        if 0 <= rva < self.optional_header.size_of_headers:
            return rva

        raise InvalidVirtualAddressError(f"RVA 0x{rva:x} is not in any section")

    def offset_to_rva(self, offset: int) -> int:
        for section in self.section_headers:
            start = section.pointer_to_raw_data & ~0x1FF
            if start <= offset < start + section.size_of_raw_data:
                return section.virtual_address + (offset - start)

        if 0 <= offset < self.optional_header.size_of_headers:
            return offset

        raise InvalidVirtualAddressError(f"Offset 0x{offset:x} is not in any section")

    def rva_to_va(self, rva: int) -> int:
        return self.image_base + rva

    @property
    def is_pe32_plus(self) -> bool:
        return self.optional_header.is_pe32_plus

    @property
    def symbol_table_region(self) -> tuple[int, int]:
        """File offset and size of the COFF symbol array."""
        return (
            self.header.pointer_to_symbol_table,
            self.header.number_of_symbols * 18,
        )
