"""Reading the host PE header and translating addresses"""

import pytest
from peaux.formats.exceptions import InvalidVirtualAddressError
from peaux.formats.mz import ImageDosHeader, MZHeaderNotFoundError
from peaux.formats.pe import (
    PEDataDirectoryItemHeader,
    PEDataDirectoryItemType,
    PEHeader,
    PEHeaderNotFoundError,
)
from peaux.formats.translator import PEWidth
from .synthetic_pe import E_LFANEW, IMAGE_BASE, make_pe32

DELAY_IMPORT = PEDataDirectoryItemType.DELAY_IMPORT_DESCRIPTOR


@pytest.fixture(name="pe")
def fixture_pe() -> PEHeader:
    data = make_pe32(
        directories=[(DELAY_IMPORT.value, 0x1000, 0x40)], symbols=(0x900, 3)
    )
    return PEHeader.from_memory(bytes(data))


def test_basic(pe: PEHeader):
    assert pe.mz_header.e_lfanew == E_LFANEW
    assert pe.header.machine_name == "IMAGE_FILE_MACHINE_I386"
    assert pe.image_base == IMAGE_BASE
    assert pe.size_of_image == 0x2000
    assert pe.is_pe32_plus is False
    assert PEWidth.from_magic(pe.optional_header.magic) == PEWidth.PE32
    assert len(pe.section_headers) == 1
    assert pe.section_headers[0].name == ".text"


def test_directories(pe: PEHeader):
    assert pe.get_directory(DELAY_IMPORT) == PEDataDirectoryItemHeader(0x1000, 0x40)
    assert pe.get_directory(PEDataDirectoryItemType.CERTIFICATE_TABLE).rva == 0


def test_fewer_directories():
    """Entries past NumberOfRvaAndSizes read as empty."""
    pe = PEHeader.from_memory(
        bytes(
            make_pe32(
                directories=[(DELAY_IMPORT.value, 0x1000, 0x40)],
                number_of_rva_and_sizes=6,
            )
        )
    )
    assert len(pe.optional_header.directories) == 6
    assert pe.get_directory(DELAY_IMPORT) == PEDataDirectoryItemHeader(0, 0)


def test_symbol_table_region(pe: PEHeader):
    assert pe.symbol_table_region == (0x900, 3 * 18)


def test_rva_to_offset(pe: PEHeader):
    assert pe.rva_to_offset(0x1000) == 0x400
    assert pe.rva_to_offset(0x1010) == 0x410
    assert pe.get_section_by_rva(0x1010).name == ".text"

    # Inside the headers
    assert pe.rva_to_offset(0x80) == 0x80

    with pytest.raises(InvalidVirtualAddressError):
        pe.rva_to_offset(0x5000)


def test_offset_to_rva(pe: PEHeader):
    assert pe.offset_to_rva(0x410) == 0x1010
    assert pe.offset_to_rva(0x80) == 0x80

    with pytest.raises(InvalidVirtualAddressError):
        pe.offset_to_rva(0xF00)


def test_rva_to_va(pe: PEHeader):
    assert pe.rva_to_va(0x1010) == IMAGE_BASE + 0x1010


def test_unaligned_raw_pointer():
    """The raw data pointer is rounded down to a 0x200 boundary."""
    pe = PEHeader.from_memory(bytes(make_pe32(pointer_to_raw_data=0x410)))
    assert pe.rva_to_offset(0x1010) == 0x410


def test_not_mz():
    with pytest.raises(MZHeaderNotFoundError):
        PEHeader.from_memory(b"\x00" * 0x200)


def test_not_pe():
    data = make_pe32()
    data[E_LFANEW : E_LFANEW + 2] = b"NE"
    with pytest.raises(PEHeaderNotFoundError):
        PEHeader.from_memory(bytes(data))


def test_dos_header():
    data = make_pe32()
    (mz_header, offset) = ImageDosHeader.from_memory(bytes(data), offset=0)
    assert mz_header.e_magic == b"MZ"
    assert mz_header.e_lfanew == E_LFANEW
    assert offset == 0x40

    # Too short to hold e_lfanew
    with pytest.raises(MZHeaderNotFoundError):
        ImageDosHeader.from_memory(bytes(data[:0x3C]), offset=0)
