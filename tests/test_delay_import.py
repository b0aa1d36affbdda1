"""Delay-load import descriptors, including the VC6 variant
that stores virtual addresses instead of RVAs."""

import struct
import pytest
from peaux.formats.delayimport import (
    DESCRIPTOR_FMT,
    DelayImportDirectory,
    DelayImportRecord,
    va_to_rva_heuristic,
)
from peaux.formats.pe import PEDataDirectoryItemType
from peaux.formats.source import ByteSource
from peaux.formats.status import ReadStatus
from peaux.formats.translator import PEWidth
from .flat_image import FlatImage

IMAGE_BASE = 0x400000
IMAGE_BASE_64 = 0x140000000
DIRECTORY_RVA = 0x100


def put_descriptor(data: bytearray, index: int, *fields: int):
    struct.pack_into(DESCRIPTOR_FMT, data, DIRECTORY_RVA + 32 * index, *fields)


def put_string(data: bytearray, offset: int, s: bytes):
    data[offset : offset + len(s) + 1] = s + b"\x00"


def put_hint_name(data: bytearray, offset: int, hint: int, name: bytes):
    struct.pack_into("<H", data, offset, hint)
    put_string(data, offset + 2, name)


def make_image(size: int = 0x1000, image_base: int = IMAGE_BASE) -> FlatImage:
    image = FlatImage(size_of_image=size, image_base=image_base)
    image.set_directory(
        PEDataDirectoryItemType.DELAY_IMPORT_DESCRIPTOR, DIRECTORY_RVA, 0x60
    )
    return image


def make_pe32_data() -> bytearray:
    """Two descriptors and the terminator. The first uses RVAs,
    the second uses virtual addresses like Visual C++ 6.0 does."""
    data = bytearray(0x1000)

    # USER32.dll: name table, address table, hint/name entry
    put_descriptor(data, 0, 1, 0x200, 0x280, 0x380, 0x300, 0, 0, 0)
    put_string(data, 0x200, b"USER32.dll")
    struct.pack_into("<3I", data, 0x300, 0x400, 0x80000005, 0)
    struct.pack_into("<3I", data, 0x380, IMAGE_BASE + 0x500, IMAGE_BASE + 0x510, 0)
    put_hint_name(data, 0x400, 7, b"MessageBoxA")

    # KERNEL32.dll with every pointer stored as a VA
    put_descriptor(
        data,
        1,
        0,
        IMAGE_BASE + 0x210,
        IMAGE_BASE + 0x290,
        IMAGE_BASE + 0x3A0,
        IMAGE_BASE + 0x320,
        0,
        0,
        0,
    )
    put_string(data, 0x210, b"KERNEL32.dll")
    struct.pack_into("<2I", data, 0x320, IMAGE_BASE + 0x420, 0)
    struct.pack_into("<2I", data, 0x3A0, IMAGE_BASE + 0x520, 0)
    put_hint_name(data, 0x420, 0x1C, b"GetTickCount")

    return data


@pytest.fixture(name="pe32")
def fixture_pe32() -> DelayImportDirectory:
    directory = DelayImportDirectory()
    status = directory.read(ByteSource.from_bytes(make_pe32_data()), make_image())
    assert status == ReadStatus.NONE
    return directory


def test_descriptor_count(pe32: DelayImportDirectory):
    """The all-zero descriptor ends the list and is not included."""
    assert len(pe32) == 2
    assert pe32.get(2) is None


def test_library_names(pe32: DelayImportDirectory):
    assert [record.name for record in pe32] == ["USER32.dll", "KERNEL32.dll"]


def test_functions(pe32: DelayImportDirectory):
    record = pe32.get(0)
    assert len(record) == 2

    by_name = record.get_function(0)
    assert by_name.is_ordinal is False
    assert by_name.fname == "MessageBoxA"
    assert by_name.hint == 7
    assert by_name.address == 0x500

    by_ordinal = record.get_function(1)
    assert by_ordinal.is_ordinal is True
    assert by_ordinal.ordinal == 5
    assert by_ordinal.hint == 0
    assert by_ordinal.fname == ""
    assert by_ordinal.address == 0x510

    assert record.get_function(2) is None


def test_virtual_addresses_normalized(pe32: DelayImportDirectory):
    """Descriptor fields stored as VAs are converted to RVAs."""
    record = pe32.get(1)
    assert record.attributes == 0
    assert record.name_rva == 0x210
    assert record.module_handle_rva == 0x290
    assert record.delay_import_address_table_rva == 0x3A0
    assert record.delay_import_name_table_rva == 0x320
    assert record.delay_import_address_table_offset == 0x3A0
    assert record.delay_import_name_table_offset == 0x320

    function = pe32.get_function(1, 0)
    assert function.fname == "GetTickCount"
    assert function.hint == 0x1C
    assert function.address == 0x520


def test_rva_fields_unchanged(pe32: DelayImportDirectory):
    record = pe32.get(0)
    assert record.attributes == 1
    assert record.name_rva == 0x200
    assert record.delay_import_name_table_rva == 0x300
    assert record.bound_delay_import_table_rva == 0


NORMALIZE_CASES = (
    (0x402050, 0x2050),
    (0x2050, 0x2050),
    (0, 0),
)


@pytest.mark.parametrize("value, expected", NORMALIZE_CASES)
def test_va_to_rva_heuristic(value: int, expected: int):
    assert (
        va_to_rva_heuristic(value, 0x2000, IMAGE_BASE + 0x2000, IMAGE_BASE, 0xFFFFFFFF)
        == expected
    )


def test_library_name_limit():
    directory = DelayImportDirectory(library_name_max_length=4)
    directory.read(ByteSource.from_bytes(make_pe32_data()), make_image())
    assert directory.get(0).name == "USER"


def test_empty_directory():
    """Only the terminator"""
    directory = DelayImportDirectory()
    status = directory.read(ByteSource.from_bytes(bytes(0x1000)), make_image())
    assert status == ReadStatus.NONE
    assert len(directory) == 0


def test_directory_not_mapped():
    image = make_image()
    image.set_directory(PEDataDirectoryItemType.DELAY_IMPORT_DESCRIPTOR, 0x5000, 0x40)
    directory = DelayImportDirectory()
    status = directory.read(ByteSource.from_bytes(make_pe32_data()), image)
    assert status == ReadStatus.INVALID_FILE


def test_directory_past_end_of_file():
    """Mapped in the image but not backed by the file"""
    image = make_image(size=0x2000)
    image.set_directory(PEDataDirectoryItemType.DELAY_IMPORT_DESCRIPTOR, 0x1800, 0x40)
    directory = DelayImportDirectory()
    status = directory.read(ByteSource.from_bytes(make_pe32_data()), image)
    assert status == ReadStatus.INVALID_FILE


def test_truncated_descriptor():
    """The file ends in the middle of the first descriptor."""
    data = make_pe32_data()[: DIRECTORY_RVA + 16]
    directory = DelayImportDirectory()
    status = directory.read(ByteSource.from_bytes(data), make_image())
    assert status == ReadStatus.NONE
    assert len(directory) == 0


def test_truncated_hint():
    """Hint/name entry runs off the end of the file: stop reading names."""
    data = make_pe32_data()[:0x800]
    struct.pack_into("<3I", data, 0x300, 0x7FF, 0x80000005, 0)
    directory = DelayImportDirectory()
    directory.read(ByteSource.from_bytes(data), make_image())

    record = directory.get(0)
    assert len(record) == 2
    assert record.get_function(0).fname == ""
    assert record.get_function(1).is_ordinal is False


def test_missing_tables():
    """Zero table RVAs mean no functions."""
    data = bytearray(0x1000)
    put_descriptor(data, 0, 1, 0x200, 0, 0, 0, 0, 0, 0)
    put_string(data, 0x200, b"WINMM.dll")
    directory = DelayImportDirectory()
    directory.read(ByteSource.from_bytes(data), make_image())

    record = directory.get(0)
    assert record.name == "WINMM.dll"
    assert record.delay_import_name_table_offset is None
    assert len(record) == 0


def test_address_table_not_terminated():
    """The name table decides how many address table entries are read."""
    data = bytearray(0x1000)
    put_descriptor(data, 0, 1, 0x200, 0, 0x380, 0x300, 0, 0, 0)
    put_string(data, 0x200, b"GDI32.dll")
    struct.pack_into("<2I", data, 0x300, 0x400, 0)
    # Non-zero entries all the way up to the hint/name table.
    for i in range(0x20):
        struct.pack_into("<I", data, 0x380 + 4 * i, IMAGE_BASE + 0x500 + 4 * i)
    put_hint_name(data, 0x400, 3, b"BitBlt")

    directory = DelayImportDirectory()
    directory.read(ByteSource.from_bytes(data), make_image())

    record = directory.get(0)
    assert len(record) == 1
    assert record.get_function(0).fname == "BitBlt"
    assert record.get_function(0).address == 0x500


def test_address_table_shorter_than_names():
    """A zero in the address table ends the function list early.
    Names and hints still line up with the addresses by index."""
    data = bytearray(0x1000)
    put_descriptor(data, 0, 1, 0x200, 0, 0x380, 0x300, 0, 0, 0)
    put_string(data, 0x200, b"ADVAPI32.dll")
    struct.pack_into("<4I", data, 0x300, 0x400, 0x420, 0x440, 0)
    struct.pack_into("<3I", data, 0x380, IMAGE_BASE + 0x500, IMAGE_BASE + 0x504, 0)
    put_hint_name(data, 0x400, 1, b"RegOpenKeyA")
    put_hint_name(data, 0x420, 2, b"RegCloseKey")
    put_hint_name(data, 0x440, 3, b"RegQueryValueA")

    directory = DelayImportDirectory()
    directory.read(ByteSource.from_bytes(data), make_image())

    record = directory.get(0)
    assert len(record) == 2
    assert [(f.address, f.hint, f.fname) for f in record.functions] == [
        (0x500, 1, "RegOpenKeyA"),
        (0x504, 2, "RegCloseKey"),
    ]


def test_pe32_plus():
    """Table entries are qwords and the ordinal flag is the top bit."""
    data = bytearray(0x1000)
    put_descriptor(data, 0, 1, 0x200, 0x280, 0x380, 0x300, 0, 0, 0)
    put_string(data, 0x200, b"COMCTL32.dll")
    struct.pack_into("<3Q", data, 0x300, 0x400, 0x8000000000000011, 0)
    struct.pack_into(
        "<3Q", data, 0x380, IMAGE_BASE_64 + 0x500, IMAGE_BASE_64 + 0x508, 0
    )
    put_hint_name(data, 0x400, 2, b"InitCommonControlsEx")

    directory = DelayImportDirectory(PEWidth.PE32_PLUS)
    status = directory.read(
        ByteSource.from_bytes(data), make_image(image_base=IMAGE_BASE_64)
    )
    assert status == ReadStatus.NONE

    record = directory.get(0)
    assert record.name == "COMCTL32.dll"
    assert len(record) == 2
    assert record.get_function(0).fname == "InitCommonControlsEx"
    assert record.get_function(0).address == 0x500
    assert record.get_function(1).is_ordinal is True
    assert record.get_function(1).ordinal == 0x11
    assert record.get_function(1).address == 0x508


def test_record_terminator():
    assert DelayImportRecord().is_terminator() is True
    assert DelayImportRecord(time_stamp=1).is_terminator() is False
