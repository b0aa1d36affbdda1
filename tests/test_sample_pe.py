"""Smoke tests against a real binary given with --pe.
Whatever is in the file, the decoders should report a status and not raise."""

from peaux.formats import (
    ByteSource,
    CoffSymbolTable,
    DelayImportDirectory,
    PEDataDirectoryItemType,
    PEHeader,
    PEWidth,
    ReadStatus,
    RelocationsDirectory,
    RichHeader,
    SecurityDirectory,
    find_rich_header_region,
)


def test_rich_header(pefile: tuple[PEHeader, ByteSource]):
    (pe, source) = pefile
    (offset, size) = find_rich_header_region(
        source.read_at(0, pe.mz_header.e_lfanew), pe.mz_header
    )
    header = RichHeader()
    assert header.read(source, offset, size) == ReadStatus.NONE
    if header.header_is_valid:
        assert header.get_decrypted_word(0) == 0x536E6144


def test_delay_imports(pefile: tuple[PEHeader, ByteSource]):
    (pe, source) = pefile
    if pe.get_directory(PEDataDirectoryItemType.DELAY_IMPORT_DESCRIPTOR).rva == 0:
        return

    directory = DelayImportDirectory(PEWidth.from_magic(pe.optional_header.magic))
    assert directory.read(source, pe) != ReadStatus.OPENING_FILE
    for record in directory:
        # Every table RVA is now relative to the image base.
        assert record.name_rva < pe.size_of_image


def test_other_directories(pefile: tuple[PEHeader, ByteSource]):
    (pe, source) = pefile
    security = pe.get_directory(PEDataDirectoryItemType.CERTIFICATE_TABLE)
    if security.rva:
        assert (
            SecurityDirectory().read(source, security.rva, security.virtual_size)
            != ReadStatus.OPENING_FILE
        )

    (symbol_offset, symbol_size) = pe.symbol_table_region
    if symbol_offset:
        assert (
            CoffSymbolTable().read(source, symbol_offset, symbol_size)
            != ReadStatus.OPENING_FILE
        )

    if pe.get_directory(PEDataDirectoryItemType.BASE_RELOCATION_TABLE).rva:
        relocs = RelocationsDirectory()
        assert relocs.read(source, pe) == ReadStatus.NONE
        assert all(rva < pe.size_of_image for rva in relocs.iter_relocated_rvas())
