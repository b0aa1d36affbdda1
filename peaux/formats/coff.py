"""COFF symbol table and the string table that follows it.
Deprecated for images, but still emitted by MinGW and friends."""

import dataclasses
import logging
import struct
from typing import Iterator, Optional

from .cursor import ByteCursor
from .exceptions import DirectoryBoundsError, DirectoryReadError, TruncatedReadError
from .source import ByteSource
from .status import ReadStatus

logger = logging.getLogger(__name__)

SYMBOL_FMT = "<8sIH4B"
SYMBOL_SIZE = struct.calcsize(SYMBOL_FMT)  # 18

# A name this long with unprintable bytes in it is most likely garbage.
COFF_SYMBOL_NAME_MAX_LENGTH = 96


def is_printable(c: int) -> bool:
    return 0x20 <= c < 0x7F


# pylint: disable=too-many-instance-attributes
@dataclasses.dataclass(frozen=True)
class CoffSymbol:
    index: int
    name: str
    value: int
    section_number: int
    type_complex: int
    type_simple: int
    storage_class: int
    number_of_aux_symbols: int

    @property
    def signed_section_number(self) -> int:
        """IMAGE_SYM_ABSOLUTE (-1) and IMAGE_SYM_DEBUG (-2) read as negatives."""
        if self.section_number >= 0x8000:
            return self.section_number - 0x10000
        return self.section_number


def read_string_table_name(
    string_table: bytes, offset: int, check_length: int = COFF_SYMBOL_NAME_MAX_LENGTH
) -> str:
    """Read a name from the string table. Offset zero is the size field,
    so it never refers to a name."""
    if not string_table or offset == 0:
        return ""

    name = bytearray()
    for j in range(offset, len(string_table)):
        c = string_table[j]
        if c == 0:
            break

        if j - offset == check_length and not all(is_printable(b) for b in name):
            break

        name.append(c)

    return name.decode("latin-1")


class CoffSymbolTable:
    def __init__(self, name_check_length: int = COFF_SYMBOL_NAME_MAX_LENGTH):
        self.name_check_length = name_check_length
        self.symbols: list[CoffSymbol] = []
        self.string_table = b""

    def __len__(self) -> int:
        return len(self.symbols)

    def __iter__(self) -> Iterator[CoffSymbol]:
        return iter(self.symbols)

    def get(self, index: int) -> Optional[CoffSymbol]:
        if 0 <= index < len(self.symbols):
            return self.symbols[index]
        return None

    @property
    def string_table_size(self) -> int:
        return len(self.string_table)

    def read(self, source: ByteSource, offset: int, size: int) -> ReadStatus:
        self.symbols = []
        self.string_table = b""
        try:
            (symbol_data, string_table) = self.read_regions(source, offset, size)
        except DirectoryReadError as ex:
            logger.warning("Cannot read COFF symbol table: %s", ex)
            return ex.status

        self.decode(symbol_data, string_table)
        return ReadStatus.NONE

    @staticmethod
    def read_regions(source: ByteSource, offset: int, size: int) -> tuple[bytes, bytes]:
        """Return the symbol array and the string table, including its size field."""
        file_size = source.size
        string_table_offset = offset + size
        if (
            offset < 0
            or size < 0
            or offset >= file_size
            or string_table_offset >= file_size
        ):
            raise DirectoryBoundsError(
                f"Symbol table 0x{offset:x}+0x{size:x} is past the end of the file"
            )

        symbol_data = source.read_at(offset, size)

        size_field = source.read_at(string_table_offset, 4)
        if len(size_field) < 4:
            # Whatever we got is all there is.
            string_table_size = len(size_field)
        else:
            (string_table_size,) = struct.unpack("<I", size_field)
            # The size includes the size field itself.
            string_table_size = max(string_table_size, 4)

        remaining = file_size - string_table_offset
        if string_table_size > remaining:
            logger.warning(
                "String table size 0x%x exceeds the file, cut to 0x%x",
                string_table_size,
                remaining,
            )
            string_table_size = remaining

        if string_table_size > 4:
            string_table = size_field + source.read_at(
                string_table_offset + 4, string_table_size - 4
            )
        else:
            string_table = size_field[:string_table_size]

        return (symbol_data, string_table)

    def decode(self, symbol_data: bytes, string_table: bytes = b""):
        self.symbols = []
        self.string_table = bytes(string_table)

        cursor = ByteCursor(symbol_data)
        count = len(symbol_data) // SYMBOL_SIZE
        i = 0
        while i < count:
            (
                short_name,
                value,
                section_number,
                type_complex,
                type_simple,
                storage_class,
                number_of_aux_symbols,
            ) = cursor.unpack(SYMBOL_FMT)
            (zeroes, name_offset) = struct.unpack("<2I", short_name)

            if zeroes:
                name = short_name.partition(b"\x00")[0].decode("latin-1")
            else:
                name = read_string_table_name(
                    self.string_table, name_offset, self.name_check_length
                )

            self.symbols.append(
                CoffSymbol(
                    index=i,
                    name=name,
                    value=value,
                    section_number=section_number,
                    type_complex=type_complex,
                    type_simple=type_simple,
                    storage_class=storage_class,
                    number_of_aux_symbols=number_of_aux_symbols,
                )
            )

            # Auxiliary records take up symbol slots but are not symbols.
            try:
                cursor.skip(number_of_aux_symbols * SYMBOL_SIZE)
            except TruncatedReadError:
                logger.debug("Aux records of symbol %d run off the table", i)
                break
            i += 1 + number_of_aux_symbols

        logger.debug("Read %d COFF symbols", len(self.symbols))
