"""Delay-load import directory (IMAGE_DIRECTORY_ENTRY_DELAY_IMPORT).

Each descriptor is eight dwords, the same for PE32 and PE32+. The name table
and address table it points to hold pointer-sized entries.

Descriptors written by Visual C++ 6.0 hold absolute virtual addresses instead
of RVAs (attribute bit 0 is clear). Rather than trust the attribute, we look
at each value and decide whether it is closer to the directory's own VA or to
its RVA. Sample: 2775d97f8bdb3311ace960a42eee35dbec84b9d71a6abbacb26c14e83f5897e4
"""

import dataclasses
import logging
import struct
from typing import Iterator, Optional

from .cursor import ByteCursor
from .exceptions import (
    DirectoryBoundsError,
    DirectoryReadError,
    InvalidVirtualAddressError,
    TruncatedReadError,
)
from .pe import PEDataDirectoryItemType
from .source import ByteSource
from .status import ReadStatus
from .translator import AddressTranslator, PEWidth

logger = logging.getLogger(__name__)

IMPORT_LIBRARY_MAX_LENGTH = 0x100
IMPORT_SYMBOL_MAX_LENGTH = 0x200

DESCRIPTOR_FMT = "<8I"
DESCRIPTOR_SIZE = struct.calcsize(DESCRIPTOR_FMT)


@dataclasses.dataclass
class DelayImportFunction:
    address: int = 0
    ordinal: int = 0
    hint: int = 0
    fname: str = ""
    is_ordinal: bool = False


# pylint: disable=too-many-instance-attributes
@dataclasses.dataclass
class DelayImportRecord:
    attributes: int = 0
    name_rva: int = 0
    module_handle_rva: int = 0
    delay_import_address_table_rva: int = 0
    delay_import_name_table_rva: int = 0
    bound_delay_import_table_rva: int = 0
    unload_delay_import_table_rva: int = 0
    time_stamp: int = 0
    delay_import_address_table_offset: Optional[int] = None
    delay_import_name_table_offset: Optional[int] = None
    name: str = ""
    functions: list[DelayImportFunction] = dataclasses.field(
        default_factory=list, repr=False
    )

    @classmethod
    def from_memory(cls, data: bytes, offset: int = 0) -> "DelayImportRecord":
        return cls(*struct.unpack_from(DESCRIPTOR_FMT, data, offset=offset))

    def is_terminator(self) -> bool:
        return not any(
            (
                self.attributes,
                self.name_rva,
                self.module_handle_rva,
                self.delay_import_address_table_rva,
                self.delay_import_name_table_rva,
                self.bound_delay_import_table_rva,
                self.unload_delay_import_table_rva,
                self.time_stamp,
            )
        )

    def __len__(self) -> int:
        return len(self.functions)

    def get_function(self, index: int) -> Optional[DelayImportFunction]:
        if 0 <= index < len(self.functions):
            return self.functions[index]
        return None


def va_to_rva_heuristic(
    value: int, directory_rva: int, directory_va: int, image_base: int, mask: int
) -> int:
    """If value is nearer the directory's VA than its RVA, treat it as a VA
    and return the RVA. Zero stays zero."""
    if value == 0:
        return value

    if abs(directory_va - value) < abs(directory_rva - value):
        return (value - image_base) & mask

    return value


class DelayImportDirectory:
    """Delay-load descriptors of a PE32 or PE32+ image."""

    def __init__(
        self,
        width: PEWidth = PEWidth.PE32,
        library_name_max_length: int = IMPORT_LIBRARY_MAX_LENGTH,
        symbol_name_max_length: int = IMPORT_SYMBOL_MAX_LENGTH,
    ):
        self.width = width
        self.library_name_max_length = library_name_max_length
        self.symbol_name_max_length = symbol_name_max_length
        self.records: list[DelayImportRecord] = []

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[DelayImportRecord]:
        return iter(self.records)

    def get(self, index: int) -> Optional[DelayImportRecord]:
        if 0 <= index < len(self.records):
            return self.records[index]
        return None

    def get_function(
        self, record_index: int, function_index: int
    ) -> Optional[DelayImportFunction]:
        record = self.get(record_index)
        return record.get_function(function_index) if record is not None else None

    def read(self, source: ByteSource, translator: AddressTranslator) -> ReadStatus:
        self.records = []
        try:
            self.decode(source, translator)
        except DirectoryReadError as ex:
            logger.warning("Cannot read delay import directory: %s", ex)
            return ex.status

        return ReadStatus.NONE

    def decode(self, source: ByteSource, translator: AddressTranslator):
        """Walk the descriptors until the all-zero terminator. Raises
        DirectoryBoundsError if the directory does not start inside the file."""
        self.records = []
        directory_rva = translator.get_directory(
            PEDataDirectoryItemType.DELAY_IMPORT_DESCRIPTOR
        ).rva

        try:
            offset = translator.rva_to_offset(directory_rva)
        except InvalidVirtualAddressError as ex:
            raise DirectoryBoundsError(
                f"Delay import directory RVA 0x{directory_rva:x} is not mapped"
            ) from ex

        if offset >= source.size:
            raise DirectoryBoundsError(
                f"Delay import directory offset 0x{offset:x} is past the end of the file"
            )

        walker = _DescriptorWalker(
            self.width,
            source,
            translator,
            directory_rva,
            library_name_max_length=self.library_name_max_length,
            symbol_name_max_length=self.symbol_name_max_length,
        )
        while True:
            dump = source.read_at(offset, DESCRIPTOR_SIZE)
            if len(dump) < DESCRIPTOR_SIZE:
                logger.warning(
                    "Delay import descriptor at 0x%x is truncated", offset
                )
                break

            record = DelayImportRecord.from_memory(dump)
            if record.is_terminator():
                break

            walker.resolve(record)
            self.records.append(record)
            offset += DESCRIPTOR_SIZE

        logger.debug("Read %d delay import descriptors", len(self.records))


class _DescriptorWalker:
    """Resolve the names and tables of a descriptor.
    The address conversion is the same for all descriptors in the directory."""

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        width: PEWidth,
        source: ByteSource,
        translator: AddressTranslator,
        directory_rva: int,
        library_name_max_length: int = IMPORT_LIBRARY_MAX_LENGTH,
        symbol_name_max_length: int = IMPORT_SYMBOL_MAX_LENGTH,
    ):
        self.width = width
        self.source = source
        self.translator = translator
        self.directory_rva = directory_rva
        self.directory_va = translator.rva_to_va(directory_rva)
        self.library_name_max_length = library_name_max_length
        self.symbol_name_max_length = symbol_name_max_length

    def normalize(self, value: int) -> int:
        return va_to_rva_heuristic(
            value,
            self.directory_rva,
            self.directory_va,
            self.translator.image_base,
            self.width.mask,
        )

    def normalize_field(self, value: int) -> int:
        # Descriptor fields are dwords in both PE32 and PE32+.
        return self.normalize(value) & 0xFFFFFFFF

    def try_offset(self, rva: int) -> Optional[int]:
        # A zero RVA means the table or name is absent.
        if rva == 0:
            return None
        try:
            return self.translator.rva_to_offset(rva)
        except InvalidVirtualAddressError:
            return None

    def read_string(self, rva: int, max_length: int) -> str:
        offset = self.try_offset(rva)
        if offset is None:
            return ""
        return self.source.read_string(offset, max_length).decode("latin-1")

    def resolve(self, record: DelayImportRecord):
        record.name_rva = self.normalize_field(record.name_rva)
        record.module_handle_rva = self.normalize_field(record.module_handle_rva)
        record.delay_import_address_table_rva = self.normalize_field(
            record.delay_import_address_table_rva
        )
        record.delay_import_name_table_rva = self.normalize_field(
            record.delay_import_name_table_rva
        )
        record.bound_delay_import_table_rva = self.normalize_field(
            record.bound_delay_import_table_rva
        )
        record.unload_delay_import_table_rva = self.normalize_field(
            record.unload_delay_import_table_rva
        )

        record.delay_import_address_table_offset = self.try_offset(
            record.delay_import_address_table_rva
        )
        record.delay_import_name_table_offset = self.try_offset(
            record.delay_import_name_table_rva
        )

        record.name = self.read_string(record.name_rva, self.library_name_max_length)

        # The address table is not guaranteed to be null-terminated,
        # so the name table decides how many functions there are.
        names = list(self.iter_name_table(record.delay_import_name_table_offset))
        addresses = list(
            self.iter_address_table(record.delay_import_address_table_offset, len(names))
        )
        record.functions = [DelayImportFunction(address=addr) for addr in addresses]

        for function, name_value in zip(record.functions, names):
            if name_value & self.width.ordinal_flag:
                function.is_ordinal = True
                function.ordinal = name_value & 0xFFFF
                function.hint = 0
                continue

            offset = self.try_offset(name_value)
            hint = self.source.read_at(offset, 2) if offset is not None else b""
            if len(hint) < 2:
                logger.warning(
                    "%s: hint/name entry at RVA 0x%x is truncated",
                    record.name,
                    name_value,
                )
                break

            (function.hint,) = struct.unpack("<H", hint)
            function.fname = (
                self.source.read_string(offset + 2, self.symbol_name_max_length)
            ).decode("latin-1")

    def iter_table(self, offset: Optional[int]) -> Iterator[int]:
        """Pointer-sized values starting at the given file offset.
        Stops at a zero entry or the end of the file."""
        if offset is None:
            return

        pointer_size = self.width.pointer_size
        while True:
            cursor = ByteCursor(self.source.read_at(offset, pointer_size))
            try:
                (value,) = cursor.unpack(self.width.struct_fmt)
            except TruncatedReadError:
                logger.debug("Delay import table at 0x%x runs off the file", offset)
                return

            if value == 0:
                return

            yield value
            offset += pointer_size

    def iter_name_table(self, offset: Optional[int]) -> Iterator[int]:
        for value in self.iter_table(offset):
            # Ordinals are not addresses.
            if value & self.width.ordinal_flag:
                yield value
            else:
                yield self.normalize(value)

    def iter_address_table(self, offset: Optional[int], count: int) -> Iterator[int]:
        image_base = self.translator.image_base
        image_end = image_base + self.translator.size_of_image
        for _, value in zip(range(count), self.iter_table(offset)):
            # The table always points into the image itself.
            if image_base <= value < image_end:
                value -= image_base
            yield value
