"""Base relocation directory (IMAGE_DIRECTORY_ENTRY_BASERELOC).

The directory is a list of blocks, one per 4K page. The first 8 bytes of a
block are 2 dwords that give the page RVA and the total block size
(including this header). Each following word is one relocation: the top 4
bits are the type and the low 12 bits the offset into the page.
"""

import dataclasses
from enum import IntEnum
import logging
from pathlib import Path
import struct
from typing import Iterator, Optional, Union

from .cursor import ByteCursor
from .exceptions import (
    DirectoryBoundsError,
    DirectoryReadError,
    InvalidVirtualAddressError,
    SourceOpenError,
    TruncatedReadError,
)
from .pe import PEDataDirectoryItemType
from .source import ByteSource
from .status import ReadStatus
from .translator import AddressTranslator

logger = logging.getLogger(__name__)

BLOCK_HEADER_FMT = "<2I"
BLOCK_HEADER_SIZE = struct.calcsize(BLOCK_HEADER_FMT)  # 8


class BaseRelocationType(IntEnum):
    IMAGE_REL_BASED_ABSOLUTE = 0
    IMAGE_REL_BASED_HIGH = 1
    IMAGE_REL_BASED_LOW = 2
    IMAGE_REL_BASED_HIGHLOW = 3
    IMAGE_REL_BASED_HIGHADJ = 4
    IMAGE_REL_BASED_MIPS_JMPADDR = 5
    IMAGE_REL_BASED_THUMB_MOV32 = 7
    IMAGE_REL_BASED_RISCV_LOW12S = 8
    IMAGE_REL_BASED_MIPS_JMPADDR16 = 9
    IMAGE_REL_BASED_DIR64 = 10


def relocation_type(entry: int) -> int:
    return entry >> 12


def relocation_offset(entry: int) -> int:
    return entry & 0xFFF


@dataclasses.dataclass
class RelocationBlock:
    virtual_address: int = 0
    size_of_block: int = BLOCK_HEADER_SIZE
    entries: list[int] = dataclasses.field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def rebuilt_size(self) -> int:
        return BLOCK_HEADER_SIZE + 2 * len(self.entries)


class RelocationsDirectory:
    def __init__(self):
        self.blocks: list[RelocationBlock] = []

    def __len__(self) -> int:
        return len(self.blocks)

    def __iter__(self) -> Iterator[RelocationBlock]:
        return iter(self.blocks)

    def get(self, index: int) -> Optional[RelocationBlock]:
        if 0 <= index < len(self.blocks):
            return self.blocks[index]
        return None

    def get_entry(self, block_index: int, entry_index: int) -> Optional[int]:
        block = self.get(block_index)
        if block is None or not 0 <= entry_index < len(block.entries):
            return None
        return block.entries[entry_index]

    def read(self, source: ByteSource, translator: AddressTranslator) -> ReadStatus:
        self.blocks = []
        directory = translator.get_directory(
            PEDataDirectoryItemType.BASE_RELOCATION_TABLE
        )
        try:
            try:
                offset = translator.rva_to_offset(directory.rva)
            except InvalidVirtualAddressError as ex:
                raise DirectoryBoundsError(
                    f"Relocation directory RVA 0x{directory.rva:x} is not mapped"
                ) from ex

            data = source.read_region(offset, directory.virtual_size)
        except DirectoryReadError as ex:
            logger.warning("Cannot read relocation directory: %s", ex)
            return ex.status

        self.decode(data)
        return ReadStatus.NONE

    def decode(self, data: bytes):
        self.blocks = []
        cursor = ByteCursor(data)
        while cursor.remaining >= BLOCK_HEADER_SIZE:
            (virtual_address, size_of_block) = cursor.unpack(BLOCK_HEADER_FMT)

            # Zero padding after the last block.
            if size_of_block == 0:
                break

            if size_of_block < BLOCK_HEADER_SIZE:
                logger.warning(
                    "Relocation block at 0x%x has invalid size 0x%x",
                    cursor.offset - BLOCK_HEADER_SIZE,
                    size_of_block,
                )
                break

            count = (size_of_block - BLOCK_HEADER_SIZE) // 2
            entries = []
            try:
                for _ in range(count):
                    entries.append(cursor.read_u16())
            except TruncatedReadError:
                logger.warning(
                    "Relocation block for page 0x%x is truncated: %d of %d entries",
                    virtual_address,
                    len(entries),
                    count,
                )

            self.blocks.append(RelocationBlock(virtual_address, size_of_block, entries))

        logger.debug("Read %d relocation blocks", len(self.blocks))

    def iter_relocated_rvas(self) -> Iterator[int]:
        """RVA of each location the loader will patch.
        ABSOLUTE entries are padding and are skipped."""
        for block in self.blocks:
            for entry in block.entries:
                if relocation_type(entry) != BaseRelocationType.IMAGE_REL_BASED_ABSOLUTE:
                    yield block.virtual_address + relocation_offset(entry)

    def size(self) -> int:
        return sum(block.rebuilt_size for block in self.blocks)

    def rebuild(self) -> bytes:
        """Serialize the directory. SizeOfBlock is written as stored,
        so keep it in sync when editing entries."""
        buffer = bytearray()
        for block in self.blocks:
            buffer += struct.pack(
                BLOCK_HEADER_FMT, block.virtual_address, block.size_of_block
            )
            buffer += struct.pack(f"<{len(block.entries)}H", *block.entries)
        return bytes(buffer)

    def write(self, filepath: Union[str, Path], offset: int):
        """Overwrite the directory in an existing file at the given offset."""
        try:
            with Path(filepath).open("r+b") as f:
                f.seek(offset)
                f.write(self.rebuild())
        except OSError as ex:
            raise SourceOpenError(f"{filepath} : {ex.strerror}") from ex

    def add_block(self, virtual_address: int = 0) -> RelocationBlock:
        block = RelocationBlock(virtual_address=virtual_address)
        self.blocks.append(block)
        return block

    def remove_block(self, index: int):
        del self.blocks[index]

    def set_virtual_address(self, index: int, virtual_address: int):
        self.blocks[index].virtual_address = virtual_address

    def set_size_of_block(self, index: int, size_of_block: int):
        self.blocks[index].size_of_block = size_of_block

    def add_entry(self, block_index: int, entry: int):
        self.blocks[block_index].entries.append(entry & 0xFFFF)

    def remove_entry(self, block_index: int, entry_index: int):
        del self.blocks[block_index].entries[entry_index]

    def set_entry(self, block_index: int, entry_index: int, entry: int):
        self.blocks[block_index].entries[entry_index] = entry & 0xFFFF
