#!/usr/bin/env python3

import argparse
import logging
from pathlib import Path
import struct
from typing import Optional

import colorama
import peaux
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
    SourceOpenError,
    find_rich_header_region,
)
from peaux.formats.mz import MZHeaderNotFoundError
from peaux.formats.pe import PEHeaderNotFoundError
from peaux.project.config import PEAUX_CONFIG, DecoderConfig, DirectoryKind
from peaux.project.error import PeauxConfigException
from peaux.project.logging import argparse_add_logging_args, argparse_parse_logging

logger = logging.getLogger(__name__)

colorama.just_fix_windows_console()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        allow_abbrev=False,
        description="Dump the auxiliary directories of a PE file.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {peaux.VERSION}"
    )
    parser.add_argument("filename", metavar="FILE", type=Path, help="PE image")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Decoder settings (default: {PEAUX_CONFIG} if present)",
    )
    parser.add_argument(
        "--ignore-invalid-key",
        action="store_true",
        default=None,
        help="Show the rich header even if the key does not check out",
    )
    parser.add_argument(
        "--no-color", "-n", action="store_true", help="Do not color the output"
    )
    argparse_add_logging_args(parser)

    args = parser.parse_args()

    argparse_parse_logging(args)
    return args


def load_config(args: argparse.Namespace) -> DecoderConfig:
    if args.config is not None:
        config = DecoderConfig.from_file(args.config)
    elif Path(PEAUX_CONFIG).is_file():
        config = DecoderConfig.from_file(Path(PEAUX_CONFIG))
    else:
        config = DecoderConfig.default()

    if args.ignore_invalid_key is not None:
        config.ignore_invalid_key = args.ignore_invalid_key

    return config


class Printer:
    def __init__(self, no_color: bool):
        self.no_color = no_color

    def color(self, text: str, color: str) -> str:
        if self.no_color:
            return text
        return f"{color}{text}{colorama.Style.RESET_ALL}"

    def title(self, name: str, status: Optional[ReadStatus] = None):
        if status is None:
            print(f"\n{name}")
        elif status == ReadStatus.NONE:
            print(f"\n{name}: {self.color('OK', colorama.Fore.GREEN)}")
        else:
            print(f"\n{name}: {self.color(status.name, colorama.Fore.RED)}")


def dump_rich(p: Printer, header: RichHeader):
    if header.iterations == 0:
        print("  not present")
        return

    validity = (
        p.color("valid", colorama.Fore.GREEN)
        if header.header_is_valid
        else p.color("invalid", colorama.Fore.YELLOW)
    )
    print(f"  key 0x{header.key:08x} ({validity}, {header.iterations} attempt(s))")
    for record in header:
        print(
            f"  {record.signature}  {record.product_id:4d}.{record.product_build:<6d}"
            f" x{record.count:<5d} {record.product_name:<20} {record.visual_studio_name}"
        )


def dump_delay_imports(directory: DelayImportDirectory):
    for record in directory:
        print(
            f"  {record.name}  (INT 0x{record.delay_import_name_table_rva:x},"
            f" IAT 0x{record.delay_import_address_table_rva:x})"
        )
        for function in record.functions:
            if function.is_ordinal:
                print(f"    0x{function.address:08x}  ordinal {function.ordinal}")
            else:
                print(
                    f"    0x{function.address:08x}  {function.fname} (hint {function.hint})"
                )


def dump_coff(table: CoffSymbolTable):
    print(f"  {len(table)} symbols, string table 0x{table.string_table_size:x} bytes")
    for symbol in table:
        print(
            f"  [{symbol.index:4d}] {symbol.signed_section_number:4d} 0x{symbol.value:08x}"
            f" class {symbol.storage_class:3d}  {symbol.name}"
        )


def dump_security(directory: SecurityDirectory):
    for i, entry in enumerate(directory):
        print(
            f"  [{i}] revision 0x{entry.revision:04x} type {entry.certificate_type}"
            f" length 0x{entry.length:x}"
        )


def dump_relocations(directory: RelocationsDirectory):
    for block in directory:
        print(
            f"  page 0x{block.virtual_address:08x}  size 0x{block.size_of_block:x}"
            f"  {len(block.entries)} entries"
        )


# pylint: disable=too-many-locals
def main():
    args = parse_args()

    try:
        config = load_config(args)
    except PeauxConfigException as e:
        logger.error("%s", e.args[0])
        return 1

    try:
        data = args.filename.read_bytes()
    except OSError as e:
        logger.error("Cannot open %s: %s", args.filename, e.strerror)
        return 1

    try:
        pe = PEHeader.from_memory(data)
    except (MZHeaderNotFoundError, PEHeaderNotFoundError, struct.error):
        logger.error("%s is not a PE image", args.filename)
        return 1

    p = Printer(args.no_color)
    statuses: list[ReadStatus] = []

    try:
        with ByteSource.open(args.filename) as source:
            if config.wants(DirectoryKind.RICH):
                header = RichHeader()
                (offset, size) = find_rich_header_region(data, pe.mz_header)
                status = header.read(
                    source, offset, size, ignore_invalid_key=config.ignore_invalid_key
                )
                statuses.append(status)
                p.title("Rich header", status)
                dump_rich(p, header)

            if config.wants(DirectoryKind.DELAY_IMPORT) and pe.get_directory(
                PEDataDirectoryItemType.DELAY_IMPORT_DESCRIPTOR
            ).rva:
                delay_imports = DelayImportDirectory(
                    PEWidth.from_magic(pe.optional_header.magic),
                    library_name_max_length=config.library_name_max_length,
                    symbol_name_max_length=config.symbol_name_max_length,
                )
                status = delay_imports.read(source, pe)
                statuses.append(status)
                p.title("Delay imports", status)
                dump_delay_imports(delay_imports)

            (symbol_offset, symbol_size) = pe.symbol_table_region
            if config.wants(DirectoryKind.COFF) and symbol_offset:
                coff = CoffSymbolTable(name_check_length=config.coff_name_check_length)
                status = coff.read(source, symbol_offset, symbol_size)
                statuses.append(status)
                p.title("COFF symbols", status)
                dump_coff(coff)

            security_dir = pe.get_directory(PEDataDirectoryItemType.CERTIFICATE_TABLE)
            if config.wants(DirectoryKind.SECURITY) and security_dir.rva:
                security = SecurityDirectory()
                status = security.read(
                    source, security_dir.rva, security_dir.virtual_size
                )
                statuses.append(status)
                p.title("Certificates", status)
                dump_security(security)

            if config.wants(DirectoryKind.RELOCATIONS) and pe.get_directory(
                PEDataDirectoryItemType.BASE_RELOCATION_TABLE
            ).rva:
                relocations = RelocationsDirectory()
                status = relocations.read(source, pe)
                statuses.append(status)
                p.title("Base relocations", status)
                dump_relocations(relocations)

    except SourceOpenError as e:
        logger.error("%s", e)
        return 1

    return 0 if all(status == ReadStatus.NONE for status in statuses) else 1


if __name__ == "__main__":
    raise SystemExit(main())
