from .coff import CoffSymbol, CoffSymbolTable
from .cursor import ByteCursor
from .delayimport import DelayImportDirectory, DelayImportFunction, DelayImportRecord
from .exceptions import (
    DirectoryBoundsError,
    DirectoryReadError,
    InvalidVirtualAddressError,
    MalformedRecordError,
    SourceOpenError,
    TruncatedReadError,
)
from .mz import ImageDosHeader
from .pe import PEDataDirectoryItemHeader, PEDataDirectoryItemType, PEHeader
from .relocations import BaseRelocationType, RelocationBlock, RelocationsDirectory
from .rich import RichHeader, RichHeaderRecord, find_rich_header_region
from .security import CertificateEntry, SecurityDirectory
from .source import ByteSource
from .status import ReadStatus
from .translator import AddressTranslator, PEWidth
