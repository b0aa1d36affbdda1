"""Security directory (IMAGE_DIRECTORY_ENTRY_SECURITY): a list of WIN_CERTIFICATE
entries. The directory entry holds a file offset rather than an RVA, and the
data is not mapped into memory when the image is loaded.
Nothing here checks the signatures themselves."""

import dataclasses
from enum import IntEnum
import logging
import struct
from typing import Iterator, Optional

from .cursor import ByteCursor
from .exceptions import DirectoryReadError, MalformedRecordError, TruncatedReadError
from .source import ByteSource
from .status import ReadStatus

logger = logging.getLogger(__name__)

CERTIFICATE_HEADER_FMT = "<I2H"
CERTIFICATE_HEADER_SIZE = struct.calcsize(CERTIFICATE_HEADER_FMT)  # 8


class WinCertificateRevision(IntEnum):
    WIN_CERT_REVISION_1_0 = 0x0100
    WIN_CERT_REVISION_2_0 = 0x0200


class WinCertificateType(IntEnum):
    WIN_CERT_TYPE_X509 = 0x0001
    WIN_CERT_TYPE_PKCS_SIGNED_DATA = 0x0002
    WIN_CERT_TYPE_RESERVED_1 = 0x0003
    WIN_CERT_TYPE_TS_STACK_SIGNED = 0x0004


@dataclasses.dataclass(frozen=True)
class CertificateEntry:
    length: int
    revision: int
    certificate_type: int
    certificate: bytes = dataclasses.field(repr=False)

    @classmethod
    def from_cursor(cls, cursor: ByteCursor) -> "CertificateEntry":
        """Read and validate one WIN_CERTIFICATE."""
        try:
            (length, revision, certificate_type) = cursor.unpack(CERTIFICATE_HEADER_FMT)
        except TruncatedReadError as ex:
            raise MalformedRecordError(
                f"Certificate header at 0x{cursor.offset:x} is truncated"
            ) from ex

        if length <= CERTIFICATE_HEADER_SIZE:
            raise MalformedRecordError(f"Certificate length {length} is too small")

        if revision not in (
            WinCertificateRevision.WIN_CERT_REVISION_1_0,
            WinCertificateRevision.WIN_CERT_REVISION_2_0,
        ):
            raise MalformedRecordError(f"Unknown certificate revision 0x{revision:x}")

        if certificate_type != WinCertificateType.WIN_CERT_TYPE_PKCS_SIGNED_DATA:
            raise MalformedRecordError(
                f"Unsupported certificate type 0x{certificate_type:x}"
            )

        try:
            certificate = cursor.read_bytes(length - CERTIFICATE_HEADER_SIZE)
        except TruncatedReadError as ex:
            raise MalformedRecordError(
                f"Certificate length {length} is larger than the directory"
            ) from ex

        return cls(length, revision, certificate_type, certificate)


class SecurityDirectory:
    def __init__(self):
        self.certificates: list[CertificateEntry] = []

    def __len__(self) -> int:
        return len(self.certificates)

    def __iter__(self) -> Iterator[CertificateEntry]:
        return iter(self.certificates)

    def get(self, index: int) -> Optional[CertificateEntry]:
        if 0 <= index < len(self.certificates):
            return self.certificates[index]
        return None

    def get_certificate(self, index: int) -> bytes:
        entry = self.get(index)
        return entry.certificate if entry is not None else b""

    def read(self, source: ByteSource, offset: int, size: int) -> ReadStatus:
        """Certificates read before a bad entry are kept even though
        the result is INVALID_FILE."""
        self.certificates = []
        try:
            data = source.read_region(offset, size)
            self.decode(data)
        except DirectoryReadError as ex:
            logger.warning("Cannot read security directory: %s", ex)
            return ex.status

        return ReadStatus.NONE

    def decode(self, data: bytes):
        self.certificates = []
        cursor = ByteCursor(data)
        bytes_read = 0
        while bytes_read < len(data):
            entry = CertificateEntry.from_cursor(cursor)
            bytes_read += entry.length
            self.certificates.append(entry)
            logger.debug(
                "Certificate %d: length 0x%x, revision 0x%x",
                len(self.certificates) - 1,
                entry.length,
                entry.revision,
            )
