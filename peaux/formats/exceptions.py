from .status import ReadStatus


class DirectoryReadError(Exception):
    """Reading a directory failed. The status is what `read()` reports."""

    status = ReadStatus.INVALID_FILE


class SourceOpenError(DirectoryReadError):
    """The backing file or stream could not be opened or positioned."""

    status = ReadStatus.OPENING_FILE


class DirectoryBoundsError(DirectoryReadError, IndexError):
    """The declared offset and size of the directory would read
    past the end of the byte source."""


class MalformedRecordError(DirectoryReadError, ValueError):
    """A record failed validation and the rest of the directory
    cannot be trusted."""


class TruncatedReadError(IndexError):
    """Reading the given number of bytes would go past the end of the buffer.
    Decoders stop the current table when they see this."""


class InvalidVirtualAddressError(IndexError):
    """The given relative virtual address does not map to
    anything in the file."""
