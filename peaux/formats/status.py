from enum import IntEnum


class ReadStatus(IntEnum):
    """Result of reading one directory from a byte source."""

    NONE = 0
    OPENING_FILE = 1
    INVALID_FILE = 2
