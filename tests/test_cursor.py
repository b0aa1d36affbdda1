"""Bounds-checked reads from memory buffers"""

import pytest
from peaux.formats.cursor import ByteCursor
from peaux.formats.exceptions import TruncatedReadError


def test_sequential_reads():
    cursor = ByteCursor(b"\x01\x02\x03\x04\x05\x06\x07\x08\x09\x0a\x0b\x0c\x0d\x0e\x0f")
    assert cursor.read_u8() == 0x01
    assert cursor.read_u16() == 0x0302
    assert cursor.read_u32() == 0x07060504
    assert cursor.read_u64() == 0x0F0E0D0C0B0A0908
    assert cursor.at_end()


def test_truncated_read_keeps_position():
    """A failed read raises and does not move the cursor."""
    cursor = ByteCursor(b"\xaa\xbb\xcc")
    assert cursor.read_u16() == 0xBBAA

    with pytest.raises(TruncatedReadError):
        cursor.read_u32()

    assert cursor.offset == 2
    assert cursor.remaining == 1
    assert cursor.read_u8() == 0xCC


def test_read_bytes_and_skip():
    cursor = ByteCursor(b"hello world")
    cursor.skip(6)
    assert cursor.read_bytes(5) == b"world"

    with pytest.raises(TruncatedReadError):
        cursor.skip(1)

    with pytest.raises(TruncatedReadError):
        cursor.read_bytes(-1)


def test_seek_and_peek():
    cursor = ByteCursor(b"abcdef")
    cursor.seek(4)
    assert cursor.read_bytes(2) == b"ef"

    # Seeking to the very end is allowed, past it is not.
    cursor.seek(6)
    with pytest.raises(TruncatedReadError):
        cursor.seek(7)

    # Peek returns whatever is available and does not move.
    assert cursor.peek_bytes(3, 10) == b"def"
    assert cursor.peek_bytes(-1, 2) == b""
    assert cursor.offset == 6


def test_starting_offset():
    cursor = ByteCursor(b"\x00\x00\x34\x12", offset=2)
    assert cursor.remaining == 2
    assert cursor.unpack("<H") == (0x1234,)
