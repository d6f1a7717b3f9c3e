"""Tests for the string pool codec."""

import struct

import pytest

from fdb_tables.errors import OffsetOutOfRange, StringDecodeError
from fdb_tables.strings import (
    StringPool,
    decode_indexed,
    decode_legacy,
    encode_indexed_bytes,
    encode_legacy_bytes,
)


class TestDecode:
    """Tests for decoding pool entries."""

    def test_decode_legacy(self):
        """Legacy strings stop at the NUL terminator."""
        buf = b"xxItemComponent\x00junk"
        assert decode_legacy(buf, 2) == "ItemComponent"

    def test_decode_legacy_latin1(self):
        """Bytes above 0x7f decode as latin-1."""
        assert decode_legacy(b"caf\xe9\x00", 0) == "café"

    def test_decode_legacy_empty(self):
        """A terminator at the offset is the empty string."""
        assert decode_legacy(b"\x00", 0) == ""

    def test_decode_legacy_long(self):
        """Strings longer than one scan chunk are found."""
        text = "x" * 1000
        assert decode_legacy(text.encode() + b"\x00", 0) == text

    def test_decode_legacy_unterminated(self):
        """A missing terminator is a string decode error."""
        with pytest.raises(StringDecodeError):
            decode_legacy(b"abc", 0)

    def test_decode_legacy_out_of_range(self):
        """An offset past the end is out of range."""
        with pytest.raises(OffsetOutOfRange):
            decode_legacy(b"abc\x00", 4)

    def test_decode_indexed(self):
        """Indexed strings are a length prefix and UTF-8 bytes."""
        data = "héllo".encode("utf-8")
        buf = b"\x00" * 4 + struct.pack("<I", len(data)) + data
        assert decode_indexed(buf, 4) == "héllo"

    def test_decode_indexed_length_too_long(self):
        """A length running past the buffer is a string decode error."""
        buf = struct.pack("<I", 10) + b"abc"
        with pytest.raises(StringDecodeError):
            decode_indexed(buf, 0)

    def test_decode_indexed_invalid_utf8(self):
        """Invalid UTF-8 is rejected, not replaced."""
        buf = struct.pack("<I", 1) + b"\xff"
        with pytest.raises(StringDecodeError):
            decode_indexed(buf, 0)

    def test_decode_indexed_out_of_range(self):
        """An offset past the end is out of range."""
        with pytest.raises(OffsetOutOfRange):
            decode_indexed(b"\x00" * 4, 8)

    def test_accepts_memoryview(self):
        """Decoding works on memoryviews."""
        buf = memoryview(b"abc\x00")
        assert decode_legacy(buf, 0) == "abc"


class TestEncode:
    """Tests for encoding pool entries."""

    def test_encode_legacy_bytes(self):
        assert encode_legacy_bytes("abc") == b"abc\x00"

    def test_encode_legacy_unrepresentable(self):
        """Characters outside latin-1 fail instead of being substituted."""
        with pytest.raises(StringDecodeError):
            encode_legacy_bytes("€")

    def test_encode_legacy_rejects_nul(self):
        """An embedded NUL would truncate the string."""
        with pytest.raises(StringDecodeError):
            encode_legacy_bytes("a\x00b")

    def test_encode_indexed_bytes(self):
        assert encode_indexed_bytes("€") == struct.pack("<I", 3) + "€".encode("utf-8")

    def test_encode_indexed_lone_surrogate(self):
        with pytest.raises(StringDecodeError):
            encode_indexed_bytes("\ud800")


class TestStringPool:
    """Tests for the StringPool class."""

    def test_offsets_are_absolute_and_aligned(self):
        """Entries start at the pool base and on 4-byte boundaries."""
        pool = StringPool(base=100)
        first = pool.encode_legacy("abc")  # 4 bytes
        second = pool.encode_legacy("abcd")  # 5 bytes, padded to 8
        third = pool.encode_legacy("z")
        assert first == 100
        assert second == 104
        assert third == 112
        assert len(pool) == 116 - 100

    def test_round_trip_through_bytes(self):
        """Offsets returned by the pool decode back to the text."""
        pool = StringPool(base=8)
        legacy = pool.encode_legacy("Objects")
        indexed = pool.encode_indexed("naïve ☃")
        buf = b"\x00" * 8 + pool.to_bytes()
        assert decode_legacy(buf, legacy) == "Objects"
        assert decode_indexed(buf, indexed) == "naïve ☃"

    def test_interning(self):
        """Identical entries share an offset when interning is enabled."""
        pool = StringPool()
        assert pool.encode_legacy("name") == pool.encode_legacy("name")
        assert len(pool) == 8

    def test_no_interning(self):
        """Without interning every entry is appended."""
        pool = StringPool(intern=False)
        assert pool.encode_legacy("name") != pool.encode_legacy("name")
        assert len(pool) == 16

    def test_legacy_and_indexed_are_distinct(self):
        """The same text in both encodings gets two entries."""
        pool = StringPool()
        assert pool.encode_legacy("abc") != pool.encode_indexed("abc")

    def test_unaligned_base_rejected(self):
        with pytest.raises(ValueError):
            StringPool(base=3)

    def test_failed_encode_appends_nothing(self):
        """An unencodable string leaves the pool unchanged."""
        pool = StringPool()
        pool.encode_legacy("ok")
        with pytest.raises(StringDecodeError):
            pool.encode_legacy("☃")
        assert len(pool) == 4
