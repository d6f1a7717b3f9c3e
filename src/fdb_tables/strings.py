"""String pool codec.

Two string representations share the pool at the end of a file:

- legacy strings: latin-1 bytes followed by a NUL terminator (TEXT fields,
  table and column names)
- indexed strings: a uint32 byte length followed by that many UTF-8 bytes
  (VARCHAR fields)

Every pool entry starts on a 4-byte boundary. 64-bit integer payloads are
stored in the same pool as raw blobs.
"""

from __future__ import annotations

from typing import Any

from fdb_tables.errors import OffsetOutOfRange, StringDecodeError
from fdb_tables.layout import WORD, align, check_region

LEGACY_ENCODING = "latin-1"
INDEXED_ENCODING = "utf-8"
POOL_ALIGNMENT = 4

# Bytes scanned per step while looking for a legacy terminator
_SCAN_CHUNK = 256


def _find_terminator(buf: Any, start: int) -> int:
    """Return the offset of the first NUL byte at or after ``start``, or -1."""
    length = len(buf)
    pos = start
    while pos < length:
        chunk = bytes(buf[pos : min(pos + _SCAN_CHUNK, length)])
        found = chunk.find(b"\x00")
        if found >= 0:
            return pos + found
        pos += len(chunk)
    return -1


def decode_legacy(buf: Any, offset: int, table: str | int | None = None) -> str:
    """Decode the NUL-terminated latin-1 string at ``offset``."""
    if offset < 0 or offset >= len(buf):
        raise OffsetOutOfRange("string offset out of range", offset=offset, table=table)
    end = _find_terminator(buf, offset)
    if end < 0:
        raise StringDecodeError("unterminated legacy string", offset=offset, table=table)
    return bytes(buf[offset:end]).decode(LEGACY_ENCODING)


def decode_indexed(buf: Any, offset: int, table: str | int | None = None) -> str:
    """Decode the length-prefixed UTF-8 string at ``offset``."""
    check_region(buf, offset, WORD.size, "indexed string", table)
    (length,) = WORD.unpack_from(buf, offset)
    start = offset + WORD.size
    if start + length > len(buf):
        raise StringDecodeError(
            f"indexed string length {length} exceeds remaining buffer",
            offset=offset,
            table=table,
        )
    try:
        return bytes(buf[start : start + length]).decode(INDEXED_ENCODING)
    except UnicodeDecodeError as e:
        raise StringDecodeError(f"invalid {INDEXED_ENCODING} in indexed string: {e.reason}", offset=offset, table=table) from e


def encode_legacy_bytes(text: str) -> bytes:
    """Return the legacy pool entry for ``text`` (without padding)."""
    if "\x00" in text:
        raise StringDecodeError(f"legacy string cannot contain NUL: {text!r}")
    try:
        return text.encode(LEGACY_ENCODING) + b"\x00"
    except UnicodeEncodeError as e:
        raise StringDecodeError(
            f"{text!r} is not representable in {LEGACY_ENCODING}: {e.reason}"
        ) from e


def encode_indexed_bytes(text: str) -> bytes:
    """Return the indexed pool entry for ``text`` (without padding)."""
    try:
        data = text.encode(INDEXED_ENCODING)
    except UnicodeEncodeError as e:
        # Lone surrogates
        raise StringDecodeError(
            f"{text!r} is not representable in {INDEXED_ENCODING}: {e.reason}"
        ) from e
    return WORD.pack(len(data)) + data


class StringPool:
    """Append-only pool of strings and blobs referenced by absolute offset.

    Entries are never rewritten; editing a string means appending a new
    entry. With ``intern`` enabled, identical entries share one offset.
    """

    def __init__(self, base: int = 0, intern: bool = True) -> None:
        """Initialize an empty pool.

        Args:
            base: Absolute offset of the pool's first byte in the final file.
            intern: Whether identical entries are stored once.
        """
        if base % POOL_ALIGNMENT:
            raise ValueError(f"Pool base {base} is not {POOL_ALIGNMENT}-byte aligned")
        self.base = base
        self.intern = intern
        self._data = bytearray()
        self._offsets: dict[bytes, int] = {}

    def __len__(self) -> int:
        return len(self._data)

    def append(self, blob: bytes) -> int:
        """Append a raw entry and return its absolute offset."""
        if self.intern:
            existing = self._offsets.get(blob)
            if existing is not None:
                return existing
        offset = self.base + len(self._data)
        self._data += blob
        self._data += b"\x00" * (align(len(self._data), POOL_ALIGNMENT) - len(self._data))
        if self.intern:
            self._offsets[blob] = offset
        return offset

    def encode_legacy(self, text: str) -> int:
        """Append ``text`` as a legacy string and return its offset."""
        return self.append(encode_legacy_bytes(text))

    def encode_indexed(self, text: str) -> int:
        """Append ``text`` as an indexed string and return its offset."""
        return self.append(encode_indexed_bytes(text))

    def to_bytes(self) -> bytes:
        return bytes(self._data)
