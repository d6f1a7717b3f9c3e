"""Errors raised while decoding or encoding FDB files."""

from __future__ import annotations


class FdbError(ValueError):
    """Base class for every format error.

    Attributes:
        offset: Byte offset of the offending structure, when known.
        table: Name or index of the table being processed, when known.
    """

    def __init__(self, message: str, *, offset: int | None = None, table: str | int | None = None) -> None:
        self.offset = offset
        self.table = table
        details = []
        if table is not None:
            details.append(f"table {table!r}")
        if offset is not None:
            details.append(f"offset {offset:#x}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


# Everything decode() raises derives from this.
DecodeError = FdbError


class TruncatedBuffer(FdbError):
    """A declared region runs past the end of the buffer."""


class OffsetOutOfRange(FdbError):
    """An offset points at or past the end of the buffer."""


class SchemaMismatch(FdbError):
    """A field disagrees with its column's arity or kind."""


class StringDecodeError(FdbError):
    """A string cannot be decoded, or cannot be encoded in its target encoding."""


class InvalidTableDirectory(FdbError):
    """The table directory or a row chain is internally inconsistent."""
