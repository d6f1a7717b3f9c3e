"""Binary layout of an FDB file.

Every structure is a run of little-endian uint32 words and every reference
is an absolute byte offset from the start of the buffer::

    header            table_count, table_list_addr
    table list entry  def_header_addr, data_header_addr
    def header        column_count, name_addr, column_list_addr
    column entry      value_type, name_addr
    data header       bucket_count, bucket_list_addr
    bucket            first_entry_addr
    row list entry    row_header_addr, next_entry_addr
    row header        field_count, field_list_addr
    field slot        value_type, value word

Strings and 64-bit integers live in a shared pool after the tables.
"""

from __future__ import annotations

import struct
from typing import Any

from fdb_tables.errors import OffsetOutOfRange, TruncatedBuffer

# Sentinel offset: empty bucket / end of a row chain
NO_OFFSET = 0xFFFFFFFF

HEADER = struct.Struct("<II")
TABLE_ENTRY = struct.Struct("<II")
TABLE_DEF = struct.Struct("<III")
COLUMN_ENTRY = struct.Struct("<II")
TABLE_DATA = struct.Struct("<II")
BUCKET = struct.Struct("<I")
ROW_ENTRY = struct.Struct("<II")
ROW_HEADER = struct.Struct("<II")
FIELD_SLOT = struct.Struct("<I4s")
WORD = struct.Struct("<I")


def check_region(
    buf: Any,
    offset: int,
    size: int,
    what: str,
    table: str | int | None = None,
) -> None:
    """Check that ``size`` bytes at ``offset`` lie inside ``buf``.

    Raises:
        OffsetOutOfRange: If the region starts at or past the end of the buffer.
        TruncatedBuffer: If the region starts inside but runs past the end.
    """
    length = len(buf)
    if size == 0:
        if offset < 0 or offset > length:
            raise OffsetOutOfRange(f"{what} offset out of range", offset=offset, table=table)
        return
    if offset < 0 or offset >= length:
        raise OffsetOutOfRange(f"{what} offset out of range", offset=offset, table=table)
    if offset + size > length:
        raise TruncatedBuffer(
            f"{what} needs {size} bytes but only {length - offset} remain",
            offset=offset,
            table=table,
        )


def read_struct(
    buf: Any,
    fmt: struct.Struct,
    offset: int,
    what: str,
    table: str | int | None = None,
) -> tuple[Any, ...]:
    """Unpack ``fmt`` at ``offset`` after bounds-checking it."""
    check_region(buf, offset, fmt.size, what, table)
    return fmt.unpack_from(buf, offset)


def align(offset: int, alignment: int = 4) -> int:
    """Round ``offset`` up to a multiple of ``alignment``."""
    return (offset + alignment - 1) // alignment * alignment
