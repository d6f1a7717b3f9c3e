"""Header and table directory parser."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fdb_tables.errors import InvalidTableDirectory, TruncatedBuffer
from fdb_tables.layout import (
    BUCKET,
    COLUMN_ENTRY,
    HEADER,
    TABLE_DATA,
    TABLE_DEF,
    TABLE_ENTRY,
    check_region,
    read_struct,
)
from fdb_tables.strings import decode_legacy
from fdb_tables.values import Column, ValueType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableEntry:
    """Location and schema of one table, as read from the directory."""

    index: int
    name: str
    columns: tuple[Column, ...]
    bucket_count: int
    bucket_list_addr: int


def read_header(buf: Any) -> tuple[int, int]:
    """Return ``(table_count, table_list_addr)`` from the file header."""
    if len(buf) < HEADER.size:
        raise TruncatedBuffer(
            f"buffer of {len(buf)} bytes is shorter than the {HEADER.size}-byte header",
            offset=0,
        )
    table_count, table_list_addr = HEADER.unpack_from(buf, 0)
    if table_count and table_list_addr + table_count * TABLE_ENTRY.size > len(buf):
        raise InvalidTableDirectory(
            f"{table_count} tables do not fit in a buffer of {len(buf)} bytes",
            offset=table_list_addr,
        )
    return table_count, table_list_addr


def read_table_entry(buf: Any, index: int, entry_addr: int) -> TableEntry:
    """Read and bounds-check the headers of one table."""
    def_addr, data_addr = read_struct(buf, TABLE_ENTRY, entry_addr, "table list entry", index)
    column_count, name_addr, column_list_addr = read_struct(
        buf, TABLE_DEF, def_addr, "table definition header", index
    )
    name = decode_legacy(buf, name_addr, index)

    check_region(buf, column_list_addr, column_count * COLUMN_ENTRY.size, "column list", name)
    columns = []
    for i in range(column_count):
        code, column_name_addr = COLUMN_ENTRY.unpack_from(buf, column_list_addr + i * COLUMN_ENTRY.size)
        try:
            kind = ValueType.from_code(code)
        except ValueError as e:
            raise InvalidTableDirectory(
                f"column {i}: {e}", offset=column_list_addr + i * COLUMN_ENTRY.size, table=name
            ) from None
        columns.append(Column(decode_legacy(buf, column_name_addr, name), kind))

    bucket_count, bucket_list_addr = read_struct(buf, TABLE_DATA, data_addr, "table data header", name)
    check_region(buf, bucket_list_addr, bucket_count * BUCKET.size, "bucket array", name)

    return TableEntry(
        index=index,
        name=name,
        columns=tuple(columns),
        bucket_count=bucket_count,
        bucket_list_addr=bucket_list_addr,
    )


def read_directory(buf: Any) -> list[TableEntry]:
    """Read the table directory of an FDB buffer.

    Every offset is bounds-checked before it is followed. Tables are not
    checked against each other, so duplicate names are allowed.

    Raises:
        TruncatedBuffer: The buffer is shorter than a declared region.
        OffsetOutOfRange: An offset points past the end of the buffer.
        InvalidTableDirectory: The table count or a column type is invalid.
        StringDecodeError: A table or column name is unterminated.
    """
    table_count, table_list_addr = read_header(buf)
    logger.debug("Reading directory of %d tables at %#x", table_count, table_list_addr)
    return [
        read_table_entry(buf, i, table_list_addr + i * TABLE_ENTRY.size)
        for i in range(table_count)
    ]
