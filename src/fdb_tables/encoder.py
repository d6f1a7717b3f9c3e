"""Layout builder: serializes a builder ``Database`` into FDB bytes.

Encoding runs in three phases:

1. size computation and offset assignment for every fixed-size structure
   (header, table list, then per table the definition header, column list,
   data header, bucket array and row chains in bucket/chain order)
2. pool allocation: names, strings and 64-bit payloads are appended to one
   global pool placed after the last table
3. byte emission into a buffer of the final size

All offsets are known before any byte is written, so nothing is patched
afterwards. Any error aborts the whole encode.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from fdb_tables import buckets
from fdb_tables.errors import InvalidTableDirectory, OffsetOutOfRange, SchemaMismatch
from fdb_tables.layout import (
    BUCKET,
    COLUMN_ENTRY,
    FIELD_SLOT,
    HEADER,
    NO_OFFSET,
    ROW_ENTRY,
    ROW_HEADER,
    TABLE_DATA,
    TABLE_DEF,
    TABLE_ENTRY,
    align,
)
from fdb_tables.model import Database, Row, Table
from fdb_tables.strings import POOL_ALIGNMENT, StringPool
from fdb_tables.values import encode_field, field_matches

logger = logging.getLogger(__name__)


@dataclass
class _RowPlan:
    row: Row
    entry_addr: int
    row_addr: int
    field_list_addr: int
    slots: list[bytes] = field(default_factory=list)


@dataclass
class _TablePlan:
    table: Table
    def_addr: int
    column_list_addr: int
    data_addr: int
    bucket_list_addr: int
    # One list of rows per bucket, in chain order
    chains: list[list[_RowPlan]] = field(default_factory=list)
    name_addr: int = 0
    column_name_addrs: list[int] = field(default_factory=list)


class LayoutBuilder:
    """Computes the layout of a database and emits its bytes."""

    def __init__(self, database: Database, intern_strings: bool = True) -> None:
        self.database = database
        self.intern_strings = intern_strings
        self._plans: list[_TablePlan] = []
        self._table_list_addr = 0

    def check_schema(self) -> None:
        """Check every row against its table's columns and bucket index."""
        for table in self.database.tables:
            for index, bucket in enumerate(table.buckets()):
                for row in bucket.rows():
                    self._check_row(table, index, row)

    def _check_row(self, table: Table, bucket: int, row: Row) -> None:
        columns = table.columns
        if row.field_count != len(columns):
            raise SchemaMismatch(
                f"row has {row.field_count} fields but the table has {len(columns)} columns",
                table=table.name,
            )
        for i, column in enumerate(columns):
            value = row.field(i)
            if not field_matches(value, column.kind):
                raise SchemaMismatch(
                    f"field {i} is {value.kind} but column {column.name!r} is {column.kind}",
                    table=table.name,
                )
        if columns:
            expected = buckets.bucket_index(row.field(buckets.KEY_COLUMN), table.bucket_count)
            if expected != bucket:
                raise InvalidTableDirectory(
                    f"row keyed {row.field(buckets.KEY_COLUMN)} is in bucket {bucket} but belongs in bucket {expected}",
                    table=table.name,
                )

    def assign_offsets(self) -> int:
        """Place every fixed-size structure and return the end offset."""
        offset = HEADER.size
        self._table_list_addr = offset
        offset += len(self.database.tables) * TABLE_ENTRY.size

        self._plans = []
        for table in self.database.tables:
            column_count = len(table.columns)
            plan = _TablePlan(table=table, def_addr=offset, column_list_addr=0, data_addr=0, bucket_list_addr=0)
            offset += TABLE_DEF.size
            plan.column_list_addr = offset
            offset += column_count * COLUMN_ENTRY.size
            plan.data_addr = offset
            offset += TABLE_DATA.size
            plan.bucket_list_addr = offset
            offset += table.bucket_count * BUCKET.size

            for bucket in table.buckets():
                chain = []
                for row in bucket.rows():
                    entry_addr = offset
                    row_addr = entry_addr + ROW_ENTRY.size
                    field_list_addr = row_addr + ROW_HEADER.size
                    offset = field_list_addr + column_count * FIELD_SLOT.size
                    chain.append(_RowPlan(row, entry_addr, row_addr, field_list_addr))
                plan.chains.append(chain)
            self._plans.append(plan)

        return offset

    def allocate_pool(self, base: int) -> StringPool:
        """Append every name and field payload to the pool."""
        pool = StringPool(base, intern=self.intern_strings)
        for plan in self._plans:
            plan.name_addr = pool.encode_legacy(plan.table.name)
            plan.column_name_addrs = [pool.encode_legacy(c.name) for c in plan.table.columns]
            for chain in plan.chains:
                for row_plan in chain:
                    row_plan.slots = [encode_field(f, pool) for f in row_plan.row.fields]
        return pool

    def emit(self, pool: StringPool) -> bytes:
        """Write all structures and ``pool`` into one buffer."""
        pool_base = pool.base
        total = pool_base + len(pool)
        if total > NO_OFFSET:
            raise OffsetOutOfRange(f"encoded size {total} exceeds the 32-bit offset space", offset=total)

        buf = bytearray(total)
        HEADER.pack_into(buf, 0, len(self._plans), self._table_list_addr)
        for i, plan in enumerate(self._plans):
            TABLE_ENTRY.pack_into(buf, self._table_list_addr + i * TABLE_ENTRY.size, plan.def_addr, plan.data_addr)
            TABLE_DEF.pack_into(buf, plan.def_addr, len(plan.table.columns), plan.name_addr, plan.column_list_addr)
            for j, column in enumerate(plan.table.columns):
                COLUMN_ENTRY.pack_into(
                    buf,
                    plan.column_list_addr + j * COLUMN_ENTRY.size,
                    int(column.kind),
                    plan.column_name_addrs[j],
                )
            TABLE_DATA.pack_into(buf, plan.data_addr, plan.table.bucket_count, plan.bucket_list_addr)

            for b, chain in enumerate(plan.chains):
                head = chain[0].entry_addr if chain else NO_OFFSET
                BUCKET.pack_into(buf, plan.bucket_list_addr + b * BUCKET.size, head)
                for k, row_plan in enumerate(chain):
                    next_addr = chain[k + 1].entry_addr if k + 1 < len(chain) else NO_OFFSET
                    ROW_ENTRY.pack_into(buf, row_plan.entry_addr, row_plan.row_addr, next_addr)
                    ROW_HEADER.pack_into(buf, row_plan.row_addr, len(row_plan.slots), row_plan.field_list_addr)
                    for s, slot in enumerate(row_plan.slots):
                        start = row_plan.field_list_addr + s * FIELD_SLOT.size
                        buf[start : start + FIELD_SLOT.size] = slot

        buf[pool_base:total] = pool.to_bytes()
        return bytes(buf)

    def build(self) -> bytes:
        self.check_schema()
        end = self.assign_offsets()
        pool_base = align(end, POOL_ALIGNMENT)
        pool = self.allocate_pool(pool_base)
        data = self.emit(pool)
        logger.debug(
            "Encoded %d tables into %d bytes (pool %d bytes at %#x)",
            len(self._plans),
            len(data),
            len(pool),
            pool_base,
        )
        return data


def encode(database: Any, *, intern_strings: bool = True) -> bytes:
    """Encode a database into FDB bytes.

    Args:
        database: A builder database, or a decoded one, which is copied
            into a builder first.
        intern_strings: Store identical strings and 64-bit payloads once.

    Returns:
        The encoded file contents.

    Raises:
        SchemaMismatch: A row disagrees with its table's columns.
        StringDecodeError: A string cannot be encoded.
        OffsetOutOfRange: The result would not fit 32-bit offsets.
    """
    if not isinstance(database, Database):
        database = Database.from_view(database)
    return LayoutBuilder(database, intern_strings=intern_strings).build()
