"""Zero-copy, read-only views over an encoded FDB buffer.

``decode`` parses the table directory and returns a ``Database`` whose
tables, buckets and rows are thin objects holding the buffer and offsets.
Row and field data are unpacked from the buffer on access; nothing is
copied up front. Views never change after construction, so any number of
threads may read them at once.

The lifetime of every view is bound to the buffer it was decoded from.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from fdb_tables import buckets
from fdb_tables.directory import TableEntry, read_directory
from fdb_tables.errors import InvalidTableDirectory, SchemaMismatch
from fdb_tables.layout import (
    BUCKET,
    FIELD_SLOT,
    NO_OFFSET,
    ROW_ENTRY,
    ROW_HEADER,
    check_region,
    read_struct,
)
from fdb_tables.values import Column, Field, decode_field, field_matches

logger = logging.getLogger(__name__)


def _as_byte_view(buffer: Any) -> memoryview:
    view = memoryview(buffer)
    if view.ndim != 1 or view.format != "B":
        view = view.cast("B")
    return view


def _walk_chain(buf: memoryview, head: int, table: str) -> Iterator[tuple[int, int, int, int]]:
    """Yield ``(entry_addr, row_addr, field_count, field_list_addr)`` along a chain."""
    # A chain longer than this must revisit an entry
    limit = len(buf) // ROW_ENTRY.size
    addr = head
    steps = 0
    while addr != NO_OFFSET:
        steps += 1
        if steps > limit:
            raise InvalidTableDirectory("row chain does not terminate", offset=head, table=table)
        row_addr, next_addr = read_struct(buf, ROW_ENTRY, addr, "row list entry", table)
        field_count, field_list_addr = read_struct(buf, ROW_HEADER, row_addr, "row header", table)
        check_region(buf, field_list_addr, field_count * FIELD_SLOT.size, "field list", table)
        yield addr, row_addr, field_count, field_list_addr
        addr = next_addr


class Row:
    """A row inside a decoded buffer."""

    __slots__ = ("_buf", "_table", "_field_count", "_field_list_addr")

    def __init__(self, buf: memoryview, table: str, field_count: int, field_list_addr: int) -> None:
        self._buf = buf
        self._table = table
        self._field_count = field_count
        self._field_list_addr = field_list_addr

    @property
    def field_count(self) -> int:
        return self._field_count

    def field(self, index: int) -> Field:
        """Decode the field at ``index``."""
        if index < 0 or index >= self._field_count:
            raise IndexError(f"Field index {index} out of range [0, {self._field_count})")
        return decode_field(self._buf, self._field_list_addr + index * FIELD_SLOT.size, self._table)

    def fields(self) -> list[Field]:
        return [self.field(i) for i in range(self._field_count)]

    def __repr__(self) -> str:
        return f"Row({', '.join(str(f) for f in self.fields())})"


class Bucket:
    """One bucket of a decoded table: the head of a row chain."""

    __slots__ = ("_buf", "_table", "_head")

    def __init__(self, buf: memoryview, table: str, head: int) -> None:
        self._buf = buf
        self._table = table
        self._head = head

    @property
    def is_empty(self) -> bool:
        return self._head == NO_OFFSET

    def rows(self) -> Iterator[Row]:
        """Iterate the rows of this bucket's chain in chain order."""
        for _, _, field_count, field_list_addr in _walk_chain(self._buf, self._head, self._table):
            yield Row(self._buf, self._table, field_count, field_list_addr)

    def __len__(self) -> int:
        return sum(1 for _ in _walk_chain(self._buf, self._head, self._table))


class Table:
    """A decoded table: name, column schema and bucket array."""

    def __init__(self, buf: memoryview, entry: TableEntry) -> None:
        self._buf = buf
        self._entry = entry

    @property
    def name(self) -> str:
        return self._entry.name

    @property
    def columns(self) -> tuple[Column, ...]:
        return self._entry.columns

    @property
    def column_count(self) -> int:
        return len(self._entry.columns)

    @property
    def bucket_count(self) -> int:
        return self._entry.bucket_count

    def bucket(self, index: int) -> Bucket:
        """Return the bucket at ``index``."""
        if index < 0 or index >= self._entry.bucket_count:
            raise IndexError(f"Bucket index {index} out of range [0, {self._entry.bucket_count})")
        (head,) = BUCKET.unpack_from(self._buf, self._entry.bucket_list_addr + index * BUCKET.size)
        return Bucket(self._buf, self.name, head)

    def buckets(self) -> Iterator[Bucket]:
        for index in range(self._entry.bucket_count):
            yield self.bucket(index)

    def rows(self) -> Iterator[Row]:
        """Iterate all rows in bucket order, then chain order."""
        return buckets.iterate(self)

    def find(self, key_column_index: int, key_value: Any) -> list[Row]:
        """Return all rows whose field at ``key_column_index`` equals ``key_value``."""
        return buckets.find(self, key_column_index, key_value)

    def validate(self) -> None:
        """Check every chain, row and field of this table.

        Raises:
            FdbError: The first problem found.
        """
        seen: set[int] = set()
        columns = self._entry.columns
        for index in range(self._entry.bucket_count):
            (head,) = BUCKET.unpack_from(self._buf, self._entry.bucket_list_addr + index * BUCKET.size)
            for entry_addr, row_addr, field_count, field_list_addr in _walk_chain(self._buf, head, self.name):
                if entry_addr in seen:
                    raise InvalidTableDirectory(
                        "row list entry is reachable twice", offset=entry_addr, table=self.name
                    )
                seen.add(entry_addr)
                if field_count != len(columns):
                    raise SchemaMismatch(
                        f"row has {field_count} fields but the table has {len(columns)} columns",
                        offset=row_addr,
                        table=self.name,
                    )
                for i, column in enumerate(columns):
                    offset = field_list_addr + i * FIELD_SLOT.size
                    field = decode_field(self._buf, offset, self.name)
                    if not field_matches(field, column.kind):
                        raise SchemaMismatch(
                            f"field {i} is {field.kind} but column {column.name!r} is {column.kind}",
                            offset=offset,
                            table=self.name,
                        )

    def __repr__(self) -> str:
        return f"Table({self.name!r}, columns={len(self.columns)}, buckets={self.bucket_count})"


class Tables:
    """The ordered table list of a decoded database."""

    def __init__(self, tables: list[Table]) -> None:
        self._tables = tables

    def __len__(self) -> int:
        return len(self._tables)

    def __getitem__(self, index: int) -> Table:
        return self._tables[index]

    def __iter__(self) -> Iterator[Table]:
        return iter(self._tables)

    def by_name(self, name: str) -> Table | None:
        """Return the first table called ``name``, or None."""
        for table in self._tables:
            if table.name == name:
                return table
        return None


class Database:
    """A read-only database over one encoded buffer."""

    def __init__(self, buf: memoryview, entries: list[TableEntry]) -> None:
        self._buf = buf
        self._tables = Tables([Table(buf, entry) for entry in entries])

    @property
    def tables(self) -> Tables:
        return self._tables

    def table(self, name: str) -> Table | None:
        """Return the first table called ``name``, or None."""
        return self._tables.by_name(name)

    def validate(self) -> None:
        for table in self._tables:
            table.validate()

    def release(self) -> None:
        """Release the underlying buffer. Views must not be used afterwards."""
        self._buf.release()

    def __repr__(self) -> str:
        return f"Database(tables={len(self._tables)}, size={len(self._buf)})"


def decode(buffer: Any, *, validate: bool = True) -> Database:
    """Decode an FDB buffer into a read-only ``Database`` view.

    Args:
        buffer: Any bytes-like object (bytes, bytearray, memoryview, mmap).
            It must not change while views over it are in use.
        validate: If True, every chain, row and field is checked up front so
            later reads cannot fail. If False, only the table directory is
            checked and row-level problems surface when rows are read.

    Returns:
        The decoded database.

    Raises:
        DecodeError: If the buffer is not a valid FDB file.
    """
    buf = _as_byte_view(buffer)
    try:
        entries = read_directory(buf)
        database = Database(buf, entries)
        if validate:
            database.validate()
    except BaseException:
        # Let the caller close a mapped buffer despite the traceback
        buf.release()
        raise
    logger.debug("Decoded %d tables from %d bytes (validate=%s)", len(entries), len(buf), validate)
    return database
