"""Mutable in-memory database used to build or edit FDB files.

A builder ``Database`` owns plain Python objects and has no buffer behind
it; ``encoder.encode`` turns it into bytes. Builder objects are meant for a
single writer: they do no locking of their own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

from fdb_tables import buckets
from fdb_tables.errors import SchemaMismatch
from fdb_tables.strings import LEGACY_ENCODING
from fdb_tables.values import Column, Field, ValueType

DEFAULT_BUCKET_COUNT = 16


@dataclass
class Row:
    """An ordered list of fields.

    ``table`` is the table the row was inserted into, or None for a
    detached row.
    """

    fields: list[Field]
    table: Table | None = field(default=None, compare=False, repr=False)

    def field(self, index: int) -> Field:
        return self.fields[index]

    @property
    def field_count(self) -> int:
        return len(self.fields)

    def set(self, index: int, value: Any, kind: ValueType | None = None) -> None:
        """Replace the field at ``index``.

        For a row in a table this is ``table.set(self, index, value, kind)``:
        plain values are coerced to the column's kind and a new key moves the
        row to its new bucket. A detached row coerces to ``kind``, defaulting
        to the kind of the field being replaced.
        """
        if self.table is not None:
            self.table.set(self, index, value, kind)
            return
        if kind is None:
            kind = self.fields[index].kind
        self.fields[index] = Field.coerce(value, kind)


@dataclass
class Bucket:
    """A chain of rows, in chain order."""

    chain: list[Row] = field(default_factory=list)

    def rows(self) -> Iterator[Row]:
        return iter(self.chain)

    @property
    def is_empty(self) -> bool:
        return not self.chain

    def __len__(self) -> int:
        return len(self.chain)


class Table:
    """A table under construction.

    The bucket count is fixed when the table is created; use ``rebucket`` to
    build a copy with a different one.
    """

    def __init__(
        self,
        name: str,
        columns: Iterable[Column | tuple[str, ValueType]],
        bucket_count: int = DEFAULT_BUCKET_COUNT,
    ) -> None:
        """Initialize an empty table.

        Args:
            name: Table name.
            columns: Column definitions, as ``Column`` or ``(name, kind)`` pairs.
            bucket_count: Number of hash buckets. Zero is only useful for
                tables that stay empty.
        """
        if bucket_count < 0:
            raise ValueError(f"Bucket count must not be negative: {bucket_count}")
        self.name = name
        self.columns: list[Column] = [
            c if isinstance(c, Column) else Column(c[0], ValueType(c[1])) for c in columns
        ]
        self._buckets = [Bucket() for _ in range(bucket_count)]

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    @property
    def row_count(self) -> int:
        return sum(len(b) for b in self._buckets)

    def bucket(self, index: int) -> Bucket:
        return self._buckets[index]

    def buckets(self) -> Iterator[Bucket]:
        return iter(self._buckets)

    def make_row(self, values: Iterable[Any]) -> Row:
        """Build a row from fields or plain values, coercing by column kind."""
        values = list(values)
        if len(values) != len(self.columns):
            raise SchemaMismatch(
                f"row has {len(values)} values but the table has {len(self.columns)} columns",
                table=self.name,
            )
        return Row([Field.coerce(v, c.kind) for v, c in zip(values, self.columns)])

    def insert(self, values: Row | Iterable[Any]) -> Row:
        """Append a row to the tail of its bucket's chain and return it."""
        row = values if isinstance(values, Row) else self.make_row(values)
        if row.field_count != len(self.columns):
            raise SchemaMismatch(
                f"row has {row.field_count} fields but the table has {len(self.columns)} columns",
                table=self.name,
            )
        index = buckets.bucket_index(row.field(buckets.KEY_COLUMN), self.bucket_count)
        self._buckets[index].chain.append(row)
        row.table = self
        return row

    def remove(self, row: Row) -> None:
        """Remove ``row`` (by identity) from its chain."""
        for bucket in self._buckets:
            for i, candidate in enumerate(bucket.chain):
                if candidate is row:
                    del bucket.chain[i]
                    row.table = None
                    return
        raise ValueError(f"Row is not in table {self.name!r}")

    def set(self, row: Row, index: int, value: Any, kind: ValueType | None = None) -> None:
        """Replace field ``index`` of ``row``, keeping the bucket index correct.

        Plain values are coerced to ``kind``, defaulting to the column's
        declared kind. If the key field changes bucket, the row moves to the
        tail of its new bucket's chain.
        """
        if row.table is not self:
            raise ValueError(f"Row is not in table {self.name!r}")
        if not 0 <= index < len(self.columns):
            raise IndexError(f"Column index {index} out of range [0, {len(self.columns)})")
        new = Field.coerce(value, self.columns[index].kind if kind is None else kind)

        if index == buckets.KEY_COLUMN:
            old_bucket = buckets.bucket_index(row.field(index), self.bucket_count)
            new_bucket = buckets.bucket_index(new, self.bucket_count)
            if new_bucket != old_bucket:
                self.remove(row)
                row.fields[index] = new
                self._buckets[new_bucket].chain.append(row)
                row.table = self
                return
        row.fields[index] = new

    def rows(self) -> Iterator[Row]:
        """Iterate all rows in bucket order, then chain order."""
        return buckets.iterate(self)

    def find(self, key_column_index: int, key_value: Any) -> list[Row]:
        """Return all rows whose field at ``key_column_index`` equals ``key_value``."""
        return buckets.find(self, key_column_index, key_value)

    def rebucket(self, bucket_count: int) -> Table:
        """Return a copy of this table placed into ``bucket_count`` buckets."""
        table = Table(self.name, self.columns, bucket_count)
        for row in self.rows():
            table.insert(Row(list(row.fields)))
        return table

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Table):
            return NotImplemented
        return (
            self.name == other.name
            and self.columns == other.columns
            and self._buckets == other._buckets
        )

    def __repr__(self) -> str:
        return f"Table({self.name!r}, columns={len(self.columns)}, buckets={self.bucket_count})"


@dataclass
class Database:
    """An ordered list of tables."""

    tables: list[Table] = field(default_factory=list)

    def add_table(self, table: Table) -> Table:
        self.tables.append(table)
        return table

    def create_table(
        self,
        name: str,
        columns: Iterable[Column | tuple[str, ValueType]],
        bucket_count: int = DEFAULT_BUCKET_COUNT,
    ) -> Table:
        """Create an empty table, append it and return it."""
        return self.add_table(Table(name, columns, bucket_count))

    def table(self, name: str) -> Table | None:
        """Return the first table called ``name``, or None."""
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def sort_tables(self) -> None:
        """Sort tables by the bytes of their names, as the game client expects.

        Uppercase names sort before lowercase ones.
        """
        self.tables.sort(key=lambda t: t.name.encode(LEGACY_ENCODING, errors="replace"))

    @classmethod
    def from_view(cls, view: Any) -> Database:
        """Copy a decoded database into a mutable one.

        Bucket counts, bucket assignment and chain order are preserved.
        """
        database = cls()
        for source in view.tables:
            table = Table(source.name, source.columns, source.bucket_count)
            for index in range(source.bucket_count):
                table.bucket(index).chain.extend(
                    Row(row.fields(), table) for row in source.bucket(index).rows()
                )
            database.add_table(table)
        return database
