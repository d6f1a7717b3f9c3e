"""Hash-bucketed row index shared by decoded and builder tables.

Rows are placed by their first column: the bucket of a row is
``key_hash(row.field(0)) % bucket_count``. Each bucket heads a chain of rows
in insertion order.

Both ``view.Table`` and ``model.Table`` provide what these functions need:
``columns``, ``bucket_count``, ``bucket(index).rows()`` and
``row.field(index)``.
"""

from __future__ import annotations

from typing import Any, Iterator

from fdb_tables.hashing import sfhash
from fdb_tables.strings import INDEXED_ENCODING, LEGACY_ENCODING
from fdb_tables.values import Field, ValueType

# Rows are placed by the value in this column
KEY_COLUMN = 0

_MASK = 0xFFFFFFFF


def key_hash(field: Field) -> int:
    """Return the placement hash of a key field.

    Integer-like keys are their own hash (the unsigned 32-bit word, or the
    low word of a BIGINT); string keys are hashed with ``sfhash`` over their
    encoded bytes. This reproduces the game client's placement.
    """
    kind = field.kind
    if kind is ValueType.TEXT:
        # Unencodable text is rejected at encode time; placement stays total
        return sfhash(field.value.encode(LEGACY_ENCODING, errors="replace"))
    if kind is ValueType.VARCHAR:
        return sfhash(field.value.encode(INDEXED_ENCODING, errors="surrogatepass"))
    if kind in (ValueType.INTEGER, ValueType.BIGINT):
        return field.value & _MASK
    if kind is ValueType.FLOAT:
        return field.bits
    if kind is ValueType.BOOLEAN:
        return 1 if field.value else 0
    return 0


def bucket_index(field: Field, bucket_count: int) -> int:
    """Return the bucket a row keyed by ``field`` belongs in."""
    if bucket_count <= 0:
        raise ValueError("Table has no buckets")
    return key_hash(field) % bucket_count


def iterate(table: Any) -> Iterator[Any]:
    """Yield every row of ``table`` in bucket order, then chain order.

    This is the canonical row order; the encoder writes rows in it.
    """
    for index in range(table.bucket_count):
        yield from table.bucket(index).rows()


def find(table: Any, key_column_index: int, key_value: Any) -> list[Any]:
    """Return every row whose field at ``key_column_index`` equals ``key_value``.

    ``key_value`` may be a ``Field`` or a plain value, which is coerced to the
    column's kind; a plain value on a NOTHING column matches nothing. Lookups
    on the key column walk one bucket chain; any other column is scanned.
    Duplicate keys all match.
    """
    columns = table.columns
    if not 0 <= key_column_index < len(columns):
        raise IndexError(f"Column index {key_column_index} out of range [0, {len(columns)})")
    kind = columns[key_column_index].kind
    if kind is ValueType.NOTHING and key_value is not None and not isinstance(key_value, Field):
        # A NOTHING column only holds NULLs
        return []
    key = Field.coerce(key_value, kind)

    if key_column_index == KEY_COLUMN:
        if table.bucket_count == 0:
            return []
        candidates = table.bucket(bucket_index(key, table.bucket_count)).rows()
    else:
        candidates = iterate(table)

    return [row for row in candidates if row.field(key_column_index) == key]
