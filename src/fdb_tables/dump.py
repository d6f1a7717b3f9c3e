"""Text and JSON renderings of table contents.

Works with decoded and builder databases alike, through ``name``,
``columns``, ``bucket_count`` and ``rows()``.
"""

from __future__ import annotations

import json
import math
from typing import Any

from fdb_tables.values import Field, ValueType


def format_value(field: Field) -> str:
    """Format a field for tabular display."""
    return str(field)


def _json_value(field: Field) -> Any:
    """Convert a field to a JSON-compatible value."""
    if field.kind is ValueType.NOTHING:
        return None
    if field.kind is ValueType.FLOAT and not math.isfinite(field.value):
        return f"0x{field.bits:08x}"
    value = field.value
    # Keep integers exact for JSON readers that use doubles
    if field.kind is ValueType.BIGINT and (value > 2**53 or value < -(2**53)):
        return hex(value)
    return value


def format_table(table: Any, limit: int | None = None) -> str:
    """Render the columns and rows of ``table`` as aligned text.

    Args:
        table: A decoded or builder table.
        limit: Maximum number of rows to show.
    """
    headers = [f"{c.name} ({c.kind})" for c in table.columns]
    lines = [f"Table: {table.name}", f"Buckets: {table.bucket_count}", "-" * 60]

    rows = []
    total = 0
    for row in table.rows():
        total += 1
        if limit is None or len(rows) < limit:
            rows.append([format_value(row.field(i)) for i in range(len(headers))])

    widths = [len(h) for h in headers]
    for values in rows:
        widths = [max(w, len(v)) for w, v in zip(widths, values)]

    lines.append(f"{'#':>4}  " + "  ".join(f"{h:<{w}}" for h, w in zip(headers, widths)))
    lines.append("-" * (6 + sum(w + 2 for w in widths)))
    for i, values in enumerate(rows):
        lines.append(f"{i:>4}  " + "  ".join(f"{v:<{w}}" for v, w in zip(values, widths)))
    if len(rows) < total:
        lines.append(f"... ({total - len(rows)} more rows)")
    return "\n".join(lines)


def table_to_json(table: Any, limit: int | None = None) -> str:
    """Render ``table`` as a JSON document of column names to values."""
    names = [c.name for c in table.columns]
    records = []
    for row in table.rows():
        if limit is not None and len(records) >= limit:
            break
        records.append({name: _json_value(row.field(i)) for i, name in enumerate(names)})
    output = {
        "table": table.name,
        "columns": [{"name": c.name, "type": str(c.kind)} for c in table.columns],
        "count": len(records),
        "rows": records,
    }
    return json.dumps(output, indent=2)


def list_tables(database: Any) -> str:
    """List every table with its column, bucket and row counts."""
    lines = ["Available tables:", "-" * 60]
    for table in database.tables:
        count = sum(1 for _ in table.rows())
        lines.append(
            f"  {table.name:<32} {len(table.columns):>3} columns {table.bucket_count:>6} buckets {count:>8} rows"
        )
    return "\n".join(lines)


def dump_database(database: Any, limit: int | None = None) -> str:
    """Render every table of ``database``."""
    return "\n\n".join(format_table(table, limit) for table in database.tables)
