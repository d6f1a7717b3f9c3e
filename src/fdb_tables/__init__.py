"""FDB Tables - codec for the hash-indexed binary database of a legacy game client."""

from fdb_tables.buckets import find, iterate
from fdb_tables.encoder import encode
from fdb_tables.errors import (
    DecodeError,
    FdbError,
    InvalidTableDirectory,
    OffsetOutOfRange,
    SchemaMismatch,
    StringDecodeError,
    TruncatedBuffer,
)
from fdb_tables.hashing import sfhash
from fdb_tables.model import Database, Row, Table
from fdb_tables.storage import FdbFile, load, save
from fdb_tables.values import Column, Field, ValueType
from fdb_tables.view import decode

__all__ = [
    # Main API
    "decode",
    "encode",
    "find",
    "iterate",
    "sfhash",
    # Builder model
    "Database",
    "Table",
    "Row",
    "Column",
    "Field",
    "ValueType",
    # Files
    "FdbFile",
    "load",
    "save",
    # Errors
    "FdbError",
    "DecodeError",
    "TruncatedBuffer",
    "OffsetOutOfRange",
    "SchemaMismatch",
    "StringDecodeError",
    "InvalidTableDirectory",
]

__version__ = "0.1.0"
