"""Typed field values and their fixed-width encoding."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from fdb_tables.errors import SchemaMismatch
from fdb_tables.layout import FIELD_SLOT, WORD, check_region
from fdb_tables.strings import StringPool, decode_indexed, decode_legacy

INT32_MIN = -(1 << 31)
INT32_MAX = (1 << 31) - 1
INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1

_INT32 = struct.Struct("<i")
_FLOAT32 = struct.Struct("<f")
# Split 64-bit integer: unsigned low word, signed high word
_INT64_SPLIT = struct.Struct("<Ii")

_ZERO_WORD = b"\x00\x00\x00\x00"


class ValueType(IntEnum):
    """Value kinds and their on-disk type codes."""

    NOTHING = 0
    INTEGER = 1
    FLOAT = 3
    TEXT = 4
    BOOLEAN = 5
    BIGINT = 6
    VARCHAR = 8

    def __str__(self) -> str:
        if self is ValueType.NOTHING:
            return "NULL"
        return self.name

    @classmethod
    def from_code(cls, code: int) -> ValueType:
        """Return the value type for an on-disk type code."""
        try:
            return cls(code)
        except ValueError:
            raise ValueError(f"Unknown value type code: {code}") from None

    @property
    def is_string(self) -> bool:
        return self in (ValueType.TEXT, ValueType.VARCHAR)


@dataclass(frozen=True)
class Column:
    """Name and declared value type of one column."""

    name: str
    kind: ValueType

    def __str__(self) -> str:
        return f"{self.name} {self.kind}"


def pack_int64(value: int) -> bytes:
    """Pack a signed 64-bit integer as two little-endian 32-bit halves."""
    return _INT64_SPLIT.pack(value & 0xFFFFFFFF, value >> 32)


def unpack_int64(buf: Any, offset: int, table: str | int | None = None) -> int:
    """Read a split 64-bit integer: ``int64(hi) << 32 | uint32(lo)``."""
    check_region(buf, offset, _INT64_SPLIT.size, "bigint", table)
    lo, hi = _INT64_SPLIT.unpack_from(buf, offset)
    return (hi << 32) | lo


def float_to_bits(value: float) -> int:
    """Return the binary32 bit pattern of ``value``."""
    try:
        return WORD.unpack(_FLOAT32.pack(value))[0]
    except OverflowError:
        raise ValueError(f"Float value out of range for float32: {value}") from None


def bits_to_float(bits: int) -> float:
    return _FLOAT32.unpack(WORD.pack(bits))[0]


@dataclass(frozen=True)
class Field:
    """A tagged field value.

    FLOAT fields carry the exact binary32 bit pattern in ``bits`` and compare
    by it, so NaN payloads survive a round trip and compare equal to
    themselves.
    """

    kind: ValueType
    value: Any = field(default=None, compare=False)
    bits: int | None = field(default=None, compare=False, repr=False)
    _key: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        kind = ValueType(self.kind)
        object.__setattr__(self, "kind", kind)
        value = self.value

        if kind is ValueType.NOTHING:
            if value is not None:
                raise TypeError(f"NULL field cannot hold a value: {value!r}")
            key: Any = None
        elif kind is ValueType.FLOAT:
            if self.bits is None:
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise TypeError(f"Expected float for FLOAT field, got {type(value).__name__}")
                bits = float_to_bits(float(value))
            else:
                if not 0 <= self.bits <= 0xFFFFFFFF:
                    raise ValueError(f"Float bit pattern out of range: {self.bits:#x}")
                bits = self.bits
            object.__setattr__(self, "bits", bits)
            object.__setattr__(self, "value", bits_to_float(bits))
            key = bits
        elif kind is ValueType.BOOLEAN:
            if not isinstance(value, bool):
                raise TypeError(f"Expected bool for BOOLEAN field, got {type(value).__name__}")
            key = value
        elif kind in (ValueType.INTEGER, ValueType.BIGINT):
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"Expected int for {kind} field, got {type(value).__name__}")
            low, high = (INT32_MIN, INT32_MAX) if kind is ValueType.INTEGER else (INT64_MIN, INT64_MAX)
            if not low <= value <= high:
                raise ValueError(f"Value {value} out of range for {kind}")
            key = value
        else:
            if not isinstance(value, str):
                raise TypeError(f"Expected str for {kind} field, got {type(value).__name__}")
            key = value

        object.__setattr__(self, "_key", key)

    @classmethod
    def nothing(cls) -> Field:
        return cls(ValueType.NOTHING)

    @classmethod
    def integer(cls, value: int) -> Field:
        return cls(ValueType.INTEGER, value)

    @classmethod
    def float32(cls, value: float) -> Field:
        return cls(ValueType.FLOAT, value)

    @classmethod
    def float_bits(cls, bits: int) -> Field:
        """Create a FLOAT field from a raw binary32 bit pattern."""
        return cls(ValueType.FLOAT, bits=bits)

    @classmethod
    def text(cls, value: str) -> Field:
        return cls(ValueType.TEXT, value)

    @classmethod
    def boolean(cls, value: bool) -> Field:
        return cls(ValueType.BOOLEAN, value)

    @classmethod
    def big_int(cls, value: int) -> Field:
        return cls(ValueType.BIGINT, value)

    @classmethod
    def varchar(cls, value: str) -> Field:
        return cls(ValueType.VARCHAR, value)

    @classmethod
    def coerce(cls, value: Any, kind: ValueType) -> Field:
        """Build a field of ``kind`` from a plain Python value.

        ``None`` becomes a NULL field and existing fields pass through
        unchanged (their kind is checked at encode time).
        """
        if isinstance(value, Field):
            return value
        if value is None:
            return cls.nothing()
        return cls(kind, value)

    @property
    def is_null(self) -> bool:
        return self.kind is ValueType.NOTHING

    def __str__(self) -> str:
        if self.kind is ValueType.NOTHING:
            return "NULL"
        if self.kind is ValueType.BOOLEAN:
            return "true" if self.value else "false"
        if self.kind.is_string:
            return repr(self.value)
        if self.kind is ValueType.FLOAT and math.isnan(self.value):
            return "NaN"
        return str(self.value)


def field_matches(field: Field, kind: ValueType) -> bool:
    """Return whether ``field`` may be stored in a column of ``kind``.

    NULL is accepted in every column.
    """
    return field.kind is ValueType.NOTHING or field.kind is kind


def encode_field(field: Field, pool: StringPool) -> bytes:
    """Encode a field slot, appending any referenced payload to ``pool``."""
    kind = field.kind
    if kind is ValueType.NOTHING:
        word = _ZERO_WORD
    elif kind is ValueType.INTEGER:
        word = _INT32.pack(field.value)
    elif kind is ValueType.FLOAT:
        word = WORD.pack(field.bits)
    elif kind is ValueType.BOOLEAN:
        word = WORD.pack(1 if field.value else 0)
    elif kind is ValueType.TEXT:
        word = WORD.pack(pool.encode_legacy(field.value))
    elif kind is ValueType.VARCHAR:
        word = WORD.pack(pool.encode_indexed(field.value))
    elif kind is ValueType.BIGINT:
        word = WORD.pack(pool.append(pack_int64(field.value)))
    else:
        raise TypeError(f"Cannot encode field kind: {kind!r}")
    return FIELD_SLOT.pack(int(kind), word)


def decode_field(buf: Any, offset: int, table: str | int | None = None) -> Field:
    """Decode the field slot at ``offset``, following pool references."""
    check_region(buf, offset, FIELD_SLOT.size, "field", table)
    code, word = FIELD_SLOT.unpack_from(buf, offset)
    try:
        kind = ValueType.from_code(code)
    except ValueError as e:
        raise SchemaMismatch(str(e), offset=offset, table=table) from None

    if kind is ValueType.NOTHING:
        return Field.nothing()
    if kind is ValueType.INTEGER:
        return Field(kind, _INT32.unpack(word)[0])
    if kind is ValueType.BOOLEAN:
        return Field(kind, word != _ZERO_WORD)

    (word_value,) = WORD.unpack(word)
    if kind is ValueType.FLOAT:
        return Field.float_bits(word_value)
    if kind is ValueType.TEXT:
        return Field(kind, decode_legacy(buf, word_value, table))
    if kind is ValueType.VARCHAR:
        return Field(kind, decode_indexed(buf, word_value, table))
    return Field(kind, unpack_int64(buf, word_value, table))
