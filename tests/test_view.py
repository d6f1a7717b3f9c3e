"""Tests for decoding FDB buffers into read-only views."""

import struct
from concurrent.futures import ThreadPoolExecutor

import pytest

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
from fdb_tables.model import Database
from fdb_tables.values import Column, Field, ValueType
from fdb_tables.view import decode


def patch_word(data: bytes, offset: int, value: int) -> bytes:
    """Return a copy of ``data`` with the uint32 at ``offset`` replaced."""
    buf = bytearray(data)
    struct.pack_into("<I", buf, offset, value)
    return bytes(buf)


@pytest.fixture
def single_row() -> bytes:
    """Table "T" with one INTEGER column, one bucket and the row [7].

    Layout: header 0, table list 8, definition 16, column 28, data header
    36, bucket 44, row entry 48, row header 56, field slot 64, pool 72.
    """
    db = Database()
    db.create_table("T", [("id", ValueType.INTEGER)], bucket_count=1).insert([7])
    return encode(db)


@pytest.fixture
def players() -> bytes:
    """The 3-column, 5-row, 4-bucket table, encoded."""
    db = Database()
    table = db.create_table(
        "Players",
        [("id", ValueType.INTEGER), ("name", ValueType.TEXT), ("active", ValueType.BOOLEAN)],
        bucket_count=4,
    )
    for row in [(1, "Alice", True), (2, "Bob", False), (5, "Carol", True), (8, "Dave", True), (13, "Erin", False)]:
        table.insert(row)
    db.create_table("Accessories", [("name", ValueType.VARCHAR), ("guid", ValueType.BIGINT)], bucket_count=2)
    return encode(db)


class TestDecode:
    """Tests for decoding valid buffers."""

    def test_empty_database(self):
        db = decode(struct.pack("<II", 0, 8))
        assert len(db.tables) == 0
        assert db.table("T") is None

    def test_directory(self, players):
        db = decode(players)
        assert [t.name for t in db.tables] == ["Players", "Accessories"]
        table = db.tables[0]
        assert table.columns == (
            Column("id", ValueType.INTEGER),
            Column("name", ValueType.TEXT),
            Column("active", ValueType.BOOLEAN),
        )
        assert table.column_count == 3
        assert table.bucket_count == 4

    def test_scenario_find(self, players):
        """Every id finds its own row and a missing id finds nothing."""
        table = decode(players).table("Players")
        for id_, name in [(1, "Alice"), (2, "Bob"), (5, "Carol"), (8, "Dave"), (13, "Erin")]:
            found = table.find(0, id_)
            assert len(found) == 1
            assert found[0].field(1) == Field.text(name)
        assert table.find(0, 3) == []

    def test_scenario_iterate(self, players):
        table = decode(players).table("Players")
        assert [row.field(0).value for row in table.rows()] == [8, 1, 5, 13, 2]

    def test_find_non_key_column(self, players):
        table = decode(players).table("Players")
        assert sorted(r.field(0).value for r in table.find(2, False)) == [2, 13]

    def test_empty_table(self, players):
        table = decode(players).table("Accessories")
        assert list(table.rows()) == []
        assert all(b.is_empty for b in table.buckets())
        assert table.find(0, "anything") == []

    def test_bucket_access(self, players):
        table = decode(players).table("Players")
        assert len(table.bucket(1)) == 3
        assert table.bucket(3).is_empty
        with pytest.raises(IndexError):
            table.bucket(4)

    def test_row_access(self, players):
        row = decode(players).table("Players").find(0, 2)[0]
        assert row.field_count == 3
        assert row.fields() == [Field.integer(2), Field.text("Bob"), Field.boolean(False)]
        assert repr(row) == "Row(2, 'Bob', false)"
        with pytest.raises(IndexError):
            row.field(3)

    def test_duplicate_table_names(self):
        """Name lookup returns the first table in file order."""
        db = Database()
        db.create_table("Dup", [("a", ValueType.INTEGER)], bucket_count=1)
        db.create_table("Dup", [("b", ValueType.TEXT)], bucket_count=1)
        decoded = decode(encode(db))
        assert len(decoded.tables) == 2
        assert decoded.tables.by_name("Dup").columns[0].name == "a"
        assert decoded.tables.by_name("Nope") is None

    def test_accepts_bytes_like(self, single_row):
        """bytearray and non-byte memoryviews decode like bytes."""
        for buffer in (bytearray(single_row), memoryview(single_row), memoryview(single_row).cast("I")):
            table = decode(buffer).tables[0]
            assert [r.field(0).value for r in table.rows()] == [7]

    def test_views_read_buffer_lazily(self, single_row):
        """Rows read the buffer when accessed, not when decoded."""
        buf = bytearray(single_row)
        db = decode(buf, validate=False)
        struct.pack_into("<i", buf, 68, 42)
        assert next(db.tables[0].rows()).field(0) == Field.integer(42)

    def test_release(self, single_row):
        db = decode(single_row)
        db.release()
        with pytest.raises(ValueError):
            list(db.tables[0].rows())

    def test_concurrent_reads(self, players):
        """Many threads can read the same views at once."""
        table = decode(players).table("Players")

        def lookup(id_):
            return [r.field(1).value for r in table.find(0, id_)]

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(lookup, [1, 2, 5, 8, 13] * 40))
        assert results[:5] == [["Alice"], ["Bob"], ["Carol"], ["Dave"], ["Erin"]]
        assert results[5:10] == results[:5]


class TestDecodeErrors:
    """Corrupt buffers raise the matching error kind."""

    def test_short_header(self):
        with pytest.raises(TruncatedBuffer):
            decode(b"\x01\x00\x00")

    def test_empty_buffer(self):
        with pytest.raises(TruncatedBuffer):
            decode(b"")

    def test_table_count_too_large(self, single_row):
        with pytest.raises(InvalidTableDirectory):
            decode(patch_word(single_row, 0, 100))

    def test_name_offset_out_of_range(self, single_row):
        with pytest.raises(OffsetOutOfRange) as exc_info:
            decode(patch_word(single_row, 20, 5000))
        assert exc_info.value.offset == 5000

    def test_unknown_column_type(self, single_row):
        with pytest.raises(InvalidTableDirectory) as exc_info:
            decode(patch_word(single_row, 28, 2))
        assert exc_info.value.table == "T"

    def test_bucket_head_out_of_range(self, single_row):
        with pytest.raises(OffsetOutOfRange):
            decode(patch_word(single_row, 44, 1000))

    def test_row_entry_runs_past_end(self, single_row):
        with pytest.raises(TruncatedBuffer):
            decode(patch_word(single_row, 44, 76))

    def test_bucket_array_runs_past_end(self, single_row):
        with pytest.raises(TruncatedBuffer):
            decode(patch_word(single_row, 36, 100))

    def test_unterminated_string(self, single_row):
        """Cutting off the last pool entry leaves its string unterminated."""
        with pytest.raises(StringDecodeError):
            decode(single_row[:78])

    def test_chain_cycle(self, single_row):
        with pytest.raises(InvalidTableDirectory):
            decode(patch_word(single_row, 52, 48))

    def test_unknown_field_type(self, single_row):
        with pytest.raises(SchemaMismatch) as exc_info:
            decode(patch_word(single_row, 64, 2))
        assert exc_info.value.offset == 64
        assert exc_info.value.table == "T"

    def test_field_kind_mismatch(self, single_row):
        """A BOOLEAN field in an INTEGER column is rejected."""
        with pytest.raises(SchemaMismatch):
            decode(patch_word(single_row, 64, int(ValueType.BOOLEAN)))

    def test_null_field_accepted(self, single_row):
        """NULL is valid in any column."""
        db = decode(patch_word(single_row, 64, 0))
        assert next(db.tables[0].rows()).field(0).is_null

    def test_field_count_mismatch(self, single_row):
        with pytest.raises(SchemaMismatch):
            decode(patch_word(single_row, 56, 2))

    def test_errors_are_value_errors(self, single_row):
        """Every decode error is a DecodeError and a ValueError."""
        with pytest.raises(DecodeError):
            decode(patch_word(single_row, 0, 100))
        with pytest.raises(ValueError):
            decode(patch_word(single_row, 0, 100))

    def test_lazy_errors_surface_on_access(self, single_row):
        """Without validation, row-level damage shows up when rows are read."""
        db = decode(patch_word(single_row, 64, 2), validate=False)
        row = next(db.tables[0].rows())
        with pytest.raises(SchemaMismatch):
            row.field(0)

    def test_lazy_cycle_detected(self, single_row):
        db = decode(patch_word(single_row, 52, 48), validate=False)
        with pytest.raises(InvalidTableDirectory):
            list(db.tables[0].rows())

    def test_truncation_never_escapes(self, players):
        """Every prefix of a valid file decodes or raises FdbError."""
        for length in range(len(players)):
            try:
                db = decode(players[:length])
            except FdbError:
                continue
            for table in db.tables:
                list(table.rows())

    def test_random_corruption_never_escapes(self, players):
        """Overwriting any word with garbage decodes or raises FdbError."""
        for offset in range(0, len(players) - 3, 4):
            for value in (0, 3, 0x7FFFFFFF, 0xFFFFFFFF):
                try:
                    db = decode(patch_word(players, offset, value))
                except FdbError:
                    continue
                for table in db.tables:
                    for row in table.rows():
                        row.fields()
