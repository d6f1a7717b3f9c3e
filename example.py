"""Example usage of the fdb_tables library."""

import logging
from pathlib import Path

from fdb_tables import Database, FdbFile, ValueType, save
from fdb_tables.dump import format_table, list_tables

logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

# Build a small database in memory
db = Database()
zones = db.create_table(
    "ZoneTable",
    [
        ("zoneID", ValueType.INTEGER),
        ("zoneName", ValueType.TEXT),
        ("ghostdistance", ValueType.FLOAT),
        ("mixerProgram", ValueType.VARCHAR),
        ("locStatus", ValueType.BIGINT),
        ("PlayerLoseCoinsOnDeath", ValueType.BOOLEAN),
    ],
    bucket_count=8,
)
zones.insert([1000, "Venture Explorer", 500.0, "ship", 0, False])
zones.insert([1100, "Avant Gardens", 500.0, "ag_survival", 0, True])
zones.insert([1200, "Nimbus Station", 500.0, None, 1 << 40, True])
zones.insert([1300, "Gnarled Forest", 250.0, "gf", 0, True])

objects = db.create_table(
    "Objects",
    [("id", ValueType.INTEGER), ("name", ValueType.TEXT), ("type", ValueType.TEXT)],
    bucket_count=16,
)
for object_id, name, kind in [(1, "Brick", "Smashable"), (6010, "Imagination Powerup", "Powerup"), (4880, "Maelstrom Brick", "Loot")]:
    objects.insert([object_id, name, kind])

db.sort_tables()

# Write it out, then read it back through a memory map
data_dir = Path("./example_data")
path = data_dir / "cdclient.fdb"
size = save(path, db)
print(f"Wrote {size} bytes to {path}\n")

with FdbFile(path) as fdb:
    print(list_tables(fdb.database))
    print()

    table = fdb.database.table("ZoneTable")
    print(format_table(table))
    print()

    print("Lookup zoneID 1200:")
    for row in table.find(0, 1200):
        print(f"  {row}")

    print("Lookup by name (scans):")
    for row in fdb.database.table("Objects").find(1, "Maelstrom Brick"):
        print(f"  {row}")
