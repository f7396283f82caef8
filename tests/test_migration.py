import sqlite3

import pytest

from airmx_local.cache import AccessoryCacheSQLite
from airmx_local.database import SUPPORTED_SCHEMA_VERSION, ensure_schema_and_migrate
from airmx_local.host import PlatformAccessory


def test_fresh_database_gets_schema_and_user_version(tmp_path):
    db_file = str(tmp_path / "fresh.db")

    ensure_schema_and_migrate(db_file)

    conn = sqlite3.connect(db_file)
    ver = conn.execute("PRAGMA user_version").fetchone()[0]
    assert ver == SUPPORTED_SCHEMA_VERSION

    cols = [r[1] for r in conn.execute("PRAGMA table_info(accessories)").fetchall()]
    assert cols == ['uuid', 'display_name', 'context', 'created_at', 'updated_at']
    conn.close()


def test_migration_is_idempotent(tmp_path):
    db_file = str(tmp_path / "again.db")

    ensure_schema_and_migrate(db_file)
    ensure_schema_and_migrate(db_file)

    conn = sqlite3.connect(db_file)
    assert conn.execute("PRAGMA user_version").fetchone()[0] == SUPPORTED_SCHEMA_VERSION
    conn.close()


def test_newer_schema_is_refused(tmp_path):
    db_file = str(tmp_path / "newer.db")
    conn = sqlite3.connect(db_file)
    conn.execute(f"PRAGMA user_version = {SUPPORTED_SCHEMA_VERSION + 1}")
    conn.commit()
    conn.close()

    with pytest.raises(RuntimeError, match="newer than supported"):
        ensure_schema_and_migrate(db_file)


def test_accessory_cache_roundtrip(tmp_path):
    cache = AccessoryCacheSQLite(str(tmp_path / "cache.db"))

    cache.save(PlatformAccessory('AIRMX Pro', 'uuid-1', context={'device': {'id': 1, 'key': 'a'}}))
    cache.save(PlatformAccessory('AIRMX Pro', 'uuid-2', context={'device': {'id': 2, 'key': 'b'}}))
    cache.save(PlatformAccessory('Bedroom', 'uuid-1', context={'device': {'id': 1, 'key': 'c'}}))
    cache.delete('uuid-2')

    [accessory] = cache.load()
    assert accessory.uuid == 'uuid-1'
    assert accessory.display_name == 'Bedroom'
    assert accessory.context == {'device': {'id': 1, 'key': 'c'}}


def test_unreadable_cache_row_is_skipped(tmp_path):
    db_file = str(tmp_path / "broken.db")
    cache = AccessoryCacheSQLite(db_file)
    cache.save(PlatformAccessory('AIRMX Pro', 'good', context={}))

    conn = sqlite3.connect(db_file)
    conn.execute("INSERT INTO accessories (uuid, display_name, context) VALUES (?,?,?)", ('bad', 'x', '{oops'))
    conn.commit()
    conn.close()

    assert [a.uuid for a in cache.load()] == ['good']
