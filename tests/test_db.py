import sqlite3

import pytest

from notifier.db import TARGET_GROUP_KEY, Database


def test_meta_roundtrip_and_upsert(tmp_path):
    db = Database(tmp_path / "notifier.db")
    db.initialize()

    assert db.get_meta(TARGET_GROUP_KEY) is None

    db.put_meta(TARGET_GROUP_KEY, "g1")
    db.put_meta(TARGET_GROUP_KEY, "g2")

    record = db.get_meta_record(TARGET_GROUP_KEY)
    assert record["value"] == "g2"
    assert record["updated_at"]


def test_initialize_is_idempotent(tmp_path):
    db = Database(tmp_path / "notifier.db")
    db.initialize()
    db.put_meta("k", "v")
    db.initialize()

    assert db.get_meta("k") == "v"


def test_unsupported_schema_version_raises(tmp_path):
    path = tmp_path / "notifier.db"
    Database(path).initialize()
    conn = sqlite3.connect(path)
    conn.execute("UPDATE schema_version SET version = 99")
    conn.commit()
    conn.close()

    with pytest.raises(RuntimeError):
        Database(path).initialize()
