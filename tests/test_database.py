import sqlite3
import pytest
from photo_catalog.models import ImageRecord, ImageStatus
from photo_catalog.database.schema import CURRENT_SCHEMA_VERSION, get_schema_version, migrate_schema
from photo_catalog.database.db import DBManager

def _record(path, **kw):
    defaults = dict(
        file_path=path,
        file_name=path.rsplit("/", 1)[-1],
        file_hash="h-" + path,
        file_size=100,
        date_modified=1000.0,
        date_imported="2024-01-01T00:00:00+00:00",
        width=10,
        height=20,
    )
    defaults.update(kw)
    return ImageRecord(**defaults)

def test_add_folder_is_unique(db_ops):
    assert db_ops.add_folder("/p/a") is True
    assert db_ops.add_folder("/p/a") is False
    db_ops.add_folder("/p/b")

    assert db_ops.get_project_folders() == ["/p/a", "/p/b"]
    assert db_ops.remove_folder("/p/a") is True
    assert db_ops.get_project_folders() == ["/p/b"]

def test_upsert_preserves_user_annotations(db_ops):
    rid = db_ops.upsert_image_record(_record("/p/a.jpg", rating=5, tags="family", user_status="keep"))
    rid2 = db_ops.upsert_image_record(_record("/p/a.jpg", file_hash="new", file_size=200, rating=0, tags=""))

    assert rid == rid2
    rec = db_ops.get_record("/p/a.jpg")
    assert rec.file_hash == "new"
    assert rec.file_size == 200
    assert (rec.rating, rec.tags, rec.user_status) == (5, "family", "keep")

def test_folder_prefix_does_not_match_siblings(db_ops):
    db_ops.upsert_image_record(_record("/p/a/1.jpg"))
    db_ops.upsert_image_record(_record("/p/a/sub/2.jpg"))
    db_ops.upsert_image_record(_record("/p/ab/3.jpg"))

    paths = [r.file_path for r in db_ops.fetch_records_in_folder("/p/a")]

    assert sorted(paths) == ["/p/a/1.jpg", "/p/a/sub/2.jpg"]

def test_mark_missing_under_respects_keep(db_ops):
    db_ops.upsert_image_record(_record("/p/a/1.jpg"))
    db_ops.upsert_image_record(_record("/p/a/keep/2.jpg"))

    affected = db_ops.mark_missing_under("/p/a", keep_under=["/p/a/keep"])

    assert affected == ["/p/a/1.jpg"]
    assert db_ops.get_record("/p/a/1.jpg").status == ImageStatus.MISSING
    assert db_ops.get_record("/p/a/keep/2.jpg").status == ImageStatus.OK
    assert db_ops.count_records(ImageStatus.MISSING) == 1

def test_move_record_rekeys_and_resets_status(db_ops):
    db_ops.upsert_image_record(_record("/p/a.jpg", status=ImageStatus.MISSING, rating=3))

    assert db_ops.move_record("/p/a.jpg", "/p/sub/b.jpg")

    assert db_ops.get_record("/p/a.jpg") is None
    rec = db_ops.get_record("/p/sub/b.jpg")
    assert rec.file_name == "b.jpg"
    assert rec.status == ImageStatus.OK
    assert rec.rating == 3

def test_refresh_stat_keeps_hash(db_ops):
    db_ops.upsert_image_record(_record("/p/a.jpg"))
    db_ops.refresh_stat("/p/a.jpg", 555, 2000.0)

    rec = db_ops.get_record("/p/a.jpg")
    assert (rec.file_size, rec.date_modified, rec.file_hash) == (555, 2000.0, "h-/p/a.jpg")

def test_delete_records(db_ops):
    for p in ("/p/1.jpg", "/p/2.jpg", "/p/3.jpg"):
        db_ops.upsert_image_record(_record(p))

    assert db_ops.delete_records(["/p/1.jpg", "/p/2.jpg", "/p/nope.jpg"]) == 2
    assert [r.file_path for r in db_ops.fetch_all_records()] == ["/p/3.jpg"]

def test_migrate_schema_bumps_old_version():
    c = sqlite3.connect(":memory:")
    c.execute("CREATE TABLE schema_version (version INTEGER PRIMARY KEY)")
    c.execute("INSERT INTO schema_version (version) VALUES (0)")
    c.commit()

    migrate_schema(c)

    assert get_schema_version(c) == CURRENT_SCHEMA_VERSION
    c.close()

def test_db_manager_context(tmp_path):
    with DBManager(tmp_path / "catalog.db") as conn:
        cur = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='images'")
        assert cur.fetchone() is not None
