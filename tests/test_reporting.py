import csv
import pytest
from photo_catalog.reporting import (
    ReportGenerator, describe_issue, format_file_size, type_display_name, type_description,
)
from photo_catalog.models import DuplicateIssue, DuplicateType, ImageRecord, SyncResult


def _read_csv(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


@pytest.mark.parametrize("size,expected", [
    (0, "0 B"),
    (512, "512 B"),
    (1536, "1.5 KB"),
    (5 * 1024 * 1024, "5.0 MB"),
    (3 * 1024 ** 3, "3.0 GB"),
    (2 * 1024 ** 4, "2.0 TB"),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


def test_every_type_has_display_text():
    for t in DuplicateType:
        assert type_display_name(t)
        assert type_description(t)


def test_describe_issue_per_type():
    exact = DuplicateIssue(DuplicateType.EXACT_COMPLETE, "/a", "/b", 1.0, 4, 4, 2048)
    partial = DuplicateIssue(DuplicateType.PARTIAL_DUPLICATE, "/a", "/b", 0.92, 50, 46, 1024)

    assert "identical" in describe_issue(exact)
    assert "2.0 KB" in describe_issue(exact)
    assert "92%" in describe_issue(partial)
    assert "46 of 50" in describe_issue(partial)


def test_sync_report(tmp_path, db_ops):
    result = SyncResult(
        new_files=["/p/new.jpg"],
        missing_files=["/p/gone.jpg"],
        moved_files=[("/p/old.jpg", "/p/sub/old.jpg")],
    )
    out = tmp_path / "sync.csv"

    assert ReportGenerator(db_ops).write_sync_report(result, out) == 3

    rows = _read_csv(out)
    assert rows[0] == ["Change", "File Path", "Previous Path"]
    assert ["moved", "/p/sub/old.jpg", "/p/old.jpg"] in rows
    assert ["missing", "/p/gone.jpg", ""] in rows


def test_duplicate_report(tmp_path, db_ops):
    issues = [DuplicateIssue(DuplicateType.EXACT_FILES_ONLY, "/a", "/b", 1.0, 5, 5, 1000)]
    out = tmp_path / "dups.csv"

    ReportGenerator(db_ops).write_duplicate_report(issues, out)

    rows = _read_csv(out)
    assert len(rows) == 2
    assert rows[1][:4] == ["Medium", "Same Files, Different Structure", "/a", "/b"]
    assert rows[1][7] == "1000"
    assert rows[0][9] == "Type Description"
    assert rows[1][9] == type_description(DuplicateType.EXACT_FILES_ONLY)


def test_catalog_report(tmp_path, db_ops):
    db_ops.upsert_image_record(ImageRecord(
        file_path="/p/a.jpg", file_name="a.jpg", file_hash="abc", file_size=10,
        date_modified=1.0, date_imported="2024-01-01", width=4, height=3,
    ))
    out = tmp_path / "catalog.csv"

    assert ReportGenerator(db_ops).write_catalog_report(out) == 1
    assert _read_csv(out)[1][:5] == ["/p/a.jpg", "ok", "10", "4", "3"]
