import os
import sqlite3
from datetime import datetime, UTC
from typing import Optional, List, Iterable

from ..models import ImageRecord, ImageStatus, ProjectFolder

_IMAGE_COLUMNS = (
    "id, file_path, file_name, file_hash, file_size, date_modified, date_imported, "
    "width, height, status, user_status, rating, tags"
)

def _folder_prefix(folder_path: str) -> str:
    """'/p/a' -> '/p/a/' so '/p/ab/x.jpg' does not count as inside '/p/a'."""
    return os.path.join(folder_path, "")

def _row_to_record(row) -> ImageRecord:
    (rid, path, name, fhash, size, mtime, imported,
     width, height, status, user_status, rating, tags) = row
    return ImageRecord(
        id=rid,
        file_path=path,
        file_name=name,
        file_hash=fhash or "",
        file_size=size,
        date_modified=mtime,
        date_imported=imported,
        width=width,
        height=height,
        status=ImageStatus(status),
        user_status=user_status or "",
        rating=rating or 0,
        tags=tags or "",
    )

class DBOperations:
    """
    Catalog Store CRUD. Callers own transaction boundaries (commit).
    """
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Project Folders ---

    def add_folder(self, folder_path: str) -> bool:
        """Registers a root folder. Returns False if it was already registered."""
        cur = self.conn.execute(
            "INSERT OR IGNORE INTO project_folders (folder_path, date_added) VALUES (?, ?)",
            (folder_path, datetime.now(UTC).isoformat()),
        )
        return cur.rowcount > 0

    def remove_folder(self, folder_path: str) -> bool:
        cur = self.conn.execute("DELETE FROM project_folders WHERE folder_path = ?", (folder_path,))
        return cur.rowcount > 0

    def get_project_folders(self) -> List[str]:
        cur = self.conn.cursor()
        cur.execute("SELECT folder_path FROM project_folders ORDER BY date_added, id")
        return [r[0] for r in cur.fetchall()]

    def fetch_folder_records(self) -> List[ProjectFolder]:
        cur = self.conn.cursor()
        cur.execute("SELECT folder_path, date_added FROM project_folders ORDER BY date_added, id")
        return [ProjectFolder(folder_path=r[0], date_added=r[1]) for r in cur.fetchall()]

    # --- Image Records ---

    def upsert_image_record(self, rec: ImageRecord) -> int:
        """
        Inserts or fully replaces the record keyed by file_path.
        User annotations of an existing row are preserved.
        """
        cur = self.conn.cursor()
        cur.execute("SELECT id FROM images WHERE file_path = ?", (rec.file_path,))
        row = cur.fetchone()

        if row is None:
            cur.execute("""
                INSERT INTO images (
                    file_path, file_name, file_hash, file_size, date_modified, date_imported,
                    width, height, status, user_status, rating, tags
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                rec.file_path, rec.file_name, rec.file_hash, rec.file_size, rec.date_modified,
                rec.date_imported, rec.width, rec.height, ImageStatus(rec.status).value,
                rec.user_status, rec.rating, rec.tags,
            ))
            if cur.lastrowid is None:
                raise RuntimeError("Database INSERT failed to return a row ID.")
            return cur.lastrowid

        record_id = int(row[0])
        cur.execute("""
            UPDATE images
            SET file_name = ?, file_hash = ?, file_size = ?, date_modified = ?,
                width = ?, height = ?, status = ?
            WHERE id = ?
        """, (
            rec.file_name, rec.file_hash, rec.file_size, rec.date_modified,
            rec.width, rec.height, ImageStatus(rec.status).value, record_id,
        ))
        return record_id

    def get_record(self, file_path: str) -> Optional[ImageRecord]:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_IMAGE_COLUMNS} FROM images WHERE file_path = ?", (file_path,))
        row = cur.fetchone()
        return _row_to_record(row) if row else None

    def fetch_all_records(self) -> List[ImageRecord]:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_IMAGE_COLUMNS} FROM images ORDER BY file_name, file_path")
        return [_row_to_record(r) for r in cur.fetchall()]

    def fetch_records_in_folder(self, folder_path: str) -> List[ImageRecord]:
        prefix = _folder_prefix(folder_path)
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT {_IMAGE_COLUMNS} FROM images WHERE substr(file_path, 1, ?) = ? "
            "ORDER BY file_name, file_path",
            (len(prefix), prefix),
        )
        return [_row_to_record(r) for r in cur.fetchall()]

    def fetch_records_by_status(self, status: ImageStatus) -> List[ImageRecord]:
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT {_IMAGE_COLUMNS} FROM images WHERE status = ? ORDER BY file_path",
            (ImageStatus(status).value,),
        )
        return [_row_to_record(r) for r in cur.fetchall()]

    def count_records(self, status: Optional[ImageStatus] = None) -> int:
        cur = self.conn.cursor()
        if status is None:
            cur.execute("SELECT COUNT(*) FROM images")
        else:
            cur.execute("SELECT COUNT(*) FROM images WHERE status = ?", (ImageStatus(status).value,))
        return int(cur.fetchone()[0])

    def update_status(self, file_path: str, status: ImageStatus) -> bool:
        cur = self.conn.execute(
            "UPDATE images SET status = ? WHERE file_path = ?",
            (ImageStatus(status).value, file_path),
        )
        return cur.rowcount > 0

    def mark_missing_under(self, folder_path: str, keep_under: Iterable[str] = ()) -> List[str]:
        """
        Flags every non-missing record below folder_path as missing, except
        records that also sit below one of `keep_under`. Returns affected paths.
        """
        prefix = _folder_prefix(folder_path)
        keep = tuple(_folder_prefix(k) for k in keep_under)
        cur = self.conn.cursor()
        cur.execute(
            "SELECT file_path FROM images WHERE substr(file_path, 1, ?) = ? AND status != ?",
            (len(prefix), prefix, ImageStatus.MISSING.value),
        )
        paths = [r[0] for r in cur.fetchall() if not (keep and r[0].startswith(keep))]
        cur.executemany(
            "UPDATE images SET status = ? WHERE file_path = ?",
            [(ImageStatus.MISSING.value, p) for p in paths],
        )
        return paths

    def move_record(self, old_path: str, new_path: str) -> bool:
        """Re-keys a record in place and resets it to ok."""
        cur = self.conn.execute(
            "UPDATE images SET file_path = ?, file_name = ?, status = ? WHERE file_path = ?",
            (new_path, os.path.basename(new_path), ImageStatus.OK.value, old_path),
        )
        return cur.rowcount > 0

    def refresh_stat(self, file_path: str, file_size: int, date_modified: float):
        """Stores a new size/mtime snapshot without touching hash or status."""
        self.conn.execute(
            "UPDATE images SET file_size = ?, date_modified = ? WHERE file_path = ?",
            (file_size, date_modified, file_path),
        )

    def delete_records(self, file_paths: Iterable[str]) -> int:
        cur = self.conn.cursor()
        cur.executemany("DELETE FROM images WHERE file_path = ?", [(p,) for p in file_paths])
        return cur.rowcount if cur.rowcount is not None else 0
