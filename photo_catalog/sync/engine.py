import os
import logging
from datetime import datetime, UTC
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..database.ops import DBOperations
from ..metadata.extract import MetadataExtractor
from ..models import ImageRecord, ImageStatus, SyncResult
from ..progress import ProgressCallback, ProgressReporter, YieldHook
from ..scanning.filesystem import ImageScanner
from ..scanning.hasher import FileHasher

StatusListener = Callable[[str, ImageStatus], None]

COMMIT_INTERVAL = 500


def is_storable_path(path: str) -> bool:
    """False for names os.fsdecode escaped with surrogates; sqlite only binds valid UTF-8."""
    try:
        path.encode('utf-8')
    except UnicodeEncodeError:
        return False
    return True


class SyncEngine:
    """
    Reconciles the catalog with the filesystem.

    One run:
      1. Scan every registered root for image files.
      2. Classify: new (path unknown to catalog), missing (record whose file
         is gone), modified (size/mtime changed AND full hash differs),
         restored (missing record whose file is back under a root).
      3. Pair missing records with new files as moves: full hash first,
         then same name + same size. Candidates are tried in sorted path
         order so the winner is reproducible.
      4. Apply everything to the catalog.

    Unreadable files never abort the run; they are logged and compared on
    the weaker size/mtime signal only.
    """

    def __init__(self,
                 db_ops: DBOperations,
                 scanner: Optional[ImageScanner] = None,
                 hasher: Optional[FileHasher] = None,
                 metadata: Optional[MetadataExtractor] = None,
                 on_status_changed: Optional[StatusListener] = None):
        self.db = db_ops
        self.scanner = scanner or ImageScanner()
        self.hasher = hasher or FileHasher()
        self.metadata = metadata or MetadataExtractor()
        self.on_status_changed = on_status_changed
        self._hash_cache: Dict[str, Optional[str]] = {}
        self._reporter = ProgressReporter()
        self._pending_writes = 0

    def synchronize(self,
                    progress: Optional[ProgressCallback] = None,
                    yield_hook: Optional[YieldHook] = None) -> SyncResult:
        self._reporter = ProgressReporter(progress, yield_hook)
        self._hash_cache = {}
        self._pending_writes = 0

        all_files = self._scan_roots()
        result = SyncResult(total_scanned=len(all_files))

        records = {rec.file_path: rec for rec in self.db.fetch_all_records()}
        current = set(all_files)

        new_files = [p for p in all_files if p not in records]
        missing = self._find_missing(records)
        modified = self._find_modified(records)
        restored = [
            path for path, rec in records.items()
            if rec.status == ImageStatus.MISSING and path in current
        ]

        moves = self._detect_moves([records[p] for p in missing], new_files)
        moved_old = {old for old, _ in moves}
        moved_new = {new for _, new in moves}

        result.moved_files = moves
        result.new_files = [p for p in new_files if p not in moved_new]
        result.missing_files = [p for p in missing if p not in moved_old]
        result.modified_files = modified
        result.restored_files = sorted(restored)

        self._apply(result, records)

        logging.info(
            f"Sync complete: {result.total_scanned} scanned, {len(result.new_files)} new, "
            f"{len(result.missing_files)} missing, {len(result.modified_files)} modified, "
            f"{len(result.moved_files)} moved, {len(result.restored_files)} restored."
        )
        return result

    # --- Discovery ---

    def _scan_roots(self) -> List[str]:
        folders = self.db.get_project_folders()
        total = len(folders)
        all_files: List[str] = []
        seen = set()

        for i, folder in enumerate(folders):
            self._reporter.report(i, total, folder)
            if not os.path.isdir(folder):
                logging.warning(f"Project folder not found on disk: {folder}")
            for path in self.scanner.iter_images(Path(folder)):
                key = str(path)
                if not is_storable_path(key):
                    logging.warning(f"Skipping file with undecodable name: {key!r}")
                    continue
                # Nested or overlapping roots must not double count
                if key not in seen:
                    seen.add(key)
                    all_files.append(key)
            self._reporter.pause()

        self._reporter.report(total, total, "")
        logging.info(f"Scanned {total} folders, found {len(all_files)} image files.")
        return all_files

    def _find_missing(self, records: Dict[str, ImageRecord]) -> List[str]:
        return sorted(
            path for path, rec in records.items()
            if rec.status != ImageStatus.MISSING and not os.path.exists(path)
        )

    def _find_modified(self, records: Dict[str, ImageRecord]) -> List[str]:
        modified: List[str] = []
        for path, rec in sorted(records.items()):
            if rec.status != ImageStatus.OK:
                continue
            try:
                st = os.stat(path)
            except OSError:
                continue  # Reported as missing instead

            # Cheap pre-filter
            if st.st_size == rec.file_size and st.st_mtime == rec.date_modified:
                continue

            current_hash = self._hash(path)
            if current_hash is None or not rec.file_hash:
                # Content unknown on one side: the size/mtime change stands
                logging.warning(f"Hash unavailable for {path}; treating size/mtime change as modification.")
                modified.append(path)
            elif current_hash != rec.file_hash:
                modified.append(path)
            else:
                # Same bytes, new timestamp: remember it so the next run skips the hash
                logging.debug(f"Timestamp changed but content identical: {path}")
                self.db.refresh_stat(path, st.st_size, st.st_mtime)
        return modified

    def _detect_moves(self, missing: List[ImageRecord], new_files: List[str]) -> List[Tuple[str, str]]:
        """Pairs (old, new). Each new file is claimed at most once."""
        if not missing or not new_files:
            return []

        candidates = sorted(new_files)
        claimed = set()
        moves: List[Tuple[str, str]] = []

        for rec in sorted(missing, key=lambda r: r.file_path):
            match = None

            # (a) Perfect match: same content hash
            if rec.file_hash:
                for cand in candidates:
                    if cand not in claimed and self._hash(cand) == rec.file_hash:
                        match = cand
                        break

            # (b) Likely match: same name and size
            if match is None:
                for cand in candidates:
                    if cand in claimed or os.path.basename(cand) != rec.file_name:
                        continue
                    try:
                        if os.path.getsize(cand) == rec.file_size:
                            match = cand
                            break
                    except OSError:
                        continue

            if match is not None:
                claimed.add(match)
                moves.append((rec.file_path, match))
                logging.info(f"Detected move: {rec.file_path} -> {match}")

        return moves

    # --- Apply ---

    def _apply(self, result: SyncResult, records: Dict[str, ImageRecord]):
        for old, new in result.moved_files:
            self.db.move_record(old, new)
            # A name+size match may still carry different bytes
            new_hash = self._hash_cache.get(new)
            if new_hash and new_hash != records[old].file_hash:
                self._store_from_disk(new)
            self._notify(new, ImageStatus.OK)

        for path in result.new_files + result.modified_files + result.restored_files:
            if self._store_from_disk(path):
                self._notify(path, ImageStatus.OK)

        for path in result.missing_files:
            self.db.update_status(path, ImageStatus.MISSING)
            self._notify(path, ImageStatus.MISSING)

        self.db.conn.commit()

    def _store_from_disk(self, path: str) -> bool:
        try:
            record = self.create_image_record(path)
        except OSError as e:
            # Vanished between scan and apply
            logging.warning(f"Skipping {path}: {e}")
            return False
        self.db.upsert_image_record(record)
        return True

    def create_image_record(self, path: str) -> ImageRecord:
        """Fresh record from the file on disk; status ok."""
        st = os.stat(path)
        width, height = self.metadata.get_dimensions(Path(path))
        return ImageRecord(
            file_path=path,
            file_name=os.path.basename(path),
            file_hash=self._hash(path) or "",
            file_size=st.st_size,
            date_modified=st.st_mtime,
            date_imported=datetime.now(UTC).isoformat(),
            width=width,
            height=height,
            status=ImageStatus.OK,
        )

    # --- Helpers ---

    def _hash(self, path: str) -> Optional[str]:
        if path not in self._hash_cache:
            self._hash_cache[path] = self.hasher.try_full_hash(Path(path))
            self._reporter.pause()
        return self._hash_cache[path]

    def _notify(self, path: str, status: ImageStatus):
        self._pending_writes += 1
        if self._pending_writes % COMMIT_INTERVAL == 0:
            self.db.conn.commit()
        if self.on_status_changed:
            self.on_status_changed(path, status)
