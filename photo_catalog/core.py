import os
import json
import logging
from datetime import datetime, UTC
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from . import config
from .database.db import DBManager
from .database.ops import DBOperations
from .duplicates.analyzer import DuplicateAnalyzer
from .duplicates.cache import FolderContentCache
from .exceptions import NoProjectOpenError, ProjectError
from .metadata.extract import MetadataExtractor
from .models import ComparisonMode, DuplicateIssue, ImageRecord, ImageStatus, SyncResult
from .progress import ProgressCallback, YieldHook
from .scanning.filesystem import ImageScanner
from .scanning.hasher import FileHasher
from .sync.engine import SyncEngine

StatusListener = Callable[[str, ImageStatus], None]


class ProjectManager:
    """
    Owns one open project: its catalog database, its root folders and the
    duplicate analyzer with its folder cache.

    A project directory holds:
      - project.json   name, creation time, format version
      - catalog.db     folders and image records
      - .folder_analysis_cache
    """

    def __init__(self,
                 scanner: Optional[ImageScanner] = None,
                 hasher: Optional[FileHasher] = None,
                 metadata: Optional[MetadataExtractor] = None):
        self.scanner = scanner or ImageScanner()
        self.hasher = hasher or FileHasher()
        self.metadata = metadata or MetadataExtractor()

        self.project_path: Optional[Path] = None
        self.project_name: str = ""
        self.db_manager: Optional[DBManager] = None
        self.db: Optional[DBOperations] = None
        self.analyzer: Optional[DuplicateAnalyzer] = None
        self._listeners: List[StatusListener] = []

    # --- Project lifecycle ---

    @property
    def has_open_project(self) -> bool:
        return self.db is not None

    def create_project(self, project_path: Path, name: str):
        project_path = Path(project_path).resolve()
        if (project_path / config.PROJECT_FILENAME).exists():
            raise ProjectError(f"A project already exists at {project_path}")

        try:
            project_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProjectError(f"Cannot create project directory {project_path}: {e}") from e

        meta = {
            "name": name,
            "created": datetime.now(UTC).isoformat(),
            "version": config.PROJECT_VERSION,
        }
        self._write_metadata(project_path, meta)
        logging.info(f"Created project '{name}' at {project_path}")
        self.open_project(project_path)

    def open_project(self, project_path: Path):
        project_path = Path(project_path).resolve()
        meta = self._read_metadata(project_path)
        db_file = project_path / config.DB_FILENAME

        if self.has_open_project:
            self.close_project()

        self.db_manager = DBManager(db_file)
        self.db = DBOperations(self.db_manager.connect())
        self.project_path = project_path
        self.project_name = meta.get("name") or project_path.name

        # Cache lifecycle: loaded here, saved after every analysis run
        cache = FolderContentCache(project_path / config.CACHE_FILENAME,
                                   self.scanner, self.hasher, self.metadata)
        cache.load()
        self.analyzer = DuplicateAnalyzer(cache)
        logging.info(f"Opened project '{self.project_name}' ({self.get_total_image_count()} images)")

    def close_project(self):
        if self.db_manager:
            self.db.conn.commit()
            self.db_manager.close()
        self.db_manager = None
        self.db = None
        self.analyzer = None
        self.project_path = None
        self.project_name = ""

    def _read_metadata(self, project_path: Path) -> dict:
        meta_file = project_path / config.PROJECT_FILENAME
        if not meta_file.is_file():
            raise ProjectError(f"Not a project directory (no {config.PROJECT_FILENAME}): {project_path}")
        try:
            meta = json.loads(meta_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ProjectError(f"Cannot read project metadata {meta_file}: {e}") from e
        if not isinstance(meta, dict):
            raise ProjectError(f"Malformed project metadata: {meta_file}")

        if meta.get("version") != config.PROJECT_VERSION:
            logging.warning(
                f"Project format version {meta.get('version')!r} differs from "
                f"{config.PROJECT_VERSION!r}; rewriting metadata."
            )
            meta["version"] = config.PROJECT_VERSION
            self._write_metadata(project_path, meta)
        return meta

    def _write_metadata(self, project_path: Path, meta: dict):
        try:
            (project_path / config.PROJECT_FILENAME).write_text(json.dumps(meta, indent=2), encoding="utf-8")
        except OSError as e:
            raise ProjectError(f"Cannot write project metadata in {project_path}: {e}") from e

    def _require_project(self) -> DBOperations:
        if self.db is None:
            raise NoProjectOpenError("No project is open.")
        return self.db

    # --- Folders ---

    def add_folder(self, folder_path: str) -> bool:
        """Registers a root folder. Returns False if it was already registered."""
        db = self._require_project()
        folder = os.path.abspath(folder_path)
        if not os.path.isdir(folder):
            raise ProjectError(f"Folder does not exist: {folder}")
        added = db.add_folder(folder)
        db.conn.commit()
        if added:
            logging.info(f"Added folder {folder}")
        return added

    def remove_folder(self, folder_path: str) -> bool:
        """
        Unregisters a root folder. Its records become missing unless another
        registered root still covers them.
        """
        db = self._require_project()
        folder = os.path.abspath(folder_path)
        if not db.remove_folder(folder):
            return False

        affected = db.mark_missing_under(folder, keep_under=db.get_project_folders())
        db.conn.commit()
        if self.analyzer:
            self.analyzer.cache.invalidate(folder)
        for path in affected:
            self._notify(path, ImageStatus.MISSING)
        logging.info(f"Removed folder {folder}; {len(affected)} records marked missing.")
        return True

    def get_project_folders(self) -> List[str]:
        return self._require_project().get_project_folders()

    # --- Queries ---

    def get_images_in_folder(self, folder_path: str) -> List[ImageRecord]:
        return self._require_project().fetch_records_in_folder(os.path.abspath(folder_path))

    def get_all_images(self) -> List[ImageRecord]:
        return self._require_project().fetch_all_records()

    def get_image_record(self, file_path: str) -> Optional[ImageRecord]:
        return self._require_project().get_record(file_path)

    def get_missing_file_count(self) -> int:
        return self._require_project().count_records(ImageStatus.MISSING)

    def get_total_image_count(self) -> int:
        return self._require_project().count_records()

    def update_image_status(self, file_path: str, status: ImageStatus) -> bool:
        db = self._require_project()
        if not db.update_status(file_path, status):
            return False
        db.conn.commit()
        self._notify(file_path, ImageStatus(status))
        return True

    # --- Status notifications ---

    def add_status_listener(self, listener: StatusListener):
        self._listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, file_path: str, status: ImageStatus):
        for listener in self._listeners:
            listener(file_path, status)

    # --- Synchronization ---

    def synchronize(self,
                    progress: Optional[ProgressCallback] = None,
                    yield_hook: Optional[YieldHook] = None) -> SyncResult:
        db = self._require_project()
        engine = SyncEngine(db, self.scanner, self.hasher, self.metadata, on_status_changed=self._notify)
        return engine.synchronize(progress, yield_hook)

    def reject_move(self, old_path: str, new_path: str):
        """
        Undoes an inferred move: the original record goes back to its old path
        as missing and the new path is cataloged as an unrelated file.
        """
        db = self._require_project()
        if db.get_record(new_path) is None:
            raise ProjectError(f"No cataloged record at {new_path}")

        # Read the new file before touching the catalog
        engine = SyncEngine(db, self.scanner, self.hasher, self.metadata)
        try:
            fresh = engine.create_image_record(new_path)
        except OSError as e:
            raise ProjectError(f"Cannot read {new_path}: {e}") from e

        db.move_record(new_path, old_path)
        db.update_status(old_path, ImageStatus.MISSING)
        db.upsert_image_record(fresh)
        db.conn.commit()

        self._notify(old_path, ImageStatus.MISSING)
        self._notify(new_path, ImageStatus.OK)
        logging.info(f"Rejected move {old_path} -> {new_path}")

    def relocate_missing(self, old_path: str, new_path: str) -> bool:
        """
        Points a record at a file the user located by hand and refreshes it
        from disk. If the new path is already cataloged the record is flagged
        as a conflict instead, and False is returned.
        """
        db = self._require_project()
        new_path = os.path.abspath(new_path)
        if db.get_record(old_path) is None:
            raise ProjectError(f"No cataloged record at {old_path}")
        if not os.path.isfile(new_path):
            raise ProjectError(f"File does not exist: {new_path}")

        if new_path != old_path and db.get_record(new_path) is not None:
            db.update_status(old_path, ImageStatus.CONFLICT)
            db.conn.commit()
            self._notify(old_path, ImageStatus.CONFLICT)
            logging.warning(f"Cannot relocate {old_path}: {new_path} is already cataloged.")
            return False

        engine = SyncEngine(db, self.scanner, self.hasher, self.metadata)
        record = engine.create_image_record(new_path)
        db.move_record(old_path, new_path)
        db.upsert_image_record(record)
        db.conn.commit()
        self._notify(new_path, ImageStatus.OK)
        logging.info(f"Relocated {old_path} -> {new_path}")
        return True

    def remove_records(self, file_paths: Iterable[str]) -> int:
        """Permanently drops records, typically missing files the user discarded."""
        db = self._require_project()
        removed = db.delete_records(list(file_paths))
        db.conn.commit()
        logging.info(f"Removed {removed} records from the catalog.")
        return removed

    def remove_missing(self) -> int:
        db = self._require_project()
        return self.remove_records(r.file_path for r in db.fetch_records_by_status(ImageStatus.MISSING))

    # --- Duplicate analysis ---

    def analyze_duplicates(self, mode: ComparisonMode = ComparisonMode.QUICK,
                           progress: Optional[ProgressCallback] = None,
                           yield_hook: Optional[YieldHook] = None) -> List[DuplicateIssue]:
        """
        Raises:
            NoProjectOpenError, InsufficientFoldersError, AnalysisCancelled
        """
        db = self._require_project()
        roots = db.get_project_folders()
        try:
            return self.analyzer.analyze(roots, mode, progress, yield_hook)
        finally:
            self.analyzer.cache.save(mode)

    def cancel_analysis(self):
        if self.analyzer:
            self.analyzer.cancel()
