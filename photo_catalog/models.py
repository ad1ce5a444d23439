from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class ImageStatus(str, Enum):
    OK = "ok"
    MISSING = "missing"
    MODIFIED = "modified"
    CONFLICT = "conflict"


@dataclass
class ImageRecord:
    """
    One cataloged image file. `file_path` is the identity key.
    """
    file_path: str
    file_name: str
    file_hash: str          # Full content hash, '' when the file was unreadable
    file_size: int
    date_modified: float    # Filesystem mtime (epoch seconds) at last sync
    date_imported: str      # ISO timestamp
    width: Optional[int] = None
    height: Optional[int] = None
    status: ImageStatus = ImageStatus.OK

    # User annotations, opaque to sync and analysis
    user_status: str = ""
    rating: int = 0
    tags: str = ""

    id: Optional[int] = None


@dataclass
class ProjectFolder:
    folder_path: str
    date_added: str


@dataclass
class SyncResult:
    """
    Outcome of one synchronization run. Moved files appear only in
    `moved_files`, never in `new_files` or `missing_files`.
    """
    new_files: List[str] = field(default_factory=list)
    missing_files: List[str] = field(default_factory=list)
    modified_files: List[str] = field(default_factory=list)
    moved_files: List[Tuple[str, str]] = field(default_factory=list)  # (old, new)
    restored_files: List[str] = field(default_factory=list)
    total_scanned: int = 0

    @property
    def total_changes(self) -> int:
        return (len(self.new_files) + len(self.missing_files) + len(self.modified_files)
                + len(self.moved_files) + len(self.restored_files))

    @property
    def is_empty(self) -> bool:
        return self.total_changes == 0


class ComparisonMode(str, Enum):
    QUICK = "quick"   # size + dimensions
    DEEP = "deep"     # size + dimensions + partial hash


class FingerprintKind(int, Enum):
    """How much of a file was fingerprinted. Ordered: a higher kind covers a lower one."""
    SIZE_ONLY = 0
    SIZE_AND_HASH = 1

    @classmethod
    def required_for(cls, mode: ComparisonMode) -> "FingerprintKind":
        return cls.SIZE_AND_HASH if mode == ComparisonMode.DEEP else cls.SIZE_ONLY


@dataclass
class FileInfo:
    file_size: int
    image_width: int = 0
    image_height: int = 0
    # None means "not computed" or "unreadable", never "empty content".
    partial_hash: Optional[str] = None
    fingerprint: FingerprintKind = FingerprintKind.SIZE_ONLY

    def signature(self, mode: ComparisonMode) -> str:
        """Path-independent key: WIDTHxHEIGHT_SIZE[_PARTIALHASH]."""
        sig = f"{self.image_width}x{self.image_height}_{self.file_size}"
        if mode == ComparisonMode.DEEP and self.partial_hash:
            sig += f"_{self.partial_hash}"
        return sig


@dataclass
class FolderContent:
    """Image files and subfolders under one folder, keyed by path relative to it."""
    all_files: List[str] = field(default_factory=list)
    all_subfolders: List[str] = field(default_factory=list)
    file_info: Dict[str, FileInfo] = field(default_factory=dict)
    total_size: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.all_files

    def covers(self, mode: ComparisonMode) -> bool:
        """True when every file carries the fingerprint kind `mode` compares on."""
        required = FingerprintKind.required_for(mode)
        return all(info.fingerprint >= required for info in self.file_info.values())


class DuplicateType(str, Enum):
    EXACT_COMPLETE = "exact_complete"
    EXACT_FILES_ONLY = "exact_files_only"
    PARTIAL_DUPLICATE = "partial_duplicate"


class Severity(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        return {"High": 0, "Medium": 1, "Low": 2}[self.value]


SEVERITY_BY_TYPE = {
    DuplicateType.EXACT_COMPLETE: Severity.HIGH,
    DuplicateType.EXACT_FILES_ONLY: Severity.MEDIUM,
    DuplicateType.PARTIAL_DUPLICATE: Severity.LOW,
}


@dataclass
class DuplicateIssue:
    type: DuplicateType
    primary_folder: str
    duplicate_folder: str
    similarity: float       # 0.0 - 1.0
    total_files: int
    duplicate_files: int
    wasted_space: int       # bytes

    @property
    def severity(self) -> Severity:
        return SEVERITY_BY_TYPE[self.type]
