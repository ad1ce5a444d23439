import os
import struct
import logging
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .. import config
from ..exceptions import CacheFormatError
from ..metadata.extract import MetadataExtractor
from ..models import ComparisonMode, FileInfo, FingerprintKind, FolderContent
from ..scanning.filesystem import ImageScanner
from ..scanning.hasher import FileHasher

FileCallback = Callable[[str], None]

_MODE_TAGS = {ComparisonMode.QUICK: 0, ComparisonMode.DEEP: 1}
_TAG_MODES = {v: k for k, v in _MODE_TAGS.items()}


@dataclass
class CacheEntry:
    folder_mtime: float     # Tree mtime snapshot taken before the folder was walked
    content: FolderContent


class FolderContentCache:
    """
    Per-folder FileInfo cache shared across analysis runs.

    Entries are keyed by absolute folder path and carry the tree mtime seen
    when they were computed. An entry is reused only while the folder exists,
    has not been touched since (1 s tolerance) and still agrees with the disk
    on whether it holds images at all.

    Persistence is a versioned big-endian blob. A version mismatch or any
    decoding problem throws the whole file away.
    """

    def __init__(self,
                 cache_path: Optional[Path] = None,
                 scanner: Optional[ImageScanner] = None,
                 hasher: Optional[FileHasher] = None,
                 metadata: Optional[MetadataExtractor] = None):
        self.cache_path = Path(cache_path) if cache_path else None
        self.scanner = scanner or ImageScanner()
        self.hasher = hasher or FileHasher()
        self.metadata = metadata or MetadataExtractor()
        self.entries: Dict[str, CacheEntry] = {}
        self.last_mode: Optional[ComparisonMode] = None
        # Per-run memo: absolute path -> (size, mtime, info). Nested folders share files.
        self._file_memo: Dict[str, Tuple[int, float, FileInfo]] = {}

    # --- Lookup ---

    def get(self, folder: str) -> Optional[CacheEntry]:
        return self.entries.get(folder)

    def needs_compute(self, folder: str, mode: ComparisonMode) -> bool:
        entry = self.entries.get(folder)
        if entry is None:
            return True
        if not entry.content.covers(mode):
            return True
        return not self.is_entry_valid(folder, entry)

    def get_or_compute(self, folder: str, mode: ComparisonMode,
                       on_file: Optional[FileCallback] = None) -> FolderContent:
        if not self.needs_compute(folder, mode):
            return self.entries[folder].content

        if folder in self.entries:
            logging.debug(f"Cache entry stale or incomplete, recomputing: {folder}")
        content, mtime = self.compute(folder, mode, on_file)
        self.entries[folder] = CacheEntry(folder_mtime=mtime, content=content)
        return content

    def invalidate(self, folder: str):
        if self.entries.pop(folder, None) is not None:
            logging.debug(f"Invalidated cache entry: {folder}")

    def clear(self):
        self.entries.clear()
        self.reset_file_memo()

    def reset_file_memo(self):
        self._file_memo = {}

    # --- Computation ---

    def compute(self, folder: str, mode: ComparisonMode,
                on_file: Optional[FileCallback] = None):
        """
        Walks the whole subtree of folder. Paths are stored relative to it
        with forward slashes.

        Returns:
            (FolderContent, tree mtime snapshot)
        """
        root = Path(folder)
        # Snapshot first: a change during the walk must make the entry stale
        mtime = self.scanner.tree_mtime(root) or 0.0
        content = FolderContent()

        for _, files, dirs in self.scanner.walk(root):
            for d in dirs:
                content.all_subfolders.append(d.relative_to(root).as_posix())
            for path in files:
                info = self.analyze_file(path, mode)
                if info is not None:
                    rel = path.relative_to(root).as_posix()
                    content.all_files.append(rel)
                    content.file_info[rel] = info
                    content.total_size += info.file_size
                if on_file:
                    on_file(str(path))

        content.all_files.sort()
        content.all_subfolders.sort()
        return content, mtime

    def analyze_file(self, path: Path, mode: ComparisonMode) -> Optional[FileInfo]:
        """
        FileInfo for one image, or None if the file cannot be stat'ed.

        A file already fingerprinted in this run (same size and mtime, kind
        at least what `mode` needs) is not read again.
        """
        try:
            st = path.stat()
        except OSError as e:
            logging.warning(f"Skipping unreadable file {path}: {e}")
            return None

        key = str(path)
        memo = self._file_memo.get(key)
        if memo is not None:
            size, mtime, known = memo
            if (size == st.st_size and mtime == st.st_mtime
                    and known.fingerprint >= FingerprintKind.required_for(mode)):
                return replace(known)

        width, height = self.metadata.get_dimensions(path)
        info = FileInfo(file_size=st.st_size, image_width=width or 0, image_height=height or 0)
        if mode == ComparisonMode.DEEP:
            # Kind records that hashing was attempted; None means unreadable
            info.partial_hash = self.hasher.try_partial_hash(path)
            info.fingerprint = FingerprintKind.SIZE_AND_HASH
        self._file_memo[key] = (st.st_size, st.st_mtime, replace(info))
        return info

    def count_images(self, folder: str) -> int:
        return sum(len(files) for _, files, _ in self.scanner.walk(Path(folder)))

    # --- Validation ---

    def is_entry_valid(self, folder: str, entry: CacheEntry) -> bool:
        path = Path(folder)
        if not path.is_dir():
            return False

        current = self.scanner.tree_mtime(path)
        if current is None or current > entry.folder_mtime + config.CACHE_MTIME_TOLERANCE_SEC:
            return False

        # Images on disk and in the entry must agree on presence
        has_images = bool(self.scanner.list_direct_images(path))
        cached_images = any('/' not in rel for rel in entry.content.all_files)
        if has_images != cached_images:
            logging.debug(f"Cache sanity check failed for {folder}")
            return False
        return True

    # --- Persistence ---

    def load(self) -> int:
        """
        Reads the cache file, keeping only entries that are still valid.

        Returns:
            Number of entries loaded.
        """
        self.entries = {}
        if not self.cache_path or not self.cache_path.exists():
            return 0

        try:
            data = self.cache_path.read_bytes()
        except OSError as e:
            logging.warning(f"Cannot read folder cache {self.cache_path}: {e}")
            return 0

        try:
            mode, entries = decode_cache(data)
        except CacheFormatError as e:
            logging.warning(f"Discarding folder cache {self.cache_path}: {e}")
            return 0

        rejected = 0
        for folder, entry in entries.items():
            if self.is_entry_valid(folder, entry):
                self.entries[folder] = entry
            else:
                rejected += 1

        self.last_mode = mode
        logging.info(f"Loaded {len(self.entries)} cached folders ({rejected} stale).")
        return len(self.entries)

    def save(self, mode: Optional[ComparisonMode] = None) -> bool:
        """Writes to a temp file in the same directory, then renames over the target."""
        if not self.cache_path:
            return False
        if mode is not None:
            self.last_mode = mode

        blob = encode_cache(self.last_mode or ComparisonMode.QUICK, self.entries)
        target = self.cache_path
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(dir=target.parent, prefix=target.name + ".",
                                             suffix=".tmp", delete=False) as tmp:
                tmp_name = tmp.name
                tmp.write(blob)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, target)
        except OSError as e:
            logging.error(f"Failed to save folder cache {target}: {e}")
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False

        logging.debug(f"Saved {len(self.entries)} folder cache entries to {target}")
        return True


# --- Binary format ---

def encode_cache(mode: ComparisonMode, entries: Dict[str, CacheEntry]) -> bytes:
    out = bytearray()
    _put_str(out, config.CACHE_VERSION)
    out += struct.pack('>BI', _MODE_TAGS[mode], len(entries))

    for folder, entry in entries.items():
        content = entry.content
        _put_str(out, folder)
        out += struct.pack('>d', entry.folder_mtime)
        _put_str_list(out, content.all_files)
        _put_str_list(out, content.all_subfolders)
        out += struct.pack('>qI', content.total_size, len(content.file_info))
        for rel, info in content.file_info.items():
            _put_str(out, rel)
            out += struct.pack('>qii', info.file_size, info.image_width, info.image_height)
            _put_str(out, info.partial_hash or "")
            out += struct.pack('>B', int(info.fingerprint))
    return bytes(out)


def decode_cache(data: bytes):
    """
    Returns:
        (mode, {folder: CacheEntry})

    Raises:
        CacheFormatError: on version mismatch, truncation or bad values.
    """
    reader = _Reader(data)
    version = reader.string()
    if version != config.CACHE_VERSION:
        raise CacheFormatError(f"version {version!r} != {config.CACHE_VERSION!r}")

    mode_tag, count = reader.unpack('>BI')
    if mode_tag not in _TAG_MODES:
        raise CacheFormatError(f"unknown comparison mode tag {mode_tag}")

    entries: Dict[str, CacheEntry] = {}
    for _ in range(count):
        folder = reader.string()
        (mtime,) = reader.unpack('>d')
        content = FolderContent(all_files=reader.string_list(),
                                all_subfolders=reader.string_list())
        content.total_size, info_count = reader.unpack('>qI')
        for _ in range(info_count):
            rel = reader.string()
            size, width, height = reader.unpack('>qii')
            partial = reader.string() or None
            (kind,) = reader.unpack('>B')
            try:
                fingerprint = FingerprintKind(kind)
            except ValueError as e:
                raise CacheFormatError(f"unknown fingerprint kind {kind}") from e
            content.file_info[rel] = FileInfo(size, width, height, partial, fingerprint)
        entries[folder] = CacheEntry(folder_mtime=mtime, content=content)

    if not reader.at_end():
        raise CacheFormatError("trailing bytes after last entry")
    return _TAG_MODES[mode_tag], entries


def _put_str(out: bytearray, value: str):
    raw = value.encode('utf-8', 'surrogateescape')
    out += struct.pack('>I', len(raw))
    out += raw


def _put_str_list(out: bytearray, values: List[str]):
    out += struct.pack('>I', len(values))
    for v in values:
        _put_str(out, v)


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def unpack(self, fmt: str):
        size = struct.calcsize(fmt)
        if self.pos + size > len(self.data):
            raise CacheFormatError("unexpected end of cache data")
        values = struct.unpack_from(fmt, self.data, self.pos)
        self.pos += size
        return values

    def string(self) -> str:
        (length,) = self.unpack('>I')
        end = self.pos + length
        if end > len(self.data):
            raise CacheFormatError("string runs past end of cache data")
        raw = self.data[self.pos:end]
        self.pos = end
        # Undecodable bytes round-trip as surrogates, like os.fsdecode
        return raw.decode('utf-8', 'surrogateescape')

    def string_list(self) -> List[str]:
        (count,) = self.unpack('>I')
        return [self.string() for _ in range(count)]

    def at_end(self) -> bool:
        return self.pos == len(self.data)
