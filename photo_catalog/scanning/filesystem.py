import os
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple

from .. import config


def is_image_file(path: Path) -> bool:
    return path.suffix.lower() in config.IMAGE_EXTS


class ImageScanner:
    """
    Walks folder trees for image files.

    Traversal is an explicit stack with a visited set keyed by the canonical
    (realpath) directory, so symlink loops terminate, plus a depth bound.
    Missing or unreadable roots yield nothing.
    """

    def __init__(self, max_depth: int = config.MAX_SCAN_DEPTH):
        self.max_depth = max_depth

    def scan(self, root: Path) -> List[Path]:
        """All image files in the subtree of root, as absolute paths."""
        return list(self.iter_images(root))

    def iter_images(self, root: Path) -> Iterator[Path]:
        for _, files, _ in self.walk(Path(root)):
            yield from files

    def iter_subfolders(self, root: Path) -> Iterator[Path]:
        """Every descendant directory of root at any depth (root excluded)."""
        for _, _, dirs in self.walk(Path(root)):
            yield from dirs

    def expand_folders(self, roots: List[str]) -> List[str]:
        """
        Roots plus all of their descendants, deduplicated in first-seen order.
        Roots that do not exist are dropped.
        """
        seen: Set[str] = set()
        folders: List[str] = []
        for root in roots:
            root_path = Path(os.path.abspath(root))
            if not root_path.is_dir():
                logging.warning(f"Project folder not found: {root_path}")
                continue
            for folder in [root_path, *self.iter_subfolders(root_path)]:
                key = str(folder)
                if key not in seen:
                    seen.add(key)
                    folders.append(key)
        return folders

    def list_direct_images(self, folder: Path) -> List[Path]:
        """Image files directly inside folder (no recursion)."""
        _, files, _ = self._list_dir(Path(folder))
        return files

    def tree_mtime(self, folder: Path) -> Optional[float]:
        """
        Latest mtime among folder and its descendant directories.
        None if folder does not exist.
        """
        folder = Path(folder)
        try:
            latest = folder.stat().st_mtime
        except OSError:
            return None
        for sub in self.iter_subfolders(folder):
            try:
                latest = max(latest, sub.stat().st_mtime)
            except OSError:
                continue
        return latest

    def walk(self, root: Path) -> Iterator[Tuple[Path, List[Path], List[Path]]]:
        """Depth-first walker yielding (dir, image_files, subdirs) per directory."""
        root = Path(os.path.abspath(root))
        if not root.is_dir():
            return

        # Canonical paths already walked or waiting on the stack
        scheduled: Set[str] = {os.path.realpath(root)}
        stack = [(root, 0)]
        while stack:
            current, depth = stack.pop()

            ok, files, dirs = self._list_dir(current)
            if not ok:
                continue

            if depth >= self.max_depth:
                if dirs:
                    logging.warning(f"Max scan depth {self.max_depth} reached at {current}; not descending.")
                yield current, files, []
                continue

            fresh = []
            for d in dirs:
                real = os.path.realpath(d)
                if real in scheduled:
                    logging.debug(f"Skipping already visited directory: {d}")
                    continue
                scheduled.add(real)
                fresh.append(d)
            dirs = fresh

            # Push dirs reversed so A is processed before Z
            for d in reversed(dirs):
                stack.append((d, depth + 1))

            yield current, files, dirs

    def _list_dir(self, current: Path):
        try:
            with os.scandir(current) as it:
                entries = list(it)
        except (OSError, PermissionError):
            logging.warning(f"Cannot read directory: {current}")
            return False, [], []

        # Sort for stable traversal order
        entries.sort(key=lambda e: e.name.lower())

        files: List[Path] = []
        dirs: List[Path] = []
        for e in entries:
            try:
                if e.is_dir():
                    dirs.append(Path(e.path))
                elif e.is_file():
                    p = Path(e.path)
                    if is_image_file(p):
                        files.append(p)
            except OSError:
                logging.debug(f"Cannot stat entry: {e.path}")
        return True, files, dirs
