import hashlib
import logging
from pathlib import Path
from typing import Optional

from .. import config
from ..exceptions import FileHashError

class FileHasher:
    """
    Content fingerprints.

    - Full hash: SHA-256 over every byte. Used by catalog synchronization.
    - Partial hash: MD5 over the first 16 KB, plus the last 16 KB when the
      file is larger than 32 KB. Used by duplicate folder analysis (Deep mode).

    Both raise FileHashError when the file cannot be read. The `try_*`
    variants log and return None instead, meaning "unknown".
    """

    def full_hash(self, path: Path) -> str:
        """Reads entire file. High I/O cost."""
        h = hashlib.sha256()
        try:
            with open(path, 'rb') as f:
                while chunk := f.read(config.HASH_CHUNK_SIZE):
                    h.update(chunk)
        except OSError as e:
            raise FileHashError(f"Cannot hash {path}: {e}") from e
        return h.hexdigest()

    def partial_hash(self, path: Path) -> str:
        chunk_size = config.PARTIAL_HASH_SIZE
        h = hashlib.md5()
        try:
            with open(path, 'rb') as f:
                # Size from the open handle so head and tail agree
                f.seek(0, 2)
                file_size = f.tell()
                f.seek(0)

                # 1. Head
                h.update(f.read(chunk_size))

                # 2. Tail, only when it cannot overlap the head
                if file_size > chunk_size * 2:
                    f.seek(file_size - chunk_size)
                    h.update(f.read(chunk_size))
        except OSError as e:
            raise FileHashError(f"Cannot read {path} for partial hash: {e}") from e
        return h.hexdigest()

    def try_full_hash(self, path: Path) -> Optional[str]:
        try:
            return self.full_hash(path)
        except FileHashError as e:
            logging.warning(str(e))
            return None

    def try_partial_hash(self, path: Path) -> Optional[str]:
        try:
            return self.partial_hash(path)
        except FileHashError as e:
            logging.warning(str(e))
            return None
