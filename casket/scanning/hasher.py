import hashlib
from pathlib import Path

from .. import config


class FileHasher:
    """Content fingerprints used to recognise an archive copy we already made."""

    def sha256(self, path: Path) -> str:
        """Reads entire file. High I/O cost."""
        h = hashlib.sha256()
        with open(path, 'rb') as f:
            while chunk := f.read(config.HASH_CHUNK_SIZE):
                h.update(chunk)
        return h.hexdigest()

    def same_content(self, a: Path, b: Path) -> bool:
        """
        True when both files hold identical bytes.
        Size is compared first so most mismatches never read the data.
        """
        try:
            if a.stat().st_size != b.stat().st_size:
                return False
            return self.sha256(a) == self.sha256(b)
        except FileNotFoundError:
            return False

    def same_bytes(self, path: Path, data: bytes) -> bool:
        try:
            if path.stat().st_size != len(data):
                return False
            return self.sha256(path) == hashlib.sha256(data).hexdigest()
        except FileNotFoundError:
            return False
