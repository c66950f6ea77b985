import os
import logging
from pathlib import Path
from typing import Iterator, Optional, Set, Tuple

from .. import config
from ..exceptions import ScanError


class MediaScanner:
    """
    Lazy depth-first walk over a source tree, yielding only media files.

    Symlinks are never followed (files or directories), so a link loop
    cannot trap the walk.
    """

    def __init__(self, skip_dirs: Optional[Set[Path]] = None):
        self.skip_dirs = skip_dirs or set()
        self.unreadable_dirs = 0
        self.ignored_files = 0

    def scan(self, root: Path) -> Iterator[Tuple[Path, Optional[str]]]:
        """
        Yields (path, kind) for every visible file under root.
        kind is None for files whose extension is not a known media type;
        the caller reports those rather than processing them.
        """
        if not root.is_dir():
            raise ScanError(f"Source is not a directory: {root}")

        for path in self.iter_files(root):
            kind = self.classify(path)
            if kind is None:
                self.ignored_files += 1
            yield path, kind

    @staticmethod
    def classify(path: Path) -> Optional[str]:
        if path.name.startswith("."):
            return None
        return config.EXT_TO_KIND.get(path.suffix.lower())

    def iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir for speed."""
        stack = [root]
        while stack:
            current = stack.pop()
            if self.skip_dirs and any(sd == current or sd in current.parents for sd in self.skip_dirs):
                continue

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                self.unreadable_dirs += 1
                logging.warning(f"Cannot read directory {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                if e.name.startswith("."):
                    continue
                try:
                    if e.is_symlink():
                        logging.debug(f"Not following symlink: {e.path}")
                        continue
                    if e.is_dir(follow_symlinks=False):
                        dirs.append(Path(e.path))
                    elif e.is_file(follow_symlinks=False):
                        files.append(Path(e.path))
                except OSError as err:
                    logging.warning(f"Cannot stat {e.path}: {err}")

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f
