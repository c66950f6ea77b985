import logging
import shutil
import threading
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Set, Tuple

from .. import config
from ..exceptions import FileOperationError
from ..models import CatalogConfig, Placement
from ..scanning.hasher import FileHasher

MAX_NAME_ATTEMPTS = 10000


class ArchiveOrganizer:
    """
    Places originals under data_path/YYYY/MM/DD and thumbnails under the
    mirrored thumbnail_path/YYYY/MM/DD.

    Destination names already used by the catalog (or claimed earlier in this
    run) are never reused; the name gets a numeric suffix instead. A file that
    sits at the destination without being cataloged is left over from an
    interrupted run: it is reused when its bytes match, otherwise skipped over
    like any other taken name.
    """

    def __init__(self, catalog: CatalogConfig, claimed_paths: Iterable[str] = ()):
        self.catalog = catalog
        self.hasher = FileHasher()
        self._claimed: Set[str] = set(claimed_paths)
        self._lock = threading.Lock()

    def partition(self, capture_date: datetime) -> str:
        return config.FOLDER_PATTERN.format(year=capture_date.year, month=capture_date.month, day=capture_date.day)

    def plan_paths(self, filename: str, capture_date: datetime) -> Tuple[Path, Path]:
        """Preferred (collision-free) destinations for a file."""
        rel = self.partition(capture_date)
        stored = self.catalog.data_path / rel / filename
        thumb = self.catalog.thumbnail_path / rel / self.thumbnail_name(filename)
        return stored, thumb

    @staticmethod
    def thumbnail_name(stored_name: str) -> str:
        # Keep the original extension so IMG_0001.NEF and IMG_0001.JPG do not share a preview
        return stored_name + config.THUMBNAIL_SUFFIX

    def place(self, source: Path, capture_date: datetime, thumbnail_data: bytes) -> Placement:
        """
        Copies the original and writes the thumbnail.
        On failure nothing this call created is left behind.
        """
        rel = self.partition(capture_date)
        data_dir = self.catalog.data_path / rel
        thumb_dir = self.catalog.thumbnail_path / rel

        try:
            data_dir.mkdir(parents=True, exist_ok=True)
            thumb_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(f"Cannot create archive folder for {source}: {e}") from e

        def copy_original(dest_f: BinaryIO):
            with source.open("rb") as src_f:
                shutil.copyfileobj(src_f, dest_f)

        stored, created_stored = self._claim(
            data_dir, source.name,
            write=copy_original,
            is_same=lambda p: self.hasher.same_content(p, source),
        )
        try:
            if created_stored:
                shutil.copystat(source, stored)
            thumb, created_thumb = self._claim(
                thumb_dir, self.thumbnail_name(stored.name),
                write=lambda f: f.write(thumbnail_data),
                is_same=lambda p: self.hasher.same_bytes(p, thumbnail_data),
            )
        except OSError as e:
            self._release(stored, created_stored)
            raise FileOperationError(f"Cannot finish placing {source}: {e}") from e
        except BaseException:
            self._release(stored, created_stored)
            raise

        logging.debug(f"Placed {source} -> {stored} (thumbnail {thumb})")
        return Placement(
            stored_path=stored,
            thumbnail_path=thumb,
            created_stored=created_stored,
            created_thumbnail=created_thumb,
        )

    def discard(self, placement: Placement):
        """Removes whatever place() wrote and releases the claimed names."""
        self._release(placement.stored_path, placement.created_stored)
        self._release(placement.thumbnail_path, placement.created_thumbnail)

    def _release(self, path: Path, created: bool):
        if created:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logging.warning(f"Could not remove {path}: {e}")
        with self._lock:
            self._claimed.discard(str(path))

    def _claim(self, folder: Path, filename: str,
               write: Callable[[BinaryIO], object],
               is_same: Callable[[Path], bool]) -> Tuple[Path, bool]:
        """
        Finds a free name in folder and writes it.
        Returns (path, created); created is False when an identical orphan was reused.
        """
        stem = Path(filename).stem
        ext = Path(filename).suffix

        for counter in range(MAX_NAME_ATTEMPTS):
            name = filename if counter == 0 else f"{stem}_{counter}{ext}"
            candidate = folder / name
            key = str(candidate)

            with self._lock:
                if key in self._claimed:
                    continue
                self._claimed.add(key)

            try:
                self._write_exclusive(candidate, write)
                return candidate, True
            except FileExistsError:
                if is_same(candidate):
                    logging.info(f"Reusing uncataloged identical file at {candidate}")
                    return candidate, False
                # Occupied by unrelated content; leave it claimed and try the next name
                logging.debug(f"Destination occupied by a different file: {candidate}")
                continue
            except OSError as e:
                with self._lock:
                    self._claimed.discard(key)
                raise FileOperationError(f"Cannot write {candidate}: {e}") from e
            except BaseException:
                with self._lock:
                    self._claimed.discard(key)
                raise

        raise FileOperationError(f"No free destination name for {filename} in {folder}")

    def _write_exclusive(self, dest: Path, write: Callable[[BinaryIO], object]):
        # 'x' fails if dest exists, so two workers can never share a destination
        f = dest.open("xb")
        try:
            with f:
                write(f)
        except BaseException:
            dest.unlink(missing_ok=True)
            raise
