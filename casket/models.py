from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from . import config


@dataclass(frozen=True)
class CatalogConfig:
    """
    A named catalog: where originals are archived and where thumbnails
    (and the catalog database) live.
    """
    name: str
    data_path: Path
    thumbnail_path: Path

    @property
    def db_path(self) -> Path:
        return self.thumbnail_path / config.DB_FILENAME


@dataclass
class MediaMetadata:
    capture_date: datetime
    date_source: str                 # exif/mediainfo/exiftool/mtime
    orientation: Optional[int] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    lens_model: Optional[str] = None
    duration_sec: Optional[float] = None


@dataclass
class Thumbnail:
    """An encoded JPEG preview held in memory."""
    data: bytes
    width: int
    height: int
    source_width: int
    source_height: int
    strategy: str


@dataclass
class Placement:
    stored_path: Path
    thumbnail_path: Path
    # Which destinations this run wrote (as opposed to reusing an orphan)
    created_stored: bool = False
    created_thumbnail: bool = False


@dataclass
class CatalogEntry:
    """
    One row per imported file. original_path is the dedup key.
    """
    original_path: Path
    stored_path: Path
    thumbnail_path: Path
    capture_date: datetime
    file_kind: str                   # raw/heic/image/video
    date_source: str = "mtime"
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    orientation: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def datetime_indexed(self) -> str:
        return self.capture_date.strftime("%Y%m%d%H")


@dataclass
class PipelineTask:
    """Per-file unit of work, owned by the worker processing it."""
    source_path: Path
    kind: str
    metadata: Optional[MediaMetadata] = None
    thumbnail: Optional[Thumbnail] = None
    placement: Optional[Placement] = None

    def to_entry(self) -> CatalogEntry:
        if self.metadata is None or self.thumbnail is None or self.placement is None:
            raise ValueError(f"Task for {self.source_path} is incomplete; cannot build a catalog entry")
        return CatalogEntry(
            original_path=self.source_path,
            stored_path=self.placement.stored_path,
            thumbnail_path=self.placement.thumbnail_path,
            capture_date=self.metadata.capture_date,
            file_kind=self.kind,
            date_source=self.metadata.date_source,
            camera_make=self.metadata.camera_make,
            camera_model=self.metadata.camera_model,
            orientation=self.metadata.orientation,
            width=self.thumbnail.source_width,
            height=self.thumbnail.source_height,
        )


IMPORTED = "imported"
DUPLICATE = "duplicate"
FAILED = "failed"


@dataclass
class FileOutcome:
    """Tagged result of pushing one file through the pipeline."""
    source_path: Path
    status: str                      # imported/duplicate/failed
    stage: Optional[str] = None
    reason: Optional[str] = None
    entry: Optional[CatalogEntry] = None

    @property
    def skipped(self) -> bool:
        return self.status != IMPORTED


@dataclass
class RunSummary:
    outcomes: List[FileOutcome] = field(default_factory=list)
    interrupted: bool = False

    def add(self, outcome: FileOutcome):
        self.outcomes.append(outcome)

    def _count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def scanned(self) -> int:
        return len(self.outcomes)

    @property
    def imported(self) -> int:
        return self._count(IMPORTED)

    @property
    def duplicates(self) -> int:
        return self._count(DUPLICATE)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    @property
    def skipped(self) -> int:
        return self.duplicates + self.failed
