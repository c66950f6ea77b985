import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union

from tqdm import tqdm

from . import config
from .database.db import CatalogDatabase
from .database.ops import CatalogStore, CatalogWriter
from .exceptions import DuplicateEntryError, FileSkipError
from .metadata.extract import MetadataExtractor
from .models import (
    DUPLICATE, FAILED, IMPORTED,
    CatalogConfig, FileOutcome, PipelineTask, RunSummary,
)
from .organization.archive import ArchiveOrganizer
from .scanning.filesystem import MediaScanner
from .thumbnails.converter import ImageConverter
from .thumbnails.engine import ThumbnailEngine, ThumbnailSettings

WorkResult = Union[PipelineTask, FileOutcome]


class CasketImporter:
    """
    Runs the import pipeline for one catalog.

    Each file goes extract -> thumbnail -> place on a worker thread; the
    finished task comes back to the calling thread, which owns the database
    connection and is the only place catalog rows are written.
    """

    def __init__(self,
                 catalog: CatalogConfig,
                 settings: Optional[ThumbnailSettings] = None,
                 converter: Optional[ImageConverter] = None,
                 max_workers: int = config.DEFAULT_WORKERS,
                 batch_size: int = config.DEFAULT_BATCH_SIZE,
                 show_progress: bool = False,
                 engine: Optional[ThumbnailEngine] = None,
                 extractor: Optional[MetadataExtractor] = None):
        self.catalog = catalog
        self.engine = engine or ThumbnailEngine(settings, converter)
        self.extractor = extractor or MetadataExtractor()
        self.max_workers = max(1, max_workers)
        self.batch_size = batch_size
        self.show_progress = show_progress

    def run(self, source_root: Path) -> RunSummary:
        """
        Imports every media file under source_root.

        Per-file problems end up in the summary; DatabaseError, ScanError and
        other fatal errors propagate. A KeyboardInterrupt stops the run and
        keeps what was already committed.
        """
        source_root = source_root.resolve()
        summary = RunSummary()

        with CatalogDatabase(self.catalog.db_path) as conn:
            store = CatalogStore(conn)
            writer = CatalogWriter(store, self.batch_size)
            organizer = ArchiveOrganizer(self.catalog, store.fetch_claimed_paths())
            pending: Dict[Path, Tuple[PipelineTask, FileOutcome]] = {}

            # Never re-import the catalog's own files if the roots sit under the source
            scanner = MediaScanner(skip_dirs={
                self.catalog.data_path.resolve(),
                self.catalog.thumbnail_path.resolve(),
            })

            logging.info(f"Importing {source_root} into catalog '{self.catalog.name}' "
                         f"({self.max_workers} worker(s))")

            progress = tqdm(desc="Importing", unit="file", disable=not self.show_progress)

            def handle(result: WorkResult):
                if isinstance(result, PipelineTask):
                    outcome = self._commit(result, writer, organizer, pending)
                else:
                    outcome = result
                summary.add(outcome)
                progress.update(1)

            def candidates() -> Iterator[Tuple[Path, str]]:
                for path, kind in scanner.scan(source_root):
                    if kind is None:
                        handle(self._failed(path, "scan", f"unsupported file type '{path.suffix or path.name}'"))
                        continue
                    if store.contains(path):
                        handle(self._duplicate(path))
                        continue
                    yield path, kind

            try:
                self._dispatch(candidates(), lambda p, k: self._prepare(p, k, organizer), handle, organizer)
                writer.flush()
                pending.clear()
            except KeyboardInterrupt:
                logging.warning("Import interrupted; keeping already committed files.")
                summary.interrupted = True
                self._drop_pending(writer, organizer, pending)
            except BaseException:
                self._drop_pending(writer, organizer, pending)
                raise
            finally:
                progress.close()

            if scanner.unreadable_dirs:
                logging.warning(f"{scanner.unreadable_dirs} director(ies) could not be read.")

        return summary

    # --- Stages ---

    def _prepare(self, path: Path, kind: str, organizer: ArchiveOrganizer) -> WorkResult:
        """Worker-side stages: metadata, thumbnail, archive placement."""
        task = PipelineTask(source_path=path, kind=kind)
        stage = "metadata"
        try:
            task.metadata = self.extractor.extract(path, kind)

            stage = "thumbnail"
            task.thumbnail = self.engine.build(path, kind)

            stage = "archive"
            task.placement = organizer.place(path, task.metadata.capture_date, task.thumbnail.data)
            return task
        except FileSkipError as e:
            return self._failed(path, e.stage, str(e))
        except Exception as e:
            return self._failed(path, stage, f"{type(e).__name__}: {e}")

    def _commit(self,
                task: PipelineTask,
                writer: CatalogWriter,
                organizer: ArchiveOrganizer,
                pending: Dict[Path, Tuple[PipelineTask, FileOutcome]]) -> FileOutcome:
        """Writer-side stage: one catalog row, or a duplicate skip."""
        try:
            entry = writer.write(task.to_entry())
        except DuplicateEntryError:
            organizer.discard(task.placement)
            return self._duplicate(task.source_path)
        except BaseException:
            organizer.discard(task.placement)
            raise

        outcome = FileOutcome(source_path=task.source_path, status=IMPORTED, entry=entry)
        if writer.pending:
            pending[task.source_path] = (task, outcome)
        else:
            # batch just committed
            pending.clear()
        logging.debug(f"Imported {task.source_path} -> {entry.stored_path} via {task.thumbnail.strategy}")
        return outcome

    def _drop_pending(self,
                      writer: CatalogWriter,
                      organizer: ArchiveOrganizer,
                      pending: Dict[Path, Tuple[PipelineTask, FileOutcome]]):
        """Rolls back the uncommitted batch and removes the files it had placed."""
        dropped = writer.abort()
        for entry in dropped:
            task, outcome = pending.pop(entry.original_path, (None, None))
            if task is not None:
                organizer.discard(task.placement)
            if outcome is not None:
                outcome.status = FAILED
                outcome.stage = "catalog"
                outcome.reason = "rolled back before commit"
                outcome.entry = None
        pending.clear()

    # --- Scheduling ---

    def _dispatch(self,
                  items: Iterable[Tuple[Path, str]],
                  work: Callable[[Path, str], WorkResult],
                  handle: Callable[[WorkResult], None],
                  organizer: ArchiveOrganizer):
        if self.max_workers == 1:
            for path, kind in items:
                handle(work(path, kind))
            return

        # Bounded in-flight window so the scan is consumed lazily
        window = self.max_workers * 2
        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="casket")
        inflight: Set[Future] = set()
        # Finished futures whose result has not reached handle() yet
        unhandled: List[Future] = []
        try:
            for path, kind in items:
                inflight.add(pool.submit(work, path, kind))
                if len(inflight) >= window:
                    done, inflight = wait(inflight, return_when=FIRST_COMPLETED)
                    unhandled.extend(done)
                    self._drain(unhandled, handle)
            while inflight:
                done, inflight = wait(inflight, return_when=FIRST_COMPLETED)
                unhandled.extend(done)
                self._drain(unhandled, handle)
        except BaseException:
            # Let running workers finish, then undo whatever they placed
            pool.shutdown(wait=True, cancel_futures=True)
            for fut in [*unhandled, *inflight]:
                if fut.done() and not fut.cancelled() and fut.exception() is None:
                    result = fut.result()
                    if isinstance(result, PipelineTask):
                        organizer.discard(result.placement)
            raise
        finally:
            pool.shutdown(wait=True)

    @staticmethod
    def _drain(unhandled: List[Future], handle: Callable[[WorkResult], None]):
        # Pop before handling: a result that reached handle() is cleaned up there
        while unhandled:
            fut = unhandled.pop(0)
            handle(fut.result())

    # --- Outcomes ---

    @staticmethod
    def _failed(path: Path, stage: str, reason: str) -> FileOutcome:
        logging.warning(f"Skipping {path} ({stage}): {reason}")
        return FileOutcome(source_path=path, status=FAILED, stage=stage, reason=reason)

    @staticmethod
    def _duplicate(path: Path) -> FileOutcome:
        logging.warning(f"Skipping {path}: already cataloged")
        return FileOutcome(source_path=path, status=DUPLICATE, stage="catalog", reason="already cataloged")
