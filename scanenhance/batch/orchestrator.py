"""
Batch Orchestrator - Drives queued documents through the pipeline
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set
import asyncio
import logging
import threading

from ..errors import (
    EntryNotFound,
    InvalidStateTransition,
    ProcessingCancelled,
    ScanError,
)
from ..geometry import Quad, QuadLike
from ..indexing import DocumentIndexer, NullIndexer
from ..ingestion import DocumentLoader
from ..ingestion.loader import Source
from ..pipeline import DocumentPipeline, ProcessingResult
from .models import DocumentEntry, DocumentStatus, EventType, QueueEvent

logger = logging.getLogger(__name__)

Listener = Callable[[QueueEvent], None]

_DONE_STATUSES = (DocumentStatus.COMPLETED, DocumentStatus.FAILED, DocumentStatus.REVIEWING)
_REPROCESSABLE = {DocumentStatus.COMPLETED, DocumentStatus.FAILED, DocumentStatus.REVIEWING}


class BatchOrchestrator:
    """
    State machine for a queue of documents.

    Entry lifecycle:
        pending -> processing -> completed | failed
        completed -> reviewing -> completed (confirmed) | processing (reprocess)
        failed -> processing (retry)

    All state lives on the asyncio event loop that calls these methods.
    Decoding and pipeline stages run on worker threads; the pipeline runs on a
    single-worker executor behind a lock, so at most one document is ever
    processing. Progress from the worker is handed back to the loop with
    call_soon_threadsafe, which keeps per-entry updates in order.

    Cancellation is cooperative: stop_processing() and clear() set a flag
    that the pipeline checks between stages. A running stage is never
    interrupted.
    """

    def __init__(
        self,
        pipeline: Optional[DocumentPipeline] = None,
        indexer: Optional[DocumentIndexer] = None,
        exporter=None,
        loader: Optional[DocumentLoader] = None,
        auto_start: bool = False,
    ):
        """
        Args:
            pipeline: Per-document processing pipeline
            indexer: Search index collaborator
            exporter: Optional ResultExporter used to persist confirmed results
            loader: Reads and decodes sources
            auto_start: Start a batch whenever a document is enqueued
        """
        self.pipeline = pipeline or DocumentPipeline()
        self.indexer = indexer or NullIndexer()
        self.exporter = exporter
        self.loader = loader or DocumentLoader()
        self.auto_start = auto_start

        self.active_id: Optional[str] = None
        self.is_processing = False
        self.batch_progress = 0.0

        self._entries: Dict[str, DocumentEntry] = {}
        self._listeners: List[Listener] = []
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scan-pipeline")
        self._pipeline_lock = asyncio.Lock()
        self._batch_token: Optional[threading.Event] = None
        self._tokens: Set[threading.Event] = set()
        self._loading: Set[str] = set()  # entries whose preview decode is in flight
        self._batch_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def entries(self) -> List[DocumentEntry]:
        """Entries in insertion order"""
        return list(self._entries.values())

    @property
    def active_entry(self) -> Optional[DocumentEntry]:
        return self._entries.get(self.active_id) if self.active_id else None

    def get(self, entry_id: str) -> DocumentEntry:
        try:
            return self._entries[entry_id]
        except KeyError:
            raise EntryNotFound(entry_id) from None

    def counts(self) -> Dict[str, int]:
        result = {status.value: 0 for status in DocumentStatus}
        for entry in self._entries.values():
            result[entry.status.value] += 1
        return result

    @property
    def overall_progress(self) -> float:
        """Fraction of entries that are done, failures included"""
        if not self._entries:
            return 0.0
        done = sum(1 for e in self._entries.values() if e.status in _DONE_STATUSES)
        return done / len(self._entries)

    def completed_entries(self) -> List[DocumentEntry]:
        return [
            e for e in self._entries.values()
            if e.status in (DocumentStatus.COMPLETED, DocumentStatus.REVIEWING) and e.result_image is not None
        ]

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it"""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event_type: EventType, entry: Optional[DocumentEntry] = None):
        event = QueueEvent(
            type=event_type,
            entry_id=entry.id if entry else None,
            status=entry.status if entry else None,
            progress=entry.progress if entry else self.batch_progress,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Queue listener failed on {event_type.value}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    async def enqueue(self, source: Source, name: Optional[str] = None) -> DocumentEntry:
        """
        Add a document to the end of the queue.

        The entry is created as pending right away; the source is then read
        and decoded off the loop for preview. A source that cannot be decoded
        moves the entry straight to failed.
        """
        if isinstance(source, (bytes, bytearray, memoryview)):
            entry = DocumentEntry(
                name=name or f"document-{len(self._entries) + 1}",
                source_bytes=bytes(source),
            )
        else:
            path = Path(source)
            entry = DocumentEntry(name=name or path.name, source=path)

        self._entries[entry.id] = entry
        self._loading.add(entry.id)
        self.indexer.index(entry)
        logger.info(f"Enqueued {entry.name} ({entry.id})")
        self._notify(EventType.ENQUEUED, entry)

        loop = asyncio.get_running_loop()
        load_from = entry.source_bytes if entry.source_bytes is not None else entry.source
        try:
            loaded = await loop.run_in_executor(None, self.loader.load, load_from)
        except ScanError as e:
            if entry.id in self._entries and entry.status == DocumentStatus.PENDING:
                logger.warning(f"Could not load {entry.name}: {e}")
                self._mark_failed(entry, e)
            return entry
        finally:
            self._loading.discard(entry.id)

        if entry.id in self._entries:
            if entry.source_bytes is None:
                entry.source_bytes = loaded.data
            entry.preview = loaded.image

        if self.auto_start:
            self.start_processing()
        return entry

    async def enqueue_many(self, sources: Iterable[Source]) -> List[DocumentEntry]:
        return [await self.enqueue(source) for source in sources]

    def remove(self, entry_id: str) -> DocumentEntry:
        """
        Delete an entry in any state. An in-flight run for it finishes and its
        result is discarded.
        """
        entry = self.get(entry_id)
        del self._entries[entry_id]
        if self.active_id == entry_id:
            self._set_active(None)
        self.indexer.remove(entry_id)
        logger.info(f"Removed {entry.name}")
        self._notify(EventType.REMOVED, entry)
        return entry

    def clear(self):
        """Cancel in-flight work and empty the queue"""
        for token in list(self._tokens):
            token.set()
        if self._batch_token is not None:
            self._batch_token.set()
        self._batch_token = None
        self.is_processing = False
        self.batch_progress = 0.0

        self._entries.clear()
        self._loading.clear()
        self.active_id = None
        self.indexer.clear()
        logger.info("Queue cleared")
        self._notify(EventType.CLEARED)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def start_batch(self):
        """
        Process pending entries in insertion order, one at a time, until none
        remain or processing is stopped. Does nothing if a batch is running.
        """
        if self.is_processing:
            logger.info("Batch already running")
            return

        token = threading.Event()
        self._batch_token = token
        self.is_processing = True
        self.batch_progress = 0.0
        done = 0
        logger.info(f"Starting batch with {self.counts()['pending']} pending document(s)")
        self._notify(EventType.BATCH_STARTED)

        try:
            while not token.is_set():
                async with self._pipeline_lock:
                    entry = None if token.is_set() else self._next_pending()
                    if entry is None:
                        break
                    await self._run_entry(entry, None, token)

                if token.is_set():
                    break
                done += 1
                remaining = self.counts()["pending"]
                self.batch_progress = done / (done + remaining)
                self._notify(EventType.BATCH_PROGRESS)
        finally:
            if self._batch_token is token:
                self._batch_token = None
                self.is_processing = False
                self.batch_progress = 1.0
                active = self.active_entry
                if active is None or active.status != DocumentStatus.REVIEWING:
                    self._set_active(None)
                logger.info(f"Batch finished after {done} document(s)")
                self._notify(EventType.BATCH_FINISHED)

    def start_processing(self) -> Optional[asyncio.Task]:
        """Schedule start_batch() on the running loop"""
        if self.is_processing or (self._batch_task is not None and not self._batch_task.done()):
            return self._batch_task
        self._batch_task = asyncio.get_running_loop().create_task(self.start_batch())
        return self._batch_task

    def stop_processing(self):
        """Stop auto-advancing; the running stage completes first"""
        token = self._batch_token
        if token is None:
            return
        token.set()
        self._batch_token = None
        self.is_processing = False
        self.batch_progress = 0.0
        active = self.active_entry
        if active is None or active.status != DocumentStatus.REVIEWING:
            self._set_active(None)
        logger.info("Batch processing stopped")
        self._notify(EventType.BATCH_FINISHED)

    async def reprocess(self, entry_id: str, quad: Optional[QuadLike] = None) -> DocumentEntry:
        """
        Run one entry through the pipeline again.

        With a quad the document is rectified with it; without one (or with an
        empty point list) corners are detected again. The batch does not
        advance afterwards.
        """
        entry = self.get(entry_id)
        self._require(entry, _REPROCESSABLE, "reprocess")

        token = threading.Event()
        async with self._pipeline_lock:
            # The entry may have changed while waiting for the pipeline
            entry = self.get(entry_id)
            self._require(entry, _REPROCESSABLE, "reprocess")
            mode = "auto" if quad is None or (not isinstance(quad, Quad) and len(quad) == 0) else "manual"
            logger.info(f"Reprocessing {entry.name} with {mode} corners")
            await self._run_entry(entry, quad, token)
        return entry

    async def _run_entry(self, entry: DocumentEntry, quad: Optional[QuadLike], token: threading.Event):
        loop = asyncio.get_running_loop()
        entry_id = entry.id
        source = entry.source_bytes if entry.source_bytes is not None else entry.source

        self._begin_attempt(entry)

        def report(stage, progress, message):
            loop.call_soon_threadsafe(self._update_progress, entry_id, progress)

        def work():
            data = self.loader.read_bytes(source)
            result = self.pipeline.process(data, quad, progress_callback=report, cancel_check=token.is_set)
            return data, result

        self._tokens.add(token)
        try:
            data, result = await loop.run_in_executor(self._executor, work)
        except ProcessingCancelled:
            self._revert_cancelled(entry_id)
        except ScanError as e:
            self._finish_failed(entry_id, e)
        except Exception as e:
            logger.error(f"Unexpected error while processing {entry.name}: {e}", exc_info=True)
            self._finish_failed(entry_id, e)
        else:
            self._finish_completed(entry_id, data, result)
        finally:
            self._tokens.discard(token)

    def _next_pending(self) -> Optional[DocumentEntry]:
        # Entries still being decoded for preview are not eligible yet
        return next(
            (
                e for e in self._entries.values()
                if e.status == DocumentStatus.PENDING and e.id not in self._loading
            ),
            None,
        )

    def _begin_attempt(self, entry: DocumentEntry):
        entry.status = DocumentStatus.PROCESSING
        entry.progress = 0.0
        entry.error_message = None
        entry.confirmed = False
        self._notify(EventType.STATUS_CHANGED, entry)
        self._set_active(entry.id)

    def _update_progress(self, entry_id: str, progress: float):
        entry = self._entries.get(entry_id)
        if entry is None or entry.status != DocumentStatus.PROCESSING:
            return
        if progress < entry.progress:
            return
        entry.progress = min(progress, 1.0)
        self._notify(EventType.PROGRESS, entry)

    def _finish_completed(self, entry_id: str, data: bytes, result: ProcessingResult):
        entry = self._entries.get(entry_id)
        if entry is None:
            logger.info(f"Discarding result for removed document {entry_id}")
            return
        if entry.source_bytes is None:
            entry.source_bytes = data
        entry.detected_quad = result.quad
        entry.result_image = result.image
        entry.result_bytes = result.data
        entry.error_message = None
        entry.progress = 1.0
        entry.processed_at = datetime.now()
        entry.status = DocumentStatus.COMPLETED
        self.indexer.index(entry)
        logger.info(f"Completed {entry.name}")
        self._notify(EventType.STATUS_CHANGED, entry)

    def _finish_failed(self, entry_id: str, error: Exception):
        entry = self._entries.get(entry_id)
        if entry is None:
            return
        logger.warning(f"Processing failed for {entry.name}: {error}")
        self._mark_failed(entry, error)

    def _mark_failed(self, entry: DocumentEntry, error: Exception):
        entry.error_message = str(error) or error.__class__.__name__
        entry.status = DocumentStatus.FAILED
        self._notify(EventType.STATUS_CHANGED, entry)

    def _revert_cancelled(self, entry_id: str):
        entry = self._entries.get(entry_id)
        if entry is None:
            return
        logger.info(f"Processing of {entry.name} cancelled, returning it to pending")
        entry.status = DocumentStatus.PENDING
        entry.progress = 0.0
        self._notify(EventType.STATUS_CHANGED, entry)

    # ------------------------------------------------------------------
    # Manual review
    # ------------------------------------------------------------------

    def start_review(self, entry_id: str) -> DocumentEntry:
        """Move a completed entry into review and make it active"""
        entry = self.get(entry_id)
        self._require(entry, {DocumentStatus.COMPLETED}, "review")
        entry.status = DocumentStatus.REVIEWING
        self._notify(EventType.STATUS_CHANGED, entry)
        self._set_active(entry.id)
        return entry

    def confirm_and_advance(self, entry_id: str) -> Optional[DocumentEntry]:
        """
        Accept a reviewed result and move on.

        The result is persisted through the exporter when one is configured.
        The next completed entry that has not been confirmed yet goes into
        review.

        Returns:
            The entry now under review, or None
        """
        entry = self.get(entry_id)
        self._require(entry, {DocumentStatus.REVIEWING}, "confirm")

        if self.exporter is not None:
            self.exporter.export(entry)

        entry.confirmed = True
        entry.status = DocumentStatus.COMPLETED
        self.indexer.index(entry)
        self._notify(EventType.STATUS_CHANGED, entry)

        upcoming = next(
            (
                e for e in self._entries.values()
                if e.status == DocumentStatus.COMPLETED and not e.confirmed and e.id != entry.id
            ),
            None,
        )
        if upcoming is None:
            self._set_active(None)
            return None
        return self.start_review(upcoming.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_active(self, entry_id: Optional[str]):
        if self.active_id == entry_id:
            return
        self.active_id = entry_id
        self._notify(EventType.ACTIVE_CHANGED, self._entries.get(entry_id) if entry_id else None)

    @staticmethod
    def _require(entry: DocumentEntry, allowed: Set[DocumentStatus], action: str):
        if entry.status not in allowed:
            raise InvalidStateTransition(
                f"Cannot {action} {entry.name} while it is {entry.status.value}"
            )

    def shutdown(self):
        """Release the worker thread"""
        self.clear()
        self._executor.shutdown(wait=True)
