"""File watcher for automatic knowledge reindexing.

Monitors the knowledge directory and reindexes created or modified files,
or removes deleted ones from the index.
"""
import asyncio
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, Set

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from healthrag import config
from healthrag.rag.service import KnowledgeBase

logger = structlog.get_logger()


class KnowledgeFileHandler(FileSystemEventHandler):
    """Handler for knowledge file system events."""

    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        loop: asyncio.AbstractEventLoop,
        debounce_seconds: float = None,
    ):
        """Initialize the file handler.

        Args:
            knowledge_base: Knowledge base to update
            loop: Event loop the knowledge base runs on
            debounce_seconds: Quiet period before reindexing (default from config)
        """
        super().__init__()
        self.knowledge_base = knowledge_base
        self.loop = loop
        self.debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else config.WATCH_DEBOUNCE_SECONDS
        )

        # Shared between the observer thread and the event loop
        self._state_lock = threading.Lock()
        self._pending_changes: Set[Path] = set()
        self._last_change_time: Optional[datetime] = None
        self._processing = False
        self._shutdown = False

    def _relevant(self, event: FileSystemEvent) -> bool:
        return not event.is_directory and self.knowledge_base.loader.accepts(
            Path(event.src_path)
        )

    def on_created(self, event: FileSystemEvent):
        if self._relevant(event):
            logger.info("file_created", path=event.src_path)
            self._schedule_reindex(Path(event.src_path))

    def on_modified(self, event: FileSystemEvent):
        if self._relevant(event):
            logger.info("file_modified", path=event.src_path)
            self._schedule_reindex(Path(event.src_path))

    def on_deleted(self, event: FileSystemEvent):
        if self._relevant(event):
            logger.info("file_deleted", path=event.src_path)
            # Deletions skip the debounce
            asyncio.run_coroutine_threadsafe(
                self.handle_deletion(Path(event.src_path)), self.loop
            )

    def _schedule_reindex(self, file_path: Path):
        """Queue a file for reindexing; called from the observer thread."""
        with self._state_lock:
            self._pending_changes.add(file_path)
            self._last_change_time = datetime.now()

            if self._processing:
                return
            self._processing = True

        asyncio.run_coroutine_threadsafe(self._debounced_process(), self.loop)

    def _take_pending(self) -> Optional[Set[Path]]:
        """Pop the pending files once changes have been quiet for the debounce period.

        Returns None while still inside the debounce window. When nothing is
        pending, clears ``_processing`` under the same lock so the next event
        starts a new processor.
        """
        with self._state_lock:
            if self._last_change_time and datetime.now() - self._last_change_time < timedelta(
                seconds=self.debounce_seconds
            ):
                return None

            changes = set(self._pending_changes)
            self._pending_changes.clear()
            self._last_change_time = None

            if not changes:
                self._processing = False
            return changes

    async def _debounced_process(self):
        """Reindex pending files until none are left, including ones queued mid-reindex."""
        try:
            while not self._shutdown:
                await asyncio.sleep(self.debounce_seconds)

                changes = self._take_pending()
                if changes is None:
                    continue
                if not changes:
                    # _take_pending already released the processor slot
                    return

                await self.reindex_files(changes)
        except BaseException:
            self._release()
            raise

        self._release()

    def _release(self):
        with self._state_lock:
            self._processing = False

    async def reindex_files(self, file_paths: Set[Path]):
        """Reindex a set of files, logging failures per file."""
        logger.info("reindexing_files", count=len(file_paths))

        for file_path in sorted(file_paths):
            try:
                report = await self.knowledge_base.reindex_source(file_path)
                logger.info("file_reindexed", path=str(file_path), **report.to_dict())
            except Exception as e:
                logger.error(
                    "reindex_failed",
                    path=str(file_path),
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def handle_deletion(self, file_path: Path):
        """Remove a deleted file's chunks from the index."""
        try:
            source_id = self.knowledge_base.loader.source_id_for(file_path)
            await self.knowledge_base.delete_source(source_id)
        except Exception as e:
            logger.error("deletion_handling_failed", path=str(file_path), error=str(e))

    def shutdown(self):
        self._shutdown = True


class KnowledgeWatcher:
    """Watcher for the knowledge directory."""

    def __init__(self, knowledge_base: KnowledgeBase, debounce_seconds: float = None):
        """Initialize the watcher.

        Args:
            knowledge_base: Knowledge base to keep in sync
            debounce_seconds: Debounce period for file changes (default from config)
        """
        self.knowledge_base = knowledge_base
        self.knowledge_dir = knowledge_base.loader.root
        self.debounce_seconds = debounce_seconds

        self.event_handler: Optional[KnowledgeFileHandler] = None
        self.observer: Optional[Observer] = None

    def start(self, loop: asyncio.AbstractEventLoop = None):
        """Start watching; must run on, or be given, the knowledge base's loop."""
        if self.observer is not None:
            logger.warning("watcher_already_started")
            return

        if not self.knowledge_dir.exists():
            logger.warning("watcher_dir_missing", knowledge_dir=str(self.knowledge_dir))
            return

        self.event_handler = KnowledgeFileHandler(
            self.knowledge_base,
            loop=loop or asyncio.get_running_loop(),
            debounce_seconds=self.debounce_seconds,
        )

        self.observer = Observer()
        self.observer.schedule(self.event_handler, str(self.knowledge_dir), recursive=True)
        self.observer.start()

        logger.info("knowledge_watcher_started", knowledge_dir=str(self.knowledge_dir))

    def stop(self):
        """Stop watching for file changes."""
        if self.observer is None:
            return

        self.observer.stop()
        self.observer.join(timeout=5.0)
        self.event_handler.shutdown()
        self.observer = None

        logger.info("knowledge_watcher_stopped")

    def is_alive(self) -> bool:
        return self.observer is not None and self.observer.is_alive()
