from typing import Callable, Dict, Optional
import asyncio
import logging
import os
from dataclasses import dataclass

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from app.services.sync.folder_sync import FolderSynchronizer, is_hidden
from app.services.sync.notifier import ChangeAction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEvent:
    action: ChangeAction
    path: str
    is_directory: bool = False


class QueueingEventHandler(FileSystemEventHandler):
    """
    Translates watchdog callbacks into FileEvents on an asyncio queue.

    Watchdog calls this from its observer thread, so events are handed to the
    loop with call_soon_threadsafe. A move is reported as a removal of the old
    path followed by an addition of the new one.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue, root: str):
        super().__init__()
        self.loop = loop
        self.queue = queue
        self.root = root

    def _emit(self, action: ChangeAction, path, is_directory: bool = False) -> None:
        path = os.fsdecode(path)
        if path != self.root and is_hidden(path, self.root):
            return
        self.loop.call_soon_threadsafe(self.queue.put_nowait, FileEvent(action, path, is_directory))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(ChangeAction.ADDED, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(ChangeAction.CHANGED, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._emit(ChangeAction.REMOVED, event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._emit(ChangeAction.REMOVED, event.src_path, event.is_directory)
        if not event.is_directory:
            self._emit(ChangeAction.ADDED, event.dest_path)


@dataclass
class _Watch:
    folder: str
    observer: object
    queue: asyncio.Queue
    task: asyncio.Task


class ChangeWatcher:
    """
    Keeps each active assistant's document store in step with its folder.

    One watchdog observer per assistant feeds a queue; a single coordinator
    task per assistant drains it, so events for an assistant are handled in
    arrival order and never concurrently.
    """

    def __init__(
        self,
        synchronizer: FolderSynchronizer,
        observer_factory: Callable[[], object] = Observer,
    ):
        self.synchronizer = synchronizer
        self.observer_factory = observer_factory
        self._watches: Dict[str, _Watch] = {}
        self._lock: Optional[asyncio.Lock] = None

    def _registry_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def is_watching(self, assistant_id: str) -> bool:
        return assistant_id in self._watches

    def watched_folder(self, assistant_id: str) -> Optional[str]:
        watch = self._watches.get(assistant_id)
        return watch.folder if watch else None

    async def start_monitoring(self, assistant_id: str, folder_path: str) -> bool:
        """
        Begin watching a folder for an assistant, replacing any existing watch.

        Args:
            assistant_id: Assistant to keep in sync
            folder_path: Folder to watch recursively

        Returns:
            True if a watch is active afterwards, False if the folder is missing
        """
        async with self._registry_lock():
            await self._stop(assistant_id)

            folder = os.path.abspath(folder_path)
            if not os.path.isdir(folder):
                logger.warning(f"Documents folder does not exist: {folder}")
                return False

            loop = asyncio.get_running_loop()
            queue: asyncio.Queue = asyncio.Queue()
            observer = self.observer_factory()
            observer.schedule(QueueingEventHandler(loop, queue, folder), folder, recursive=True)
            observer.start()

            task = loop.create_task(self._consume(assistant_id, folder, queue))
            self._watches[assistant_id] = _Watch(folder, observer, queue, task)
            logger.info(f"Started monitoring {folder} for assistant {assistant_id}")
            return True

    async def stop_monitoring(self, assistant_id: str) -> bool:
        """Stop the assistant's watch; returns False if none was active"""
        async with self._registry_lock():
            return await self._stop(assistant_id)

    async def shutdown(self) -> None:
        async with self._registry_lock():
            for assistant_id in list(self._watches):
                await self._stop(assistant_id)
        logger.info("Change watcher shut down")

    async def wait_idle(self, assistant_id: str) -> None:
        """Wait until every event queued so far for the assistant has been handled"""
        watch = self._watches.get(assistant_id)
        if watch:
            await watch.queue.join()

    async def _stop(self, assistant_id: str) -> bool:
        watch = self._watches.pop(assistant_id, None)
        if watch is None:
            return False

        watch.observer.stop()
        watch.task.cancel()
        await asyncio.gather(watch.task, return_exceptions=True)
        await asyncio.get_running_loop().run_in_executor(None, watch.observer.join)
        logger.info(f"Stopped monitoring {watch.folder} for assistant {assistant_id}")
        return True

    async def _consume(self, assistant_id: str, folder: str, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                await self.handle_event(assistant_id, folder, event)
            except Exception as e:
                logger.error(
                    f"Error handling {event.action.value} event for {event.path}: {e}",
                    exc_info=True
                )
            finally:
                queue.task_done()

    async def handle_event(self, assistant_id: str, folder: str, event: FileEvent) -> None:
        """Apply a single filesystem event to the assistant's documents"""
        logger.debug(f"File {event.action.value}: {event.path}")

        if event.action == ChangeAction.REMOVED:
            if event.is_directory or event.path == folder:
                removed = await self.synchronizer.remove_tree(assistant_id, event.path)
                logger.info(f"Directory {event.path} removed, dropped {removed} documents")
            else:
                await self.synchronizer.remove_file(assistant_id, event.path)
            return

        await self.synchronizer.process_file(assistant_id, event.path, event.action)
