from typing import Callable, List, Optional, Set, Tuple
import asyncio
import logging
import os
import weakref
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.core.exceptions import (
    AssistantPipelineError,
    ExtractionFailed,
    FolderNotFound,
    UnsupportedFormat,
)
from app.core.executor import run_sync
from app.db.base_class import utcnow
from app.db.database import SessionLocal
from app.repositories.assistant_repository import AssistantRepository
from app.repositories.document_repository import DocumentRepository
from app.schemas.document import DocumentResponse
from app.services.ingestor.extractor import extract_bytes, is_supported, media_type_for
from app.services.ingestor.metadata import checksum, derive_metadata
from app.services.sync.notifier import ChangeAction, Notifier

logger = logging.getLogger(__name__)


def is_hidden(file_path: str, root: Optional[str] = None) -> bool:
    """True when any path component (below root, if given) is a dotfile or dot-directory"""
    path = os.path.relpath(file_path, root) if root else file_path
    return any(part.startswith(".") for part in path.split(os.sep) if part not in ("", ".", ".."))


def list_eligible_files(folder_path: str) -> List[str]:
    """
    Walk a folder depth-first and return the supported, non-hidden regular files.

    Names are visited in sorted order so repeated scans see files identically.
    """
    files = []
    for current, dirs, names in os.walk(folder_path):
        dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        for name in sorted(names):
            if name.startswith("."):
                continue
            file_path = os.path.join(current, name)
            if not os.path.isfile(file_path):
                continue
            if not is_supported(media_type_for(file_path)):
                logger.debug(f"Skipping unsupported file: {file_path}")
                continue
            files.append(file_path)
    return files


def _read_file(file_path: str) -> Tuple[bytes, os.stat_result]:
    with open(file_path, "rb") as f:
        content = f.read()
    return content, os.stat(file_path)


class FolderSynchronizer:
    """
    Feeds files through extract -> checksum -> metadata -> upsert.

    The same per-file pipeline serves the full folder scan and the watcher's
    incremental events. Work for one (assistant, path) key is serialized so a
    scan and a watcher event cannot interleave on the same file.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        notifier: Optional[Notifier] = None,
        document_repository: Optional[DocumentRepository] = None,
        assistant_repository: Optional[AssistantRepository] = None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier or Notifier()
        self.document_repository = document_repository or DocumentRepository()
        self.assistant_repository = assistant_repository or AssistantRepository()
        # Entries vanish once no task holds or waits on the lock
        self._path_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def _lock_for(self, assistant_id: str, file_path: str) -> asyncio.Lock:
        key = (assistant_id, file_path)
        lock = self._path_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._path_locks[key] = lock
        return lock

    async def sync_folder(self, assistant_id: str, folder_path: str) -> int:
        """
        Process every eligible file under a folder and drop records of files that are gone.

        Args:
            assistant_id: Owning assistant ID
            folder_path: Folder to scan recursively

        Returns:
            Number of files successfully upserted

        Raises:
            FolderNotFound: If the folder does not exist
        """
        folder = os.path.abspath(folder_path)
        if not os.path.isdir(folder):
            raise FolderNotFound(folder_path)

        files = await run_sync(list_eligible_files, folder)
        logger.info(f"Syncing {len(files)} files from {folder} for assistant {assistant_id}")

        processed_count = 0
        for file_path in files:
            try:
                document = await self.process_file(assistant_id, file_path, ChangeAction.ADDED)
                if document is not None:
                    processed_count += 1
            except (UnsupportedFormat, ExtractionFailed) as e:
                logger.warning(f"Skipping {file_path}: {e}")
            except (AssistantPipelineError, OSError) as e:
                logger.error(f"Error processing file {file_path}: {e}", exc_info=True)
            # Let watcher coordinators and requests run between files
            await asyncio.sleep(0)

        removed = await self._remove_missing(assistant_id, folder, set(files))
        logger.info(
            f"Synced folder {folder} for assistant {assistant_id}: "
            f"{processed_count} processed, {removed} removed"
        )
        return processed_count

    async def process_file(
        self,
        assistant_id: str,
        file_path: str,
        change: ChangeAction = ChangeAction.ADDED,
    ) -> Optional[DocumentResponse]:
        """
        Run the extraction pipeline for one file and upsert the result.

        A CHANGED event whose bytes hash to the stored checksum is a no-op.

        Returns:
            The stored document, or None when the file was skipped

        Raises:
            ExtractionFailed: The parser failed on the file
            RepositoryWriteFailed: The store rejected the write
        """
        file_path = os.path.abspath(file_path)
        async with self._lock_for(assistant_id, file_path):
            if not os.path.isfile(file_path):
                logger.debug(f"Not a regular file, skipping: {file_path}")
                return None

            media_type = media_type_for(file_path)
            if not is_supported(media_type):
                logger.info(f"Skipping unsupported file: {file_path}")
                return None

            raw, stats = await run_sync(_read_file, file_path)
            digest = checksum(raw)

            if change == ChangeAction.CHANGED:
                with self.session_factory() as db:
                    existing = await self.document_repository.get_by_path(assistant_id, file_path, db)
                if existing is not None and existing.checksum == digest:
                    logger.info(f"No actual changes detected for: {file_path}")
                    return None

            text = await run_sync(extract_bytes, raw, media_type, file_path)
            filename = os.path.basename(file_path)
            now = utcnow()
            fields = {
                "filename": filename,
                "original_filename": filename,
                "mime_type": media_type,
                "file_size": stats.st_size,
                "content": text,
                "doc_metadata": derive_metadata(file_path, text),
                "checksum": digest,
                "last_modified": datetime.fromtimestamp(stats.st_mtime, timezone.utc).replace(tzinfo=None),
                "processed": True,
                "processed_at": now,
            }

            with self.session_factory() as db:
                document = await self.document_repository.upsert(assistant_id, file_path, fields, db)
                await self.assistant_repository.touch_last_sync(assistant_id, now, db)

        logger.info(f"Processed {change.value} file: {file_path}")
        await self._notify(assistant_id, file_path, change)
        return document

    async def remove_file(self, assistant_id: str, file_path: str) -> bool:
        """Delete the record of a removed file; returns False if none was stored"""
        file_path = os.path.abspath(file_path)
        async with self._lock_for(assistant_id, file_path):
            with self.session_factory() as db:
                deleted = await self.document_repository.delete_by_path(assistant_id, file_path, db)

        if deleted:
            logger.info(f"Removed document: {file_path}")
            await self._notify(assistant_id, file_path, ChangeAction.REMOVED)
        return deleted

    async def remove_tree(self, assistant_id: str, folder_path: str) -> int:
        """Delete the records of every stored document under a folder"""
        folder = os.path.abspath(folder_path)
        removed = 0
        for document in await self._documents_under(assistant_id, folder):
            if await self.remove_file(assistant_id, document.file_path):
                removed += 1
        return removed

    async def _remove_missing(self, assistant_id: str, folder: str, seen: Set[str]) -> int:
        removed = 0
        for document in await self._documents_under(assistant_id, folder):
            if document.file_path in seen or os.path.exists(document.file_path):
                continue
            if await self.remove_file(assistant_id, document.file_path):
                removed += 1
        return removed

    async def _documents_under(self, assistant_id: str, folder: str) -> List[DocumentResponse]:
        with self.session_factory() as db:
            documents = await self.document_repository.list_by_assistant(assistant_id, db)
        prefix = folder.rstrip(os.sep) + os.sep
        return [doc for doc in documents if doc.file_path.startswith(prefix)]

    async def _notify(self, assistant_id: str, file_path: str, action: ChangeAction) -> None:
        try:
            await self.notifier.notify(assistant_id, file_path, action)
        except Exception as e:
            logger.warning(f"Notification for {file_path} failed: {e}")
