from typing import Any, Dict, List, Optional
import logging
import re

from sqlalchemy.orm import Session

from app.core.exceptions import AssistantAlreadyExists, AssistantNotFound, FolderNotFound
from app.db.models.assistant import Assistant
from app.repositories.assistant_repository import AssistantRepository
from app.repositories.document_repository import DocumentRepository
from app.schemas.assistant import (
    AssistantCreate,
    AssistantCreateResult,
    AssistantResponse,
    AssistantSettings,
    AssistantUpdate,
)
from app.schemas.document import DocumentResponse, UploadReport
from app.services.rag.knowledge_sync import RemoteKnowledgeSync
from app.services.sync.folder_sync import FolderSynchronizer
from app.services.sync.watcher import ChangeWatcher

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    """Lower-case, non-alphanumerics to '-', runs collapsed, ends trimmed"""
    slug = re.sub(r"[^a-z0-9]", "-", name.lower())
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def merge_settings(current: AssistantSettings, updates: Dict[str, Any]) -> AssistantSettings:
    """Merge a partial settings dict into the current settings, section by section"""
    merged = current.model_dump(mode="json")
    for section, values in updates.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return AssistantSettings.model_validate(merged)


class AssistantService:
    """
    Assistant lifecycle: registration, updates and removal.

    Registering a folder triggers an initial scan and starts a watch; the
    folder may not exist yet, which only logs a warning.
    """

    def __init__(
        self,
        db: Session,
        synchronizer: FolderSynchronizer,
        watcher: ChangeWatcher,
        knowledge_sync: Optional[RemoteKnowledgeSync] = None,
    ):
        self.db = db
        self.synchronizer = synchronizer
        self.watcher = watcher
        self.knowledge_sync = knowledge_sync or RemoteKnowledgeSync()

    async def get_assistant(self, assistant_id: str) -> AssistantResponse:
        assistant = await AssistantRepository.get_by_id(assistant_id, self.db)
        if not assistant:
            raise AssistantNotFound(assistant_id)
        return assistant

    async def get_by_slug(self, slug: str) -> AssistantResponse:
        assistant = await AssistantRepository.get_by_slug(slug, self.db)
        if not assistant:
            raise AssistantNotFound(slug)
        return assistant

    async def list_assistants(self, organization_id: Optional[str] = None) -> List[AssistantResponse]:
        assistants = await AssistantRepository.list_all(self.db, organization_id=organization_id)
        logger.info(f"Retrieved {len(assistants)} assistants")
        return assistants

    async def list_documents(self, assistant_id: str) -> List[DocumentResponse]:
        await self.get_assistant(assistant_id)
        return await DocumentRepository.list_by_assistant(assistant_id, self.db)

    async def create_assistant(self, data: AssistantCreate) -> AssistantCreateResult:
        """
        Register an assistant, scan its folder and start watching it.

        Args:
            data: Assistant attributes

        Returns:
            The stored assistant and the outcome of the initial scan

        Raises:
            AssistantAlreadyExists: If another assistant has the same slug
        """
        slug = slugify(data.name)
        if await AssistantRepository.get_by_slug(slug, self.db):
            logger.warning(f"Assistant slug '{slug}' already taken")
            raise AssistantAlreadyExists(slug)

        settings = data.settings or AssistantSettings()
        assistant = Assistant(
            name=data.name,
            slug=slug,
            description=data.description,
            welcome_message=data.welcome_message,
            organization_id=data.organization_id,
            created_by=data.created_by,
            documents_folder=data.documents_folder,
            is_active=True,
            settings=settings.model_dump(mode="json"),
        )
        created = await AssistantRepository.create(assistant, self.db)
        logger.info(f"Assistant {created.id} ({slug}) created")

        processed = await self._sync_and_watch(created.id, created.documents_folder)
        # Sync ran in its own session
        self.db.expire_all()
        refreshed = await AssistantRepository.get_by_id(created.id, self.db)
        return AssistantCreateResult(
            assistant=refreshed or created,
            processed_documents=processed or 0,
            initial_documents_processed=processed is not None,
        )

    async def update_assistant(self, assistant_id: str, data: AssistantUpdate) -> AssistantResponse:
        """
        Update an assistant.

        A new name recomputes the slug, settings are merged, and a new folder
        replaces the watch after a fresh scan.
        """
        current = await self.get_assistant(assistant_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("name") and changes["name"] != current.name:
            slug = slugify(changes["name"])
            existing = await AssistantRepository.get_by_slug(slug, self.db)
            if existing and existing.id != assistant_id:
                raise AssistantAlreadyExists(slug)
            changes["slug"] = slug

        if changes.get("settings") is not None:
            changes["settings"] = merge_settings(current.settings, changes["settings"]).model_dump(mode="json")
        else:
            changes.pop("settings", None)

        updated = await AssistantRepository.update(assistant_id, changes, self.db)
        if not updated:
            raise AssistantNotFound(assistant_id)
        logger.info(f"Assistant {assistant_id} updated: {sorted(changes)}")

        folder_changed = "documents_folder" in changes and changes["documents_folder"] != current.documents_folder
        if "is_active" in changes and not updated.is_active:
            await self.watcher.stop_monitoring(assistant_id)
        elif folder_changed or (changes.get("is_active") and not current.is_active):
            await self.watcher.stop_monitoring(assistant_id)
            if folder_changed and current.documents_folder:
                await self.synchronizer.remove_tree(assistant_id, current.documents_folder)
            await self._sync_and_watch(assistant_id, updated.documents_folder)
            self.db.expire_all()
            updated = await self.get_assistant(assistant_id)

        return updated

    async def delete_assistant(self, assistant_id: str) -> None:
        """Stop watching and delete the assistant with its documents and conversations"""
        await self.get_assistant(assistant_id)
        await self.watcher.stop_monitoring(assistant_id)

        removed = await DocumentRepository.delete_all_for_assistant(assistant_id, self.db)
        await AssistantRepository.delete(assistant_id, self.db)
        logger.info(f"Assistant {assistant_id} deleted with {removed} documents")

    async def sync_documents(self, assistant_id: str) -> int:
        """Rescan the assistant's folder on demand"""
        assistant = await self.get_assistant(assistant_id)
        if not assistant.documents_folder:
            raise FolderNotFound("")
        return await self.synchronizer.sync_folder(assistant_id, assistant.documents_folder)

    async def upload_documents(self, assistant_id: str) -> List[UploadReport]:
        """Upload every document of the assistant to the remote store and report per document"""
        await self.get_assistant(assistant_id)
        reports = await self.knowledge_sync.upload_all(assistant_id)
        succeeded = sum(1 for report in reports if report.success)
        logger.info(f"Uploaded {succeeded}/{len(reports)} documents for assistant {assistant_id}")
        return reports

    async def _sync_and_watch(self, assistant_id: str, folder: Optional[str]) -> Optional[int]:
        """Initial scan plus watch; returns None when the scan could not run"""
        if not folder:
            return None

        processed = None
        try:
            processed = await self.synchronizer.sync_folder(assistant_id, folder)
            logger.info(f"Processed {processed} documents for assistant {assistant_id}")
        except FolderNotFound as e:
            logger.warning(f"Initial document sync skipped for assistant {assistant_id}: {e}")

        await self.watcher.start_monitoring(assistant_id, folder)
        return processed
