"""Builders and fakes shared by the test modules."""
from datetime import datetime
from typing import List, Tuple

from app.db.models.assistant import Assistant, DEFAULT_ASSISTANT_SETTINGS
from app.repositories.document_repository import DocumentRepository
from app.services.sync.notifier import ChangeAction


class RecordingNotifier:
    """Notifier that remembers what it was told"""

    def __init__(self):
        self.events: List[Tuple[str, str, ChangeAction]] = []

    async def notify(self, assistant_id: str, file_path: str, action: ChangeAction) -> None:
        self.events.append((assistant_id, file_path, action))

    def actions(self) -> List[ChangeAction]:
        return [action for _, _, action in self.events]


def make_assistant(db, name: str = "Financial Aid Helper", folder: str = "", **overrides) -> Assistant:
    assistant = Assistant(
        name=name,
        slug=overrides.pop("slug", name.lower().replace(" ", "-")),
        description=overrides.pop("description", "Answers financial aid questions"),
        welcome_message=overrides.pop("welcome_message", "Hi! Ask me about financial aid."),
        documents_folder=folder,
        is_active=overrides.pop("is_active", True),
        settings=overrides.pop("settings", DEFAULT_ASSISTANT_SETTINGS),
        **overrides,
    )
    db.add(assistant)
    db.commit()
    db.refresh(assistant)
    return assistant


async def store_document(db, assistant, path: str, content: str = "Aid policy text", **fields):
    """Store a processed document for the assistant without going through a folder"""
    filename = path.rsplit("/", 1)[-1]
    values = {
        "filename": filename,
        "original_filename": filename,
        "mime_type": "text/plain",
        "file_size": len(content),
        "content": content,
        "doc_metadata": {"title": None, "keywords": []},
        "checksum": "0" * 32,
        "last_modified": datetime(2024, 1, 1),
        "processed": True,
    }
    values.update(fields)
    return await DocumentRepository.upsert(assistant.id, path, values, db)


class FakeObserver:
    """Stands in for a watchdog observer; records scheduling and lifecycle"""

    instances = []

    def __init__(self):
        self.scheduled = []
        self.started = False
        self.stopped = False
        FakeObserver.instances.append(self)

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass
