"""Tests for the document, assistant and conversation repositories."""
from datetime import datetime

import pytest

from app.core.exceptions import RepositoryWriteFailed
from app.db.models.document import Document
from app.repositories.assistant_repository import AssistantRepository
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.document_repository import DocumentRepository
from tests.helpers import make_assistant


def document_fields(**overrides):
    fields = {
        "filename": "aid.txt",
        "original_filename": "aid.txt",
        "mime_type": "text/plain",
        "file_size": 11,
        "content": "Aid content",
        "doc_metadata": {"title": "Aid", "keywords": []},
        "checksum": "0" * 32,
        "last_modified": datetime(2024, 1, 1),
        "processed": True,
    }
    fields.update(overrides)
    return fields


class TestDocumentRepository:
    async def test_upsert_inserts_then_updates_same_key(self, db, assistant):
        first = await DocumentRepository.upsert(assistant.id, "/docs/aid.txt", document_fields(), db)
        second = await DocumentRepository.upsert(
            assistant.id, "/docs/aid.txt", document_fields(content="New content", checksum="1" * 32), db
        )

        assert second.id == first.id
        assert second.content == "New content"
        assert db.query(Document).count() == 1

    async def test_upsert_ignores_key_fields(self, db, assistant):
        stored = await DocumentRepository.upsert(
            assistant.id, "/docs/aid.txt", document_fields(file_path="/elsewhere.txt", id="forced"), db
        )

        assert stored.file_path == "/docs/aid.txt"
        assert stored.id != "forced"

    async def test_same_path_for_different_assistants_is_distinct(self, db, assistant):
        other = make_assistant(db, name="Housing Helper", folder="/housing")

        await DocumentRepository.upsert(assistant.id, "/shared/policy.txt", document_fields(), db)
        await DocumentRepository.upsert(other.id, "/shared/policy.txt", document_fields(), db)

        assert db.query(Document).count() == 2

    async def test_list_orders_by_last_modified_desc(self, db, assistant):
        await DocumentRepository.upsert(assistant.id, "/docs/old.txt", document_fields(last_modified=datetime(2023, 1, 1)), db)
        await DocumentRepository.upsert(assistant.id, "/docs/new.txt", document_fields(last_modified=datetime(2024, 6, 1)), db)

        documents = await DocumentRepository.list_by_assistant(assistant.id, db)

        assert [d.file_path for d in documents] == ["/docs/new.txt", "/docs/old.txt"]

    async def test_delete_by_path(self, db, assistant):
        await DocumentRepository.upsert(assistant.id, "/docs/aid.txt", document_fields(), db)

        assert await DocumentRepository.delete_by_path(assistant.id, "/docs/aid.txt", db) is True
        assert await DocumentRepository.delete_by_path(assistant.id, "/docs/aid.txt", db) is False
        assert await DocumentRepository.get_by_path(assistant.id, "/docs/aid.txt", db) is None

    async def test_set_external_id(self, db, assistant):
        stored = await DocumentRepository.upsert(assistant.id, "/docs/aid.txt", document_fields(), db)

        assert await DocumentRepository.set_external_id(stored.id, "remote-key-1", db) is True
        assert (await DocumentRepository.get_by_id(stored.id, db)).external_file_id == "remote-key-1"
        assert await DocumentRepository.set_external_id("missing", "x", db) is False

    async def test_delete_all_for_assistant(self, db, assistant):
        await DocumentRepository.upsert(assistant.id, "/docs/a.txt", document_fields(), db)
        await DocumentRepository.upsert(assistant.id, "/docs/b.txt", document_fields(), db)

        assert await DocumentRepository.delete_all_for_assistant(assistant.id, db) == 2
        assert await DocumentRepository.list_by_assistant(assistant.id, db) == []

    async def test_write_failure_is_wrapped(self, db, assistant):
        # checksum is NOT NULL
        with pytest.raises(RepositoryWriteFailed) as exc_info:
            await DocumentRepository.upsert(assistant.id, "/docs/bad.txt", document_fields(checksum=None), db)

        assert exc_info.value.operation == "upsert"
        # Session is usable again after the rollback
        assert await DocumentRepository.list_by_assistant(assistant.id, db) == []


class TestConversationRepository:
    async def test_messages_keep_append_order(self, db, assistant):
        conversation = await ConversationRepository.create(assistant.id, "session-1", db)

        await ConversationRepository.append_message(conversation.id, "user", "first", db)
        await ConversationRepository.append_message(conversation.id, "assistant", "second", db, response_time_ms=12)
        await ConversationRepository.append_message(conversation.id, "user", "third", db)

        db.expire_all()
        stored = await ConversationRepository.get_by_id(conversation.id, db)
        assert [m.content for m in stored.messages] == ["first", "second", "third"]
        assert stored.messages[1].response_time_ms == 12

    async def test_get_by_session_is_scoped_to_assistant(self, db, assistant):
        other = make_assistant(db, name="Housing Helper", folder="/housing")
        await ConversationRepository.create(assistant.id, "session-1", db)

        assert await ConversationRepository.get_by_session(assistant.id, "session-1", db) is not None
        assert await ConversationRepository.get_by_session(other.id, "session-1", db) is None

    async def test_set_feedback(self, db, assistant):
        conversation = await ConversationRepository.create(assistant.id, "session-1", db)

        updated = await ConversationRepository.set_feedback(conversation.id, 4, "Helpful", db)

        assert updated.feedback_rating == 4
        assert updated.feedback_comment == "Helpful"
        assert updated.feedback_submitted_at is not None
        assert await ConversationRepository.set_feedback("missing", 4, None, db) is None


class TestAssistantRepository:
    async def test_delete_cascades(self, db, assistant):
        await DocumentRepository.upsert(assistant.id, "/docs/a.txt", document_fields(), db)
        conversation = await ConversationRepository.create(assistant.id, "s", db)
        await ConversationRepository.append_message(conversation.id, "user", "hello", db)
        assistant_id = assistant.id

        assert await AssistantRepository.delete(assistant_id, db) is True

        assert await AssistantRepository.get_by_id(assistant_id, db) is None
        assert await DocumentRepository.list_by_assistant(assistant_id, db) == []
        assert await ConversationRepository.list_by_assistant(assistant_id, db) == []

    async def test_list_filters_by_organization(self, db):
        make_assistant(db, name="A", organization_id="org-1")
        make_assistant(db, name="B", organization_id="org-2")

        assistants = await AssistantRepository.list_all(db, organization_id="org-1")

        assert [a.name for a in assistants] == ["A"]
