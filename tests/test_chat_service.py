"""Tests for answering chat messages."""
import copy
from typing import List
from unittest.mock import patch

import pytest

from app.core.exceptions import (
    AssistantNotFound,
    ConversationNotFound,
    InvalidFeedback,
    RemoteResponseUnrecognized,
    RemoteServiceError,
)
from app.db.models.assistant import DEFAULT_ASSISTANT_SETTINGS
from app.services.chat_service import ChatService
from app.services.llm.client import CompletionResult, Role
from app.services.rag.knowledge_sync import RemoteKnowledgeSync
from tests.helpers import make_assistant, store_document

REFUND_POLICY = (
    "University policy for the refund of tuition and residence hall charges: students who withdraw "
    "receive a 100% refund before week 1, 50% in week 2, and no refund after week 3."
)


class FakeChatClient:
    """Chat client that answers from a script and records the requests"""

    def __init__(self, answer: str = "You get 50% back in week 2.", error: Exception = None):
        self.answer = answer
        self.error = error
        self.calls = []

    async def complete(self, messages, options=None):
        self.calls.append((messages, options))
        if self.error:
            raise self.error
        return CompletionResult(content=self.answer, model="fake")


class FakeKnowledgeSync:
    def __init__(self, file_ids: List[str]):
        self.file_ids = file_ids
        self.seen = []

    async def ensure_uploaded(self, documents):
        self.seen.extend(documents)
        return list(self.file_ids)


class BrokenKnowledgeSync:
    async def ensure_uploaded(self, documents):
        raise RuntimeError("remote store client crashed")


def service(db, chat_client=None, knowledge_sync=None, strategy="embedded"):
    return ChatService(
        db,
        chat_client=chat_client or FakeChatClient(),
        knowledge_sync=knowledge_sync or FakeKnowledgeSync([]),
        strategy=strategy,
    )


def test_unknown_strategy_is_rejected(db):
    with pytest.raises(ValueError):
        service(db, strategy="vector")


class TestGenerateResponse:
    async def test_embedded_context_reaches_the_prompt(self, db, assistant):
        await store_document(db, assistant, "/docs/refund-policy.txt", REFUND_POLICY)
        client = FakeChatClient()

        result = await service(db, client).generate_response(assistant.id, "What if I withdraw in week 2?")

        assert result.response == "You get 50% back in week 2."
        assert result.strategy == "embedded"
        assert not result.degraded
        messages, options = client.calls[0]
        assert messages[0].role == Role.SYSTEM
        assert "Document 1: refund-policy.txt" in messages[0].content
        assert "50% in week 2" in messages[0].content
        assert "What if I withdraw in week 2?" in messages[-1].content
        assert options.skip_rag is True
        assert options.max_tokens == 500
        assert options.data_sources == []

    async def test_remote_failure_degrades_to_document_excerpt(self, db, assistant):
        await store_document(db, assistant, "/docs/refund-policy.txt", REFUND_POLICY)
        client = FakeChatClient(error=RemoteServiceError("down", 503))

        result = await service(db, client).generate_response(assistant.id, "Refund in week 2?")

        assert result.degraded
        assert result.response.startswith("Hello! I'm Financial Aid Helper.")
        assert "50% in week 2" in result.response

    async def test_unrecognized_response_without_documents(self, db, assistant):
        client = FakeChatClient(error=RemoteResponseUnrecognized("?"))

        result = await service(db, client).generate_response(assistant.id, "Refund in week 2?")

        assert result.degraded
        assert "don't currently have specific information" in result.response
        assert result.citations == []

    async def test_remote_rag_without_grounding_documents(self, db, assistant):
        client = FakeChatClient()
        knowledge_sync = FakeKnowledgeSync([])

        result = await service(db, client, knowledge_sync, strategy="remote_rag").generate_response(
            assistant.id, "When is FAFSA due?"
        )

        assert result.degraded
        assert "Office of Student Accounts" in result.response
        assert "When is FAFSA due?" in result.response
        assert client.calls == []

    async def test_remote_rag_passes_file_ids(self, db, assistant):
        await store_document(db, assistant, "/docs/refund-policy.txt", REFUND_POLICY)
        client = FakeChatClient()
        knowledge_sync = FakeKnowledgeSync(["f-1"])

        result = await service(db, client, knowledge_sync, strategy="remote_rag").generate_response(
            assistant.id, "Refund in week 2?"
        )

        assert not result.degraded
        assert [d.filename for d in knowledge_sync.seen] == ["refund-policy.txt"]
        _, options = client.calls[0]
        assert options.data_sources == ["f-1"]
        assert options.skip_rag is False

    async def test_remote_rag_with_crashing_transport_degrades(self, db, assistant, session_factory):
        await store_document(db, assistant, "/docs/refund-policy.txt", REFUND_POLICY)
        client = FakeChatClient()
        knowledge_sync = RemoteKnowledgeSync(
            session_factory=session_factory, base_url="https://remote.test", processing_wait=0
        )

        with patch("app.services.rag.knowledge_sync.requests.post", side_effect=RuntimeError("boom")):
            result = await service(db, client, knowledge_sync, strategy="remote_rag").generate_response(
                assistant.id, "Refund in week 2?"
            )

        assert result.degraded
        assert "Office of Student Accounts" in result.response
        assert client.calls == []

    async def test_remote_rag_with_failing_knowledge_sync_degrades(self, db, assistant):
        await store_document(db, assistant, "/docs/refund-policy.txt", REFUND_POLICY)
        client = FakeChatClient()

        result = await service(db, client, BrokenKnowledgeSync(), strategy="remote_rag").generate_response(
            assistant.id, "Refund in week 2?"
        )

        assert result.degraded
        assert "Refund in week 2?" in result.response
        assert client.calls == []

    async def test_remote_rag_failure_uses_local_context(self, db, assistant):
        await store_document(db, assistant, "/docs/refund-policy.txt", REFUND_POLICY)
        client = FakeChatClient(error=RemoteServiceError("timeout"))

        result = await service(db, client, FakeKnowledgeSync(["f-1"]), strategy="remote_rag").generate_response(
            assistant.id, "Refund in week 2?"
        )

        assert result.degraded
        assert "50% in week 2" in result.response

    async def test_citations_point_at_substantial_documents(self, db, assistant):
        await store_document(db, assistant, "/docs/refund-policy.txt", REFUND_POLICY)
        await store_document(db, assistant, "/docs/short.txt", "Too short to cite.")

        result = await service(db).generate_response(assistant.id, "Refund in week 2?")

        assert [c.filename for c in result.citations] == ["refund-policy.txt"]
        assert result.citations[0].relevance_score == 0.95
        assert len(result.citations[0].excerpt) <= 203

    async def test_inactive_assistant(self, db):
        inactive = make_assistant(db, name="Retired Helper", is_active=False)

        with pytest.raises(AssistantNotFound):
            await service(db).generate_response(inactive.id, "Hello?")


class TestHandleMessage:
    async def test_new_conversation_records_both_messages(self, db, assistant):
        await store_document(db, assistant, "/docs/refund-policy.txt", REFUND_POLICY)

        reply = await service(db).handle_message(assistant.id, "Refund in week 2?")

        assert reply.session_id
        assert reply.assistant.name == "Financial Aid Helper"
        assert reply.message.role.value == "assistant"
        assert [c.filename for c in reply.message.citations] == ["refund-policy.txt"]

        conversation = await service(db).get_conversation(assistant.id, conversation_id=reply.conversation_id)
        assert [m.role.value for m in conversation.messages] == ["user", "assistant"]
        assert conversation.messages[0].content == "Refund in week 2?"

    async def test_session_is_resumed_with_history(self, db, assistant):
        client = FakeChatClient()
        chat = service(db, client)

        first = await chat.handle_message(assistant.id, "First question", session_id="browser-1")
        second = await chat.handle_message(assistant.id, "Second question", session_id="browser-1")

        assert second.conversation_id == first.conversation_id
        messages, _ = client.calls[1]
        assert [m.content for m in messages[1:3]] == ["First question", "You get 50% back in week 2."]

        conversation = await chat.get_conversation(assistant.id, session_id="browser-1")
        assert len(conversation.messages) == 4

    async def test_foreign_conversation_id_starts_a_new_conversation(self, db, assistant):
        other = make_assistant(db, name="Housing Helper", folder="/housing")
        chat = service(db)
        foreign = await chat.handle_message(other.id, "Dorm hours?")

        reply = await chat.handle_message(assistant.id, "Refund?", conversation_id=foreign.conversation_id)

        assert reply.conversation_id != foreign.conversation_id

    async def test_citations_omitted_when_disabled(self, db):
        settings = copy.deepcopy(DEFAULT_ASSISTANT_SETTINGS)
        settings["behavior"]["include_citations"] = False
        quiet = make_assistant(db, name="Quiet Helper", settings=settings)
        await store_document(db, quiet, "/docs/refund-policy.txt", REFUND_POLICY)

        reply = await service(db).handle_message(quiet.id, "Refund in week 2?")

        assert reply.message.citations is None


class TestConversationAccess:
    async def test_unknown_conversation(self, db, assistant):
        with pytest.raises(ConversationNotFound):
            await service(db).get_conversation(assistant.id, conversation_id="missing")

    async def test_conversation_of_another_assistant_is_hidden(self, db, assistant):
        other = make_assistant(db, name="Housing Helper", folder="/housing")
        reply = await service(db).handle_message(other.id, "Dorm hours?")

        with pytest.raises(ConversationNotFound):
            await service(db).get_conversation(assistant.id, conversation_id=reply.conversation_id)

    @pytest.mark.parametrize("rating", [0, 6])
    async def test_feedback_rating_out_of_range(self, db, assistant, rating):
        reply = await service(db).handle_message(assistant.id, "Hello")

        with pytest.raises(InvalidFeedback):
            await service(db).submit_feedback(reply.conversation_id, rating)

    async def test_feedback_is_stored(self, db, assistant):
        reply = await service(db).handle_message(assistant.id, "Hello")

        conversation = await service(db).submit_feedback(reply.conversation_id, 5, "Very clear")

        assert conversation.feedback_rating == 5
        assert conversation.feedback_comment == "Very clear"

    async def test_feedback_for_unknown_conversation(self, db):
        with pytest.raises(ConversationNotFound):
            await service(db).submit_feedback("missing", 3)


class TestAssistantTest:
    async def test_confidence_grows_with_citations(self, db, assistant):
        chat = service(db)
        without = await chat.generate_test_response(assistant.id, "Refund in week 2?")

        await store_document(db, assistant, "/docs/refund-policy.txt", REFUND_POLICY)
        with_doc = await chat.generate_test_response(assistant.id, "Refund in week 2?")

        assert without.confidence == pytest.approx(0.1)
        assert with_doc.confidence == pytest.approx(0.4)
        assert with_doc.answer == "You get 50% back in week 2."
