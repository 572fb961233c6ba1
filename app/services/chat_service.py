from typing import List, Optional, Sequence, Tuple
import logging
import time
import uuid

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AssistantNotFound,
    ConversationNotFound,
    InvalidFeedback,
    RemoteResponseUnrecognized,
    RemoteServiceError,
)
from app.core.prompts import assistant_kind, get_prompt, style_instruction
from app.db.models.message import MessageRole
from app.repositories.assistant_repository import AssistantRepository
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.document_repository import DocumentRepository
from app.schemas.assistant import AssistantResponse
from app.schemas.conversation import (
    AssistantSummary,
    AssistantTestResult,
    ChatReply,
    ChatResult,
    Citation,
    ConversationResponse,
    MessageResponse,
)
from app.schemas.document import DocumentResponse
from app.services.llm.client import ChatMessage, CompletionOptions, RemoteChatClient, Role
from app.services.rag.context_selector import NO_DOCUMENTS_CONTEXT, ContextSelector
from app.services.rag.knowledge_sync import RemoteKnowledgeSync

logger = logging.getLogger(__name__)

EMBEDDED = "embedded"
REMOTE_RAG = "remote_rag"

CITATION_SCORE = 0.95
MAX_CITATIONS = 3
MIN_CITABLE_EXCERPT = 100


class ChatService:
    """
    Answers chat messages for an assistant.

    Exactly one context strategy is used per service: excerpts embedded in the
    system prompt, or retrieval delegated to the remote RAG store. Remote
    failures never reach the caller; they degrade to a locally built answer.
    """

    def __init__(
        self,
        db: Session,
        chat_client: Optional[RemoteChatClient] = None,
        knowledge_sync: Optional[RemoteKnowledgeSync] = None,
        selector: Optional[ContextSelector] = None,
        strategy: Optional[str] = None,
    ):
        self.db = db
        self.chat_client = chat_client or RemoteChatClient()
        self.knowledge_sync = knowledge_sync or RemoteKnowledgeSync()
        self.selector = selector or ContextSelector()
        self.strategy = strategy or settings.CONTEXT_STRATEGY
        if self.strategy not in (EMBEDDED, REMOTE_RAG):
            raise ValueError(f"Unknown context strategy: {self.strategy}")

    async def _get_active_assistant(self, assistant_id: str) -> AssistantResponse:
        assistant = await AssistantRepository.get_by_id(assistant_id, self.db)
        if not assistant or not assistant.is_active:
            logger.warning(f"Assistant {assistant_id} not found or inactive")
            raise AssistantNotFound(assistant_id)
        return assistant

    async def generate_response(
        self,
        assistant_id: str,
        user_message: str,
        history: Optional[Sequence[MessageResponse]] = None
    ) -> ChatResult:
        """
        Generate an answer to a user message.

        Args:
            assistant_id: Assistant answering the message
            user_message: The user's question
            history: Earlier messages of the conversation, oldest first

        Returns:
            ChatResult with the answer, citations and timing

        Raises:
            AssistantNotFound: If the assistant does not exist or is inactive
        """
        started = time.perf_counter()
        assistant = await self._get_active_assistant(assistant_id)
        documents = await DocumentRepository.list_by_assistant(assistant_id, self.db)
        history_messages = self._history_messages(history or [])

        if self.strategy == REMOTE_RAG:
            response, degraded = await self._answer_with_remote_rag(
                assistant, documents, user_message, history_messages
            )
        else:
            response, degraded = await self._answer_with_embedded_context(
                assistant, documents, user_message, history_messages
            )

        citations = self.build_citations(documents, response, user_message)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Generated {'fallback' if degraded else 'remote'} answer for assistant {assistant_id} "
            f"in {elapsed_ms}ms with {len(citations)} citations"
        )
        return ChatResult(
            response=response,
            citations=citations,
            response_time_ms=elapsed_ms,
            strategy=self.strategy,
            degraded=degraded,
        )

    def _history_messages(self, history: Sequence[MessageResponse]) -> List[ChatMessage]:
        recent = list(history)[-settings.CHAT_HISTORY_LIMIT:] if settings.CHAT_HISTORY_LIMIT > 0 else []
        return [ChatMessage(role=Role(m.role.value), content=m.content) for m in recent]

    async def _answer_with_embedded_context(
        self,
        assistant: AssistantResponse,
        documents: List[DocumentResponse],
        user_message: str,
        history: List[ChatMessage]
    ) -> Tuple[str, bool]:
        context = self.selector.select_context(documents, user_message)
        system_prompt = get_prompt(
            "chat", "embedded_system",
            assistant_name=assistant.name,
            context=context,
            style_instruction=style_instruction(assistant.settings.behavior.response_style.value),
        )
        enhanced_message = get_prompt("chat", "embedded_user_message", user_message=user_message)

        messages = [ChatMessage(role=Role.SYSTEM, content=system_prompt), *history,
                    ChatMessage(role=Role.USER, content=enhanced_message)]
        options = CompletionOptions(
            max_tokens=assistant.settings.behavior.max_response_length,
            skip_rag=True,
            prompt=enhanced_message,
        )

        try:
            result = await self.chat_client.complete(messages, options)
            return result.content, False
        except (RemoteServiceError, RemoteResponseUnrecognized) as e:
            logger.error(f"Chat service failed for assistant {assistant.id}, using local answer: {e}")
            return self.contextual_fallback(assistant, user_message, context), True

    async def _answer_with_remote_rag(
        self,
        assistant: AssistantResponse,
        documents: List[DocumentResponse],
        user_message: str,
        history: List[ChatMessage]
    ) -> Tuple[str, bool]:
        try:
            file_ids = await self.knowledge_sync.ensure_uploaded(documents)
        except Exception as e:
            logger.error(f"Could not prepare documents for assistant {assistant.id}: {e}", exc_info=True)
            file_ids = []
        if not file_ids:
            logger.warning(f"No documents available for grounding assistant {assistant.id}")
            return self.document_system_unavailable(assistant, user_message), True

        system_prompt = get_prompt(
            "chat", "rag_system",
            assistant_name=assistant.name,
            welcome_message=assistant.welcome_message,
            style_instruction=style_instruction(assistant.settings.behavior.response_style.value),
        )
        messages = [ChatMessage(role=Role.SYSTEM, content=system_prompt), *history,
                    ChatMessage(role=Role.USER, content=user_message)]
        options = CompletionOptions(
            max_tokens=assistant.settings.behavior.max_response_length,
            data_sources=file_ids,
            skip_rag=False,
            prompt=user_message,
        )

        try:
            result = await self.chat_client.complete(messages, options)
            return result.content, False
        except (RemoteServiceError, RemoteResponseUnrecognized) as e:
            logger.error(f"RAG chat failed for assistant {assistant.id}, using local answer: {e}")
            context = self.selector.select_context(documents, user_message)
            return self.contextual_fallback(assistant, user_message, context), True

    @staticmethod
    def document_system_unavailable(assistant: AssistantResponse, user_message: str) -> str:
        return get_prompt(
            "fallback", "document_system_unavailable",
            user_message=user_message,
            kind=assistant_kind(assistant.name),
            welcome_message=assistant.welcome_message,
        )

    @staticmethod
    def contextual_fallback(assistant: AssistantResponse, user_message: str, context: str) -> str:
        """Answer built from the selected excerpts when the chat service is unavailable"""
        if context == NO_DOCUMENTS_CONTEXT:
            return get_prompt("fallback", "no_documents", assistant_name=assistant.name, user_message=user_message)

        lines = []
        for line in context.split("\n"):
            line = line.strip()
            if not line or line.startswith("Document "):
                continue
            lines.append(line[len("Content:"):].strip() if line.startswith("Content:") else line)
        if not lines:
            return get_prompt("fallback", "no_documents", assistant_name=assistant.name, user_message=user_message)

        relevant_info = " ".join(lines[:3])[:300]
        return get_prompt(
            "fallback", "contextual",
            assistant_name=assistant.name,
            relevant_info=relevant_info,
            user_message=user_message,
        )

    def build_citations(self, documents: Sequence[DocumentResponse], response: str, query: str) -> List[Citation]:
        """Cite up to three documents whose selected excerpt is substantial"""
        citations = []
        for document in documents:
            excerpt = self.selector.select_excerpt(document.content or "", query)
            if len(excerpt.strip()) <= MIN_CITABLE_EXCERPT:
                continue
            citations.append(Citation(
                document_id=document.id,
                filename=document.filename,
                excerpt=self.selector.select_citation_excerpt(excerpt, response, max_length=200),
                relevance_score=CITATION_SCORE,
            ))
            if len(citations) == MAX_CITATIONS:
                break
        return citations

    async def handle_message(
        self,
        assistant_id: str,
        message: str,
        session_id: Optional[str] = None,
        conversation_id: Optional[str] = None
    ) -> ChatReply:
        """
        Record a user message, answer it and record the answer.

        The conversation is resumed by ID when it belongs to the assistant,
        otherwise by session, otherwise a new one is started.
        """
        assistant = await self._get_active_assistant(assistant_id)

        conversation = None
        if conversation_id:
            conversation = await ConversationRepository.get_by_id(conversation_id, self.db)
            if conversation and conversation.assistant_id != assistant_id:
                logger.warning(f"Conversation {conversation_id} does not belong to assistant {assistant_id}")
                conversation = None
        if conversation is None and session_id:
            conversation = await ConversationRepository.get_by_session(assistant_id, session_id, self.db)
        if conversation is None:
            conversation = await ConversationRepository.create(assistant_id, session_id or str(uuid.uuid4()), self.db)
            logger.info(f"Started conversation {conversation.id} for assistant {assistant_id}")

        history = conversation.messages
        await ConversationRepository.append_message(conversation.id, MessageRole.USER.value, message, self.db)

        result = await self.generate_response(assistant_id, message, history)
        citations = (
            [citation.model_dump() for citation in result.citations]
            if assistant.settings.behavior.include_citations else None
        )
        reply = await ConversationRepository.append_message(
            conversation.id,
            MessageRole.ASSISTANT.value,
            result.response,
            self.db,
            citations=citations,
            response_time_ms=result.response_time_ms,
        )

        return ChatReply(
            conversation_id=conversation.id,
            session_id=conversation.session_id,
            message=reply,
            assistant=AssistantSummary(name=assistant.name, welcome_message=assistant.welcome_message),
        )

    async def get_conversation(
        self,
        assistant_id: str,
        conversation_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> ConversationResponse:
        """Get a conversation of the assistant by ID or by session"""
        conversation = None
        if conversation_id:
            conversation = await ConversationRepository.get_by_id(conversation_id, self.db)
            if conversation and conversation.assistant_id != assistant_id:
                conversation = None
        elif session_id:
            conversation = await ConversationRepository.get_by_session(assistant_id, session_id, self.db)

        if conversation is None:
            raise ConversationNotFound(f"No conversation for assistant {assistant_id}")
        return conversation

    async def submit_feedback(self, conversation_id: str, rating: int, comment: Optional[str] = None) -> ConversationResponse:
        if not 1 <= rating <= 5:
            raise InvalidFeedback(f"Rating must be between 1 and 5, got {rating}")

        conversation = await ConversationRepository.set_feedback(conversation_id, rating, comment, self.db)
        if conversation is None:
            raise ConversationNotFound(f"Conversation {conversation_id} not found")
        logger.info(f"Feedback {rating} recorded for conversation {conversation_id}")
        return conversation

    async def generate_test_response(self, assistant_id: str, question: str) -> AssistantTestResult:
        """Answer a staff test question without recording a conversation"""
        result = await self.generate_response(assistant_id, question)
        confidence = min(0.9, len(result.citations) * 0.3 + 0.1)
        return AssistantTestResult(
            answer=result.response,
            citations=result.citations,
            response_time_ms=result.response_time_ms,
            confidence=confidence,
        )
