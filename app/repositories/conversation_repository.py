from typing import List, Optional, Dict, Any
import logging
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import RepositoryWriteFailed
from app.db.base_class import utcnow
from app.db.models.conversation import Conversation
from app.db.models.message import Message
from app.schemas.conversation import ConversationResponse, MessageResponse

logger = logging.getLogger(__name__)

class ConversationRepository:
    @staticmethod
    async def create(assistant_id: str, session_id: str, db: Session) -> ConversationResponse:
        """Start a new, empty conversation"""
        try:
            now = utcnow()
            conversation = Conversation(
                assistant_id=assistant_id,
                session_id=session_id,
                started_at=now,
                last_message_at=now,
            )
            db.add(conversation)
            db.commit()
            db.refresh(conversation)
            return ConversationResponse.model_validate(conversation)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create conversation for assistant {assistant_id}: {e}")
            raise RepositoryWriteFailed("create_conversation", e) from e

    @staticmethod
    async def get_by_id(conversation_id: str, db: Session) -> Optional[ConversationResponse]:
        try:
            conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
            return ConversationResponse.model_validate(conversation) if conversation else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to get conversation {conversation_id}: {e}")
            raise

    @staticmethod
    async def get_by_session(assistant_id: str, session_id: str, db: Session) -> Optional[ConversationResponse]:
        """Get the conversation a client session is attached to"""
        try:
            conversation = (
                db.query(Conversation)
                .filter(Conversation.assistant_id == assistant_id, Conversation.session_id == session_id)
                .order_by(Conversation.started_at.desc())
                .first()
            )
            return ConversationResponse.model_validate(conversation) if conversation else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to get conversation for session {session_id}: {e}")
            raise

    @staticmethod
    async def list_by_assistant(assistant_id: str, db: Session) -> List[ConversationResponse]:
        try:
            conversations = (
                db.query(Conversation)
                .filter(Conversation.assistant_id == assistant_id)
                .order_by(Conversation.last_message_at.desc())
                .all()
            )
            return [ConversationResponse.model_validate(c) for c in conversations]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list conversations for assistant {assistant_id}: {e}")
            raise

    @staticmethod
    async def append_message(
        conversation_id: str,
        role: str,
        content: str,
        db: Session,
        citations: Optional[List[Dict[str, Any]]] = None,
        response_time_ms: Optional[int] = None,
    ) -> MessageResponse:
        """
        Append a message at the end of a conversation.

        Messages are never reordered or edited; position is the next free slot.
        """
        try:
            next_position = (
                db.query(func.coalesce(func.max(Message.position), -1))
                .filter(Message.conversation_id == conversation_id)
                .scalar()
            ) + 1
            now = utcnow()
            message = Message(
                conversation_id=conversation_id,
                position=next_position,
                role=role,
                content=content,
                timestamp=now,
                citations=citations,
                response_time_ms=response_time_ms,
            )
            db.add(message)
            db.query(Conversation).filter(Conversation.id == conversation_id).update(
                {Conversation.last_message_at: now},
                synchronize_session=False
            )
            db.commit()
            db.refresh(message)
            return MessageResponse.model_validate(message)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to append message to conversation {conversation_id}: {e}")
            raise RepositoryWriteFailed("append_message", e) from e

    @staticmethod
    async def set_feedback(
        conversation_id: str,
        rating: int,
        comment: Optional[str],
        db: Session
    ) -> Optional[ConversationResponse]:
        """Record the single satisfaction rating of a conversation"""
        try:
            conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
            if not conversation:
                return None

            conversation.feedback_rating = rating
            conversation.feedback_comment = comment
            conversation.feedback_submitted_at = utcnow()
            db.commit()
            db.refresh(conversation)
            return ConversationResponse.model_validate(conversation)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to store feedback for conversation {conversation_id}: {e}")
            raise RepositoryWriteFailed("set_feedback", e) from e
