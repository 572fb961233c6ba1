from typing import List, Optional, Dict, Any
from datetime import datetime
import logging
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import RepositoryWriteFailed
from app.db.models.assistant import Assistant
from app.db.models.conversation import Conversation
from app.db.models.document import Document
from app.db.models.message import Message
from app.schemas.assistant import AssistantResponse

logger = logging.getLogger(__name__)

class AssistantRepository:
    @staticmethod
    async def create(assistant: Assistant, db: Session) -> AssistantResponse:
        """Create a new assistant"""
        try:
            db.add(assistant)
            db.commit()
            db.refresh(assistant)
            return AssistantResponse.model_validate(assistant)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create assistant: {e}")
            raise RepositoryWriteFailed("create_assistant", e) from e

    @staticmethod
    async def get_by_id(assistant_id: str, db: Session) -> Optional[AssistantResponse]:
        """Get assistant by ID"""
        try:
            assistant = db.query(Assistant).filter(Assistant.id == assistant_id).first()
            return AssistantResponse.model_validate(assistant) if assistant else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to get assistant by ID {assistant_id}: {e}")
            raise

    @staticmethod
    async def get_by_slug(slug: str, db: Session) -> Optional[AssistantResponse]:
        """Get assistant by slug"""
        try:
            assistant = db.query(Assistant).filter(Assistant.slug == slug).first()
            return AssistantResponse.model_validate(assistant) if assistant else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to get assistant by slug {slug}: {e}")
            raise

    @staticmethod
    async def list_all(db: Session, organization_id: Optional[str] = None) -> List[AssistantResponse]:
        """List assistants, optionally restricted to one organization"""
        try:
            query = db.query(Assistant)
            if organization_id:
                query = query.filter(Assistant.organization_id == organization_id)
            return [AssistantResponse.model_validate(a) for a in query.order_by(Assistant.created_at).all()]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list assistants: {e}")
            raise

    @staticmethod
    async def update(assistant_id: str, update_data: Dict[str, Any], db: Session) -> Optional[AssistantResponse]:
        """Update assistant; JSON columns must be passed as new objects"""
        try:
            assistant = db.query(Assistant).filter(Assistant.id == assistant_id).first()
            if not assistant:
                return None

            for key, value in update_data.items():
                setattr(assistant, key, value)

            db.commit()
            db.refresh(assistant)
            return AssistantResponse.model_validate(assistant)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to update assistant {assistant_id}: {e}")
            raise RepositoryWriteFailed("update_assistant", e) from e

    @staticmethod
    async def touch_last_sync(assistant_id: str, synced_at: datetime, db: Session) -> bool:
        """Record the time of the last successful document sync"""
        try:
            updated = db.query(Assistant).filter(Assistant.id == assistant_id).update(
                {Assistant.last_document_sync: synced_at},
                synchronize_session=False
            )
            db.commit()
            return updated > 0
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to update last sync for assistant {assistant_id}: {e}")
            raise RepositoryWriteFailed("touch_last_sync", e) from e

    @staticmethod
    async def delete(assistant_id: str, db: Session) -> bool:
        """Delete assistant and all related data in cascade"""
        try:
            assistant = db.query(Assistant).filter(Assistant.id == assistant_id).first()
            if not assistant:
                return False

            conversation_ids = [
                row.id for row in db.query(Conversation.id).filter(Conversation.assistant_id == assistant_id)
            ]
            if conversation_ids:
                db.query(Message).filter(Message.conversation_id.in_(conversation_ids)).delete(
                    synchronize_session=False
                )
            db.query(Conversation).filter(Conversation.assistant_id == assistant_id).delete(
                synchronize_session=False
            )
            db.query(Document).filter(Document.assistant_id == assistant_id).delete(
                synchronize_session=False
            )

            db.delete(assistant)
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to cascade delete assistant {assistant_id}: {e}")
            raise RepositoryWriteFailed("delete_assistant", e) from e
