from typing import List, Optional, Dict, Any
import logging
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import RepositoryWriteFailed
from app.db.models.document import Document
from app.schemas.document import DocumentResponse

logger = logging.getLogger(__name__)

class DocumentRepository:
    """
    Repository for document operations.

    Documents are keyed by (assistant_id, file_path); the unique constraint on
    the table guarantees that a path maps to at most one record.
    """

    @staticmethod
    async def upsert(
        assistant_id: str,
        file_path: str,
        fields: Dict[str, Any],
        db: Session
    ) -> DocumentResponse:
        """
        Insert a document for the key, or merge fields into the existing one.

        Args:
            assistant_id: Owning assistant ID
            file_path: Source file path (natural key within the assistant)
            fields: Column values to set
            db: Database session

        Returns:
            The stored document
        """
        try:
            document = db.query(Document).filter(
                Document.assistant_id == assistant_id,
                Document.file_path == file_path
            ).first()

            if document is None:
                document = Document(assistant_id=assistant_id, file_path=file_path)
                db.add(document)
                logger.debug(f"Inserting document {file_path} for assistant {assistant_id}")

            for key, value in fields.items():
                if key in ("id", "assistant_id", "file_path"):
                    continue
                setattr(document, key, value)

            db.commit()
            db.refresh(document)
            return DocumentResponse.model_validate(document)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to upsert document {file_path} for assistant {assistant_id}: {e}")
            raise RepositoryWriteFailed("upsert", e) from e

    @staticmethod
    async def get_by_path(assistant_id: str, file_path: str, db: Session) -> Optional[DocumentResponse]:
        """Get the document stored for a path, if any"""
        try:
            document = db.query(Document).filter(
                Document.assistant_id == assistant_id,
                Document.file_path == file_path
            ).first()
            return DocumentResponse.model_validate(document) if document else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to get document {file_path} for assistant {assistant_id}: {e}")
            raise

    @staticmethod
    async def get_by_id(document_id: str, db: Session) -> Optional[DocumentResponse]:
        try:
            document = db.query(Document).filter(Document.id == document_id).first()
            return DocumentResponse.model_validate(document) if document else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to get document by ID {document_id}: {e}")
            raise

    @staticmethod
    async def list_by_assistant(assistant_id: str, db: Session) -> List[DocumentResponse]:
        """
        List all documents of an assistant, most recently modified first.

        Args:
            assistant_id: Assistant ID
            db: Database session

        Returns:
            List of documents
        """
        try:
            documents = (
                db.query(Document)
                .filter(Document.assistant_id == assistant_id)
                .order_by(Document.last_modified.desc(), Document.file_path)
                .all()
            )
            return [DocumentResponse.model_validate(doc) for doc in documents]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list documents for assistant {assistant_id}: {e}")
            raise

    @staticmethod
    async def delete_by_path(assistant_id: str, file_path: str, db: Session) -> bool:
        """
        Delete the document stored for a path.

        Returns:
            True if a document was deleted, False otherwise
        """
        try:
            document = db.query(Document).filter(
                Document.assistant_id == assistant_id,
                Document.file_path == file_path
            ).first()
            if not document:
                return False

            db.delete(document)
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete document {file_path} for assistant {assistant_id}: {e}")
            raise RepositoryWriteFailed("delete_by_path", e) from e

    @staticmethod
    async def delete_all_for_assistant(assistant_id: str, db: Session) -> int:
        """Delete every document of an assistant and return how many were removed"""
        try:
            deleted = db.query(Document).filter(Document.assistant_id == assistant_id).delete(
                synchronize_session=False
            )
            db.commit()
            return deleted
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete documents for assistant {assistant_id}: {e}")
            raise RepositoryWriteFailed("delete_all_for_assistant", e) from e

    @staticmethod
    async def set_external_id(document_id: str, external_id: str, db: Session) -> bool:
        """Persist the identifier the remote knowledge store returned for a document"""
        try:
            document = db.query(Document).filter(Document.id == document_id).first()
            if not document:
                return False

            document.external_file_id = external_id
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to store external ID for document {document_id}: {e}")
            raise RepositoryWriteFailed("set_external_id", e) from e
