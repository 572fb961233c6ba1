from sqlalchemy import Column, String, Text, ForeignKey, DateTime, Integer, Boolean, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
import enum

from app.db.base_class import BaseModel


class DocumentType(str, enum.Enum):
    """Media types the extractor can turn into text"""
    PDF = "application/pdf"
    DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    TXT = "text/plain"
    MARKDOWN = "text/markdown"


class Document(BaseModel):
    """Processed representation of one source file owned by an assistant"""
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("assistant_id", "file_path", name="uq_documents_assistant_path"),
    )

    assistant_id = Column(String(36), ForeignKey("assistants.id", ondelete="CASCADE"), nullable=False, index=True)
    file_path = Column(String(1024), nullable=False)
    filename = Column(String(255), nullable=False)
    original_filename = Column(String(255), nullable=True)
    mime_type = Column(String(128), nullable=False)
    file_size = Column(Integer, default=0)
    content = Column(Text, nullable=False, default="")
    # "metadata" is reserved on declarative classes
    doc_metadata = Column(JSON, nullable=False, default=dict)
    checksum = Column(String(64), nullable=False)
    last_modified = Column(DateTime, nullable=True)
    processed = Column(Boolean, default=False)
    processed_at = Column(DateTime, nullable=True)
    # Identifier returned by the remote knowledge store; set once mirrored
    external_file_id = Column(String(255), nullable=True)

    assistant = relationship("Assistant", back_populates="documents")
