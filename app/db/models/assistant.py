from sqlalchemy import Column, String, Text, Boolean, DateTime, JSON
from sqlalchemy.orm import relationship
import enum

from app.db.base_class import BaseModel


class ResponseStyle(str, enum.Enum):
    """Tone the assistant is instructed to answer in"""
    FORMAL = "formal"
    FRIENDLY = "friendly"
    PROFESSIONAL = "professional"


DEFAULT_ASSISTANT_SETTINGS = {
    "theme": {
        "primary_color": "#2563eb",
        "logo_url": None,
    },
    "behavior": {
        "response_style": ResponseStyle.PROFESSIONAL.value,
        "max_response_length": 500,
        "include_citations": True,
    },
}


class Assistant(BaseModel):
    """Assistant model: a named configuration paired with a monitored folder"""
    __tablename__ = "assistants"

    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False, default="")
    welcome_message = Column(Text, nullable=True)
    organization_id = Column(String(64), nullable=True, index=True)
    created_by = Column(String(64), nullable=True)
    documents_folder = Column(String(1024), nullable=True)
    is_active = Column(Boolean, default=True)
    settings = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_ASSISTANT_SETTINGS))
    last_document_sync = Column(DateTime, nullable=True)

    documents = relationship("Document", back_populates="assistant", cascade="all, delete-orphan")
    conversations = relationship("Conversation", back_populates="assistant", cascade="all, delete-orphan")
