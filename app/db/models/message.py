from sqlalchemy import Column, String, Text, ForeignKey, DateTime, Integer, JSON
from sqlalchemy.orm import relationship
import enum

from app.db.base_class import BaseModel, utcnow


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """Message SQLAlchemy model; position gives the append order"""
    __tablename__ = "messages"

    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    role = Column(String(16), nullable=False, default=MessageRole.USER.value)
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=utcnow)
    citations = Column(JSON, nullable=True)
    response_time_ms = Column(Integer, nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
