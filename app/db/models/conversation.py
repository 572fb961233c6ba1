from sqlalchemy import Column, String, Text, ForeignKey, DateTime, Integer
from sqlalchemy.orm import relationship

from app.db.base_class import BaseModel, utcnow


class Conversation(BaseModel):
    """Conversation SQLAlchemy model"""
    __tablename__ = "conversations"

    assistant_id = Column(String(36), ForeignKey("assistants.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(64), nullable=False, index=True)
    started_at = Column(DateTime, default=utcnow)
    last_message_at = Column(DateTime, default=utcnow)
    feedback_rating = Column(Integer, nullable=True)
    feedback_comment = Column(Text, nullable=True)
    feedback_submitted_at = Column(DateTime, nullable=True)

    assistant = relationship("Assistant", back_populates="conversations")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.position",
    )
