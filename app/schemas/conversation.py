from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from app.db.models.message import MessageRole


class Citation(BaseModel):
    """Pointer from an answer to the document excerpt that supports it"""
    document_id: str = Field(..., description="ID of the cited document")
    filename: str = Field(..., description="Filename of the cited document")
    excerpt: str = Field(..., description="Bounded excerpt from the document")
    relevance_score: float = Field(..., ge=0, le=1, description="Relevance of the excerpt")


class MessageResponse(BaseModel):
    """Response model for messages"""
    id: str = Field(..., description="Unique identifier for the message")
    role: MessageRole = Field(..., description="user or assistant")
    content: str = Field(..., description="Content of the message")
    timestamp: datetime = Field(..., description="When the message was appended")
    citations: Optional[List[Citation]] = Field(default=None, description="Citations attached to an answer")
    response_time_ms: Optional[int] = Field(default=None, description="Time taken to generate an answer")

    class Config:
        from_attributes = True


class FeedbackRequest(BaseModel):
    rating: int = Field(..., description="Satisfaction rating from 1 to 5")
    comment: Optional[str] = None


class ConversationResponse(BaseModel):
    """Response model for conversations"""
    id: str = Field(..., description="Unique identifier for the conversation")
    assistant_id: str = Field(..., description="Assistant the conversation belongs to")
    session_id: str = Field(..., description="Client-chosen session identifier")
    messages: List[MessageResponse] = Field(default_factory=list)
    started_at: datetime
    last_message_at: datetime
    feedback_rating: Optional[int] = None
    feedback_comment: Optional[str] = None
    feedback_submitted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AssistantSummary(BaseModel):
    name: str
    welcome_message: Optional[str] = None


class ChatReply(BaseModel):
    """Result of handling one chat message"""
    conversation_id: str
    session_id: str
    message: MessageResponse
    assistant: AssistantSummary


class ChatResult(BaseModel):
    """Generated answer plus the material it was grounded on"""
    response: str
    citations: List[Citation] = Field(default_factory=list)
    response_time_ms: int = Field(..., ge=0, description="Wall time spent generating the answer")
    strategy: str = Field(..., description="Context strategy used: embedded or remote_rag")
    degraded: bool = Field(default=False, description="True when a local fallback replaced the remote answer")


class AssistantTestResult(BaseModel):
    """Answer to a staff test question, with a rough confidence estimate"""
    answer: str
    citations: List[Citation] = Field(default_factory=list)
    response_time_ms: int
    confidence: float = Field(..., ge=0, le=1)
