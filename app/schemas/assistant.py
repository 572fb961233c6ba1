from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from app.db.models.assistant import ResponseStyle


class ThemeSettings(BaseModel):
    primary_color: str = Field(default="#2563eb", description="Primary UI color")
    logo_url: Optional[str] = Field(default=None, description="Optional logo shown in the chat UI")


class BehaviorSettings(BaseModel):
    response_style: ResponseStyle = Field(default=ResponseStyle.PROFESSIONAL, description="Tone of the answers")
    max_response_length: int = Field(default=500, gt=0, description="Token budget for a single answer")
    include_citations: bool = Field(default=True, description="Attach document citations to answers")


class AssistantSettings(BaseModel):
    theme: ThemeSettings = Field(default_factory=ThemeSettings)
    behavior: BehaviorSettings = Field(default_factory=BehaviorSettings)


class AssistantBase(BaseModel):
    """Base assistant attributes"""
    name: str = Field(..., min_length=1, description="Display name of the assistant")
    description: str = Field(..., description="Free-text description")
    welcome_message: Optional[str] = Field(default=None, description="Greeting shown when a chat starts")
    documents_folder: str = Field(..., description="Folder monitored for documents")


class AssistantCreate(AssistantBase):
    """Attributes for registering a new assistant"""
    organization_id: Optional[str] = Field(default=None, description="Owning organization")
    created_by: Optional[str] = Field(default=None, description="Staff member who created the assistant")
    settings: Optional[AssistantSettings] = None


class AssistantUpdate(BaseModel):
    """Attributes that can be updated; settings are merged section by section"""
    name: Optional[str] = None
    description: Optional[str] = None
    welcome_message: Optional[str] = None
    documents_folder: Optional[str] = None
    is_active: Optional[bool] = None
    settings: Optional[dict] = None


class AssistantResponse(AssistantBase):
    """Response model for assistants"""
    id: str = Field(..., description="Unique identifier for the assistant")
    slug: str = Field(..., description="URL-safe unique slug")
    organization_id: Optional[str] = None
    created_by: Optional[str] = None
    is_active: bool = Field(..., description="Whether the assistant accepts chats")
    settings: AssistantSettings = Field(default_factory=AssistantSettings)
    created_at: datetime = Field(..., description="When the assistant was created")
    updated_at: datetime = Field(..., description="When the assistant was last updated")
    last_document_sync: Optional[datetime] = Field(default=None, description="Last successful document sync")

    class Config:
        from_attributes = True


class AssistantCreateResult(BaseModel):
    """Outcome of registering an assistant, including the initial folder scan"""
    assistant: AssistantResponse
    processed_documents: int = 0
    initial_documents_processed: bool = False
