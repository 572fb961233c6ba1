from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime


class DocumentMetadata(BaseModel):
    """Lightweight metadata derived from extracted text"""
    title: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)


class DocumentResponse(BaseModel):
    """Schema for document response"""
    id: str = Field(..., description="ID of the document")
    assistant_id: str = Field(..., description="Owning assistant")
    file_path: str = Field(..., description="Source file path, unique per assistant")
    filename: str = Field(..., description="Declared filename")
    original_filename: Optional[str] = None
    mime_type: str = Field(..., description="Media type of the source file")
    file_size: int = Field(default=0, description="Size of the source file in bytes")
    content: str = Field(default="", description="Extracted plain text", repr=False)
    doc_metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    checksum: str = Field(..., description="MD5 hex digest of the raw bytes")
    last_modified: Optional[datetime] = None
    processed: bool = False
    processed_at: Optional[datetime] = None
    external_file_id: Optional[str] = Field(default=None, description="Identifier in the remote knowledge store")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def title(self) -> str:
        return self.doc_metadata.title or self.filename

    class Config:
        from_attributes = True


class UploadReport(BaseModel):
    """Per-document outcome of an upload to the remote store"""
    document_id: Optional[str] = None
    filename: str
    success: bool
    file_id: Optional[str] = None
    error: Optional[str] = None
    size: int = 0
