from typing import List, Literal
from pydantic_settings import BaseSettings
import os

class Settings(BaseSettings):
    # App Settings
    APP_NAME: str = "Campus Assist"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./campus_assist.db")

    # Remote chat / RAG provider
    REMOTE_API_BASE_URL: str = os.getenv("REMOTE_API_BASE_URL", "https://prod-api.vanderbilt.ai")
    REMOTE_API_KEY: str = os.getenv("REMOTE_API_KEY", "")
    REMOTE_ASSISTANT_ID: str = os.getenv("REMOTE_ASSISTANT_ID", "")
    REMOTE_MODEL_ID: str = "gpt-4o-mini"
    REMOTE_KNOWLEDGE_BASE: str = "student_support"
    REMOTE_UPLOAD_TAGS: str = "student_handbook,financial_aid"
    REMOTE_REQUEST_TIMEOUT: float = 30.0
    REMOTE_UPLOAD_TIMEOUT: float = 60.0
    REMOTE_UPLOAD_CONCURRENCY: int = 3
    # Seconds to wait after fresh uploads before issuing a RAG query
    REMOTE_PROCESSING_WAIT_SECONDS: float = 5.0
    REMOTE_TEMPERATURE: float = 0.7

    @property
    def REMOTE_UPLOAD_TAG_LIST(self) -> List[str]:
        return [tag.strip() for tag in self.REMOTE_UPLOAD_TAGS.split(",") if tag.strip()]

    # Context assembly
    CONTEXT_STRATEGY: Literal["embedded", "remote_rag"] = "embedded"
    EXCERPT_CHARS_BEFORE: int = 1000
    EXCERPT_CHARS_AFTER: int = 4000
    EXCERPT_MAX_LENGTH: int = 4500
    EXCERPT_FALLBACK_OFFSET: float = 0.6
    CHAT_HISTORY_LIMIT: int = 5

    # Sync / watcher
    NOTIFICATION_WEBHOOK_URL: str = ""
    WORKER_THREADS: int = 8

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
