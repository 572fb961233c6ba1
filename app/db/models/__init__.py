from app.db.models.assistant import Assistant, ResponseStyle, DEFAULT_ASSISTANT_SETTINGS
from app.db.models.document import Document, DocumentType
from app.db.models.conversation import Conversation
from app.db.models.message import Message, MessageRole

__all__ = [
    "Assistant",
    "ResponseStyle",
    "DEFAULT_ASSISTANT_SETTINGS",
    "Document",
    "DocumentType",
    "Conversation",
    "Message",
    "MessageRole",
]
