"""
Client for the hosted chat completion service.

Builds the service's chat payload from OpenAI-style messages and normalizes
the several response shapes the service has been observed to return.
"""

from typing import Any, Dict, List, Optional
from enum import Enum
import logging

import requests
from pydantic import BaseModel, Field

from app.core.config import settings
from app.core.exceptions import RemoteResponseUnrecognized, RemoteServiceError
from app.core.executor import run_sync

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Message roles in the OpenAI Chat API format."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    role: Role
    content: str


class CompletionOptions(BaseModel):
    """Options for a single completion request."""
    temperature: float = Field(default=settings.REMOTE_TEMPERATURE, ge=0, le=1)
    max_tokens: int = Field(default=1000, gt=0)
    data_sources: List[str] = Field(default_factory=list, description="Remote file IDs to ground the answer on")
    skip_rag: bool = Field(default=True, description="Skip remote retrieval; context is in the prompt")
    prompt: Optional[str] = None


class CompletionResult(BaseModel):
    content: str
    model: str
    raw_response: Optional[Any] = None


def extract_response_text(data: Any) -> str:
    """
    Pull the generated text out of a chat response body.

    Tried in order: data.content, content, message.content,
    choices[0].message.content, and data when it is itself a string.

    Raises:
        RemoteResponseUnrecognized: If no shape yields a non-empty string
    """
    if not isinstance(data, dict):
        raise RemoteResponseUnrecognized(f"Unexpected response type: {type(data).__name__}")

    inner = data.get("data")
    message = data.get("message")
    choices = data.get("choices")

    candidates = [
        inner.get("content") if isinstance(inner, dict) else None,
        data.get("content"),
        message.get("content") if isinstance(message, dict) else None,
    ]
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        first_message = choices[0].get("message")
        if isinstance(first_message, dict):
            candidates.append(first_message.get("content"))
    candidates.append(inner)

    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate

    raise RemoteResponseUnrecognized(f"No response text in keys: {sorted(data.keys())}")


class RemoteChatClient:
    """Sends chat requests to the hosted completion service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        assistant_id: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.REMOTE_API_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.REMOTE_API_KEY
        self.assistant_id = assistant_id if assistant_id is not None else settings.REMOTE_ASSISTANT_ID
        self.model = model or settings.REMOTE_MODEL_ID
        self.timeout = timeout or settings.REMOTE_REQUEST_TIMEOUT

    def build_payload(self, messages: List[ChatMessage], options: CompletionOptions) -> Dict[str, Any]:
        prompt = options.prompt
        if prompt is None:
            user_messages = [m.content for m in messages if m.role == Role.USER]
            prompt = user_messages[-1] if user_messages else ""

        return {
            "data": {
                "temperature": options.temperature,
                "max_tokens": options.max_tokens,
                "dataSources": [{"id": file_id} for file_id in options.data_sources],
                "messages": [{"role": m.role.value, "content": m.content} for m in messages],
                "options": {
                    "assistantId": self.assistant_id,
                    "model": {"id": self.model},
                    "ragOnly": False,
                    "skipRag": options.skip_rag,
                    "prompt": prompt,
                },
            }
        }

    async def complete(
        self,
        messages: List[ChatMessage],
        options: Optional[CompletionOptions] = None
    ) -> CompletionResult:
        """
        Send a chat request and return the generated text.

        Args:
            messages: Conversation, system prompt first
            options: Completion options

        Returns:
            CompletionResult with the service's answer

        Raises:
            RemoteServiceError: Network failure, timeout or non-success status
            RemoteResponseUnrecognized: The body carried no recognizable text
        """
        if options is None:
            options = CompletionOptions()

        payload = self.build_payload(messages, options)
        logger.info(
            f"Sending chat request: {len(messages)} messages, "
            f"{len(options.data_sources)} data sources, skip_rag={options.skip_rag}"
        )
        data = await run_sync(self._post, payload)
        content = extract_response_text(data)
        return CompletionResult(content=content, model=self.model, raw_response=data)

    def _post(self, payload: Dict[str, Any]) -> Any:
        try:
            response = requests.post(
                f"{self.base_url}/chat",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise RemoteServiceError(f"Chat request timed out after {self.timeout:g} seconds") from e
        except requests.RequestException as e:
            raise RemoteServiceError(f"Chat request failed: {e}") from e

        if not response.ok:
            logger.error(f"Chat service error {response.status_code}: {response.text[:500]}")
            raise RemoteServiceError(f"Chat service returned {response.status_code}", response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise RemoteResponseUnrecognized("Chat service returned a non-JSON body") from e
