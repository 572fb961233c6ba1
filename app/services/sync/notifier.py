from typing import Optional
import enum
import logging

import requests

from app.core.config import settings
from app.core.executor import run_sync

logger = logging.getLogger(__name__)


class ChangeAction(str, enum.Enum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class Notifier:
    """
    Fire-and-forget notification of document changes.

    Delivery problems are logged and dropped; they never reach the sync path.
    """

    def __init__(self, webhook_url: Optional[str] = None, timeout: float = 10.0):
        self.webhook_url = webhook_url if webhook_url is not None else settings.NOTIFICATION_WEBHOOK_URL
        self.timeout = timeout

    async def notify(self, assistant_id: str, file_path: str, action: ChangeAction) -> None:
        try:
            logger.info(f"Notification: {action.value} - {file_path} for assistant {assistant_id}")
            if self.webhook_url:
                await run_sync(self._post, assistant_id, file_path, action)
        except Exception as e:
            logger.warning(f"Failed to deliver {action.value} notification for {file_path}: {e}")

    def _post(self, assistant_id: str, file_path: str, action: ChangeAction) -> None:
        response = requests.post(
            self.webhook_url,
            json={"assistant_id": assistant_id, "file_path": file_path, "action": action.value},
            timeout=self.timeout,
        )
        response.raise_for_status()
