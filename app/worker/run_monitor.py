import asyncio
import logging
import signal
from typing import Callable, Dict

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import FolderNotFound
from app.core.executor import IO_POOL
from app.db.database import SessionLocal, init_db
from app.repositories.assistant_repository import AssistantRepository
from app.services.sync.folder_sync import FolderSynchronizer
from app.services.sync.notifier import Notifier
from app.services.sync.watcher import ChangeWatcher

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


async def start_all(
    synchronizer: FolderSynchronizer,
    watcher: ChangeWatcher,
    session_factory: Callable[[], Session] = SessionLocal,
) -> Dict[str, int]:
    """
    Scan and watch the folder of every active assistant.

    Returns:
        Processed document count per assistant ID
    """
    with session_factory() as db:
        assistants = await AssistantRepository.list_all(db)

    processed: Dict[str, int] = {}
    for assistant in assistants:
        if not assistant.is_active or not assistant.documents_folder:
            continue
        try:
            processed[assistant.id] = await synchronizer.sync_folder(assistant.id, assistant.documents_folder)
        except FolderNotFound as e:
            logger.warning(f"Skipping initial sync for {assistant.name}: {e}")
            processed[assistant.id] = 0
        await watcher.start_monitoring(assistant.id, assistant.documents_folder)

    logger.info(f"Monitoring {len(processed)} assistants")
    return processed


async def main() -> None:
    init_db()
    synchronizer = FolderSynchronizer(notifier=Notifier())
    watcher = ChangeWatcher(synchronizer)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await start_all(synchronizer, watcher)
        logger.info(f"{settings.APP_NAME} document monitor running")
        await stop.wait()
    finally:
        logger.info("Shutting down document monitor")
        await watcher.shutdown()
        IO_POOL.shutdown(wait=True)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
