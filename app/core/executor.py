import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial

from app.core.config import settings

IO_POOL = ThreadPoolExecutor(max_workers=settings.WORKER_THREADS, thread_name_prefix="campus-assist-io")


def run_sync(func, *args, **kwargs):
    """
    Run blocking code off the current event loop.

    Used for PDF/DOCX parsing, file hashing and outbound HTTP calls so the
    watcher coordinators keep draining their queues while a large file parses.
    """
    loop = asyncio.get_running_loop()
    return loop.run_in_executor(IO_POOL, partial(func, *args, **kwargs))
