"""
Fire-and-forget side effects (emails, avatar file removal).

Nothing on the request path waits on these; a failure is logged from the
future's done-callback and never reaches the caller.
"""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="background")

    def submit(self, fn, *args, description: str = "", **kwargs) -> None:
        label = description or getattr(fn, "__name__", repr(fn))
        future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(lambda f: self._report(f, label))

    @staticmethod
    def _report(future: Future, label: str) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Background task %s failed", label, exc_info=exc)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
