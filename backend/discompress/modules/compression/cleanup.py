"""Deferred deletion of job files.

Files are removed a fixed delay after delivery so slow downloads can
finish reading them. Deletion is best-effort: a file that is already
gone or cannot be removed is skipped.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


def remove_files(paths: Iterable[Optional[Path]]) -> int:
    """Unlink every path, ignoring missing files and permission errors.

    Returns:
        Number of files actually removed
    """
    removed = 0
    for path in paths:
        if path is None:
            continue
        try:
            Path(path).unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.debug("Could not remove temp file", extra={"path": str(path), "error": str(e)})
            continue
        removed += 1
    return removed


class CleanupScheduler:
    """One-shot delayed deletion task per job."""

    def __init__(self, delay_seconds: float = 12.0):
        self.delay_seconds = delay_seconds
        self._tasks: dict[asyncio.Task, list[Path]] = {}

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, paths: Iterable[Optional[Path]], job_id: Optional[str] = None) -> asyncio.Task:
        """Delete ``paths`` after the configured delay."""
        targets = [Path(p) for p in dict.fromkeys(paths) if p is not None]
        task = asyncio.get_running_loop().create_task(self._remove_later(targets, job_id))
        self._tasks[task] = targets
        task.add_done_callback(lambda done: self._tasks.pop(done, None))
        return task

    async def _remove_later(self, paths: list[Path], job_id: Optional[str]) -> None:
        await asyncio.sleep(self.delay_seconds)
        removed = await asyncio.to_thread(remove_files, paths)
        logger.info(
            "Temp files cleaned up",
            extra={"job_id": job_id, "scheduled": len(paths), "removed": removed},
        )

    async def drain(self) -> None:
        """Wait for every scheduled deletion to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def flush(self) -> None:
        """Delete everything still scheduled right away (used at shutdown)."""
        pending = list(self._tasks.items())
        for task, _ in pending:
            task.cancel()
        await asyncio.gather(*(task for task, _ in pending), return_exceptions=True)
        for _, paths in pending:
            remove_files(paths)
