"""Per-requester batch progress tracking.

Workers complete concurrently, so every read-modify-write of a requester's
status happens under that requester's lock. The latest status is kept in
memory as well as in the store while a run is active; the store is the
outward-facing copy and the only one kept once the run completes or fails.
"""

import asyncio
import logging
from datetime import datetime

from podmatch.core.errors import UpstreamUnavailableError
from podmatch.core.schemas import ProcessingStatus
from podmatch.core.stores import StatusStore

logger = logging.getLogger(__name__)

STATUS_KEY_PREFIX = "match_status:"


def status_key(requester_id: str) -> str:
    return f"{STATUS_KEY_PREFIX}{requester_id}"


def _progress(processed: int, total: int) -> float:
    if total == 0:
        return 0.0
    return processed / total


class StatusTracker:
    """Writes ProcessingStatus records for batch runs."""

    def __init__(self, store: StatusStore) -> None:
        self._store = store
        self._locks: dict[str, asyncio.Lock] = {}
        self._current: dict[str, ProcessingStatus] = {}

    def _lock(self, requester_id: str) -> asyncio.Lock:
        lock = self._locks.get(requester_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[requester_id] = lock
        return lock

    async def start(self, requester_id: str) -> None:
        """Mark a new batch as pending."""
        async with self._lock(requester_id):
            await self._write(requester_id, ProcessingStatus(status="pending"))

    async def begin(self, requester_id: str, total: int) -> None:
        """Mark the batch as processing once the candidate total is known."""
        async with self._lock(requester_id):
            await self._write(
                requester_id,
                ProcessingStatus(status="processing", total_count=total),
            )

    async def advance(self, requester_id: str) -> ProcessingStatus:
        """Count one finished candidate, successful or not.

        A failed store write is logged; the in-memory count still advances.
        """
        async with self._lock(requester_id):
            current = self._current.get(requester_id)
            if current is None:
                msg = f"advance() called before begin() for requester '{requester_id}'"
                raise RuntimeError(msg)
            processed = min(current.processed_count + 1, current.total_count)
            status = current.model_copy(update={
                "processed_count": processed,
                "progress": _progress(processed, current.total_count),
                "updated_at": datetime.now(),
            })
            try:
                await self._write(requester_id, status)
            except UpstreamUnavailableError:
                logger.warning(
                    "Could not persist progress for '%s' (%d/%d)",
                    requester_id, processed, current.total_count,
                    exc_info=True,
                )
            return status

    async def complete(self, requester_id: str) -> None:
        """Mark the batch as completed, keeping the final counts."""
        async with self._lock(requester_id):
            current = self._current.get(requester_id)
            processed = current.processed_count if current else 0
            total = current.total_count if current else 0
            progress = 1.0 if total == 0 else _progress(processed, total)
            await self._write(
                requester_id,
                ProcessingStatus(
                    status="completed",
                    progress=progress,
                    processed_count=processed,
                    total_count=total,
                ),
            )
            self._forget(requester_id)

    async def fail(self, requester_id: str, error: str) -> None:
        """Mark the batch as failed with a human-readable error."""
        async with self._lock(requester_id):
            current = self._current.get(requester_id)
            await self._write(
                requester_id,
                ProcessingStatus(
                    status="failed",
                    progress=current.progress if current else 0.0,
                    processed_count=current.processed_count if current else 0,
                    total_count=current.total_count if current else 0,
                    error=error,
                ),
            )
            self._forget(requester_id)

    async def get(self, requester_id: str) -> ProcessingStatus | None:
        """Return the stored status for a requester, or None if never started."""
        return await self._store.get(status_key(requester_id))

    def _forget(self, requester_id: str) -> None:
        # A finished run needs no in-memory state; the store keeps the record.
        self._current.pop(requester_id, None)
        self._locks.pop(requester_id, None)

    async def _write(self, requester_id: str, status: ProcessingStatus) -> None:
        self._current[requester_id] = status
        await self._store.put(status_key(requester_id), status)
        logger.debug(
            "Status %s: %s %d/%d",
            requester_id, status.status, status.processed_count, status.total_count,
        )
