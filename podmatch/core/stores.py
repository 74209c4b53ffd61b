"""Datastore and status store interfaces, with SQLite implementations.

The engine only depends on the abstract classes. Callers construct a store
once and pass it to the orchestrator / batch runner. The SQLite stores run
each query on a worker thread so concurrent scorings never block the loop.
"""

import asyncio
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from pydantic import ValidationError

from podmatch.core import db
from podmatch.core.errors import InvalidFeatureError, UpstreamUnavailableError
from podmatch.core.schemas import (
    CandidateFeatures,
    CandidateRecord,
    CreatorRecord,
    ProcessingStatus,
    ProfileFeatures,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Stores may share one connection, which sqlite3 does not allow two threads
# to use at once.
_SQLITE_LOCK = threading.Lock()


async def _run(fn: Callable[..., T], *args: object) -> T:
    """Run a blocking db helper on a worker thread, off the event loop."""

    def call() -> T:
        with _SQLITE_LOCK:
            return fn(*args)

    return await asyncio.to_thread(call)


class CandidateStore(ABC):
    """Read/upsert access to show and creator records and their features."""

    @abstractmethod
    async def get_record(self, candidate_id: str) -> CandidateRecord | None:
        """Return the raw show record, or None if unknown."""

    @abstractmethod
    async def upsert_records(self, records: list[CandidateRecord]) -> None:
        """Insert or update show records."""

    @abstractmethod
    async def list_candidate_ids(
        self,
        topics: list[str] | None = None,
        exclude_ids: list[str] | None = None,
    ) -> list[str]:
        """Enumerate show ids eligible for a batch."""

    @abstractmethod
    async def list_candidate_features(self) -> list[CandidateFeatures]:
        """Return every analyzed show."""

    @abstractmethod
    async def get_candidate_features(
        self, candidate_id: str, max_age_days: int | None = None,
    ) -> CandidateFeatures | None:
        """Return cached show features, or None if missing or stale."""

    @abstractmethod
    async def put_candidate_features(self, features: CandidateFeatures) -> None:
        """Cache analyzed show features."""

    @abstractmethod
    async def get_creator_record(self, creator_id: str) -> CreatorRecord | None:
        """Return the raw creator record, or None if unknown."""

    @abstractmethod
    async def upsert_creator_records(self, records: list[CreatorRecord]) -> None:
        """Insert or update creator records."""

    @abstractmethod
    async def get_creator_features(self, creator_id: str) -> ProfileFeatures | None:
        """Return cached creator features, or None."""

    @abstractmethod
    async def put_creator_features(self, features: ProfileFeatures) -> None:
        """Cache analyzed creator features."""


class StatusStore(ABC):
    """Key-value store for batch processing status."""

    @abstractmethod
    async def get(self, key: str) -> ProcessingStatus | None:
        """Return the status stored under key, or None."""

    @abstractmethod
    async def put(self, key: str, status: ProcessingStatus) -> None:
        """Store status under key (last writer wins)."""


class SqliteCandidateStore(CandidateStore):
    """CandidateStore backed by the SQLite helpers in podmatch.core.db."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    async def get_record(self, candidate_id: str) -> CandidateRecord | None:
        try:
            return await _run(db.get_show, self._conn, candidate_id)
        except sqlite3.Error as e:
            msg = f"Failed to read show '{candidate_id}': {e}"
            raise UpstreamUnavailableError(msg) from e

    async def upsert_records(self, records: list[CandidateRecord]) -> None:
        try:
            written = await _run(db.upsert_shows, self._conn, records)
        except sqlite3.Error as e:
            msg = f"Failed to upsert {len(records)} shows: {e}"
            raise UpstreamUnavailableError(msg) from e
        logger.debug("Upserted %d show records", written)

    async def list_candidate_ids(
        self,
        topics: list[str] | None = None,
        exclude_ids: list[str] | None = None,
    ) -> list[str]:
        try:
            return await _run(db.list_show_ids, self._conn, topics, exclude_ids)
        except sqlite3.Error as e:
            msg = f"Failed to list show ids: {e}"
            raise UpstreamUnavailableError(msg) from e

    async def list_candidate_features(self) -> list[CandidateFeatures]:
        try:
            rows = await _run(db.list_features, self._conn, db.SHOW_FEATURES)
        except sqlite3.Error as e:
            msg = f"Failed to list show features: {e}"
            raise UpstreamUnavailableError(msg) from e

        result: list[CandidateFeatures] = []
        for entity_id, raw in rows:
            try:
                result.append(CandidateFeatures.model_validate_json(raw))
            except ValidationError:
                logger.warning(
                    "Skipping malformed stored features for show '%s'", entity_id,
                    exc_info=True,
                )
        return result

    async def get_candidate_features(
        self, candidate_id: str, max_age_days: int | None = None,
    ) -> CandidateFeatures | None:
        try:
            raw = await _run(
                db.load_features, self._conn, candidate_id, db.SHOW_FEATURES, max_age_days,
            )
        except sqlite3.Error as e:
            msg = f"Failed to read features for show '{candidate_id}': {e}"
            raise UpstreamUnavailableError(msg) from e
        if raw is None:
            return None
        try:
            return CandidateFeatures.model_validate_json(raw)
        except ValidationError as e:
            msg = f"Stored features for show '{candidate_id}' are malformed: {e}"
            raise InvalidFeatureError(msg) from e

    async def put_candidate_features(self, features: CandidateFeatures) -> None:
        try:
            await _run(
                db.save_features,
                self._conn,
                features.candidate_id,
                db.SHOW_FEATURES,
                features.model_dump_json(),
                features.analyzed_at,
            )
        except sqlite3.Error as e:
            msg = f"Failed to cache features for show '{features.candidate_id}': {e}"
            raise UpstreamUnavailableError(msg) from e

    async def get_creator_record(self, creator_id: str) -> CreatorRecord | None:
        try:
            return await _run(db.get_creator, self._conn, creator_id)
        except sqlite3.Error as e:
            msg = f"Failed to read creator '{creator_id}': {e}"
            raise UpstreamUnavailableError(msg) from e

    async def upsert_creator_records(self, records: list[CreatorRecord]) -> None:
        try:
            for record in records:
                await _run(db.upsert_creator, self._conn, record)
        except sqlite3.Error as e:
            msg = f"Failed to upsert {len(records)} creators: {e}"
            raise UpstreamUnavailableError(msg) from e

    async def get_creator_features(self, creator_id: str) -> ProfileFeatures | None:
        try:
            raw = await _run(db.load_features, self._conn, creator_id, db.CREATOR_FEATURES)
        except sqlite3.Error as e:
            msg = f"Failed to read features for creator '{creator_id}': {e}"
            raise UpstreamUnavailableError(msg) from e
        if raw is None:
            return None
        try:
            return ProfileFeatures.model_validate_json(raw)
        except ValidationError as e:
            msg = f"Stored features for creator '{creator_id}' are malformed: {e}"
            raise InvalidFeatureError(msg) from e

    async def put_creator_features(self, features: ProfileFeatures) -> None:
        try:
            await _run(
                db.save_features,
                self._conn,
                features.creator_id,
                db.CREATOR_FEATURES,
                features.model_dump_json(),
                datetime.now(),
            )
        except sqlite3.Error as e:
            msg = f"Failed to cache features for creator '{features.creator_id}': {e}"
            raise UpstreamUnavailableError(msg) from e


class SqliteStatusStore(StatusStore):
    """StatusStore backed by the processing_status table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    async def get(self, key: str) -> ProcessingStatus | None:
        try:
            return await _run(db.get_status, self._conn, key)
        except sqlite3.Error as e:
            msg = f"Failed to read status '{key}': {e}"
            raise UpstreamUnavailableError(msg) from e

    async def put(self, key: str, status: ProcessingStatus) -> None:
        try:
            await _run(db.put_status, self._conn, key, status)
        except sqlite3.Error as e:
            msg = f"Failed to write status '{key}': {e}"
            raise UpstreamUnavailableError(msg) from e
