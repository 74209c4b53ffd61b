"""Shared in-memory collaborators for pipeline tests."""

from datetime import datetime, timedelta

import pytest

from podmatch.core.errors import UpstreamUnavailableError
from podmatch.core.schemas import (
    CandidateFeatures,
    CandidateRecord,
    CreatorRecord,
    ProcessingStatus,
    ProfileFeatures,
)
from podmatch.core.stores import CandidateStore, StatusStore


class MemoryStatusStore(StatusStore):
    """Dict-backed status store that records every write."""

    def __init__(self) -> None:
        self.data: dict[str, ProcessingStatus] = {}
        self.history: list[ProcessingStatus] = []
        self.fail_writes = False

    async def get(self, key: str) -> ProcessingStatus | None:
        return self.data.get(key)

    async def put(self, key: str, status: ProcessingStatus) -> None:
        if self.fail_writes:
            msg = "status store down"
            raise UpstreamUnavailableError(msg)
        self.data[key] = status
        self.history.append(status)


class MemoryCandidateStore(CandidateStore):
    """Dict-backed candidate store."""

    def __init__(self) -> None:
        self.records: dict[str, CandidateRecord] = {}
        self.features: dict[str, CandidateFeatures] = {}
        self.creators: dict[str, CreatorRecord] = {}
        self.creator_features: dict[str, ProfileFeatures] = {}
        self.upserted: list[str] = []

    async def get_record(self, candidate_id: str) -> CandidateRecord | None:
        return self.records.get(candidate_id)

    async def upsert_records(self, records: list[CandidateRecord]) -> None:
        for r in records:
            self.records[r.id] = r
            self.upserted.append(r.id)

    async def list_candidate_ids(
        self,
        topics: list[str] | None = None,
        exclude_ids: list[str] | None = None,
    ) -> list[str]:
        wanted = {t.lower() for t in topics or []}
        excluded = set(exclude_ids or [])
        return sorted(
            r.id for r in self.records.values()
            if r.id not in excluded and wanted <= {c.lower() for c in r.categories}
        )

    async def list_candidate_features(self) -> list[CandidateFeatures]:
        return [self.features[k] for k in sorted(self.features)]

    async def get_candidate_features(
        self, candidate_id: str, max_age_days: int | None = None,
    ) -> CandidateFeatures | None:
        features = self.features.get(candidate_id)
        if features is None or max_age_days is None:
            return features
        if features.analyzed_at < datetime.now() - timedelta(days=max_age_days):
            return None
        return features

    async def put_candidate_features(self, features: CandidateFeatures) -> None:
        self.features[features.candidate_id] = features

    async def get_creator_record(self, creator_id: str) -> CreatorRecord | None:
        return self.creators.get(creator_id)

    async def upsert_creator_records(self, records: list[CreatorRecord]) -> None:
        for r in records:
            self.creators[r.id] = r

    async def get_creator_features(self, creator_id: str) -> ProfileFeatures | None:
        return self.creator_features.get(creator_id)

    async def put_creator_features(self, features: ProfileFeatures) -> None:
        self.creator_features[features.creator_id] = features


@pytest.fixture
def status_store() -> MemoryStatusStore:
    return MemoryStatusStore()


@pytest.fixture
def memory_store() -> MemoryCandidateStore:
    return MemoryCandidateStore()
