"""Tiered matching: local candidates first, external catalog when they fall short.

Data flow:
  1. Rank the local pool
  2. Sufficiency check (skipped when force_catalog_search is set)
  3. Catalog search, bounded by a timeout, one tenacity retry on rate limiting
  4. Ingest new records: upsert, analyze under a timeout (or reuse fresh
     cached features), cache
  5. Rank ingested shows, merge with local results, re-sort, truncate

Any catalog or ingest failure degrades to the local results.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from podmatch.analysis.base import Analyzer
from podmatch.catalog.base import CatalogProvider
from podmatch.core.config import CatalogConfig, Settings, TieredConfig
from podmatch.core.errors import (
    InvalidFeatureError,
    MatchingError,
    RateLimitedError,
    UpstreamUnavailableError,
)
from podmatch.core.schemas import (
    CandidateFeatures,
    CandidateRecord,
    CatalogSearchFilters,
    MatchFilters,
    PodcastMatch,
    PreferenceVector,
)
from podmatch.core.stores import CandidateStore
from podmatch.pipeline.ranker import rank_candidates, sort_matches

logger = logging.getLogger(__name__)


class MatchingStats:
    """Summary of a single tiered matching call."""

    def __init__(
        self,
        local_count: int = 0,
        catalog_count: int = 0,
        catalog_queried: bool = False,
        degraded_error: str | None = None,
        elapsed_ms: float = 0.0,
    ) -> None:
        self.local_count = local_count
        self.catalog_count = catalog_count
        self.catalog_queried = catalog_queried
        self.degraded_error = degraded_error
        self.elapsed_ms = elapsed_ms


def is_sufficient(matches: list[PodcastMatch], config: TieredConfig) -> bool:
    """Decide whether local results are good enough to skip the catalog."""
    if len(matches) < config.min_matches:
        return False
    if not any(m.overall_score >= config.min_score for m in matches):
        return False
    mean_confidence = sum(m.confidence for m in matches) / len(matches)
    if mean_confidence < config.min_confidence:
        return False
    topics = {t.lower() for m in matches for t in m.suggested_topics}
    return len(topics) >= config.min_topic_diversity


def rate_limit_wait(max_delay: float) -> Callable[[RetryCallState], float]:
    """tenacity wait strategy: the advertised Retry-After, capped at max_delay."""

    def wait(retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = error.retry_after if isinstance(error, RateLimitedError) else 0.0
        return min(retry_after, max_delay)

    return wait


def build_search_filters(
    prefs: PreferenceVector,
    filters: MatchFilters,
    catalog_config: CatalogConfig,
    tiered_config: TieredConfig,
) -> CatalogSearchFilters:
    """Translate preferences into catalog query parameters."""
    return CatalogSearchFilters(
        length_min=10 if prefs.preferred_length == "short" else 20,
        length_max=90 if prefs.preferred_length == "long" else 60,
        language=catalog_config.language,
        limit=filters.max_results or tiered_config.max_catalog_results,
    )


class TieredMatcher:
    """Ranks local shows and falls back to the external catalog when needed."""

    def __init__(
        self,
        store: CandidateStore,
        catalog: CatalogProvider,
        analyzer: Analyzer,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or Settings()
        self._store = store
        self._catalog = catalog
        self._analyzer = analyzer
        self._tiered = settings.tiered
        self._catalog_config = settings.catalog
        self._freshness_days = settings.analyzer.freshness_days
        self._analysis_timeout = settings.analyzer.timeout_seconds
        self.last_stats: MatchingStats | None = None

    async def find_matches(
        self,
        prefs: PreferenceVector,
        filters: MatchFilters | None = None,
    ) -> list[PodcastMatch]:
        """Return ranked matches for a preference vector.

        Local datastore failures propagate. Catalog failures do not: the
        local results are returned and the error is kept in last_stats.
        """
        started = time.perf_counter()
        filters = filters or MatchFilters()
        stats = MatchingStats()
        self.last_stats = stats

        pool = await self._store.list_candidate_features()
        local = rank_candidates(pool, prefs, filters)
        stats.local_count = len(local)

        if not self._tiered.force_catalog_search and is_sufficient(local, self._tiered):
            logger.info("Local results sufficient (%d matches), skipping catalog", len(local))
            return self._finish(local, stats, started)

        if not prefs.topics:
            logger.info("No preference topics to search the catalog with")
            return self._finish(local, stats, started)

        stats.catalog_queried = True
        local_ids = {f.candidate_id for f in pool}
        try:
            catalog_matches = await self._match_from_catalog(prefs, filters, local_ids)
        except (UpstreamUnavailableError, asyncio.TimeoutError) as e:
            reason = str(e) or type(e).__name__
            logger.warning(
                "Catalog search failed, returning %d local results: %s", len(local), reason,
            )
            stats.degraded_error = reason
            return self._finish(local, stats, started)

        # Local computation wins for any id present on both sides.
        seen = {m.candidate_id for m in local}
        added = [m for m in catalog_matches if m.candidate_id not in seen]
        stats.catalog_count = len(added)

        merged = sort_matches(local + added)
        if filters.max_results is not None:
            merged = merged[:filters.max_results]
        return self._finish(merged, stats, started)

    async def _match_from_catalog(
        self,
        prefs: PreferenceVector,
        filters: MatchFilters,
        local_ids: set[str],
    ) -> list[PodcastMatch]:
        query = " ".join(prefs.topics)
        search_filters = build_search_filters(
            prefs, filters, self._catalog_config, self._tiered,
        )
        logger.info("Searching %s for '%s'", self._catalog.provider_id, query)
        records = await self._search_with_retry(query, search_filters)
        logger.info("Catalog returned %d records", len(records))

        new_records = list({r.id: r for r in records if r.id not in local_ids}.values())
        if not new_records:
            return []
        await self._store.upsert_records(new_records)

        analyzed = await asyncio.gather(*(self._ingest(r) for r in new_records))
        features = [f for f in analyzed if f is not None]

        # Catalog ids are never in the caller's id restriction; truncation
        # happens after the merge.
        catalog_filters = filters.model_copy(update={"candidate_ids": None, "max_results": None})
        ranked = rank_candidates(features, prefs, catalog_filters)
        return [m.model_copy(update={"source": "catalog"}) for m in ranked]

    async def _search_with_retry(
        self, query: str, search_filters: CatalogSearchFilters,
    ) -> list[CandidateRecord]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(2),
            wait=rate_limit_wait(self._catalog_config.max_retry_delay_seconds),
            retry=retry_if_exception_type(RateLimitedError),
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
        )
        return await retrying(self._search_once, query, search_filters)

    async def _search_once(
        self, query: str, search_filters: CatalogSearchFilters,
    ) -> list[CandidateRecord]:
        return await asyncio.wait_for(
            self._catalog.search(query, search_filters),
            timeout=self._catalog_config.timeout_seconds,
        )

    async def _ingest(self, record: CandidateRecord) -> CandidateFeatures | None:
        try:
            features = await self._cached_features(record.id)
            if features is not None:
                logger.debug("Reusing cached features for '%s'", record.id)
                return features
            features = await asyncio.wait_for(
                self._analyzer.analyze(record.id), timeout=self._analysis_timeout,
            )
            await self._store.put_candidate_features(features)
            return features
        except asyncio.TimeoutError:
            logger.warning(
                "Analysis of catalog show '%s' timed out after %.1fs, skipping",
                record.id, self._analysis_timeout,
            )
            return None
        except MatchingError:
            logger.warning("Skipping catalog show '%s'", record.id, exc_info=True)
            return None

    async def _cached_features(self, candidate_id: str) -> CandidateFeatures | None:
        try:
            return await self._store.get_candidate_features(
                candidate_id, max_age_days=self._freshness_days,
            )
        except InvalidFeatureError:
            logger.debug("Cached features for '%s' are malformed, re-analyzing", candidate_id)
            return None

    def _finish(
        self, matches: list[PodcastMatch], stats: MatchingStats, started: float,
    ) -> list[PodcastMatch]:
        stats.elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Tiered match: %d local, %d catalog%s (%.0f ms)",
            stats.local_count, stats.catalog_count,
            " [degraded]" if stats.degraded_error else "", stats.elapsed_ms,
        )
        return matches
