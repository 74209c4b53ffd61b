"""Bounded-concurrency batch scoring with progress reporting.

Data flow:
  1. Status pending
  2. Enumerate candidate ids (failure here aborts the batch)
  3. Status processing with the total
  4. Score each id under a semaphore; every completion advances progress
  5. Filter, sort, truncate, rank
  6. Status completed
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from podmatch.core.config import BatchConfig
from podmatch.core.errors import BatchSetupError, InvalidFeatureError
from podmatch.core.schemas import (
    BatchResult,
    MatchFilters,
    PodcastMatch,
    ProcessingStatus,
    ProfileFeatures,
    RankedMatch,
)
from podmatch.core.stores import CandidateStore
from podmatch.pipeline.compatibility import score_match
from podmatch.pipeline.status import StatusTracker

logger = logging.getLogger(__name__)

ScoreFn = Callable[[str], Awaitable[PodcastMatch]]
CandidateSource = Sequence[str] | Callable[[], Awaitable[Sequence[str]]]


class BatchRunner:
    """Scores many candidates for one requester with bounded concurrency."""

    def __init__(
        self,
        status_tracker: StatusTracker,
        config: BatchConfig | None = None,
        store: CandidateStore | None = None,
    ) -> None:
        self._tracker = status_tracker
        self._config = config or BatchConfig()
        self._store = store
        self._detached: set[asyncio.Task[PodcastMatch | None]] = set()

    async def run_batch(
        self,
        requester_id: str,
        candidate_ids: CandidateSource,
        score_fn: ScoreFn,
        *,
        concurrency_limit: int | None = None,
        filters: MatchFilters | None = None,
        deadline_seconds: float | None = None,
    ) -> BatchResult:
        """Score every candidate id and return the ranked survivors.

        Args:
            requester_id: Key for the status record.
            candidate_ids: Ids to score, or a coroutine function producing them.
            score_fn: Async scorer for a single candidate id.
            concurrency_limit: Max in-flight scorings. None uses config.
            filters: min_score / min_confidence / max_results overrides.
            deadline_seconds: Return what has completed after this long.
                Unfinished scorings keep running but are left out of the
                result, which is marked timed_out.

        Raises:
            BatchSetupError: If candidate enumeration fails. No scoring happens.
            ValueError: If concurrency_limit is below 1.
        """
        limit = concurrency_limit if concurrency_limit is not None else self._config.max_concurrent
        if limit < 1:
            msg = f"concurrency_limit must be >= 1, got {limit}"
            raise ValueError(msg)

        started = time.perf_counter()
        await self._tracker.start(requester_id)

        try:
            if callable(candidate_ids):
                ids = list(await candidate_ids())
            else:
                ids = list(candidate_ids)
        except Exception as e:
            logger.error("Candidate enumeration failed for '%s': %s", requester_id, e)
            await self._tracker.fail(requester_id, str(e))
            msg = f"Could not enumerate candidates for '{requester_id}': {e}"
            raise BatchSetupError(msg) from e

        # Duplicate ids would be scored twice and break processed <= total.
        ids = list(dict.fromkeys(ids))
        await self._tracker.begin(requester_id, len(ids))
        logger.info(
            "Batch '%s': %d candidates, concurrency %d", requester_id, len(ids), limit,
        )

        outcomes, timed_out = await self._dispatch(
            requester_id, ids, score_fn, limit, deadline_seconds,
        )

        matches = [m for m in outcomes if m is not None]
        failed_count = len(outcomes) - len(matches)
        ranked = self._rank(matches, filters)

        await self._tracker.complete(requester_id)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Batch '%s': %d scored, %d failed, %d ranked%s (%.0f ms)",
            requester_id, len(matches), failed_count, len(ranked),
            ", deadline reached" if timed_out else "", elapsed_ms,
        )
        return BatchResult(
            requester_id=requester_id,
            matches=ranked,
            processed_count=len(outcomes),
            total_candidates=len(ids),
            failed_count=failed_count,
            timed_out=timed_out,
            processing_time_ms=elapsed_ms,
        )

    async def get_status(self, requester_id: str) -> ProcessingStatus | None:
        return await self._tracker.get(requester_id)

    async def find_matches_for_creator(
        self,
        requester_id: str,
        filters: MatchFilters | None = None,
        *,
        concurrency_limit: int | None = None,
        deadline_seconds: float | None = None,
    ) -> BatchResult:
        """Score every stored show against a creator's stored features.

        Candidates come from the datastore, narrowed by ``filters.topics``
        (categories must contain all of them), ``filters.exclude_candidate_ids``
        and ``filters.candidate_ids``.
        """
        if self._store is None:
            msg = "find_matches_for_creator requires a candidate store"
            raise BatchSetupError(msg)

        store = self._store
        filters = filters or MatchFilters()
        creator: ProfileFeatures | None = None

        async def enumerate_candidates() -> list[str]:
            nonlocal creator
            creator = await store.get_creator_features(requester_id)
            if creator is None:
                msg = f"Creator '{requester_id}' has not been analyzed"
                raise InvalidFeatureError(msg)
            ids = await store.list_candidate_ids(
                filters.topics or None,
                filters.exclude_candidate_ids or None,
            )
            if filters.candidate_ids is not None:
                allowed = set(filters.candidate_ids)
                ids = [i for i in ids if i in allowed]
            return ids

        async def score(candidate_id: str) -> PodcastMatch:
            features = await store.get_candidate_features(candidate_id)
            if features is None:
                msg = f"Show '{candidate_id}' has not been analyzed"
                raise InvalidFeatureError(msg)
            return score_match(creator, features)  # type: ignore[arg-type]

        return await self.run_batch(
            requester_id,
            enumerate_candidates,
            score,
            concurrency_limit=concurrency_limit,
            filters=filters,
            deadline_seconds=deadline_seconds,
        )

    async def _dispatch(
        self,
        requester_id: str,
        ids: list[str],
        score_fn: ScoreFn,
        limit: int,
        deadline_seconds: float | None,
    ) -> tuple[list[PodcastMatch | None], bool]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + deadline_seconds if deadline_seconds is not None else None
        semaphore = asyncio.Semaphore(limit)
        closed = asyncio.Event()
        tasks: list[asyncio.Task[PodcastMatch | None]] = []
        timed_out = False

        for candidate_id in ids:
            if deadline is None:
                await semaphore.acquire()
            else:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    timed_out = True
                    break
                try:
                    await asyncio.wait_for(semaphore.acquire(), timeout=remaining)
                except asyncio.TimeoutError:
                    timed_out = True
                    break
            tasks.append(asyncio.create_task(
                self._score_one(requester_id, candidate_id, score_fn, semaphore, closed),
            ))

        if timed_out:
            logger.warning(
                "Batch '%s' deadline reached: %d of %d candidates dispatched",
                requester_id, len(tasks), len(ids),
            )

        if deadline is None:
            return list(await asyncio.gather(*tasks)), timed_out

        done: set[asyncio.Task[PodcastMatch | None]] = set()
        if tasks:
            done, pending = await asyncio.wait(
                tasks, timeout=max(deadline - loop.time(), 0.0),
            )
            if pending:
                # Still-running scorings are left to finish, never cancelled,
                # but no longer count towards this batch.
                timed_out = True
                closed.set()
                for task in pending:
                    self._detached.add(task)
                    task.add_done_callback(self._detached.discard)
                logger.warning(
                    "Batch '%s' deadline reached with %d scorings still running",
                    requester_id, len(pending),
                )

        return [task.result() for task in tasks if task in done], timed_out

    async def _score_one(
        self,
        requester_id: str,
        candidate_id: str,
        score_fn: ScoreFn,
        semaphore: asyncio.Semaphore,
        closed: asyncio.Event,
    ) -> PodcastMatch | None:
        try:
            match = await score_fn(candidate_id)
            logger.debug("Scored '%s': %.3f", candidate_id, match.overall_score)
            return match
        except Exception:
            logger.warning(
                "Scoring failed for candidate '%s' (requester '%s')",
                candidate_id, requester_id,
                exc_info=True,
            )
            return None
        finally:
            semaphore.release()
            if not closed.is_set():
                await self._tracker.advance(requester_id)

    def _rank(
        self, matches: list[PodcastMatch], filters: MatchFilters | None,
    ) -> list[RankedMatch]:
        filters = filters or MatchFilters()
        min_score = (
            filters.min_score if filters.min_score is not None else self._config.min_match_score
        )
        min_confidence = (
            filters.min_confidence
            if filters.min_confidence is not None
            else self._config.min_confidence
        )
        max_results = (
            filters.max_results if filters.max_results is not None else self._config.max_results
        )

        kept = [
            m for m in matches
            if m.overall_score >= min_score and m.confidence >= min_confidence
        ]
        kept.sort(key=lambda m: (-m.overall_score, m.candidate_id))

        return [
            RankedMatch(
                candidate_id=m.candidate_id,
                score=m.overall_score,
                confidence=m.confidence,
                rank=i,
                explanations=list(m.breakdown.explanations),
            )
            for i, m in enumerate(kept[:max_results], start=1)
        ]
