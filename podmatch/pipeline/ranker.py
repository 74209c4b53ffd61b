"""Preference-based ranking of analyzed shows.

Five factors with fixed weights (sum 1.0):
  topic 0.30 (Jaccard), style 0.20, length 0.15, complexity 0.15, quality 0.20

Confidence is data completeness, not score certainty. A show that cannot be
scored is logged and left out; ranking never fails because of one record.
"""

import logging
import math
from types import MappingProxyType

from podmatch.core.errors import InvalidFeatureError
from podmatch.core.schemas import (
    COMPLEXITY_LEVELS,
    CandidateFeatures,
    MatchFactors,
    MatchFilters,
    PodcastMatch,
    PreferenceVector,
)

logger = logging.getLogger(__name__)

TOPIC_WEIGHT = 0.30
STYLE_WEIGHT = 0.20
LENGTH_WEIGHT = 0.15
COMPLEXITY_WEIGHT = 0.15
QUALITY_WEIGHT = 0.20

# Minutes, [low, high).
LENGTH_BUCKETS = MappingProxyType({
    "short": (0.0, 30.0),
    "medium": (30.0, 60.0),
    "long": (60.0, math.inf),
})
LENGTH_PENALTY_MINUTES = 60.0

# Preferences carry no complexity level yet, so every show is measured
# against this fixed target.
# TODO: take the target from PreferenceVector once it gains a complexity field.
COMPLEXITY_TARGET = "intermediate"

CONFIDENCE_FIELDS = ("topics", "content_style", "complexity_level", "production_quality")


def score_candidate(candidate: CandidateFeatures, prefs: PreferenceVector) -> PodcastMatch:
    """Score one show against a preference vector.

    Raises:
        InvalidFeatureError: If the show lacks an episode length or carries
            an unknown complexity level.
    """
    topic = jaccard_topic_score(prefs.topics, candidate.topics or [])
    style = style_preference_score(prefs.style_preferences, candidate.content_style or {})
    length = length_score(candidate.average_episode_length, prefs.preferred_length)
    complexity = complexity_score(candidate.complexity_level)
    quality = quality_score(candidate.production_quality)

    overall = _clamp(
        topic * TOPIC_WEIGHT
        + style * STYLE_WEIGHT
        + length * LENGTH_WEIGHT
        + complexity * COMPLEXITY_WEIGHT
        + quality * QUALITY_WEIGHT
    )

    factors = MatchFactors(
        topic=topic,
        style=style,
        length=length,
        complexity=complexity,
        quality=quality,
        explanations=_match_reasons(topic, style, length, quality, candidate, prefs),
    )

    return PodcastMatch(
        candidate_id=candidate.candidate_id,
        overall_score=overall,
        confidence=completeness_confidence(candidate),
        breakdown=factors,
        suggested_topics=_shared_topics(prefs.topics, candidate.topics or []),
    )


def rank_candidates(
    pool: list[CandidateFeatures],
    prefs: PreferenceVector,
    filters: MatchFilters | None = None,
) -> list[PodcastMatch]:
    """Score every show in the pool and return them best-first.

    Shows failing to score are skipped. min_score / min_confidence are
    applied before truncation to max_results, truncation after the sort.
    """
    filters = filters or MatchFilters()
    if filters.candidate_ids is not None:
        allowed = set(filters.candidate_ids)
        pool = [c for c in pool if c.candidate_id in allowed]

    matches: list[PodcastMatch] = []
    for candidate in pool:
        try:
            matches.append(score_candidate(candidate, prefs))
        except InvalidFeatureError:
            logger.warning(
                "Skipping show '%s': features cannot be scored",
                candidate.candidate_id,
                exc_info=True,
            )

    ranked = apply_filters(matches, filters)
    logger.debug("Ranked %d of %d shows", len(ranked), len(pool))
    return ranked


def apply_filters(matches: list[PodcastMatch], filters: MatchFilters) -> list[PodcastMatch]:
    """Drop matches below thresholds, sort best-first, then truncate."""
    kept = [
        m for m in matches
        if (filters.min_score is None or m.overall_score >= filters.min_score)
        and (filters.min_confidence is None or m.confidence >= filters.min_confidence)
    ]
    kept = sort_matches(kept)
    if filters.max_results is not None:
        kept = kept[:filters.max_results]
    return kept


def sort_matches(matches: list[PodcastMatch]) -> list[PodcastMatch]:
    """Sort by overall score descending; ties break on candidate id."""
    return sorted(matches, key=lambda m: (-m.overall_score, m.candidate_id))


def jaccard_topic_score(pref_topics: list[str], candidate_topics: list[str]) -> float:
    """|intersection| / |union| of the two normalised topic sets."""
    prefs = {t.lower().strip() for t in pref_topics if t.strip()}
    topics = {t.lower().strip() for t in candidate_topics if t.strip()}
    union = prefs | topics
    if not union:
        return 0.0
    return len(prefs & topics) / len(union)


def style_preference_score(
    style_preferences: dict[str, bool], content_style: dict[str, bool],
) -> float:
    """Share of enabled style preferences that the show also has."""
    wanted = [tag for tag, enabled in style_preferences.items() if enabled]
    if not wanted:
        return 0.0
    hits = sum(1 for tag in wanted if content_style.get(tag, False))
    return hits / len(wanted)


def length_score(average_length: float | None, preferred_length: str) -> float:
    """1.0 inside the preferred bucket, linear penalty per hour outside it."""
    if average_length is None:
        msg = "show is missing average_episode_length"
        raise InvalidFeatureError(msg)
    if preferred_length not in LENGTH_BUCKETS:
        msg = f"unknown preferred_length '{preferred_length}'"
        raise InvalidFeatureError(msg)

    low, high = LENGTH_BUCKETS[preferred_length]
    if low <= average_length < high:
        return 1.0
    distance = min(abs(average_length - low), abs(average_length - high))
    return max(0.0, 1.0 - distance / LENGTH_PENALTY_MINUTES)


def complexity_score(level: str | None) -> float:
    """1 - ordinal distance to the target level over the scale span. Missing -> 0."""
    if level is None:
        return 0.0
    if level not in COMPLEXITY_LEVELS:
        msg = f"unknown complexity_level '{level}', expected one of {list(COMPLEXITY_LEVELS)}"
        raise InvalidFeatureError(msg)
    distance = abs(COMPLEXITY_LEVELS.index(level) - COMPLEXITY_LEVELS.index(COMPLEXITY_TARGET))
    return 1.0 - distance / (len(COMPLEXITY_LEVELS) - 1)


def quality_score(production_quality: float | None) -> float:
    if production_quality is None:
        return 0.0
    return _clamp(production_quality / 100.0)


def completeness_confidence(candidate: CandidateFeatures) -> float:
    """Fraction of CONFIDENCE_FIELDS present on the show."""
    present = sum(1 for field in CONFIDENCE_FIELDS if getattr(candidate, field) is not None)
    return present / len(CONFIDENCE_FIELDS)


def _shared_topics(pref_topics: list[str], candidate_topics: list[str]) -> list[str]:
    covered = {t.lower().strip() for t in candidate_topics}
    shared: list[str] = []
    for topic in pref_topics:
        key = topic.lower().strip()
        if key and key in covered and key not in shared:
            shared.append(key)
    return shared


def _match_reasons(
    topic: float,
    style: float,
    length: float,
    quality: float,
    candidate: CandidateFeatures,
    prefs: PreferenceVector,
) -> list[str]:
    reasons: list[str] = []
    if topic > 0.7:
        shared = _shared_topics(prefs.topics, candidate.topics or [])
        reasons.append(f"Strong topic match: covers {', '.join(shared)}")
    if style > 0.7:
        reasons.append("Content style aligns well with your preferences")
    if length > 0.8:
        reasons.append(
            f"Episode length matches your preference for {prefs.preferred_length} episodes"
        )
    if quality > 0.8:
        reasons.append("High production quality")
    return reasons


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))
