"""Pairwise creator/show compatibility scoring.

Score range: 0-1 (clamped). Three factors with fixed weights:
topic coverage 0.35, expertise 0.40, style 0.25.

Pure: no I/O, no hidden state. Unknown enum values raise InvalidFeatureError
instead of falling back to a default.
"""

import logging
from types import MappingProxyType
from typing import NamedTuple

from podmatch.core.errors import InvalidFeatureError
from podmatch.core.schemas import (
    COMMUNICATION_STYLES,
    EXPERTISE_LEVELS,
    HOST_STYLES,
    CandidateFeatures,
    MatchFactors,
    PodcastMatch,
    ProfileFeatures,
)

logger = logging.getLogger(__name__)

TOPIC_WEIGHT = 0.35
EXPERTISE_WEIGHT = 0.40
STYLE_WEIGHT = 0.25

MAX_SUGGESTED_TOPICS = 5

# Communication style -> host styles it works well with.
STYLE_COMPATIBILITY = MappingProxyType({
    "professional": frozenset({"interview", "educational", "debate"}),
    "casual": frozenset({"conversational", "storytelling"}),
    "academic": frozenset({"educational", "debate"}),
    "storyteller": frozenset({"storytelling", "conversational"}),
})


class ExplanationRule(NamedTuple):
    """score > high -> high_message; score < low -> low_message; else middle_message."""

    high: float
    high_message: str
    middle_message: str
    low: float | None = None
    low_message: str = ""


TOPIC_RULE = ExplanationRule(
    0.7, "strong topic alignment", "moderate topic overlap", 0.3, "limited topic overlap",
)
EXPERTISE_RULE = ExplanationRule(
    0.8,
    "expertise matches requirements",
    "expertise partially meets requirements",
    0.5,
    "expertise may be insufficient",
)
STYLE_RULE = ExplanationRule(0.7, "style aligns well", "style may need adaptation")


def score_match(creator: ProfileFeatures, candidate: CandidateFeatures) -> PodcastMatch:
    """Score how well a creator fits a show.

    Args:
        creator: Analyzed creator features.
        candidate: Analyzed show features.

    Returns:
        PodcastMatch with overall score, per-factor breakdown and explanations.

    Raises:
        InvalidFeatureError: If an enum value is unknown or a required
            show field (host style, minimum expertise) is missing.
    """
    topic = topic_coverage_score(creator.topics, candidate.topics or [])
    expertise = expertise_score(
        creator.expertise_level, candidate.guest_requirements.minimum_expertise,
    )
    style = style_score(creator.communication_style, candidate.host_style)

    overall = _clamp(topic * TOPIC_WEIGHT + expertise * EXPERTISE_WEIGHT + style * STYLE_WEIGHT)
    confidence = _clamp(min(creator.confidence, candidate.confidence))

    breakdown = MatchFactors(
        topic=topic,
        expertise=expertise,
        style=style,
        explanations=[
            _explain(topic, TOPIC_RULE),
            _explain(expertise, EXPERTISE_RULE),
            _explain(style, STYLE_RULE),
        ],
    )

    logger.debug(
        "Scored creator '%s' vs show '%s': %.3f (topic=%.2f expertise=%.2f style=%.2f)",
        creator.creator_id, candidate.candidate_id, overall, topic, expertise, style,
    )

    return PodcastMatch(
        candidate_id=candidate.candidate_id,
        overall_score=overall,
        confidence=confidence,
        breakdown=breakdown,
        suggested_topics=suggest_topics(creator, candidate),
    )


def topic_coverage_score(creator_topics: list[str], candidate_topics: list[str]) -> float:
    """Share of creator topics found (substring, case-insensitive) in the show's focus.

    Normalised by the smaller of the two set sizes, so a creator with a single
    topic fully covered by a broad show scores 1.0.
    """
    creator_set = {t.lower().strip() for t in creator_topics if t.strip()}
    candidate_set = {t.lower().strip() for t in candidate_topics if t.strip()}
    if not creator_set or not candidate_set:
        return 0.0

    matched = sum(1 for t in creator_set if any(t in c for c in candidate_set))
    denominator = max(1, min(len(creator_set), len(candidate_set)))
    return _clamp(matched / denominator)


def expertise_score(creator_level: str, required_level: str | None) -> float:
    """Discrete expertise fit: 1.0 at/above requirement, 0.3 one below, else 0.1."""
    if required_level is None:
        msg = "show is missing guest_requirements.minimum_expertise"
        raise InvalidFeatureError(msg)
    creator_rank = _rank(EXPERTISE_LEVELS, creator_level, "expertise_level")
    required_rank = _rank(EXPERTISE_LEVELS, required_level, "minimum_expertise")

    if creator_rank >= required_rank:
        return 1.0
    if creator_rank == required_rank - 1:
        return 0.3
    return 0.1


def style_score(communication_style: str, host_style: str | None) -> float:
    """1.0 if the host style is compatible with the creator's style, else 0.3."""
    if communication_style not in STYLE_COMPATIBILITY:
        msg = (
            f"unknown communication_style '{communication_style}', "
            f"expected one of {list(COMMUNICATION_STYLES)}"
        )
        raise InvalidFeatureError(msg)
    if host_style is None:
        msg = "show is missing host_style"
        raise InvalidFeatureError(msg)
    if host_style not in HOST_STYLES:
        msg = f"unknown host_style '{host_style}', expected one of {list(HOST_STYLES)}"
        raise InvalidFeatureError(msg)

    return 1.0 if host_style in STYLE_COMPATIBILITY[communication_style] else 0.3


def suggest_topics(creator: ProfileFeatures, candidate: CandidateFeatures) -> list[str]:
    """Talking points: shared topics first, then key points touching a show topic."""
    show_topics = [t.lower().strip() for t in candidate.topics or [] if t.strip()]

    common = [
        t for t in creator.topics
        if t.strip() and any(t.lower().strip() in s for s in show_topics)
    ]
    key_points = [
        p for p in creator.key_points
        if any(s in p.lower() for s in show_topics)
    ]

    suggestions: list[str] = []
    for item in common + key_points:
        if item not in suggestions:
            suggestions.append(item)
    return suggestions[:MAX_SUGGESTED_TOPICS]


def _rank(scale: tuple[str, ...], value: str, field: str) -> int:
    try:
        return scale.index(value)
    except ValueError:
        msg = f"unknown {field} '{value}', expected one of {list(scale)}"
        raise InvalidFeatureError(msg) from None


def _explain(score: float, rule: ExplanationRule) -> str:
    if score > rule.high:
        return rule.high_message
    if rule.low is not None and score < rule.low:
        return rule.low_message
    return rule.middle_message


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))
