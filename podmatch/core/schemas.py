"""Core data models for the matching engine.

Feature sets are produced by the analyzer and are frozen for the duration of
a match computation. Enum-like fields are normalised (lowercase, stripped)
here but their membership is checked by the scorers, so a stale record with
an unknown value fails the one scoring call that touches it.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EXPERTISE_LEVELS = ("beginner", "intermediate", "expert")
COMPLEXITY_LEVELS = ("beginner", "intermediate", "advanced")
COMMUNICATION_STYLES = ("professional", "casual", "academic", "storyteller")
HOST_STYLES = ("conversational", "interview", "educational", "debate", "storytelling")
CONTENT_STYLE_TAGS = ("interview", "narrative", "educational", "debate")
EPISODE_LENGTHS = ("short", "medium", "long")


def _normalise(value: str | None) -> str | None:
    if value is None:
        return None
    return value.lower().strip()


class ProfileFeatures(BaseModel):
    """Creator-side feature set."""

    model_config = ConfigDict(frozen=True)

    creator_id: str = ""
    topics: list[str] = Field(default_factory=list)
    expertise_level: str
    communication_style: str
    key_points: list[str] = Field(default_factory=list)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    @field_validator("expertise_level", "communication_style")
    @classmethod
    def normalise_enum(cls, v: str) -> str:
        return v.lower().strip()


class GuestRequirements(BaseModel):
    """What a show expects from a guest."""

    model_config = ConfigDict(frozen=True)

    minimum_expertise: str | None = None
    preferred_topics: list[str] = Field(default_factory=list)
    communication_preference: list[str] = Field(default_factory=list)

    @field_validator("minimum_expertise")
    @classmethod
    def normalise_expertise(cls, v: str | None) -> str | None:
        return _normalise(v)

    @field_validator("preferred_topics")
    @classmethod
    def at_most_three(cls, v: list[str]) -> list[str]:
        return v[:3]


class CandidateFeatures(BaseModel):
    """Show-side feature set.

    Most fields are optional: an incomplete analysis still loads, and the
    ranker reports the gap through its completeness-based confidence.
    """

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    topics: list[str] | None = None
    content_style: dict[str, bool] | None = None
    host_style: str | None = None
    average_episode_length: float | None = Field(default=None, ge=0.0)
    complexity_level: str | None = None
    production_quality: float | None = Field(default=None, ge=0.0, le=100.0)
    guest_requirements: GuestRequirements = Field(default_factory=GuestRequirements)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    analyzed_at: datetime = Field(default_factory=datetime.now)

    @field_validator("host_style", "complexity_level")
    @classmethod
    def normalise_enum(cls, v: str | None) -> str | None:
        return _normalise(v)


class PreferenceVector(BaseModel):
    """A requester's stated preferences for the ranker."""

    model_config = ConfigDict(frozen=True)

    topics: list[str] = Field(default_factory=list)
    preferred_length: str = "medium"
    style_preferences: dict[str, bool] = Field(default_factory=dict)

    @field_validator("preferred_length")
    @classmethod
    def length_in_allowed(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in EPISODE_LENGTHS:
            msg = f"preferred_length must be one of {list(EPISODE_LENGTHS)}, got '{v}'"
            raise ValueError(msg)
        return v


class MatchFilters(BaseModel):
    """Optional filtering applied to ranked results and candidate enumeration."""

    min_score: float | None = Field(default=None, ge=0.0, le=1.0)
    min_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    max_results: int | None = Field(default=None, ge=1)
    candidate_ids: list[str] | None = None
    topics: list[str] = Field(default_factory=list)
    exclude_candidate_ids: list[str] = Field(default_factory=list)


class MatchFactors(BaseModel):
    """Named sub-scores plus ordered human-readable explanations."""

    model_config = ConfigDict(frozen=True)

    topic: float | None = Field(default=None, ge=0.0, le=1.0)
    expertise: float | None = Field(default=None, ge=0.0, le=1.0)
    style: float | None = Field(default=None, ge=0.0, le=1.0)
    length: float | None = Field(default=None, ge=0.0, le=1.0)
    complexity: float | None = Field(default=None, ge=0.0, le=1.0)
    quality: float | None = Field(default=None, ge=0.0, le=1.0)
    explanations: list[str] = Field(default_factory=list)


class PodcastMatch(BaseModel):
    """Result of scoring one candidate. Owned by the caller."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    overall_score: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    breakdown: MatchFactors
    suggested_topics: list[str] = Field(default_factory=list)
    source: Literal["local", "catalog"] = "local"


class ProcessingStatus(BaseModel):
    """Progress of a batch, keyed by requester id in the status store."""

    model_config = ConfigDict(frozen=True)

    status: Literal["pending", "processing", "completed", "failed"]
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    processed_count: int = Field(default=0, ge=0)
    total_count: int = Field(default=0, ge=0)
    error: str | None = None
    updated_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def processed_within_total(self) -> "ProcessingStatus":
        if self.processed_count > self.total_count:
            msg = (
                f"processed_count ({self.processed_count}) exceeds "
                f"total_count ({self.total_count})"
            )
            raise ValueError(msg)
        return self


class RankedMatch(BaseModel):
    """A batch result entry annotated with its 1-based rank."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    score: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    rank: int = Field(ge=1)
    explanations: list[str] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Summary of a finished batch run."""

    requester_id: str
    matches: list[RankedMatch] = Field(default_factory=list)
    processed_count: int = 0
    total_candidates: int = 0
    failed_count: int = 0
    timed_out: bool = False
    processing_time_ms: float = 0.0


class CandidateRecord(BaseModel):
    """A raw show record as returned by the catalog or stored locally."""

    id: str
    title: str = ""
    description: str = ""
    publisher: str = ""
    categories: list[str] = Field(default_factory=list)
    genre_ids: list[int] = Field(default_factory=list)
    total_episodes: int = 0
    listen_score: float | None = None
    average_episode_length: float | None = None
    language: str = ""
    website: str = ""
    explicit_content: bool = False
    latest_pub_date_ms: int | None = None


class CreatorRecord(BaseModel):
    """A raw creator profile, input to the creator-side analysis."""

    id: str
    name: str = ""
    bio: str = ""
    topics: list[str] = Field(default_factory=list)
    works: list[str] = Field(default_factory=list)


class CatalogSearchFilters(BaseModel):
    """Parameters forwarded to the catalog search."""

    length_min: int = 20
    length_max: int = 60
    language: str = "English"
    limit: int = Field(default=10, ge=1)
