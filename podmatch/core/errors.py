"""Error taxonomy for the matching engine.

Pure scoring errors bubble to the caller of the scoring function. Batch and
tiered contexts catch them at the per-candidate boundary and omit the
candidate instead.
"""


class MatchingError(Exception):
    """Base class for all matching engine errors."""


class InvalidFeatureError(MatchingError):
    """Feature data is malformed (unknown enum value, missing required field)."""


class UpstreamUnavailableError(MatchingError):
    """An external collaborator (analyzer, catalog, datastore) failed."""


class RateLimitedError(UpstreamUnavailableError):
    """The catalog provider asked us to back off."""

    def __init__(self, message: str, retry_after: float = 1.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class BatchSetupError(MatchingError):
    """Candidate enumeration failed before any scoring started."""
