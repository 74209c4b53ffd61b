"""Abstract base class for external show catalogs."""

from abc import ABC, abstractmethod

from podmatch.core.errors import UpstreamUnavailableError
from podmatch.core.schemas import CandidateRecord, CatalogSearchFilters


class CatalogProvider(ABC):
    """Base class that every catalog/search provider must implement."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'listennotes')."""

    @abstractmethod
    async def search(
        self, query: str, filters: CatalogSearchFilters,
    ) -> list[CandidateRecord]:
        """Run a free-text search and return raw (unanalyzed) show records.

        Raises:
            RateLimitedError: The provider asked the caller to back off.
            UpstreamUnavailableError: Any other provider failure.
        """


class UnavailableCatalog(CatalogProvider):
    """Stand-in for a catalog that could not be configured.

    Every search fails with UpstreamUnavailableError, so tiered matching
    falls back to local results instead of refusing to run.
    """

    def __init__(self, provider_id: str, reason: str) -> None:
        self._provider_id = provider_id
        self._reason = reason

    @property
    def provider_id(self) -> str:
        return self._provider_id

    async def search(
        self, query: str, filters: CatalogSearchFilters,
    ) -> list[CandidateRecord]:
        msg = f"{self._provider_id} catalog is not configured: {self._reason}"
        raise UpstreamUnavailableError(msg)
