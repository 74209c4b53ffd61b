"""ListenNotes podcast search provider."""

import logging
import os
from typing import Any

import httpx

from podmatch.catalog.base import CatalogProvider
from podmatch.core.config import CatalogConfig
from podmatch.core.errors import RateLimitedError, UpstreamUnavailableError
from podmatch.core.schemas import CandidateRecord, CatalogSearchFilters

logger = logging.getLogger(__name__)

_DEFAULT_RETRY_AFTER = 1.0


class ListenNotesCatalog(CatalogProvider):
    """Search shows through the ListenNotes v2 API.

    The httpx client is owned by the caller; this class never closes it.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        base_url: str = "https://listen-api.listennotes.com/api/v2",
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    @classmethod
    def from_config(cls, config: CatalogConfig, client: httpx.AsyncClient) -> "ListenNotesCatalog":
        """Build a catalog reading the API key from config.api_key_env."""
        api_key = os.environ.get(config.api_key_env)
        if not api_key:
            msg = f"{config.api_key_env} environment variable is required"
            raise ValueError(msg)
        return cls(client, api_key, config.base_url)

    @property
    def provider_id(self) -> str:
        return "listennotes"

    async def search(
        self, query: str, filters: CatalogSearchFilters,
    ) -> list[CandidateRecord]:
        params: dict[str, str | int] = {
            "q": query,
            "type": "podcast",
            "language": filters.language,
            "len_min": filters.length_min,
            "len_max": filters.length_max,
            "offset": 0,
            "safe_mode": 1,
        }
        logger.info("Searching ListenNotes for '%s'", query)

        try:
            resp = await self._client.get(
                f"{self._base_url}/search",
                params=params,
                headers={"X-ListenAPI-Key": self._api_key},
            )
        except httpx.HTTPError as e:
            msg = f"ListenNotes request failed: {e}"
            raise UpstreamUnavailableError(msg) from e

        if resp.status_code == 429:
            retry_after = _parse_retry_after(resp.headers.get("Retry-After"))
            msg = f"ListenNotes rate limit hit, retry after {retry_after:.1f}s"
            raise RateLimitedError(msg, retry_after=retry_after)

        try:
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            msg = f"ListenNotes returned an unusable response: {e}"
            raise UpstreamUnavailableError(msg) from e

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            msg = "Invalid response from ListenNotes: 'results' is not a list"
            raise UpstreamUnavailableError(msg)

        records: list[CandidateRecord] = []
        for item in results[:filters.limit]:
            try:
                records.append(_to_record(item))
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed ListenNotes result: %r", item, exc_info=True)
        logger.info("ListenNotes: %d results for '%s'", len(records), query[:60])
        return records


def _to_record(item: dict[str, Any]) -> CandidateRecord:
    """Map a ListenNotes podcast result to a CandidateRecord."""
    audio_length = item.get("audio_length_sec")
    return CandidateRecord(
        id=str(item["id"]),
        title=item.get("title_original") or item.get("title") or "",
        description=item.get("description_original") or item.get("description") or "",
        publisher=item.get("publisher_original") or item.get("publisher") or "",
        genre_ids=[int(g) for g in item.get("genre_ids") or []],
        total_episodes=int(item.get("total_episodes") or 0),
        listen_score=_as_float(item.get("listen_score")),
        average_episode_length=audio_length / 60.0 if audio_length else None,
        language=item.get("language") or "",
        website=item.get("website") or "",
        explicit_content=bool(item.get("explicit_content", False)),
        latest_pub_date_ms=item.get("latest_pub_date_ms"),
    )


def _parse_retry_after(value: str | None) -> float:
    if not value:
        return _DEFAULT_RETRY_AFTER
    try:
        return max(0.0, float(value))
    except ValueError:
        return _DEFAULT_RETRY_AFTER


def _as_float(value: Any) -> float | None:
    # Free-tier keys get a text placeholder instead of a number.
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
