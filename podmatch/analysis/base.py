"""Abstract analyzer interface consumed by the tiered orchestrator."""

from abc import ABC, abstractmethod

from podmatch.core.schemas import CandidateFeatures


class Analyzer(ABC):
    """Turns a stored show record into a feature set."""

    @abstractmethod
    async def analyze(self, entity_id: str) -> CandidateFeatures:
        """Analyze the show with the given id.

        Raises:
            UpstreamUnavailableError: The record or the backing model is unavailable.
            InvalidFeatureError: The analysis output could not be validated.
        """
