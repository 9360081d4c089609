"""Protocols for the external text-understanding services."""

from typing import Protocol

from domain.entities.notification import Priority


class ISimilarityOracle(Protocol):
    """Turns text into a fixed-length embedding vector."""

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            SimilarityOracleError: If the service cannot produce a vector
        """
        ...


class IPriorityClassifier(Protocol):
    """Maps free text to a priority label."""

    async def classify(self, text: str) -> Priority:
        """
        Classify a text as HIGH, MEDIUM or LOW.

        Raises:
            PriorityClassificationError: If the service cannot label the text
        """
        ...
