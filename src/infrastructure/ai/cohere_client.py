"""Cohere-backed similarity oracle and priority classifier."""

import logging

import cohere
import httpx
from cohere.core.api_error import ApiError

from core.config import settings
from core.exceptions import PriorityClassificationError, SimilarityOracleError
from domain.entities.notification import Priority

logger = logging.getLogger(__name__)

# Few-shot examples for the priority classifier (two per label).
PRIORITY_EXAMPLES: list[cohere.ClassifyExample] = [
    cohere.ClassifyExample(text="reminder due_soon urgent task", label="high"),
    cohere.ClassifyExample(text="dependency_blocked critical path", label="high"),
    cohere.ClassifyExample(text="task_assigned normal priority", label="medium"),
    cohere.ClassifyExample(text="dependency_unblocked ready to start", label="medium"),
    cohere.ClassifyExample(text="reminder weekly routine", label="low"),
    cohere.ClassifyExample(text="task_completed nothing left to do", label="low"),
]

CLASSIFIER_LABELS = {
    "high": Priority.HIGH,
    "medium": Priority.MEDIUM,
    "low": Priority.LOW,
}


class CohereClient:
    """Implements both ISimilarityOracle and IPriorityClassifier."""

    def __init__(
        self,
        api_key: str = settings.cohere_api_key,
        base_url: str = settings.cohere_base_url,
        embed_model: str = settings.cohere_embed_model,
        timeout: float = settings.cohere_timeout_seconds,
        max_retries: int = settings.cohere_max_retries,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._embed_model = embed_model
        self._request_options = {"max_retries": max_retries}
        self._client = cohere.AsyncClient(
            api_key=api_key,
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            httpx_client=httpx.AsyncClient(timeout=timeout, transport=transport),
        )

    async def embed(self, text: str) -> list[float]:
        """Embed one text with the configured model."""
        try:
            response = await self._client.embed(
                texts=[text],
                model=self._embed_model,
                input_type="clustering",
                request_options=self._request_options,
            )
        except (ApiError, httpx.HTTPError, ValueError) as e:
            logger.warning("Cohere embed request failed: %s", e)
            raise SimilarityOracleError(f"Embedding request failed: {e}") from e

        embeddings = response.embeddings
        # embeddings_by_type responses nest vectors under "float"
        if not isinstance(embeddings, list):
            embeddings = getattr(embeddings, "float_", None)
        if not embeddings:
            raise SimilarityOracleError("Failed to generate embeddings")

        vector = embeddings[0]
        if not vector:
            raise SimilarityOracleError("Invalid embedding format")
        return [float(v) for v in vector]

    async def classify(self, text: str) -> Priority:
        """Label one text as high, medium or low priority."""
        try:
            response = await self._client.classify(
                inputs=[text],
                examples=PRIORITY_EXAMPLES,
                request_options=self._request_options,
            )
        except (ApiError, httpx.HTTPError, ValueError) as e:
            logger.warning("Cohere classify request failed: %s", e)
            raise PriorityClassificationError(f"Classification request failed: {e}") from e

        classifications = response.classifications or []
        prediction = classifications[0].prediction if classifications else None
        if prediction not in CLASSIFIER_LABELS:
            raise PriorityClassificationError("Failed to analyze notification priority")
        return CLASSIFIER_LABELS[prediction]
