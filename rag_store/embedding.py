"""
Embedding gateway for the retrieval core.
Generates cached embeddings with Amazon Titan on AWS Bedrock and maps
provider failures onto the core's error taxonomy.
"""
import json
import logging
from functools import lru_cache
from typing import List, Protocol, Sequence, Tuple

import boto3
import numpy as np
from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    EmbeddingError,
    InvalidInputError,
    ProviderUnavailableError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)

THROTTLING_CODES = {
    "ThrottlingException",
    "TooManyRequestsException",
    "ServiceQuotaExceededException",
    "RequestLimitExceeded",
}
INVALID_INPUT_CODES = {
    "ValidationException",
    "InvalidRequestException",
}


class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-length vector."""

    def embed(self, text: str) -> List[float]:
        ...


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Vectors of different lengths are compared over their shared prefix.

    Args:
        vec1: First embedding vector
        vec2: Second embedding vector

    Returns:
        Cosine similarity score (-1 to 1), 0.0 if either vector is zero
    """
    a = np.asarray(vec1, dtype=float)
    b = np.asarray(vec2, dtype=float)
    length = min(a.shape[0], b.shape[0])
    if length == 0:
        return 0.0
    a = a[:length]
    b = b[:length]

    norm1 = np.linalg.norm(a)
    norm2 = np.linalg.norm(b)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(a, b) / (norm1 * norm2))


def map_provider_error(error: Exception) -> EmbeddingError:
    """Translate a botocore failure into the embedding error taxonomy."""
    if isinstance(error, EmbeddingError):
        return error
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        message = error.response.get("Error", {}).get("Message", str(error))
        if code in THROTTLING_CODES:
            return RateLimitedError(f"Embedding provider throttled the request: {message}")
        if code in INVALID_INPUT_CODES:
            return InvalidInputError(f"Embedding provider rejected the input: {message}")
        return ProviderUnavailableError(f"Embedding provider error ({code}): {message}")
    return ProviderUnavailableError(f"Embedding provider unreachable: {error}")


class EmbeddingClient:
    """
    Embedding client with caching support.

    Uses Amazon Titan Embed Text v2 for generating embeddings.
    Only successful embeddings are cached; failures raise.
    """

    def __init__(
        self,
        aws_region: str = "us-east-1",
        model_id: str = "amazon.titan-embed-text-v2:0",
        dimensions: int = 1024,
        normalize: bool = True,
        cache_size: int = 1000
    ):
        """
        Initialize the embedding client.

        Args:
            aws_region: AWS region for Bedrock
            model_id: Amazon Titan embedding model ID
            dimensions: Embedding dimensions (256, 512, or 1024)
            normalize: Whether to normalize embeddings
            cache_size: Maximum number of embeddings to cache
        """
        self.bedrock_client = boto3.client(
            service_name="bedrock-runtime",
            region_name=aws_region
        )
        self.model_id = model_id
        self.dimensions = dimensions
        self.normalize = normalize

        self._embed_cached = lru_cache(maxsize=cache_size)(self._embed_uncached)

    @classmethod
    def from_settings(cls, settings) -> "EmbeddingClient":
        return cls(
            aws_region=settings.aws_region,
            model_id=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            normalize=settings.normalize_embeddings,
            cache_size=settings.embedding_cache_size
        )

    def _embed_uncached(self, text: str) -> Tuple[float, ...]:
        """Call Bedrock once. Returns a tuple so lru_cache can hold it."""
        request_body = {
            "inputText": text,
            "dimensions": self.dimensions,
            "normalize": self.normalize
        }

        try:
            response = self.bedrock_client.invoke_model(
                modelId=self.model_id,
                body=json.dumps(request_body),
                contentType="application/json",
                accept="application/json"
            )
            response_body = json.loads(response['body'].read())
        except (ClientError, BotoCoreError) as e:
            mapped = map_provider_error(e)
            logger.debug("Embedding call to %s failed: %s", self.model_id, mapped)
            raise mapped from e

        embedding = response_body.get('embedding')
        if not embedding:
            raise ProviderUnavailableError(
                f"Embedding response from {self.model_id} contained no vector"
            )
        return tuple(float(v) for v in embedding)

    def embed(self, text: str) -> List[float]:
        """
        Generate an embedding for text.

        Raises:
            InvalidInputError: for empty text or text the provider rejects
            RateLimitedError: when Bedrock throttles the call
            ProviderUnavailableError: for any other provider failure
        """
        if not text or not text.strip():
            raise InvalidInputError("Cannot embed empty text")
        return list(self._embed_cached(text))

    def clear_cache(self):
        """Clear the embedding cache."""
        self._embed_cached.cache_clear()

    def cache_info(self):
        """Get cache statistics."""
        return self._embed_cached.cache_info()
