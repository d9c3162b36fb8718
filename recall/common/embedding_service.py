"""
Embedding Service

Converts query text into a fixed-dimension vector through one pluggable
backend. The retriever only ever talks to EmbeddingService, so swapping
backends needs no change elsewhere.

Backends:
- fastembed: on-device generation (default, no external API calls)
- openai: OpenAI embeddings API
- huggingface: hosted feature-extraction pipeline over HTTP
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
import numpy as np

from .config import EmbeddingConfig

logger = logging.getLogger("recall.common.embedding_service")

HF_INFERENCE_URL = "https://router.huggingface.co/hf-inference/models/{model}/pipeline/feature-extraction"


class EmbeddingBackend(ABC):
    """
    Abstract embedding backend.

    Each backend must implement:
    - embed: Convert a batch of texts to vectors
    """

    name = "base"

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a batch of texts.

        Args:
            texts: Non-empty list of strings

        Returns:
            One vector per input text
        """
        pass


class FastEmbedBackend(EmbeddingBackend):
    """On-device embeddings using fastembed"""

    name = "fastembed"

    def __init__(self, model: str = "sentence-transformers/all-MiniLM-L6-v2"):
        super().__init__(model)
        from fastembed import TextEmbedding

        self._model = TextEmbedding(model_name=model)
        logger.info("fastembed model loaded: %s", model)

    def embed(self, texts: List[str]) -> List[List[float]]:
        return [np.asarray(vec, dtype=float).tolist() for vec in self._model.embed(texts)]


class OpenAIEmbeddingBackend(EmbeddingBackend):
    """Embeddings from the OpenAI API"""

    name = "openai"

    def __init__(self, model: str, api_key: str, dimension: Optional[int] = None):
        super().__init__(model)
        if not api_key:
            raise ValueError("OpenAI embedding backend requires an API key")
        from openai import OpenAI

        self._client = OpenAI(api_key=api_key)
        self._dimension = dimension

    def embed(self, texts: List[str]) -> List[List[float]]:
        kwargs = {}
        # Only the v3 models accept a reduced output dimension
        if self._dimension and self.model.startswith("text-embedding-3"):
            kwargs["dimensions"] = self._dimension
        response = self._client.embeddings.create(model=self.model, input=texts, **kwargs)
        return [item.embedding for item in response.data]


class HuggingFaceInferenceBackend(EmbeddingBackend):
    """Embeddings from the hosted HuggingFace feature-extraction pipeline"""

    name = "huggingface"

    def __init__(
        self,
        model: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(model)
        if not api_key:
            raise ValueError("HuggingFace embedding backend requires an API key")
        self._url = HF_INFERENCE_URL.format(model=model)
        self._client = httpx.Client(
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    def embed(self, texts: List[str]) -> List[List[float]]:
        response = self._client.post(self._url, json={"inputs": texts})
        if response.status_code != 200:
            raise RuntimeError(
                f"HuggingFace error {response.status_code}: {response.text[:200]}"
            )
        data = response.json()
        if not isinstance(data, list):
            raise RuntimeError(f"Unexpected HuggingFace response: {str(data)[:200]}")
        # A single input may come back unwrapped
        if data and not isinstance(data[0], list):
            data = [data]
        return data


def create_embedding_backend(config: EmbeddingConfig) -> EmbeddingBackend:
    """Build the backend named by the embedding config"""
    backend = config.backend.lower()
    if backend == "fastembed":
        return FastEmbedBackend(model=config.model)
    if backend == "openai":
        return OpenAIEmbeddingBackend(
            model=config.model,
            api_key=config.api_key,
            dimension=config.dimension,
        )
    if backend == "huggingface":
        return HuggingFaceInferenceBackend(model=config.model, api_key=config.api_key)
    raise ValueError(f"Unsupported embedding backend: {config.backend}")


class EmbeddingService:
    """
    Embedding capability used by the retriever.

    Wraps one backend and enforces the configured vector dimension.
    """

    def __init__(self, backend: EmbeddingBackend, dimension: int):
        self._backend = backend
        self.dimension = dimension

    @property
    def backend_name(self) -> str:
        return self._backend.name

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Raises:
            ValueError: if a vector does not have the configured dimension
        """
        if not texts:
            return []

        vectors = self._backend.embed(texts)
        if len(vectors) != len(texts):
            raise ValueError(f"Expected {len(texts)} vectors, got {len(vectors)}")

        for vec in vectors:
            if len(vec) != self.dimension:
                raise ValueError(
                    f"Vector dimension mismatch: expected {self.dimension}, got {len(vec)}"
                )
        return [list(map(float, vec)) for vec in vectors]

    def embed_single(self, text: str) -> List[float]:
        """Generate embedding for a single text"""
        if not text:
            raise ValueError("Cannot embed empty text")
        return self.embed([text])[0]

    async def aembed(self, text: str) -> List[float]:
        """Embed off the event loop; backends are blocking SDK calls"""
        return await asyncio.to_thread(self.embed_single, text)


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """
    Cosine similarity between two vectors.

    Vectors are normalised here, so backends that do not L2-normalise
    still compare correctly.
    """
    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)

    if v1.shape != v2.shape:
        raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")

    norm = np.linalg.norm(v1) * np.linalg.norm(v2)
    if norm == 0:
        return 0.0
    return float(np.dot(v1, v2) / norm)


def batch_cosine_similarity(query_vec: List[float], vectors: List[List[float]]) -> List[float]:
    """Cosine similarity between a query and each row of a matrix"""
    if not vectors:
        return []

    query = np.asarray(query_vec, dtype=float)
    matrix = np.asarray(vectors, dtype=float)

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    norms[norms == 0] = 1.0
    similarities = matrix @ query / norms

    return similarities.tolist()


def get_embedding_service(config: EmbeddingConfig) -> EmbeddingService:
    """Build the embedding service described by config"""
    backend = create_embedding_backend(config)
    logger.info(
        "Embedding service ready (backend=%s, model=%s, dimension=%d)",
        backend.name, config.model, config.dimension,
    )
    return EmbeddingService(backend, dimension=config.dimension)
