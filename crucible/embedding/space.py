"""
Embedding Space client for Crucible.

Embeds claim text through an Ollama-compatible ``/api/embeddings``
endpoint so the runner can record where each claim sits in semantic
space.

Every request uses a fresh context-managed httpx client. If the
requested model fails, the configured fallback models are tried in
order. Total failure yields None: the trajectory point is stored
without an embedding and distance checks degrade to 0.0.
"""

import asyncio
import hashlib
import logging
from typing import Dict, List, Optional

import httpx
import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"

EMBEDDING_FALLBACK_CHAIN = [
    "nomic-embed-text:latest",
    "mxbai-embed-large:latest",
]


class EmbeddingSpace:
    """
    Async embedding client with a sha256-keyed cache.

    Args:
        model: Primary embedding model
        base_url: Ollama server URL
        timeout: Request timeout in seconds
        max_retries: Attempts per model before moving down the chain
        fallback_models: Models tried after the primary one
    """

    def __init__(
        self,
        model: str = "nomic-embed-text:latest",
        base_url: str = DEFAULT_OLLAMA_URL,
        timeout: float = 30.0,
        max_retries: int = 2,
        fallback_models: Optional[List[str]] = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.fallback_models = (
            list(fallback_models) if fallback_models is not None else list(EMBEDDING_FALLBACK_CHAIN)
        )
        self._cache: Dict[str, np.ndarray] = {}
        self._cache_hits = 0
        self._cache_misses = 0

    @property
    def cache_stats(self) -> Dict[str, int]:
        return {"hits": self._cache_hits, "misses": self._cache_misses, "size": len(self._cache)}

    async def embed(self, text: Optional[str]) -> Optional[np.ndarray]:
        """
        Embed text.

        Returns:
            1-D numpy array, or None if the text is empty or all models failed
        """
        if not text or not text.strip():
            return None

        cache_key = hashlib.sha256(text.encode("utf-8")).hexdigest()
        if cache_key in self._cache:
            self._cache_hits += 1
            return self._cache[cache_key]
        self._cache_misses += 1

        models_to_try = [self.model]
        for fallback in self.fallback_models:
            if fallback not in models_to_try:
                models_to_try.append(fallback)

        for current_model in models_to_try:
            vector = await self._try_model(text, current_model)
            if vector is not None:
                if current_model != self.model:
                    logger.info(
                        f"[EMBED] Used fallback embedding model {current_model} "
                        f"(primary {self.model} failed)"
                    )
                self._cache[cache_key] = vector
                return vector
            logger.warning(f"[EMBED] Embedding model {current_model} failed, trying next...")

        logger.error(f"[EMBED] All embedding models failed. Tried: {models_to_try}")
        return None

    async def _try_model(self, text: str, model: str) -> Optional[np.ndarray]:
        payload = {"model": model, "prompt": text}

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(f"{self.base_url}/api/embeddings", json=payload)
                    response.raise_for_status()
                    embedding = response.json().get("embedding") or []
                    if embedding:
                        return np.asarray(embedding, dtype=float)

            except httpx.TimeoutException as e:
                logger.warning(f"[EMBED] Timeout from {model} (attempt {attempt + 1}): {e}")

            except httpx.HTTPStatusError as e:
                logger.warning(f"[EMBED] HTTP error from {model} (attempt {attempt + 1}): {e}")
                # A 500 means the model itself is broken; retrying will not help
                if e.response.status_code == 500:
                    return None

            except httpx.RequestError as e:
                logger.warning(f"[EMBED] Request error from {model} (attempt {attempt + 1}): {e}")

            except ValueError as e:
                logger.warning(f"[EMBED] Undecodable response from {model}: {e}")
                return None

            if attempt < self.max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        return None
