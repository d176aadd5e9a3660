"""
Embedding provider backed by a local Ollama server (``/api/embed``).
"""

from typing import Any, Dict, List, Optional

import aiohttp

from vaultsearch.core.exceptions import EmbeddingError
from vaultsearch.core.logging import logger
from vaultsearch.core.secure_config import Settings
from vaultsearch.core.utils.retry import retry_async


class OllamaEmbeddings:
    """
    Implements the EmbeddingProvider protocol against Ollama.

    Transient HTTP failures are retried with exponential backoff; malformed responses
    raise EmbeddingError immediately.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        request_timeout: Optional[float] = None,
    ) -> None:
        config = Settings()
        self.base_url = (base_url or config.get("ollama.base_url", "http://localhost:11434")).rstrip("/")
        self.model = model or config.get("embeddings.model", "nomic-embed-text")
        self.request_timeout = request_timeout or config.get("ollama.request_timeout", 60)
        self.session: Optional[aiohttp.ClientSession] = None
        logger.info("OllamaEmbeddings ready", base_url=self.base_url, model=self.model)

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
        return self.session

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        payload: Dict[str, Any] = {"model": self.model, "input": texts}

        async def _do_embed() -> Dict[str, Any]:
            async with self._get_session().post(
                f"{self.base_url}/api/embed",
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                response.raise_for_status()
                return await response.json()

        try:
            result = await retry_async(
                _do_embed,
                max_attempts=3,
                initial_delay=1.0,
                retry_on=(aiohttp.ClientError,),
                logger=logger,
            )
        except aiohttp.ClientError as e:
            raise EmbeddingError(
                f"Ollama embedding request failed: {e}",
                context={"base_url": self.base_url, "model": self.model, "texts": len(texts)},
                cause=e,
            ) from e

        embeddings = result.get("embeddings")
        if not isinstance(embeddings, list) or len(embeddings) != len(texts):
            raise EmbeddingError(
                "Embedding provider returned an unexpected number of vectors",
                context={
                    "expected": len(texts),
                    "received": len(embeddings) if isinstance(embeddings, list) else None,
                },
            )
        return [[float(value) for value in vector] for vector in embeddings]

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return await self._embed(list(texts))

    async def embed_query(self, text: str) -> List[float]:
        return (await self._embed([text]))[0]

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None
