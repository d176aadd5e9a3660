"""
Client for a local Ollama chat model.

Used for query expansion and hypothetical passages. Implements the ChatModel protocol
through ``complete``.
"""

from collections import OrderedDict
from typing import Any, Dict, Optional

import aiohttp

from vaultsearch.core.exceptions import ExternalServiceError
from vaultsearch.core.logging import logger
from vaultsearch.core.secure_config import Settings
from vaultsearch.core.utils.retry import retry_async


class OllamaClient:
    """
    Minimal async Ollama client.

    One session per client, created on first use. Identical prompts can be served from
    an LRU cache when the caller passes a ``cache_key``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        request_timeout: Optional[float] = None,
        cache_size: int = 100,
    ) -> None:
        """Initialize Ollama client.

        Args:
            base_url: Ollama server URL (if None, reads from config)
            model: Chat model name (if None, reads from config)
            request_timeout: Total timeout per request in seconds
            cache_size: Maximum number of cached responses
        """
        config = Settings()
        self.base_url = (base_url or config.get("ollama.base_url", "http://localhost:11434")).rstrip("/")
        self.model = model or config.get("ollama.chat_model", "llama3.2")
        self.request_timeout = request_timeout or config.get("ollama.request_timeout", 60)
        self.session: Optional[aiohttp.ClientSession] = None
        self.cache: "OrderedDict[str, str]" = OrderedDict()
        self.cache_size = cache_size
        logger.info("OllamaClient ready", base_url=self.base_url, model=self.model)

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
        return self.session

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        cache_key: Optional[str] = None,
    ) -> str:
        """
        Generate a non-streamed completion.

        Retries transient HTTP failures with exponential backoff.

        Raises:
            ExternalServiceError: Ollama unreachable or returned an error
        """
        if cache_key and cache_key in self.cache:
            self.cache.move_to_end(cache_key)
            return self.cache[cache_key]

        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature},
        }
        if system:
            payload["system"] = system
        if max_tokens:
            payload["options"]["num_predict"] = max_tokens

        async def _do_generate() -> str:
            async with self._get_session().post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                response.raise_for_status()
                result: Dict[str, Any] = await response.json()
                return str(result.get("response", ""))

        try:
            text = await retry_async(
                _do_generate,
                max_attempts=3,
                initial_delay=0.5,
                retry_on=(aiohttp.ClientError,),
                logger=logger,
            )
        except aiohttp.ClientError as e:
            raise ExternalServiceError(
                f"Ollama request failed: {e}",
                context={"base_url": self.base_url, "model": self.model},
                cause=e,
            ) from e

        if cache_key:
            self.cache[cache_key] = text
            self.cache.move_to_end(cache_key)
            while len(self.cache) > self.cache_size:
                self.cache.popitem(last=False)
        return text

    async def complete(self, prompt: str) -> str:
        return await self.generate(prompt)

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None
