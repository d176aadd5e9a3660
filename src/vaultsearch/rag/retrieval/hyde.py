"""
Hypothetical document generation (HyDE) for the semantic path.
"""

from typing import Optional

from vaultsearch.core.logging import logger
from vaultsearch.core.utils import run_with_timeout
from vaultsearch.store.protocols import ChatModel

HYDE_PROMPT = """Write a brief, informative passage (2-3 sentences) that directly answers or addresses the following question. Write it as if it were an excerpt from a note, without any preamble.

Question: {query}"""

DEFAULT_HYDE_TIMEOUT = 5.0


class HydeGenerator:
    """
    Asks the chat model for a short passage that would answer the query.

    The passage is embedded alongside the query variants; answers tend to sit closer to
    relevant notes in embedding space than questions do.
    """

    def __init__(self, chat_model: Optional[ChatModel], timeout: float = DEFAULT_HYDE_TIMEOUT):
        self.chat_model = chat_model
        self.timeout = timeout

    async def generate(self, query: str) -> Optional[str]:
        """Passage text, or None on timeout, failure or missing chat model."""
        if self.chat_model is None or not query.strip():
            return None

        passage = await run_with_timeout(
            lambda: self.chat_model.complete(HYDE_PROMPT.format(query=query)),
            timeout=self.timeout,
            fallback=None,
            operation="hyde",
            logger=logger,
        )
        if not isinstance(passage, str) or not passage.strip():
            return None

        logger.debug("Hypothetical passage generated", query=query[:50], chars=len(passage))
        return passage.strip()
