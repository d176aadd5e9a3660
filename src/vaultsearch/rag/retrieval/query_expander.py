"""
LLM-assisted query expansion.

Produces query paraphrases and related terms for recall, plus salient terms taken only from
the original query for scoring. Without a chat model, or when it is slow or fails, the
heuristic expansion is used. ``expand`` never raises.
"""

import re
from collections import OrderedDict
from typing import List, Optional

from vaultsearch.core.logging import logger
from vaultsearch.core.tracing import MetricsCollector
from vaultsearch.core.utils import run_with_timeout
from vaultsearch.models.search import ExpandedQuery
from vaultsearch.store.protocols import ChatModel

DEFAULT_MAX_VARIANTS = 3
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_CACHE_SIZE = 100

TAG_RE = re.compile(r"#[\w/-]+")
TERM_RE = re.compile(r"^[\w-]+$")
TAG_TERM_RE = re.compile(r"^#[\w/-]+$")
QUERY_TAG_RE = re.compile(r"<query>(.*?)</query>", re.DOTALL)
TERM_TAG_RE = re.compile(r"<term>(.*?)</term>", re.DOTALL)
LIST_MARKER_RE = re.compile(r"^[-•*\d.)\s]+")

PROMPT_TEMPLATE = """Generate alternative search queries and semantically related terms for the following query:
"{query}"

Instructions:
1. Generate {count} alternative search queries that capture the same intent
2. Extract semantically related terms that someone might use when searching for this topic
3. Include keywords from the original query, synonyms, related concepts and domain terminology
4. Keep the SAME LANGUAGE as the original query
5. Focus on NOUNS and meaningful concepts
6. EXCLUDE common action verbs in ANY language (find, search, get, chercher, buscar, etc.)

Example: "find my piano notes"
- Queries: "piano lesson notes", "piano practice sheets"
- Terms: piano, notes, music, sheet, practice, lesson, scales

Format your response using XML tags:
<queries>
<query>alternative query 1</query>
<query>alternative query 2</query>
</queries>
<terms>
<term>keyword1</term>
<term>keyword2</term>
</terms>"""


class QueryExpander:
    """
    Expands a query into variants and terms, with an LRU cache of recent expansions.

    Salient terms come from the original query only; LLM terms land in
    ``expanded_terms`` and are used for candidate recall, never for scoring.
    """

    def __init__(
        self,
        chat_model: Optional[ChatModel] = None,
        max_variants: int = DEFAULT_MAX_VARIANTS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        cache_size: int = DEFAULT_CACHE_SIZE,
        min_term_length: int = 2,
    ):
        self.chat_model = chat_model
        self.max_variants = max_variants
        self.timeout = timeout
        self.cache_size = cache_size
        self.min_term_length = min_term_length
        self.cache: "OrderedDict[str, ExpandedQuery]" = OrderedDict()
        self.metrics = MetricsCollector()

    async def expand(self, query: str) -> ExpandedQuery:
        """
        Expand a query.

        Args:
            query: Raw user query

        Returns:
            Original query first in ``queries``; an empty expansion for blank input
        """
        if not query or not query.strip():
            return ExpandedQuery()

        if query in self.cache:
            self.cache.move_to_end(query)
            self.metrics.increment("rag.expansion.cache.hits")
            logger.debug("Using cached expansion", query=query[:50])
            return self.cache[query].model_copy(deep=True)

        self.metrics.increment("rag.expansion.cache.misses")

        if self.chat_model is None:
            return self.fallback_expansion(query)

        expanded = await run_with_timeout(
            lambda: self._expand_with_llm(query),
            timeout=self.timeout,
            fallback=None,
            operation="query_expansion",
            logger=logger,
        )
        if expanded is None:
            return self.fallback_expansion(query)

        self._cache_result(query, expanded)
        return expanded.model_copy(deep=True)

    def clear_cache(self) -> None:
        self.cache.clear()

    def _cache_result(self, query: str, expanded: ExpandedQuery) -> None:
        self.cache[query] = expanded
        self.cache.move_to_end(query)
        while len(self.cache) > self.cache_size:
            self.cache.popitem(last=False)

    async def _expand_with_llm(self, query: str) -> Optional[ExpandedQuery]:
        prompt = PROMPT_TEMPLATE.format(query=query, count=self.max_variants)
        response = await self.chat_model.complete(prompt)
        content = response.strip() if isinstance(response, str) else ""
        if not content:
            return None

        expanded = self.parse_response(content, query)
        logger.info(
            "Query expanded",
            query=query[:50],
            queries=len(expanded.queries),
            expanded_terms=len(expanded.expanded_terms),
        )
        return expanded

    def parse_response(self, content: str, original_query: str) -> ExpandedQuery:
        """Parse the XML envelope, falling back to the line-based format."""
        queries = [original_query]
        for match in QUERY_TAG_RE.finditer(content):
            candidate = match.group(1).strip()
            if candidate and candidate != original_query and candidate not in queries:
                queries.append(candidate)

        terms: List[str] = []
        for match in TERM_TAG_RE.finditer(content):
            term = match.group(1).strip().lower()
            if self.is_valid_term(term) and term not in terms:
                terms.append(term)

        if len(queries) == 1 and not terms:
            return self._parse_legacy(content, original_query)

        return ExpandedQuery(
            queries=queries[: self.max_variants + 1],
            salient_terms=self.extract_salient_terms(original_query),
            expanded_terms=terms,
            original_query=original_query,
        )

    def _parse_legacy(self, content: str, original_query: str) -> ExpandedQuery:
        """``QUERIES:`` / ``TERMS:`` sections with bulleted lines."""
        lines = [line.strip() for line in content.splitlines()]
        queries = [original_query]
        terms: List[str] = []
        section = None

        for line in lines:
            if not line:
                continue
            upper = line.upper()
            if "QUERIES" in upper:
                section = "queries"
                continue
            if "TERMS" in upper or "KEYWORDS" in upper:
                section = "terms"
                continue

            cleaned = LIST_MARKER_RE.sub("", line).strip()
            if section == "queries" and len(queries) <= self.max_variants:
                if cleaned and cleaned != original_query and cleaned not in queries:
                    queries.append(cleaned)
            elif section == "terms":
                term = cleaned.lower()
                if self.is_valid_term(term) and term not in terms:
                    terms.append(term)

        # No recognizable sections: treat the first lines as paraphrases
        if len(queries) == 1 and not terms:
            for line in lines[: self.max_variants]:
                if line and "QUERY" not in line.upper() and line != original_query:
                    queries.append(line)

        return ExpandedQuery(
            queries=queries[: self.max_variants + 1],
            salient_terms=self.extract_salient_terms(original_query),
            expanded_terms=terms,
            original_query=original_query,
        )

    def fallback_expansion(self, query: str) -> ExpandedQuery:
        return ExpandedQuery(
            queries=[query],
            salient_terms=self.extract_salient_terms(query),
            expanded_terms=[],
            original_query=query,
        )

    def is_valid_term(self, term: str) -> bool:
        if len(term) < self.min_term_length:
            return False
        if term.startswith("#"):
            return bool(TAG_TERM_RE.match(term))
        return bool(TERM_RE.match(term))

    def extract_terms(self, text: str) -> List[str]:
        """Lowercased words with punctuation removed; hyphenated words add their parts."""
        terms: List[str] = []
        words = re.sub(r"[^\w\s-]", " ", text.lower()).split()
        for word in words:
            if not self.is_valid_term(word):
                continue
            if word not in terms:
                terms.append(word)
            if "-" in word:
                for part in word.split("-"):
                    if self.is_valid_term(part) and part not in terms:
                        terms.append(part)
        return terms

    @staticmethod
    def extract_tags(text: str) -> List[str]:
        """Hash-prefixed tag tokens, lowercased, hash kept."""
        tags: List[str] = []
        for raw in TAG_RE.findall(text or ""):
            tag = raw.strip().lower()
            if len(tag) > 1 and tag not in tags:
                tags.append(tag)
        return tags

    def extract_salient_terms(self, query: str) -> List[str]:
        """
        Scoring terms from the original query.

        Tags are kept whole. A tag body (``project/alpha`` for ``#project/alpha``) is only
        kept as a plain term when it also appears outside any tag.
        """
        base_terms = self.extract_terms(query)
        tags = self.extract_tags(query)
        combined = list(dict.fromkeys(base_terms + tags))
        if not tags:
            return combined

        without_tags = query.lower()
        for tag in tags:
            without_tags = without_tags.replace(tag, " ")
        standalone = set(self.extract_terms(without_tags))

        for tag in tags:
            body = tag[1:]
            if body and body not in standalone and body in combined:
                combined.remove(body)
        return combined
