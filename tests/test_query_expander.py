"""Tests for query expansion, salient terms and tag handling."""

from conftest import FakeChatModel
from vaultsearch.rag.retrieval.query_expander import QueryExpander

XML_RESPONSE = """<queries>
<query>alpha launch</query>
<query>alpha release</query>
</queries>
<terms>
<term>Launch</term>
<term>x</term>
<term>roadmap</term>
</terms>"""


class TestSalientTerms:
    def test_tag_with_hierarchy(self) -> None:
        expander = QueryExpander()
        assert expander.extract_salient_terms("#Project/Alpha update") == [
            "project",
            "alpha",
            "update",
            "#project/alpha",
        ]

    def test_tag_body_dropped_unless_standalone(self) -> None:
        expander = QueryExpander()
        assert expander.extract_salient_terms("#alpha notes") == ["notes", "#alpha"]
        assert expander.extract_salient_terms("#alpha alpha notes") == ["alpha", "notes", "#alpha"]

    def test_hyphenated_words_add_parts(self) -> None:
        expander = QueryExpander()
        assert expander.extract_terms("state-of-the-art plan") == [
            "state-of-the-art",
            "state",
            "of",
            "the",
            "art",
            "plan",
        ]

    def test_short_terms_filtered(self) -> None:
        expander = QueryExpander(min_term_length=3)
        assert expander.extract_terms("an ox ate hay") == ["ate", "hay"]

    def test_extract_tags(self) -> None:
        assert QueryExpander.extract_tags("see #Work and #work/Q3 #") == ["#work", "#work/q3"]


class TestQueryExpander:
    async def test_blank_query(self) -> None:
        expanded = await QueryExpander().expand("   ")
        assert expanded.queries == []
        assert expanded.salient_terms == []

    async def test_fallback_without_chat_model(self) -> None:
        expanded = await QueryExpander().expand("alpha release")

        assert expanded.queries == ["alpha release"]
        assert expanded.salient_terms == ["alpha", "release"]
        assert expanded.expanded_terms == []
        assert expanded.original_query == "alpha release"

    async def test_parses_xml_response(self) -> None:
        chat = FakeChatModel(XML_RESPONSE)
        expanded = await QueryExpander(chat_model=chat).expand("alpha release")

        assert expanded.queries == ["alpha release", "alpha launch"]
        assert expanded.expanded_terms == ["launch", "roadmap"]
        # LLM terms never become scoring terms
        assert expanded.salient_terms == ["alpha", "release"]
        assert '"alpha release"' in chat.prompts[0]

    async def test_parses_legacy_sections(self) -> None:
        chat = FakeChatModel("QUERIES:\n- alpha launch\nTERMS:\n- roadmap\n- milestones")
        expanded = await QueryExpander(chat_model=chat).expand("alpha release")

        assert expanded.queries == ["alpha release", "alpha launch"]
        assert expanded.expanded_terms == ["roadmap", "milestones"]

    async def test_variants_capped(self) -> None:
        response = "".join(f"<query>variant {i}</query>" for i in range(10))
        expander = QueryExpander(chat_model=FakeChatModel(response), max_variants=2)

        expanded = await expander.expand("alpha")

        assert expanded.queries == ["alpha", "variant 0", "variant 1"]

    async def test_results_are_cached(self) -> None:
        chat = FakeChatModel(XML_RESPONSE)
        expander = QueryExpander(chat_model=chat)

        first = await expander.expand("alpha release")
        first.queries.append("mutated")
        second = await expander.expand("alpha release")

        assert len(chat.prompts) == 1
        assert "mutated" not in second.queries

    async def test_cache_evicts_oldest(self) -> None:
        expander = QueryExpander(chat_model=FakeChatModel(XML_RESPONSE), cache_size=2)

        for query in ("one", "two", "three"):
            await expander.expand(query)

        assert list(expander.cache) == ["two", "three"]

    async def test_timeout_falls_back(self) -> None:
        chat = FakeChatModel(XML_RESPONSE, delay=1.0)
        expander = QueryExpander(chat_model=chat, timeout=0.05)

        expanded = await expander.expand("alpha release")

        assert expanded.queries == ["alpha release"]
        assert expanded.salient_terms == ["alpha", "release"]
        assert "alpha release" not in expander.cache

    async def test_chat_error_falls_back(self) -> None:
        chat = FakeChatModel(error=RuntimeError("model crashed"))
        expanded = await QueryExpander(chat_model=chat).expand("alpha")

        assert expanded.queries == ["alpha"]

    async def test_empty_response_falls_back(self) -> None:
        expanded = await QueryExpander(chat_model=FakeChatModel("   ")).expand("alpha")
        assert expanded.queries == ["alpha"]
        assert expanded.expanded_terms == []

    async def test_clear_cache(self) -> None:
        expander = QueryExpander(chat_model=FakeChatModel(XML_RESPONSE))
        await expander.expand("alpha")
        expander.clear_cache()
        assert len(expander.cache) == 0
