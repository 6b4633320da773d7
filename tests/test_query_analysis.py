import asyncio
import json

import httpx
import pytest

from cardsearch.errors import LLMServiceError, QueryParseError
from cardsearch.llm_client import OpenAICompatibleClient
from cardsearch.query_analysis import LLMQueryParser, catalog_vocabulary, parsed_query_from_payload


def test_payload_with_filters_object():
    parsed = parsed_query_from_payload(
        {"filters": {"types": ["Grass"], "hp_gte": 200, "colour": "green"}, "semantic_query": "heals a lot"}
    )
    assert parsed.filters.active() == {"types": ["Grass"], "hp_gte": 200}
    assert parsed.semantic_query == "heals a lot"


def test_flat_payload_and_blank_values():
    parsed = parsed_query_from_payload({"stage": "Basic", "rarity": "", "types": [], "semantic_query": "  "})
    assert parsed.filters.active() == {"stage": "Basic"}
    assert parsed.semantic_query is None
    assert not parsed.has_semantic_query


def test_malformed_values_pass_through_for_the_filter_engine():
    parsed = parsed_query_from_payload({"filters": {"hp_gte": "lots"}})
    assert parsed.filters.hp_gte == "lots"


@pytest.mark.parametrize(
    "payload",
    [["not", "an", "object"], {"filters": "Grass"}, {"semantic_query": 42}],
)
def test_invalid_payloads_raise(payload):
    with pytest.raises(QueryParseError):
        parsed_query_from_payload(payload)


def test_catalog_vocabulary(cards):
    vocab = catalog_vocabulary(cards)
    assert vocab["category"] == ["Pokemon", "Trainer"]
    assert "Water" in vocab["types"]  # weakness values are types too
    assert vocab["set"] == ["Genetic Apex", "Mythical Island"]


def _chat_reply(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_llm_parser_round_trip(cards):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        reply = {"filters": {"category": "Pokemon", "hp_lte": 100}, "semantic_query": "electric mouse"}
        return httpx.Response(200, json=_chat_reply(json.dumps(reply)))

    async def run():
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = OpenAICompatibleClient("https://llm.example.com/v1", "k", client=http)
        parser = LLMQueryParser(client, catalog_vocabulary(cards), model="parser-model")
        try:
            return await parser.parse("small electric mouse", "en")
        finally:
            await client.aclose()

    parsed = asyncio.run(run())
    assert parsed.filters.active() == {"category": "Pokemon", "hp_lte": 100}
    assert parsed.semantic_query == "electric mouse"
    assert seen["body"]["model"] == "parser-model"
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert "Mythical Island" in seen["body"]["messages"][0]["content"]


def test_llm_parser_non_json_reply_is_a_service_error(cards):
    def handler(request):
        return httpx.Response(200, json=_chat_reply("sure! here are some cards"))

    async def run():
        client = OpenAICompatibleClient(
            "https://llm.example.com/v1", "", client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        await LLMQueryParser(client, {}).parse("anything", "en")

    with pytest.raises(LLMServiceError):
        asyncio.run(run())


def test_null_filters_keep_semantic_query():
    parsed = parsed_query_from_payload({"filters": None, "semantic_query": "fire"})
    assert parsed.filters.active() == {}
    assert parsed.semantic_query == "fire"
