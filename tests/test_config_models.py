import pytest
from pydantic import ValidationError

from cardsearch.config import (
    DEFAULT_LOCALE,
    MAX_INPUT_CHARS,
    SUPPORTED_LOCALES,
    CardItem,
    HealthResponse,
    SearchRequest,
    SearchResponse,
    embeddings_filename,
)


def test_search_request_defaults():
    req = SearchRequest(query="grass cards")
    assert req.locale == DEFAULT_LOCALE
    assert req.limit == 20
    assert req.with_answer is True


@pytest.mark.parametrize("payload", [{"query": ""}, {"query": "x", "limit": 101}, {"query": "x" * (MAX_INPUT_CHARS + 1)}])
def test_search_request_validation(payload):
    with pytest.raises(ValidationError):
        SearchRequest(**payload)


def test_card_item_rejects_negative_hp():
    with pytest.raises(ValidationError):
        CardItem(id="c1", name="A", hp=-1)


def test_search_response_structure():
    item = CardItem(id="c1", name="Bulbasaur", types=["Grass"], hp=70)
    resp = SearchResponse(results=[item], mode="hybrid", total_candidates=1)
    assert resp.results[0].id == "c1"
    assert resp.notices == []
    assert resp.answer is None


def test_health_response_model():
    assert HealthResponse(status="healthy").status == "healthy"


def test_locales_and_store_names():
    assert DEFAULT_LOCALE in SUPPORTED_LOCALES
    assert embeddings_filename("ja") == "embeddings_ja.npz"
