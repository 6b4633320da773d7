from cardsearch.mapping import map_result_to_response, to_card_item
from cardsearch.pipeline_types import ParsedQuery, SearchResult


def _result(ranked, scores=None, locale="en"):
    return SearchResult(
        query="q",
        locale=locale,
        parsed=ParsedQuery(),
        candidate_ids=["c1", "c2", "c3", "c4", "c5"],
        ranked_ids=ranked,
        mode="hybrid" if scores else "filter_only",
        fused_scores=scores or {},
        notices=["vector_unavailable"],
        answer="hello",
    )


def test_to_card_item_uses_locale_name(cards):
    item = to_card_item(cards[0], "ja", score=0.5)
    assert item.name == "フシギバナex"
    assert item.types == ["Grass"]
    assert item.score == 0.5


def test_map_result_keeps_order_and_applies_limit(cards):
    by_id = {c.card_id: c for c in cards}
    resp = map_result_to_response(_result(["c3", "c1", "c2"], {"c3": 0.03, "c1": 0.02, "c2": 0.01}), by_id, limit=2)
    assert [r.id for r in resp.results] == ["c3", "c1"]
    assert resp.results[0].score == 0.03
    assert resp.total_candidates == 5
    assert resp.notices == ["vector_unavailable"]
    assert resp.answer == "hello"


def test_map_result_skips_unknown_ids(cards):
    by_id = {c.card_id: c for c in cards}
    resp = map_result_to_response(_result(["zz", "c2"]), by_id)
    assert [r.id for r in resp.results] == ["c2"]
    assert resp.results[0].score is None
