from cardsearch.filters import build_predicates, filter_cards
from cardsearch.pipeline_types import Attack, Card, SearchFilters


def _ids(cards):
    return [c.card_id for c in cards]


def test_no_filters_returns_catalog_unchanged(cards):
    assert _ids(filter_cards(cards, SearchFilters(), "en")) == _ids(cards)


def test_end_to_end_filter_example():
    items = [
        Card(card_id="c1", name={"en": "A"}, types=frozenset({"Grass"}), hp=220, category="Pokemon"),
        Card(card_id="c2", name={"en": "B"}, types=frozenset({"Fire"}), hp=100, category="Pokemon"),
    ]
    filters = SearchFilters(types=["Grass"], hp_gte=200, category="Pokemon")
    assert _ids(filter_cards(items, filters, "en")) == ["c1"]


def test_result_is_order_preserving_subset(cards):
    kept = filter_cards(cards, SearchFilters(set="Genetic Apex"), "en")
    assert _ids(kept) == ["c1", "c2", "c3", "c5"]


def test_adding_a_predicate_never_grows_the_result(cards):
    base = filter_cards(cards, SearchFilters(category="Pokemon"), "en")
    narrower = filter_cards(cards, SearchFilters(category="Pokemon", hp_lte=110), "en")
    assert set(_ids(narrower)) <= set(_ids(base))
    assert _ids(narrower) == ["c2", "c3", "c4"]


def test_name_is_case_insensitive_substring_in_locale(cards):
    assert _ids(filter_cards(cards, SearchFilters(name="zard"), "en")) == ["c2"]
    assert _ids(filter_cards(cards, SearchFilters(name="リザ"), "ja")) == ["c2"]


def test_types_match_any_overlap(cards):
    kept = filter_cards(cards, SearchFilters(types=["Fire", "Lightning"]), "en")
    assert _ids(kept) == ["c2", "c4"]


def test_attack_damage_bounds_use_numeric_part_and_skip_blank_damage(cards):
    assert _ids(filter_cards(cards, SearchFilters(attack_damage_gte=120), "en")) == ["c2"]
    # c4 has a "" damage attack; only Gnaw (20) counts
    assert _ids(filter_cards(cards, SearchFilters(attack_damage_lte=20), "en")) == ["c4"]


def test_damage_with_modifier_suffix_counts():
    card = Card(card_id="x", name={"en": "X"}, attacks=(Attack(name={"en": "Hit"}, damage="50+"),))
    assert _ids(filter_cards([card], SearchFilters(attack_damage_gte=50), "en")) == ["x"]


def test_missing_numeric_attribute_fails_the_bound(cards):
    # Erika has no hp
    assert "c5" not in _ids(filter_cards(cards, SearchFilters(hp_lte=1000), "en"))


def test_retreat_weakness_and_ability(cards):
    assert _ids(filter_cards(cards, SearchFilters(retreat_lte=1), "en")) == ["c4"]
    assert _ids(filter_cards(cards, SearchFilters(weakness_type="Fighting"), "en")) == ["c3", "c4"]
    assert _ids(filter_cards(cards, SearchFilters(has_ability=True), "en")) == ["c3"]
    assert "c3" not in _ids(filter_cards(cards, SearchFilters(has_ability=False), "en"))


def test_categorical_match_is_exact(cards):
    assert filter_cards(cards, SearchFilters(category="pokemon"), "en") == []


def test_malformed_values_match_nothing_without_raising(cards):
    assert filter_cards(cards, SearchFilters(hp_gte="lots"), "en") == []
    assert filter_cards(cards, SearchFilters(hp_gte=True), "en") == []
    assert filter_cards(cards, SearchFilters(types=[1, 2]), "en") == []
    assert filter_cards(cards, SearchFilters(has_ability="yes"), "en") == []


def test_numeric_strings_are_accepted_as_bounds(cards):
    assert _ids(filter_cards(cards, SearchFilters(hp_gte="200"), "en")) == ["c1"]


def test_build_predicates_only_for_supplied_keys():
    predicates = build_predicates(SearchFilters(hp_gte=10, stage="Basic"), "en")
    assert sorted(k for k, _ in predicates) == ["hp_gte", "stage"]


def test_bound_beyond_float_range_matches_nothing(cards):
    assert filter_cards(cards, SearchFilters(hp_lte=10**400), "en") == []
    assert filter_cards(cards, SearchFilters(attack_damage_gte=-(10**400)), "en") == []
