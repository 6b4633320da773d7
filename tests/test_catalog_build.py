import json

import pandas as pd
import pytest

from cardsearch.catalog_build import (
    build_search_text,
    load_catalog,
    load_raw_catalog,
    normalize_catalog_df,
    parse_damage_value,
    parse_int_field,
    parse_localized_text,
    parse_types_field,
)
from cardsearch.config import CATALOG_PATH
from cardsearch.errors import CatalogLoadError


def test_parse_damage_value():
    assert parse_damage_value("40") == 40
    assert parse_damage_value("50+") == 50
    assert parse_damage_value("30x") == 30
    assert parse_damage_value(70) == 70
    assert parse_damage_value("") is None
    assert parse_damage_value("-") is None
    assert parse_damage_value(None) is None


def test_parse_int_field():
    assert parse_int_field("70 HP") == 70
    assert parse_int_field(2.0) == 2
    assert parse_int_field(float("nan")) is None
    assert parse_int_field(True) is None
    assert parse_int_field("none") is None


def test_parse_types_field():
    assert parse_types_field("Grass, Psychic") == ["Grass", "Psychic"]
    assert parse_types_field(["Fire", "Fire", " Water "]) == ["Fire", "Water"]
    assert parse_types_field(None) == []


def test_parse_localized_text():
    assert parse_localized_text("Vine  Whip") == {"en": "Vine Whip"}
    assert parse_localized_text({"en": "Ember", "ja": "ひのこ", "fr": ""}) == {"en": "Ember", "ja": "ひのこ"}
    assert parse_localized_text(None) == {}


def test_normalize_catalog_folds_locale_columns_and_dedupes():
    raw = pd.DataFrame(
        {
            "id": ["x1", "x1", None],
            "name": ["Pikachu", "Duplicate", "No id"],
            "name_ja": ["ピカチュウ", None, None],
            "type": ["Lightning", "Fire", "Water"],
            "HP": ["60 HP", "10", "10"],
            "attacks": [[{"name": "Gnaw", "damage": "20", "cost": "Lightning"}], [], []],
        }
    )
    cards = normalize_catalog_df(raw)

    assert [c.card_id for c in cards] == ["x1"]
    card = cards[0]
    assert card.name == {"en": "Pikachu", "ja": "ピカチュウ"}
    assert card.types == frozenset({"Lightning"})
    assert card.hp == 60
    assert card.attacks[0].damage == "20"
    assert card.attacks[0].cost == ("Lightning",)
    assert card.ability is None


def test_normalize_catalog_without_id_column_is_empty():
    assert normalize_catalog_df(pd.DataFrame({"name": ["A"]})) == []


def test_build_search_text_falls_back_to_english(cards):
    text = build_search_text(cards[1], "ja")
    assert "リザードン" in text
    assert "fire spin" in text  # attack name has no ja entry
    assert text == text.casefold()


def test_load_raw_catalog_errors(tmp_path):
    with pytest.raises(CatalogLoadError):
        load_raw_catalog(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogLoadError):
        load_raw_catalog(bad)

    wrong = tmp_path / "wrong.json"
    wrong.write_text(json.dumps({"cards": "nope"}), encoding="utf-8")
    with pytest.raises(CatalogLoadError):
        load_raw_catalog(wrong)


def test_bundled_catalog_loads():
    cards = load_catalog(CATALOG_PATH)
    by_id = {c.card_id: c for c in cards}

    assert len(cards) == len(by_id) >= 8
    assert by_id["a1-177"].ability is not None
    assert by_id["a1-219"].hp is None
    assert by_id["a1-219"].types == frozenset()
    assert by_id["a1-001"].name["ja"] == "フシギダネ"
