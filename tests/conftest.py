import pytest

from cardsearch.pipeline_types import Ability, Attack, Card


@pytest.fixture
def cards():
    return [
        Card(
            card_id="c1",
            name={"en": "Venusaur ex", "ja": "フシギバナex"},
            category="Pokemon",
            stage="Stage 2",
            types=frozenset({"Grass"}),
            hp=220,
            retreat_cost=3,
            weakness="Fire",
            rarity="Double Rare",
            set_name="Genetic Apex",
            attacks=(
                Attack(name={"en": "Giant Bloom", "ja": "ジャイアントブルーム"}, damage="100",
                       text={"en": "Heal 30 damage from this Pokemon."}),
            ),
            visual_description={"en": "A huge flower blooming in sunlight", "ja": "日差しの中で咲く大きな花"},
        ),
        Card(
            card_id="c2",
            name={"en": "Charizard", "ja": "リザードン"},
            category="Pokemon",
            stage="Stage 2",
            types=frozenset({"Fire"}),
            hp=100,
            retreat_cost=2,
            weakness="Water",
            rarity="Rare",
            set_name="Genetic Apex",
            attacks=(
                Attack(name={"en": "Fire Spin"}, damage="150",
                       text={"en": "Discard 2 Energy from this Pokemon."}),
            ),
            visual_description={"en": "A dragon breathing fire over a canyon", "ja": "峡谷の上で炎を吐くドラゴン"},
        ),
        Card(
            card_id="c3",
            name={"en": "Weezing"},
            category="Pokemon",
            stage="Stage 1",
            types=frozenset({"Darkness"}),
            hp=110,
            retreat_cost=3,
            weakness="Fighting",
            rarity="Uncommon",
            set_name="Genetic Apex",
            ability=Ability(name={"en": "Gas Leak"}, text={"en": "Make the opponent's Active Pokemon Poisoned."}),
            attacks=(Attack(name={"en": "Tackle"}, damage="50"),),
        ),
        Card(
            card_id="c4",
            name={"en": "Pikachu"},
            category="Pokemon",
            stage="Basic",
            types=frozenset({"Lightning"}),
            hp=60,
            retreat_cost=1,
            weakness="Fighting",
            rarity="Common",
            set_name="Mythical Island",
            attacks=(Attack(name={"en": "Gnaw"}, damage="20"), Attack(name={"en": "Thunder Wave"}, damage="")),
        ),
        Card(
            card_id="c5",
            name={"en": "Erika"},
            category="Trainer",
            stage="Supporter",
            rarity="Uncommon",
            set_name="Genetic Apex",
            flavor_text={"en": "Heal 50 damage from 1 of your Grass Pokemon."},
        ),
    ]
