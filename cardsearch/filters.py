"""
Structured card filtering.

Each supplied predicate becomes an independent check; a card is kept when
all checks pass. Checks are evaluated lazily so a card stops being examined
at its first failing predicate. Malformed predicate values never raise:
they compile to a check that no card satisfies.
"""

from __future__ import annotations

import math
from typing import Any, Callable, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from .catalog_build import parse_damage_value
from .normalize import normalize_for_lexical_index
from .pipeline_types import Card, SearchFilters, localized

Predicate = Callable[[Card], bool]


def _never(card: Card) -> bool:
    return False


def _coerce_bound(value: Any) -> Optional[float]:
    """Numeric bound from a parser value; None when it is not a number."""
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        num = float(value.strip() if isinstance(value, str) else value)
    except (OverflowError, ValueError):
        # ints beyond float range, non-numeric strings
        return None
    return None if math.isnan(num) else num


def _coerce_type_set(value: Any) -> Optional[FrozenSet[str]]:
    if isinstance(value, str):
        return frozenset([value])
    if isinstance(value, (list, tuple, set, frozenset)) and all(isinstance(v, str) for v in value):
        return frozenset(value)
    return None


# ---------------------------
# Predicate builders
# ---------------------------

def _name_contains(value: Any, locale: str) -> Predicate:
    if not isinstance(value, str):
        return _never
    needle = normalize_for_lexical_index(value)
    return lambda card: needle in normalize_for_lexical_index(localized(card.name, locale))


def _exact(attr: str, value: Any) -> Predicate:
    if not isinstance(value, str):
        return _never
    return lambda card: getattr(card, attr) == value


def _types_overlap(value: Any) -> Predicate:
    wanted = _coerce_type_set(value)
    if wanted is None:
        return _never
    return lambda card: not card.types.isdisjoint(wanted)


def _int_bound(attr: str, value: Any, upper: bool) -> Predicate:
    bound = _coerce_bound(value)
    if bound is None:
        return _never

    def check(card: Card) -> bool:
        actual = getattr(card, attr)
        if actual is None:
            return False
        return actual <= bound if upper else actual >= bound

    return check


def _attack_damage_bound(value: Any, upper: bool) -> Predicate:
    bound = _coerce_bound(value)
    if bound is None:
        return _never

    def check(card: Card) -> bool:
        for attack in card.attacks:
            dmg = parse_damage_value(attack.damage)
            if dmg is None:
                continue
            if (dmg <= bound) if upper else (dmg >= bound):
                return True
        return False

    return check


def _weakness_is(value: Any) -> Predicate:
    if not isinstance(value, str):
        return _never
    return lambda card: card.weakness is not None and card.weakness == value


def _ability_presence(value: Any) -> Predicate:
    if not isinstance(value, bool):
        return _never
    return lambda card: (card.ability is not None) == value


def build_predicates(filters: SearchFilters, locale: str) -> List[Tuple[str, Predicate]]:
    """Compile the supplied filters into named checks, in a fixed order."""
    builders = {
        "name": lambda v: _name_contains(v, locale),
        "category": lambda v: _exact("category", v),
        "stage": lambda v: _exact("stage", v),
        "rarity": lambda v: _exact("rarity", v),
        "set": lambda v: _exact("set_name", v),
        "types": _types_overlap,
        "hp_gte": lambda v: _int_bound("hp", v, upper=False),
        "hp_lte": lambda v: _int_bound("hp", v, upper=True),
        "attack_damage_gte": lambda v: _attack_damage_bound(v, upper=False),
        "attack_damage_lte": lambda v: _attack_damage_bound(v, upper=True),
        "retreat_lte": lambda v: _int_bound("retreat_cost", v, upper=True),
        "weakness_type": _weakness_is,
        "has_ability": _ability_presence,
    }
    predicates: List[Tuple[str, Predicate]] = []
    for key, value in filters.active().items():
        predicate = builders[key](value)
        if predicate is _never:
            logger.debug("Filter {}={!r} is malformed; no card can satisfy it", key, value)
        predicates.append((key, predicate))
    return predicates


def matches(card: Card, predicates: Sequence[Tuple[str, Predicate]]) -> bool:
    return all(check(card) for _, check in predicates)


def filter_cards(cards: Iterable[Card], filters: SearchFilters, locale: str) -> List[Card]:
    """
    Order-preserving subsequence of ``cards`` satisfying every supplied filter.
    """
    predicates = build_predicates(filters, locale)
    cards = list(cards)
    if not predicates:
        return cards
    kept = [card for card in cards if matches(card, predicates)]
    logger.debug(
        "filter_cards: {} predicates ({}) kept {}/{}",
        len(predicates), ",".join(k for k, _ in predicates), len(kept), len(cards),
    )
    return kept
