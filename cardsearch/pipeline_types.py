"""Typed containers shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .config import DEFAULT_LOCALE

LocalizedText = Mapping[str, str]


def localized(text: Optional[LocalizedText], locale: str) -> str:
    """Pick the text for ``locale``, falling back to the default locale, then anything."""
    if not text:
        return ""
    value = text.get(locale) or text.get(DEFAULT_LOCALE)
    if value:
        return value
    for candidate in text.values():
        if candidate:
            return candidate
    return ""


@dataclass(frozen=True)
class Ability:
    name: LocalizedText
    text: LocalizedText


@dataclass(frozen=True)
class Attack:
    name: LocalizedText
    damage: str = ""
    text: LocalizedText = field(default_factory=dict)
    cost: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Card:
    """Immutable catalog record. Loaded once, never mutated."""

    card_id: str
    name: LocalizedText
    category: Optional[str] = None
    stage: Optional[str] = None
    types: FrozenSet[str] = frozenset()
    hp: Optional[int] = None
    retreat_cost: Optional[int] = None
    weakness: Optional[str] = None
    rarity: Optional[str] = None
    set_name: Optional[str] = None
    ability: Optional[Ability] = None
    attacks: Tuple[Attack, ...] = ()
    flavor_text: LocalizedText = field(default_factory=dict)
    visual_description: LocalizedText = field(default_factory=dict)


@dataclass(frozen=True)
class SearchFilters:
    """
    Structured predicates extracted from a query.

    Values are kept as delivered by the parser; ``None`` means "no constraint".
    Validation happens in the filter engine, where a malformed value turns
    into an unsatisfiable predicate.
    """

    name: Any = None
    category: Any = None
    stage: Any = None
    rarity: Any = None
    set: Any = None
    types: Any = None
    hp_gte: Any = None
    hp_lte: Any = None
    attack_damage_gte: Any = None
    attack_damage_lte: Any = None
    retreat_lte: Any = None
    weakness_type: Any = None
    has_ability: Any = None

    @classmethod
    def keys(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SearchFilters":
        known = set(cls.keys())
        return cls(**{k: v for k, v in payload.items() if k in known})

    def active(self) -> Dict[str, Any]:
        return {k: getattr(self, k) for k in self.keys() if getattr(self, k) is not None}


@dataclass(frozen=True)
class ParsedQuery:
    filters: SearchFilters = field(default_factory=SearchFilters)
    semantic_query: Optional[str] = None

    @property
    def has_semantic_query(self) -> bool:
        return bool(self.semantic_query and self.semantic_query.strip())


@dataclass(frozen=True)
class FusedRanking:
    order: List[str]
    scores: Dict[str, float]


@dataclass(frozen=True)
class SearchResult:
    """Final state of one query. Superseded, never mutated, by the next one."""

    query: str
    locale: str
    parsed: ParsedQuery
    candidate_ids: List[str]
    ranked_ids: List[str]
    mode: str
    fused_scores: Dict[str, float] = field(default_factory=dict)
    notices: List[str] = field(default_factory=list)
    answer: Optional[str] = None
