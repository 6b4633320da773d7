"""Narrative answers over the top search results."""

from __future__ import annotations

from typing import AsyncIterator, List, Protocol, Sequence

from .config import ANSWER_MODEL
from .catalog_build import parse_damage_value
from .llm_client import Message, OpenAICompatibleClient
from .pipeline_types import Card, localized


class AnswerGenerator(Protocol):
    def generate(self, query: str, cards: Sequence[Card], locale: str) -> AsyncIterator[str]: ...


_LANGUAGE = {"en": "English", "ja": "Japanese"}


def describe_card(card: Card, locale: str) -> str:
    """One compact line per card for the answer prompt."""
    bits: List[str] = [f"[{card.card_id}] {localized(card.name, locale)}"]
    meta = [v for v in (card.category, card.stage, "/".join(sorted(card.types)) or None) if v]
    if card.hp is not None:
        meta.append(f"HP {card.hp}")
    if card.retreat_cost is not None:
        meta.append(f"retreat {card.retreat_cost}")
    if card.weakness:
        meta.append(f"weak to {card.weakness}")
    if meta:
        bits.append("(" + ", ".join(meta) + ")")
    if card.ability is not None:
        bits.append(
            f"Ability {localized(card.ability.name, locale)}: {localized(card.ability.text, locale)}"
        )
    for attack in card.attacks:
        dmg = attack.damage if parse_damage_value(attack.damage) is not None else ""
        line = f"Attack {localized(attack.name, locale)}"
        if dmg:
            line += f" {dmg}"
        text = localized(attack.text, locale)
        if text:
            line += f": {text}"
        bits.append(line)
    return " | ".join(bits)


def build_answer_messages(query: str, cards: Sequence[Card], locale: str) -> List[Message]:
    language = _LANGUAGE.get(locale, "English")
    listing = "\n".join(describe_card(c, locale) for c in cards)
    return [
        {
            "role": "system",
            "content": (
                "You help players find trading cards. Answer in "
                f"{language} using only the cards listed, most relevant first. "
                "Refer to cards by name. Be brief."
            ),
        },
        {"role": "user", "content": f"Request: {query}\n\nCards:\n{listing}"},
    ]


class LLMAnswerGenerator:
    def __init__(self, client: OpenAICompatibleClient, model: str = ANSWER_MODEL):
        self.client = client
        self.model = model

    def generate(self, query: str, cards: Sequence[Card], locale: str) -> AsyncIterator[str]:
        return self.client.stream_chat(self.model, build_answer_messages(query, cards, locale))
