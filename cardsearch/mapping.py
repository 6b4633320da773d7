from __future__ import annotations
"""
Mapping utilities to convert search results into API responses.

Centralises the mapping from internal ``Card`` records into the Pydantic
schemas (CardItem / SearchResponse) so the API layer only deals with ids.
"""

from typing import List, Mapping, Optional

from loguru import logger

from .config import CardItem, SearchResponse
from .pipeline_types import Card, SearchResult, localized


def to_card_item(card: Card, locale: str, score: Optional[float] = None) -> CardItem:
    """Convert a card into a CardItem with its name in ``locale``."""
    return CardItem(
        id=card.card_id,
        name=localized(card.name, locale),
        category=card.category,
        stage=card.stage,
        types=sorted(card.types),
        hp=card.hp,
        rarity=card.rarity,
        set_name=card.set_name,
        score=score,
    )


def map_result_to_response(
    result: SearchResult,
    cards_by_id: Mapping[str, Card],
    limit: Optional[int] = None,
) -> SearchResponse:
    """
    Convert a SearchResult into a SearchResponse, keeping ranked order and
    cutting to ``limit``. Fused scores are attached when the result was fused.
    """
    ranked = result.ranked_ids if limit is None else result.ranked_ids[:limit]

    items: List[CardItem] = []
    for cid in ranked:
        card = cards_by_id.get(cid)
        if card is None:
            logger.warning("Card id {} not found in catalog; skipping", cid)
            continue
        items.append(to_card_item(card, result.locale, result.fused_scores.get(cid)))

    logger.info("Mapped {} of {} ranked cards into API schema", len(items), len(result.ranked_ids))
    return SearchResponse(
        results=items,
        mode=result.mode,
        notices=list(result.notices),
        answer=result.answer,
        total_candidates=len(result.candidate_ids),
    )
