from __future__ import annotations

"""
Keyword matcher over card text.

Score = number of distinct query tokens found as substrings of the card's
search text. Substring matching keeps unsegmented Japanese text searchable
without a tokenizer. Cards scoring zero are left out of the ranking.
"""

from typing import Dict, Iterable, List, Sequence, Tuple

from loguru import logger

from .catalog_build import build_search_text
from .normalize import query_tokens
from .pipeline_types import Card


def _score(tokens: Sequence[str], text: str) -> int:
    return sum(1 for tok in tokens if tok in text)


def _rank(scored: List[Tuple[int, int, str]]) -> List[str]:
    # (score, input position, id); position keeps ties in candidate order
    scored.sort(key=lambda x: (-x[0], x[1]))
    return [card_id for _, _, card_id in scored]


class LexicalIndex:
    """
    Per-locale search texts for a fixed catalog, built on first use.

    Texts are derived from immutable cards, so the memo never goes stale.
    """

    def __init__(self, cards: Iterable[Card]):
        self._cards: Dict[str, Card] = {c.card_id: c for c in cards}
        self._texts: Dict[str, Dict[str, str]] = {}

    def texts(self, locale: str) -> Dict[str, str]:
        texts = self._texts.get(locale)
        if texts is None:
            texts = {cid: build_search_text(card, locale) for cid, card in self._cards.items()}
            self._texts[locale] = texts
            logger.info("Built lexical texts for {} cards (locale={})", len(texts), locale)
        return texts

    def rank(self, query: str, candidate_ids: Sequence[str], locale: str) -> List[str]:
        tokens = query_tokens(query)
        if not tokens:
            return []
        texts = self.texts(locale)
        scored: List[Tuple[int, int, str]] = []
        for pos, cid in enumerate(candidate_ids):
            text = texts.get(cid)
            if text is None:
                continue
            s = _score(tokens, text)
            if s > 0:
                scored.append((s, pos, cid))
        ranked = _rank(scored)
        logger.debug("lexical: tokens={} matched {}/{}", tokens, len(ranked), len(candidate_ids))
        return ranked


def lexical_ranking(query: str, cards: Sequence[Card], locale: str) -> List[str]:
    """Stateless variant: rank ``cards`` for ``query`` without a memo."""
    tokens = query_tokens(query)
    if not tokens:
        return []
    scored: List[Tuple[int, int, str]] = []
    for pos, card in enumerate(cards):
        s = _score(tokens, build_search_text(card, locale))
        if s > 0:
            scored.append((s, pos, card.card_id))
    return _rank(scored)
