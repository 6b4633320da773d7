"""Query parsing: natural language -> structured filters + semantic query."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Protocol

from loguru import logger

from .config import PARSER_MODEL
from .errors import QueryParseError
from .llm_client import OpenAICompatibleClient
from .pipeline_types import Card, ParsedQuery, SearchFilters

# ---------------------------------------------------------------------------
# Capability interface
# ---------------------------------------------------------------------------


class QueryParser(Protocol):
    async def parse(self, text: str, locale: str) -> ParsedQuery: ...


# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def parsed_query_from_payload(payload: Any) -> ParsedQuery:
    """
    Validate a parser reply.

    Accepted shapes: ``{"filters": {...}, "semantic_query": "..."}`` or the
    filter keys at top level next to ``semantic_query``. Unknown keys are
    dropped; blank values (``""``, ``[]``, ``null``) mean "no constraint".
    Predicate values are otherwise passed through untouched so the filter
    engine can treat malformed ones as unsatisfiable.
    """
    if not isinstance(payload, Mapping):
        raise QueryParseError(f"parser output must be an object, got {type(payload).__name__}")

    raw_filters = payload.get("filters", payload)
    if raw_filters is None:
        raw_filters = {}
    if not isinstance(raw_filters, Mapping):
        raise QueryParseError("parser 'filters' must be an object")

    semantic = payload.get("semantic_query")
    if semantic is not None and not isinstance(semantic, str):
        raise QueryParseError("parser 'semantic_query' must be a string or null")
    if semantic is not None and not semantic.strip():
        semantic = None

    cleaned = {k: v for k, v in raw_filters.items() if not _is_blank(v)}
    dropped = set(cleaned) - set(SearchFilters.keys()) - {"semantic_query", "filters"}
    if dropped:
        logger.debug("Ignoring unknown filter keys from parser: {}", sorted(dropped))
    return ParsedQuery(filters=SearchFilters.from_dict(cleaned), semantic_query=semantic)


# ---------------------------------------------------------------------------
# LLM-backed parser
# ---------------------------------------------------------------------------


def catalog_vocabulary(cards: Iterable[Card]) -> Dict[str, List[str]]:
    """Distinct categorical values, used to pin the parser to exact spellings."""
    vocab: Dict[str, set] = {k: set() for k in ("category", "stage", "rarity", "set", "types")}
    for card in cards:
        for key, value in (
            ("category", card.category),
            ("stage", card.stage),
            ("rarity", card.rarity),
            ("set", card.set_name),
        ):
            if value:
                vocab[key].add(value)
        vocab["types"].update(card.types)
        if card.weakness:
            vocab["types"].add(card.weakness)
    return {k: sorted(v) for k, v in vocab.items()}


_SYSTEM_PROMPT = """You turn trading card search requests into JSON.
Reply with one JSON object: {{"filters": {{...}}, "semantic_query": string or null}}.
Only include a filter when the request states it. Filter keys:
- name: substring of the card name
- category, stage, rarity, set: exact values from the lists below
- types: list of types (card matches if it has any of them)
- hp_gte, hp_lte, attack_damage_gte, attack_damage_lte, retreat_lte: integers
- weakness_type: one type
- has_ability: true or false
semantic_query: the descriptive remainder of the request (effects, art, play style) in the user's language, or null when the filters say everything.
Allowed values:
{vocabulary}"""


class LLMQueryParser:
    def __init__(
        self,
        client: OpenAICompatibleClient,
        vocabulary: Mapping[str, List[str]],
        model: str = PARSER_MODEL,
    ):
        self.client = client
        self.model = model
        self._system = _SYSTEM_PROMPT.format(
            vocabulary=json.dumps(dict(vocabulary), ensure_ascii=False)
        )

    async def parse(self, text: str, locale: str) -> ParsedQuery:
        payload = await self.client.chat_json(
            self.model,
            [
                {"role": "system", "content": self._system},
                {"role": "user", "content": f"[locale={locale}] {text}"},
            ],
        )
        parsed = parsed_query_from_payload(payload)
        logger.info(
            "Parsed query: filters={} semantic={!r}", parsed.filters.active(), parsed.semantic_query
        )
        return parsed
