from __future__ import annotations

"""
Search orchestration.

One query runs through:

1. parse      (external; failure -> raw text becomes the semantic query)
2. filter     (never fails; candidate set C)
3. rank       (vector + keyword, concurrently; either may be unavailable)
4. fuse       (RRF over whatever ranked; nothing -> C in filtered order)
5. answer     (external; failure only drops the narrative)

No stage failure aborts a search. Reduced capability is reported through
``SearchResult.notices``.
"""

import asyncio
from typing import Callable, List, Optional, Sequence

import numpy as np
from loguru import logger

from .answer import AnswerGenerator
from .catalog_build import index_by_id
from .config import ANSWER_TOP_N, DEFAULT_LOCALE, SUPPORTED_LOCALES
from .embed_index import EmbeddingCache, EmbeddingStore
from .errors import EmbeddingDimensionError, EmbeddingStoreUnavailable, RankingInvariantError
from .filters import filter_cards
from .lexical import LexicalIndex
from .llm_client import Embedder
from .normalize import basic_clean
from .pipeline_types import Card, FusedRanking, ParsedQuery, SearchFilters, SearchResult
from .query_analysis import QueryParser
from .retrieval import reciprocal_rank_fusion, vector_ranking

NOTICE_PARSE_FALLBACK = "query_parse_fallback"
NOTICE_VECTOR_UNAVAILABLE = "vector_unavailable"
NOTICE_ANSWER_UNAVAILABLE = "answer_unavailable"
NOTICE_LOCALE_FALLBACK = "locale_fallback"


def _check_subset(ranked: Sequence[str], candidate_ids: Sequence[str]) -> None:
    outside = set(ranked) - set(candidate_ids)
    if outside:
        raise RankingInvariantError(
            f"ranking references {len(outside)} ids outside the candidate set: {sorted(outside)[:5]}"
        )


class SearchOrchestrator:
    def __init__(
        self,
        cards: Sequence[Card],
        parser: Optional[QueryParser],
        embedder: Optional[Embedder],
        embedding_cache: Optional[EmbeddingCache],
        answerer: Optional[AnswerGenerator] = None,
        *,
        answer_top_n: int = ANSWER_TOP_N,
    ):
        self.cards: List[Card] = list(cards)
        self.by_id = index_by_id(self.cards)
        self.lexical = LexicalIndex(self.cards)
        self.parser = parser
        self.embedder = embedder
        self.embedding_cache = embedding_cache
        self.answerer = answerer
        self.answer_top_n = answer_top_n

    # -----------------------
    # Stages
    # -----------------------

    async def _parse(self, query: str, locale: str, notices: List[str]) -> ParsedQuery:
        fallback = ParsedQuery(filters=SearchFilters(), semantic_query=query)
        if self.parser is None:
            return fallback
        try:
            return await self.parser.parse(query, locale)
        except Exception as e:
            logger.warning("Query parsing failed; using raw text as semantic query: {}", e)
            notices.append(NOTICE_PARSE_FALLBACK)
            return fallback

    async def _load_store(self, locale: str) -> Optional[EmbeddingStore]:
        if self.embedding_cache is None:
            return None
        try:
            return await self.embedding_cache.get(locale)
        except EmbeddingStoreUnavailable as e:
            logger.warning("Vector search unavailable: {}", e)
            return None

    async def _embed_query(self, text: str, locale: str) -> Optional[np.ndarray]:
        if self.embedder is None:
            return None
        try:
            vectors = await self.embedder.embed([text], locale)
            return np.asarray(vectors, dtype="float32")[0]
        except Exception as e:
            logger.warning("Query embedding failed; vector ranking skipped: {}", e)
            return None

    async def _vector_stage(
        self,
        text: str,
        candidate_ids: List[str],
        locale: str,
        store_task: "asyncio.Future[Optional[EmbeddingStore]]",
    ) -> Optional[List[str]]:
        query_vec, store = await asyncio.gather(self._embed_query(text, locale), store_task)
        if query_vec is None or store is None:
            return None
        try:
            return vector_ranking(query_vec, store, candidate_ids)
        except EmbeddingDimensionError as e:
            logger.warning("Vector ranking skipped: {}", e)
            return None

    async def _lexical_stage(self, text: str, candidate_ids: List[str], locale: str) -> List[str]:
        return self.lexical.rank(text, candidate_ids, locale)

    async def _answer(
        self,
        query: str,
        ranked_ids: Sequence[str],
        locale: str,
        notices: List[str],
        on_chunk: Optional[Callable[[str], None]],
    ) -> Optional[str]:
        if self.answerer is None or not ranked_ids:
            return None
        top = [self.by_id[cid] for cid in ranked_ids[: self.answer_top_n]]
        chunks: List[str] = []
        try:
            async for chunk in self.answerer.generate(query, top, locale):
                chunks.append(chunk)
                if on_chunk is not None:
                    on_chunk(chunk)
        except Exception as e:
            logger.warning("Answer generation failed; returning ranking only: {}", e)
            notices.append(NOTICE_ANSWER_UNAVAILABLE)
            return None
        return "".join(chunks) or None

    # -----------------------
    # Pipeline
    # -----------------------

    async def search(
        self,
        raw_query: str,
        locale: str = DEFAULT_LOCALE,
        *,
        with_answer: bool = True,
        on_answer_chunk: Optional[Callable[[str], None]] = None,
    ) -> SearchResult:
        notices: List[str] = []
        if locale not in SUPPORTED_LOCALES:
            logger.warning("Unsupported locale {!r}; using {}", locale, DEFAULT_LOCALE)
            notices.append(NOTICE_LOCALE_FALLBACK)
            locale = DEFAULT_LOCALE

        query = basic_clean(raw_query)
        if not query:
            return SearchResult(
                query=query, locale=locale, parsed=ParsedQuery(),
                candidate_ids=[], ranked_ids=[], mode="filter_only", notices=notices,
            )

        # The store does not depend on the parse; start loading it now.
        store_task = asyncio.ensure_future(self._load_store(locale))

        parsed = await self._parse(query, locale, notices)
        candidate_ids = [c.card_id for c in filter_cards(self.cards, parsed.filters, locale)]

        fused: Optional[FusedRanking] = None
        if not parsed.has_semantic_query:
            # store_task keeps running on its own and just warms the cache
            mode, ranked_ids = "filter_only", list(candidate_ids)
        else:
            semantic = parsed.semantic_query or ""
            vector, lexical = await asyncio.gather(
                self._vector_stage(semantic, candidate_ids, locale, store_task),
                self._lexical_stage(semantic, candidate_ids, locale),
            )
            if vector is None:
                notices.append(NOTICE_VECTOR_UNAVAILABLE)

            # lexical first: exact keyword hits win RRF ties
            rankings = [r for r in (lexical, vector) if r]
            if not rankings:
                mode, ranked_ids = "filter_fallback", list(candidate_ids)
            else:
                fused = reciprocal_rank_fusion(rankings)
                _check_subset(fused.order, candidate_ids)
                ranked_ids = fused.order
                if lexical and vector:
                    mode = "hybrid"
                elif lexical:
                    mode = "lexical_only"
                else:
                    mode = "vector_only"

        answer = None
        if with_answer:
            answer = await self._answer(query, ranked_ids, locale, notices, on_answer_chunk)

        logger.info(
            "search: query={!r} locale={} mode={} candidates={} ranked={} notices={}",
            query, locale, mode, len(candidate_ids), len(ranked_ids), notices,
        )
        return SearchResult(
            query=query,
            locale=locale,
            parsed=parsed,
            candidate_ids=candidate_ids,
            ranked_ids=ranked_ids,
            mode=mode,
            fused_scores=dict(fused.scores) if fused is not None else {},
            notices=notices,
            answer=answer,
        )


class SearchSession:
    """
    Tracks the latest submission; results of superseded queries are dropped.

    In-flight calls of a superseded query are not aborted, their output is
    simply discarded.
    """

    def __init__(self, orchestrator: SearchOrchestrator):
        self.orchestrator = orchestrator
        self._generation = 0

    async def submit(self, query: str, locale: str = DEFAULT_LOCALE, **kwargs) -> Optional[SearchResult]:
        self._generation += 1
        mine = self._generation
        result = await self.orchestrator.search(query, locale, **kwargs)
        if mine != self._generation:
            logger.debug("Discarding superseded result for {!r}", query)
            return None
        return result
