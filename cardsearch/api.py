from __future__ import annotations

"""
FastAPI application for card search.

- POST /search runs the hybrid pipeline and returns ranked cards
- Reduced capability (no vectors, no answer, parser fallback) is reported
  through ``notices``; it never turns into an HTTP error
"""

from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ._singletons import get_llm_client, get_orchestrator
from .config import (
    HealthResponse,
    SearchRequest,
    SearchResponse,
    configure_logging,
)
from .errors import CatalogLoadError, RankingInvariantError
from .mapping import map_result_to_response
from .search import SearchOrchestrator


async def run_search(req: SearchRequest, orchestrator: SearchOrchestrator) -> SearchResponse:
    result = await orchestrator.search(req.query, req.locale, with_answer=req.with_answer)
    return map_result_to_response(result, orchestrator.by_id, limit=req.limit)


# -----------------------
# FastAPI app + startup
# -----------------------

app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_orchestrator: Optional[SearchOrchestrator] = None


@app.on_event("startup")
def startup_event() -> None:
    global _orchestrator
    configure_logging()
    logger.info("Starting app warmup...")
    try:
        _orchestrator = get_orchestrator()
    except CatalogLoadError as e:
        _orchestrator = None
        logger.error("Catalog failed to load; /search will return 500: {}", e)
        return
    logger.info("Loaded catalog with {} cards", len(_orchestrator.cards))
    logger.info("Warmup complete.")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    if get_llm_client.cache_info().currsize:
        await get_llm_client().aclose()


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@app.post("/search", response_model=SearchResponse)
async def search(req: SearchRequest) -> SearchResponse:
    if not req.query.strip():
        raise HTTPException(status_code=422, detail="Query must be non-empty")
    if _orchestrator is None:
        raise HTTPException(status_code=500, detail="Catalog not loaded")
    try:
        return await run_search(req, _orchestrator)
    except RankingInvariantError as e:
        logger.exception("Ranking invariant violated for query {!r}", req.query)
        raise HTTPException(status_code=500, detail="Internal ranking error") from e
