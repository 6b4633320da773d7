from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field


# ---------------------------
# Paths
# ---------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = Path(os.getenv("CARDSEARCH_DATA_DIR", str(PROJECT_ROOT / "data")))
CATALOG_PATH = Path(os.getenv("CARDSEARCH_CATALOG_PATH", str(DATA_DIR / "cards.json")))

# One .npz per locale: embeddings_<locale>.npz (arrays "ids" and "vectors")
EMBEDDINGS_DIR = Path(os.getenv("CARDSEARCH_EMBEDDINGS_DIR", str(DATA_DIR / "embeddings")))
# When set, stores are downloaded from <url>/embeddings_<locale>.npz instead
EMBEDDINGS_URL: Optional[str] = os.getenv("CARDSEARCH_EMBEDDINGS_URL") or None


def embeddings_filename(locale: str) -> str:
    return f"embeddings_{locale}.npz"


# ---------------------------
# Locales
# ---------------------------

SUPPORTED_LOCALES = ("en", "ja")
DEFAULT_LOCALE = "en"


# ---------------------------
# Retrieval & fusion settings
# ---------------------------

EMBEDDING_DIM = int(os.getenv("CARDSEARCH_EMBEDDING_DIM", "1536"))
RRF_K = 60

ANSWER_TOP_N = int(os.getenv("CARDSEARCH_ANSWER_TOP_N", "10"))
EMBED_BATCH_SIZE = 64

# Lexical matcher: tokens dropped from queries unless nothing else is left
STOPWORDS = frozenset(
    {
        "a", "an", "and", "any", "are", "as", "at", "be", "by", "card", "cards",
        "do", "does", "for", "from", "has", "have", "i", "in", "is", "it", "its",
        "me", "my", "of", "on", "or", "show", "that", "the", "their", "them",
        "this", "to", "want", "what", "which", "with",
    }
)


# ---------------------------
# LLM / embedding provider (OpenAI-compatible)
# ---------------------------

LLM_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
LLM_API_KEY = os.getenv("OPENAI_API_KEY", "")
PARSER_MODEL = os.getenv("CARDSEARCH_PARSER_MODEL", "gpt-4o-mini")
ANSWER_MODEL = os.getenv("CARDSEARCH_ANSWER_MODEL", "gpt-4o-mini")
EMBEDDING_MODEL = os.getenv("CARDSEARCH_EMBEDDING_MODEL", "text-embedding-3-small")


# ---------------------------
# HTTP hardening
# ---------------------------

HTTP_CONNECT_TIMEOUT = 3.0
HTTP_READ_TIMEOUT = float(os.getenv("CARDSEARCH_HTTP_READ_TIMEOUT", "30.0"))
HTTP_MAX_EMBEDDING_BYTES = 64_000_000  # ~2500 x 1536 float32 plus ids

HTTP_USER_AGENT = "cardsearch/1.0"

MAX_INPUT_CHARS = 2_000  # query size cap


# ---------------------------
# Logging / observability
# ---------------------------

LOG_DIR = Path(os.getenv("CARDSEARCH_LOG_DIR", str(PROJECT_ROOT / "logs")))
LOG_LEVEL = os.getenv("CARDSEARCH_LOG_LEVEL", "INFO")


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Route loguru to stderr plus a rotating file under LOG_DIR."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(LOG_DIR / "cardsearch.log", level=level, rotation="10 MB", retention=5)


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class CardItem(BaseModel):
    """
    Canonical schema for a single search hit.
    This matches the API contract exactly.
    """

    id: str
    name: str
    category: Optional[str] = None
    stage: Optional[str] = None
    types: List[str] = Field(default_factory=list)
    hp: Optional[int] = Field(default=None, ge=0)
    rarity: Optional[str] = None
    set_name: Optional[str] = None
    score: Optional[float] = None


class SearchRequest(BaseModel):
    """
    Request body for POST /search.
    """

    query: str = Field(..., min_length=1, max_length=MAX_INPUT_CHARS)
    locale: str = DEFAULT_LOCALE
    limit: int = Field(default=20, ge=1, le=100)
    with_answer: bool = True


class SearchResponse(BaseModel):
    """
    Response body for POST /search.
    """

    results: List[CardItem]
    mode: str
    notices: List[str] = Field(default_factory=list)
    answer: Optional[str] = None
    total_candidates: int = Field(ge=0)


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str
