# cardsearch/_singletons.py
from functools import lru_cache

from .answer import LLMAnswerGenerator
from .catalog_build import load_catalog
from .config import EMBEDDINGS_URL
from .embed_index import EmbeddingCache, FileEmbeddingSource, HttpEmbeddingSource
from .llm_client import OpenAICompatibleClient, OpenAIEmbedder
from .query_analysis import LLMQueryParser, catalog_vocabulary
from .search import SearchOrchestrator


@lru_cache(maxsize=1)
def get_catalog():
    return load_catalog()


@lru_cache(maxsize=1)
def get_llm_client():
    return OpenAICompatibleClient()


@lru_cache(maxsize=1)
def get_embedding_cache():
    # remote stores when a base URL is configured, local .npz files otherwise
    if EMBEDDINGS_URL:
        return EmbeddingCache(HttpEmbeddingSource(EMBEDDINGS_URL))
    return EmbeddingCache(FileEmbeddingSource())


@lru_cache(maxsize=1)
def get_orchestrator():
    cards = get_catalog()
    client = get_llm_client()
    return SearchOrchestrator(
        cards,
        parser=LLMQueryParser(client, catalog_vocabulary(cards)),
        embedder=OpenAIEmbedder(client),
        embedding_cache=get_embedding_cache(),
        answerer=LLMAnswerGenerator(client),
    )
