from __future__ import annotations

"""
Embedding store loading, caching and offline building.

Per-card embeddings are precomputed offline and stored as one ``.npz``
archive per locale (``embeddings_<locale>.npz``) holding two arrays:

* ``ids``      unicode array of card ids, length N
* ``vectors``  float32 array of shape (N, D)

At runtime the archive for a locale is fetched lazily, on the first vector
search in that locale, and kept for the lifetime of the process. The
``EmbeddingCache`` guarantees at most one in-flight fetch per locale: every
concurrent caller awaits the same load and observes the same store.
"""

import argparse
import asyncio
import io
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Union

import httpx
import numpy as np
from loguru import logger

from .config import (
    DEFAULT_LOCALE,
    EMBED_BATCH_SIZE,
    EMBEDDINGS_DIR,
    HTTP_CONNECT_TIMEOUT,
    HTTP_MAX_EMBEDDING_BYTES,
    HTTP_READ_TIMEOUT,
    HTTP_USER_AGENT,
    embeddings_filename,
)
from .catalog_build import build_search_text
from .errors import EmbeddingStoreUnavailable
from .llm_client import Embedder
from .pipeline_types import Card


# -------------------------------------------------------------------
# Store
# -------------------------------------------------------------------

class EmbeddingStore:
    """
    Immutable id -> vector mapping for one locale.

    Rows are L2-normalised at construction so cosine similarity against a
    query reduces to a dot product divided by the query norm.
    """

    def __init__(self, ids: List[str], matrix: np.ndarray):
        self.ids = ids
        self.matrix = matrix
        self.row_of: Dict[str, int] = {cid: i for i, cid in enumerate(ids)}

    @property
    def dim(self) -> int:
        return int(self.matrix.shape[1])

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self.row_of

    @classmethod
    def from_arrays(cls, ids: Sequence[str], vectors: np.ndarray) -> "EmbeddingStore":
        emb = np.asarray(vectors, dtype="float32")
        ids_list = [str(i) for i in ids]

        if emb.ndim != 2:
            raise ValueError(f"Embeddings must be 2D (N,D). Got {emb.shape}. Rebuild the store.")
        if emb.shape[1] <= 1:
            raise ValueError(f"Embedding dimension {emb.shape[1]} looks wrong. Rebuild the store.")
        if len(ids_list) != emb.shape[0]:
            raise ValueError(
                f"Embedding rows ({emb.shape[0]}) != ID rows ({len(ids_list)}). Rebuild the store."
            )

        # Keep the first row of a duplicated id
        seen: Dict[str, int] = {}
        for row, cid in enumerate(ids_list):
            seen.setdefault(cid, row)
        if len(seen) != len(ids_list):
            logger.warning("Dropping {} duplicate ids from embedding store", len(ids_list) - len(seen))
            rows = list(seen.values())
            emb = emb[rows]
            ids_list = list(seen.keys())

        norms = np.linalg.norm(emb, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return cls(ids_list, (emb / norms).astype("float32", copy=False))


def decode_store(payload: Union[bytes, Path]) -> EmbeddingStore:
    """Decode an ``.npz`` archive (path or raw bytes) into a store."""
    source = io.BytesIO(payload) if isinstance(payload, (bytes, bytearray)) else payload
    with np.load(source, allow_pickle=False) as archive:
        if "ids" not in archive.files or "vectors" not in archive.files:
            raise ValueError(f"archive is missing 'ids'/'vectors' (found {archive.files})")
        ids = archive["ids"].astype(str).tolist()
        vectors = archive["vectors"]
    return EmbeddingStore.from_arrays(ids, vectors)


# -------------------------------------------------------------------
# Sources
# -------------------------------------------------------------------

class EmbeddingSource(Protocol):
    async def fetch(self, locale: str) -> EmbeddingStore: ...


class FileEmbeddingSource:
    """Reads ``<directory>/embeddings_<locale>.npz`` off the event loop."""

    def __init__(self, directory: Path = EMBEDDINGS_DIR):
        self.directory = Path(directory)

    async def fetch(self, locale: str) -> EmbeddingStore:
        path = self.directory / embeddings_filename(locale)
        if not path.exists():
            raise EmbeddingStoreUnavailable(locale, f"{path} does not exist")
        logger.info("Loading embedding store from {}", path)
        return await asyncio.to_thread(decode_store, path)


class HttpEmbeddingSource:
    """Downloads ``<base_url>/embeddings_<locale>.npz``."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._client = client

    async def fetch(self, locale: str) -> EmbeddingStore:
        url = f"{self.base_url}/{embeddings_filename(locale)}"
        logger.info("Fetching embedding store from {}", url)
        if self._client is not None:
            data = await self._download(self._client, url, locale)
        else:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
                headers={"User-Agent": HTTP_USER_AGENT},
            ) as client:
                data = await self._download(client, url, locale)
        return await asyncio.to_thread(decode_store, data)

    @staticmethod
    async def _download(client: httpx.AsyncClient, url: str, locale: str) -> bytes:
        r = await client.get(url)
        if r.status_code >= 400:
            raise EmbeddingStoreUnavailable(locale, f"HTTP {r.status_code} for {url}")
        if len(r.content) > HTTP_MAX_EMBEDDING_BYTES:
            raise EmbeddingStoreUnavailable(
                locale, f"{len(r.content)} bytes > {HTTP_MAX_EMBEDDING_BYTES} limit"
            )
        return r.content


# -------------------------------------------------------------------
# Single-flight cache
# -------------------------------------------------------------------

class EmbeddingCache:
    """
    locale -> cell, where a cell is absent (empty), an ``asyncio.Task``
    (loading) or an ``EmbeddingStore`` (loaded).

    A failed load empties the cell again so the next call retries.
    """

    def __init__(self, source: EmbeddingSource):
        self._source = source
        self._cells: Dict[str, Union[EmbeddingStore, "asyncio.Task[EmbeddingStore]"]] = {}
        # source fetches started, failed ones included; logged with each load
        self.load_count = 0

    def peek(self, locale: str) -> Optional[EmbeddingStore]:
        cell = self._cells.get(locale)
        return cell if isinstance(cell, EmbeddingStore) else None

    async def get(self, locale: str) -> EmbeddingStore:
        cell = self._cells.get(locale)
        if isinstance(cell, EmbeddingStore):
            return cell
        if cell is None or (cell.done() and (cell.cancelled() or cell.exception() is not None)):
            cell = asyncio.get_running_loop().create_task(self._load(locale))
            self._cells[locale] = cell
        # shield: a cancelled waiter must not cancel the load other callers share
        return await asyncio.shield(cell)

    def invalidate(self, locale: Optional[str] = None) -> None:
        if locale is None:
            self._cells.clear()
        else:
            self._cells.pop(locale, None)

    async def _load(self, locale: str) -> EmbeddingStore:
        self.load_count += 1
        me = asyncio.current_task()
        try:
            store = await self._source.fetch(locale)
        except EmbeddingStoreUnavailable as e:
            self._forget(locale, me)
            logger.warning("Embedding store load failed: {}", e)
            raise
        except Exception as e:
            self._forget(locale, me)
            logger.warning("Embedding store load failed for locale {}: {}", locale, e)
            raise EmbeddingStoreUnavailable(locale, str(e)) from e

        if self._cells.get(locale) is me:
            self._cells[locale] = store
        logger.info(
            "Embedding store ready: locale={} items={} dim={} loads={}",
            locale, len(store), store.dim, self.load_count,
        )
        return store

    def _forget(self, locale: str, task: Optional[asyncio.Task]) -> None:
        if self._cells.get(locale) is task:
            del self._cells[locale]


# -------------------------------------------------------------------
# Offline builder
# -------------------------------------------------------------------

async def build_embedding_store(
    cards: Sequence[Card],
    locale: str,
    embedder: Embedder,
    output_dir: Path = EMBEDDINGS_DIR,
    batch_size: int = EMBED_BATCH_SIZE,
) -> Path:
    """
    Embed every card's search text for ``locale`` and write the archive.
    """
    logger.info("Building embeddings for {} cards (locale={})", len(cards), locale)
    ids = [c.card_id for c in cards]
    texts = [build_search_text(c, locale) for c in cards]

    chunks: List[np.ndarray] = []
    for start in range(0, len(texts), batch_size):
        batch = texts[start : start + batch_size]
        chunks.append(np.asarray(await embedder.embed(batch, locale), dtype="float32"))
        logger.info("Embedded {}/{}", min(start + batch_size, len(texts)), len(texts))

    vectors = np.vstack(chunks) if chunks else np.zeros((0, 0), dtype="float32")
    output_dir.mkdir(parents=True, exist_ok=True)
    out_path = output_dir / embeddings_filename(locale)
    with out_path.open("wb") as f:
        np.savez(f, ids=np.array(ids, dtype=str), vectors=vectors)
    logger.info("Embedding store written to {}", out_path)
    return out_path


# -------------------------------------------------------------------
# CLI entrypoint
# -------------------------------------------------------------------

def main(argv: Optional[Sequence[str]] = None) -> None:
    from ._singletons import get_catalog, get_llm_client
    from .llm_client import OpenAIEmbedder

    parser = argparse.ArgumentParser(description="Build the per-locale card embedding store.")
    parser.add_argument("--locale", action="append", help="locale(s) to build (default: en)")
    parser.add_argument("--output-dir", type=Path, default=EMBEDDINGS_DIR)
    args = parser.parse_args(argv)

    async def _build_all() -> None:
        client = get_llm_client()
        embedder = OpenAIEmbedder(client)
        try:
            for locale in args.locale or [DEFAULT_LOCALE]:
                await build_embedding_store(get_catalog(), locale, embedder, args.output_dir)
        finally:
            await client.aclose()

    asyncio.run(_build_all())


if __name__ == "__main__":
    # python -m cardsearch.embed_index --locale en --locale ja
    main()
