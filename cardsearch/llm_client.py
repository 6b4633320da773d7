from __future__ import annotations

"""
Thin async client for an OpenAI-compatible HTTP API.

Only the three calls the search pipeline needs are exposed: JSON chat
completions (query parsing), streamed chat completions (answers) and
embeddings. Every transport or protocol problem surfaces as
``LLMServiceError`` so callers can degrade on a single exception type.
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence

import httpx
import numpy as np
from loguru import logger

from .config import (
    EMBEDDING_DIM,
    EMBEDDING_MODEL,
    HTTP_CONNECT_TIMEOUT,
    HTTP_READ_TIMEOUT,
    HTTP_USER_AGENT,
    LLM_API_KEY,
    LLM_BASE_URL,
)
from .errors import LLMServiceError

Message = Dict[str, str]


class Embedder(Protocol):
    async def embed(self, texts: Sequence[str], locale: str) -> np.ndarray: ...


class OpenAICompatibleClient:
    def __init__(
        self,
        base_url: str = LLM_BASE_URL,
        api_key: str = LLM_API_KEY,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"User-Agent": HTTP_USER_AGENT}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
                headers=headers,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            r = await self.client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise LLMServiceError(f"{path}: {e.__class__.__name__}: {e}") from e
        if r.status_code >= 400:
            raise LLMServiceError(f"{path}: HTTP {r.status_code}: {r.text[:200]}", status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise LLMServiceError(f"{path}: response is not JSON") from e

    async def chat_json(self, model: str, messages: List[Message]) -> Any:
        """Chat completion constrained to a JSON object; returns the decoded object."""
        body = await self._post(
            "/chat/completions",
            {
                "model": model,
                "messages": messages,
                "temperature": 0,
                "response_format": {"type": "json_object"},
            },
        )
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMServiceError("chat completion envelope is missing choices[0].message") from e
        try:
            return json.loads(content)
        except (TypeError, ValueError) as e:
            raise LLMServiceError(f"chat completion content is not JSON: {str(content)[:200]}") from e

    async def stream_chat(self, model: str, messages: List[Message]) -> AsyncIterator[str]:
        """Yield content deltas of a streamed chat completion (server-sent events)."""
        url = f"{self.base_url}/chat/completions"
        payload = {"model": model, "messages": messages, "stream": True}
        try:
            async with self.client.stream("POST", url, json=payload) as r:
                if r.status_code >= 400:
                    await r.aread()
                    raise LLMServiceError(
                        f"/chat/completions: HTTP {r.status_code}: {r.text[:200]}",
                        status_code=r.status_code,
                    )
                async for line in r.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data)
                        delta = chunk["choices"][0].get("delta") or {}
                    except (ValueError, KeyError, IndexError, AttributeError) as e:
                        raise LLMServiceError(f"malformed stream chunk: {data[:200]}") from e
                    content = delta.get("content")
                    if content:
                        yield content
        except httpx.HTTPError as e:
            raise LLMServiceError(f"/chat/completions stream: {e.__class__.__name__}: {e}") from e

    async def embeddings(self, model: str, inputs: Sequence[str], dimensions: Optional[int] = None) -> np.ndarray:
        payload: Dict[str, Any] = {"model": model, "input": list(inputs)}
        if dimensions is not None:
            payload["dimensions"] = dimensions
        body = await self._post("/embeddings", payload)
        try:
            rows = sorted(body["data"], key=lambda d: d["index"])
            vectors = np.asarray([row["embedding"] for row in rows], dtype="float32")
        except (KeyError, TypeError, ValueError) as e:
            raise LLMServiceError("embeddings envelope is malformed") from e
        if vectors.shape[0] != len(inputs):
            raise LLMServiceError(f"expected {len(inputs)} embeddings, got {vectors.shape[0]}")
        return vectors


class OpenAIEmbedder:
    """Embedder backed by ``POST /embeddings``."""

    def __init__(
        self,
        client: OpenAICompatibleClient,
        model: str = EMBEDDING_MODEL,
        dimensions: Optional[int] = EMBEDDING_DIM,
    ):
        self.client = client
        self.model = model
        self.dimensions = dimensions

    async def embed(self, texts: Sequence[str], locale: str) -> np.ndarray:
        # One multilingual model serves every locale; the locale only selects
        # which store the vector is compared against.
        vectors = await self.client.embeddings(self.model, texts, self.dimensions)
        logger.debug("Embedded {} texts (locale={}, shape={})", len(texts), locale, vectors.shape)
        return vectors
