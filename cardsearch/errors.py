"""Exception hierarchy for the card search pipeline."""

from __future__ import annotations


class CardSearchError(Exception):
    """Base exception for cardsearch."""


class CatalogLoadError(CardSearchError):
    """The bundled card dataset is missing or unreadable."""


class LLMServiceError(CardSearchError):
    """An LLM / embedding provider call failed or returned an unusable envelope."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class QueryParseError(LLMServiceError):
    """The query parser replied with output that does not match the filter schema."""


class EmbeddingStoreUnavailable(CardSearchError):
    """The embedding store for a locale could not be fetched or decoded."""

    def __init__(self, locale: str, reason: str):
        self.locale = locale
        self.reason = reason
        super().__init__(f"embedding store for locale '{locale}' unavailable: {reason}")


class EmbeddingDimensionError(CardSearchError):
    """Query vector and stored vectors disagree on dimensionality."""

    def __init__(self, expected: int, got: int):
        self.expected = expected
        self.got = got
        super().__init__(f"query vector has dimension {got}, store expects {expected}")


class RankingInvariantError(CardSearchError):
    """A ranking referenced an id outside the candidate set."""
