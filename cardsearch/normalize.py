from __future__ import annotations

"""
Text normalisation helpers shared across catalog building and retrieval.

Card text and user queries go through the same steps so the lexical matcher
compares like with like.

Public helpers:

* basic_clean(text) -> str
    Light-weight clean used when loading the catalog and accepting queries.

* normalize_for_lexical_index(text) -> str
    Case-folded form used for keyword matching.

* query_tokens(text) -> List[str]
    Distinct keyword tokens of a query, stopwords removed. Japanese runs are
    split by script so query words need not be adjacent in the card text.
"""

import re
import unicodedata
from typing import List

from . import config

_TOKEN_RE = re.compile(r"\w+", flags=re.UNICODE)

# Japanese has no spaces: split a \w+ run further at script changes
# (hiragana, katakana, kanji, everything else).
_HIRAGANA = "\u3040-\u309f"
_KATAKANA = "\u30a0-\u30ff"
_KANJI = "\u3005\u3400-\u4dbf\u4e00-\u9fff"
_SCRIPT_RUN_RE = re.compile(
    rf"[{_HIRAGANA}]+|[{_KATAKANA}]+|[{_KANJI}]+|[^{_HIRAGANA}{_KATAKANA}{_KANJI}]+"
)
_HIRAGANA_RUN_RE = re.compile(rf"[{_HIRAGANA}]+")


def _normalise_unicode(text: str) -> str:
    # Full-width latin / half-width kana collapse to one representation.
    text = unicodedata.normalize("NFKC", text)
    text = text.replace("‘", "'").replace("’", "'")
    text = text.replace("“", '"').replace("”", '"')
    text = text.replace("–", "-").replace("—", "-")
    return text


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def basic_clean(text: str | None) -> str:
    """Light-weight clean for catalog fields and raw queries.

    * normalises unicode and whitespace
    * truncates excessively long inputs
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)

    if len(text) > config.MAX_INPUT_CHARS:
        text = text[: config.MAX_INPUT_CHARS]

    text = _normalise_unicode(text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def normalize_for_lexical_index(text: str | None) -> str:
    """Normalisation used for both card text and queries."""
    return basic_clean(text).casefold()


def simple_tokenize(text: str | None) -> List[str]:
    return _TOKEN_RE.findall(normalize_for_lexical_index(text))


def _split_scripts(token: str) -> List[str]:
    return _SCRIPT_RUN_RE.findall(token)


def _is_stopword(token: str) -> bool:
    if token in config.STOPWORDS:
        return True
    # single hiragana: particles and okurigana (を, の, く, ...)
    return len(token) == 1 and _HIRAGANA_RUN_RE.fullmatch(token) is not None


def query_tokens(text: str | None) -> List[str]:
    """Distinct tokens in first-seen order.

    Stopwords are dropped unless the query consists only of stopwords.
    """
    seen: List[str] = []
    for word in simple_tokenize(text):
        for tok in _split_scripts(word):
            if tok not in seen:
                seen.append(tok)
    content = [t for t in seen if not _is_stopword(t)]
    return content or seen
