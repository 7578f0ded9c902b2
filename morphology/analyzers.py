"""Per-language morphological analyzers.

Every analyzer implements the :class:`Normalizer` capability: given a
lower-case word it returns the word's dictionary base forms. A surface token
may map to several base forms (homonyms); an empty list means the token
carries no searchable meaning (e.g. a preposition).
"""

from __future__ import annotations

from functools import lru_cache
from typing import Protocol

import nltk
import pymorphy3
import structlog
from nltk.stem import WordNetLemmatizer

logger = structlog.get_logger(__name__)

# OpenCorpora tags for prepositions, conjunctions, particles and interjections.
RUSSIAN_FUNCTION_POS = frozenset({"PREP", "CONJ", "PRCL", "INTJ"})


class Normalizer(Protocol):
    def normalize(self, word: str) -> list[str]:
        """Return the base forms of ``word``."""
        ...


def _unique(items) -> list[str]:
    seen: dict[str, None] = {}
    for item in items:
        if item:
            seen.setdefault(item, None)
    return list(seen)


class RussianNormalizer:
    """Cyrillic analyzer backed by :mod:`pymorphy3` dictionaries."""

    def __init__(self, *, skip_function_words: bool = True) -> None:
        self._morph = pymorphy3.MorphAnalyzer()
        self._skip_function_words = skip_function_words

    def normalize(self, word: str) -> list[str]:
        parses = self._morph.parse(word)
        if not parses:
            return []
        if self._skip_function_words and parses[0].tag.POS in RUSSIAN_FUNCTION_POS:
            return []
        return _unique(parse.normal_form for parse in parses)


def _ensure_wordnet() -> None:
    try:
        nltk.data.find("corpora/wordnet")
    except LookupError:
        logger.info("nltk_corpus_download", corpus="wordnet")
        nltk.download("wordnet", quiet=True)


class EnglishNormalizer:
    """Latin analyzer using the NLTK WordNet lemmatizer.

    Each word is lemmatized both as a noun and as a verb so that ``running``
    yields ``running`` and ``run``.
    """

    POS_TAGS = ("n", "v")

    def __init__(self) -> None:
        _ensure_wordnet()
        self._lemmatizer = WordNetLemmatizer()

    def normalize(self, word: str) -> list[str]:
        return _unique(self._lemmatizer.lemmatize(word, pos) for pos in self.POS_TAGS)


@lru_cache(maxsize=1)
def get_russian_normalizer() -> RussianNormalizer:
    return RussianNormalizer()


@lru_cache(maxsize=1)
def get_english_normalizer() -> EnglishNormalizer:
    return EnglishNormalizer()
