"""Text → lemma multiset pipeline shared by the indexer and the search engine."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Sequence

import structlog

from knowledge.text import html_to_text
from morphology.analyzers import (
    Normalizer,
    get_english_normalizer,
    get_russian_normalizer,
)

logger = structlog.get_logger(__name__)

CYRILLIC_WORD_RE = re.compile(r"[а-яё]+")
LATIN_WORD_RE = re.compile(r"[a-z]+")
# Letters only: everything that is not a word character, a digit or ``_``.
_TOKEN_RE = re.compile(r"[^\W\d_]+")

DEFAULT_MIN_WORD_LENGTH = 2


@dataclass(frozen=True)
class ScriptRoute:
    """Sends tokens matching ``pattern`` to ``normalizer``.

    ``normalizer`` may be a zero-argument factory so that heavy dictionaries
    load only when a token of that script is actually seen.
    """

    pattern: re.Pattern[str]
    normalizer: Normalizer | Callable[[], Normalizer]

    def resolve(self) -> Normalizer:
        if hasattr(self.normalizer, "normalize"):
            return self.normalizer  # type: ignore[return-value]
        return self.normalizer()  # type: ignore[operator]


def default_routes() -> list[ScriptRoute]:
    return [
        ScriptRoute(CYRILLIC_WORD_RE, get_russian_normalizer),
        ScriptRoute(LATIN_WORD_RE, get_english_normalizer),
    ]


class Lemmatizer:
    """Split text into words and count their base forms.

    Tokens shorter than ``min_word_length`` and tokens that match none of the
    script routes are discarded.
    """

    def __init__(
        self,
        routes: Sequence[ScriptRoute] | None = None,
        *,
        min_word_length: int = DEFAULT_MIN_WORD_LENGTH,
    ) -> None:
        self._routes = list(routes) if routes is not None else default_routes()
        self.min_word_length = min_word_length

    def tokenize(self, text: str) -> list[str]:
        return [
            token
            for token in _TOKEN_RE.findall((text or "").lower())
            if len(token) >= self.min_word_length
        ]

    def _normalizer_for(self, token: str) -> Normalizer | None:
        for route in self._routes:
            if route.pattern.fullmatch(token):
                return route.resolve()
        return None

    def lemmatize(self, text: str) -> dict[str, int]:
        """Return ``{base form: occurrences}`` for ``text``."""

        counts: Counter[str] = Counter()
        for token in self.tokenize(text):
            normalizer = self._normalizer_for(token)
            if normalizer is None:
                continue
            for base_form in normalizer.normalize(token):
                counts[base_form] += 1
        return dict(counts)

    def lemmatize_html(self, html: str) -> dict[str, int]:
        return self.lemmatize(html_to_text(html))

    def query_lemmas(self, query: str) -> list[str]:
        """Distinct lemmas of a search query in first-seen order."""

        lemmas = list(self.lemmatize(query))
        logger.debug("query_lemmatized", query=query, lemmas=lemmas)
        return lemmas
