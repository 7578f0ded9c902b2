"""Highlighted text fragments around query lemma occurrences."""

from __future__ import annotations

import re
from collections.abc import Sequence

NO_MATCH_SNIPPET = "...no matches found..."


def _lemma_pattern(lemmas: Sequence[str]) -> re.Pattern[str] | None:
    terms = sorted({lemma for lemma in lemmas if lemma}, key=len, reverse=True)
    if not terms:
        return None
    return re.compile("|".join(re.escape(term) for term in terms), re.IGNORECASE)


def build_snippet(
    text: str,
    lemmas: Sequence[str],
    length: int = 200,
    lead: int = 50,
    fragments: int = 3,
) -> str:
    """Return up to ``fragments`` windows of ``text`` with lemmas in ``<b>``.

    Each window starts ``lead`` characters before a lemma occurrence and is
    ``length`` characters long. Windows never overlap; an occurrence that
    falls inside an earlier window does not open a new one. Lemmas match as
    case-insensitive substrings, so ``кот`` also highlights ``коты``.
    """

    pattern = _lemma_pattern(lemmas)
    if pattern is None or not text:
        return NO_MATCH_SNIPPET

    windows: list[tuple[int, int]] = []
    covered_until = -1
    for match in pattern.finditer(text):
        if len(windows) >= fragments:
            break
        if match.start() < covered_until:
            continue
        start = max(match.start() - lead, covered_until, 0)
        end = min(start + length, len(text))
        # keep the matched word whole
        end = max(end, match.end())
        windows.append((start, end))
        covered_until = end

    if not windows:
        return NO_MATCH_SNIPPET
    parts = [pattern.sub(lambda m: f"<b>{m.group(0)}</b>", text[start:end]) for start, end in windows]
    return "".join(f"...{part}..." for part in parts)
