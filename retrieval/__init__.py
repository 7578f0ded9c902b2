"""Ranked search over the lemma index."""

from retrieval.search import SearchEngine
from retrieval.snippets import NO_MATCH_SNIPPET, build_snippet

__all__ = ["NO_MATCH_SNIPPET", "SearchEngine", "build_snippet"]
