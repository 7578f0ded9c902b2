"""Tests for snippet generation."""

from retrieval.snippets import NO_MATCH_SNIPPET, build_snippet


def test_no_match_returns_placeholder() -> None:
    assert build_snippet("nothing relevant here", ["cat"]) == NO_MATCH_SNIPPET
    assert build_snippet("", ["cat"]) == NO_MATCH_SNIPPET
    assert build_snippet("cat", []) == NO_MATCH_SNIPPET


def test_matches_are_highlighted_case_insensitively() -> None:
    snippet = build_snippet("Our Cat likes the cat food", ["cat"])
    assert snippet == "...Our <b>Cat</b> likes the <b>cat</b> food..."


def test_window_starts_before_the_match() -> None:
    text = "x" * 100 + " cat " + "y" * 300
    snippet = build_snippet(text, ["cat"], length=60, lead=10)
    body = snippet[3:-3]
    assert body.startswith("x" * 9 + " <b>cat</b>")
    assert len(body.replace("<b>", "").replace("</b>", "")) == 60


def test_windows_do_not_overlap_and_are_limited() -> None:
    text = " ".join(["cat"] + ["z" * 20] * 20 + ["cat"] * 10 + ["w" * 300] + ["dog"] * 3)
    snippet = build_snippet(text, ["cat", "dog"], length=40, lead=5, fragments=3)
    assert snippet.count("...") == 6
    assert snippet.startswith("...<b>cat</b>")


def test_longer_lemma_wins_over_its_prefix() -> None:
    snippet = build_snippet("catalog", ["cat", "catalog"])
    assert snippet == "...<b>catalog</b>..."


def test_lemma_prefix_highlights_inflected_form() -> None:
    snippet = build_snippet("Наши коты спят", ["кот"])
    assert "<b>кот</b>ы" in snippet
