"""Title similarity for deciding whether two postings are one event."""

import re

_NON_WORD = re.compile(r"[^\w\s]")

_STOPWORDS = frozenset({
    "the", "and", "for", "with", "our", "your", "you", "this", "that",
    "from", "are", "all", "its", "his", "her", "their",
})


def title_words(title: str | None) -> set[str]:
    """Lowercased words longer than two characters, punctuation and stopwords removed."""
    if not title:
        return set()
    cleaned = _NON_WORD.sub("", title.lower())
    return {w for w in cleaned.split() if len(w) > 2 and w not in _STOPWORDS}


def title_similarity(first: str | None, second: str | None) -> float:
    """
    Jaccard index of the two titles' word sets.

    Returns 0.0 when either title is missing or has no significant words.
    """
    words_a = title_words(first)
    words_b = title_words(second)
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)
