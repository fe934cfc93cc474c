import re
from typing import Iterable, List

DEFAULT_WINDOW = 5

_NON_ALPHA_RE = re.compile(r"[^a-z]")

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "is", "are", "was", "were", "be", "been",
    "being", "have", "has", "had", "do", "does", "did", "will", "would",
    "could", "should", "may", "might", "must", "shall", "can", "need",
    "it", "its", "this", "that", "these", "those", "i", "you", "he", "she",
    "we", "they", "me", "him", "her", "us", "them", "my", "your", "his",
    "our", "their", "what", "which", "who", "whom", "whose", "where", "when",
    "why", "how", "all", "each", "every", "both", "few", "more", "most",
    "other", "some", "such", "no", "not", "only", "same", "so", "than",
    "too", "very", "just", "also", "now", "here", "there", "then", "if",
    # social media artifacts
    "rt", "via", "amp",
})


def _word_index(words: List[str], position: int) -> int:
    # Approximate: assumes a single space between words. Sanitized text has
    # collapsed whitespace, so this is exact for it, but not for raw text.
    char_count = 0
    for i, w in enumerate(words):
        if char_count >= position:
            return i
        char_count += len(w) + 1
    return len(words) - 1


def extract_collocations(text: str, positions: Iterable[int], window: int = DEFAULT_WINDOW) -> List[str]:
    """
    Content words within `window` words of each match position.
    Repeats are kept; the caller tallies them.
    """
    if not isinstance(text, str) or not text:
        return []
    words = text.lower().split()
    if not words:
        return []

    out: List[str] = []
    for pos in positions:
        idx = _word_index(words, pos)
        start = max(0, idx - window)
        end = min(len(words), idx + window + 1)
        for i in range(start, end):
            if i == idx:
                continue
            word = _NON_ALPHA_RE.sub("", words[i])
            if len(word) > 2 and word not in STOP_WORDS:
                out.append(word)
    return out
