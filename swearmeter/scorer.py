# -*- coding: utf-8 -*-
"""
scorer.py
Lexicon scan over sanitized text:
- classify_context(): rhetorical tag for one match position
- scan_text(): per-term counts/positions/context (safe view by default)
- contains_slur(): hard gate over the full lexicon, evaluated before scan_text
All three are pure; patterns are shared but finditer/search never keep state between calls.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence

from swearmeter.lexicon import LEXICON, SAFE_LEXICON
from swearmeter.models import LexiconEntry, MatchResult

CONTEXT_WINDOW = 50

# Priority order: quote -> anger -> humor -> emphasis, first hit wins
CONTEXT_PATTERNS = (
    ("quote", re.compile(r"[\"'“”‘’«»]|\b(?:said|says|wrote|tweeted|posted|according to)\b")),
    ("anger", re.compile(r"\b(?:angry|anger|furious|hate[ds]?|pissed|mad|rage|wtf|stfu|shut up|die|kill)\b")),
    ("humor", re.compile(r"\b(?:lol|lmao|rofl|ha(?:ha)+|jokes?|joking|funny|hilarious)\b|😂|🤣")),
    ("emphasis", re.compile(r"\b(?:so|very|really|extremely|absolutely|totally|af)\b")),
)


def classify_context(text: str, position: int) -> str:
    """
    Tag the rhetorical context of the match at `position`.
    Looks at 50 chars on either side (clamped), lower-cased.
    """
    if not isinstance(text, str) or not text:
        return "unknown"
    start = max(0, position - CONTEXT_WINDOW)
    end = min(len(text), position + CONTEXT_WINDOW)
    window = text[start:end].lower()

    for tag, pattern in CONTEXT_PATTERNS:
        if pattern.search(window):
            return tag
    return "unknown"


def scan_text(text: str, lexicon: Optional[Sequence[LexiconEntry]] = None) -> List[MatchResult]:
    """
    Scan sanitized text against a lexicon view (SAFE_LEXICON unless told otherwise).

    Returns one MatchResult per distinct matched term, in lexicon order.
    The context tag comes from the first occurrence only; later occurrences of the
    same term only add to count/positions.
    """
    if not isinstance(text, str) or not text:
        return []
    if lexicon is None:
        lexicon = SAFE_LEXICON

    results: Dict[str, MatchResult] = {}
    for entry in lexicon:
        for m in entry.pattern.finditer(text):
            existing = results.get(entry.term)
            if existing is None:
                results[entry.term] = MatchResult(
                    term=entry.term,
                    count=1,
                    positions=[m.start()],
                    context=classify_context(text, m.start()),
                )
            else:
                existing.count += 1
                existing.positions.append(m.start())
    return list(results.values())


def contains_slur(text: str, lexicon: Optional[Sequence[LexiconEntry]] = None) -> bool:
    """
    True iff any slur-flagged matcher finds at least one occurrence.
    Always checks the full lexicon (the safe view has no slurs in it).
    """
    if not isinstance(text, str) or not text:
        return False
    for entry in (lexicon if lexicon is not None else LEXICON):
        if entry.is_slur and entry.pattern.search(text):
            return True
    return False
