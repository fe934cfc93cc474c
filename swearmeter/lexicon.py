# -*- coding: utf-8 -*-
"""
lexicon.py
Curated lexicon of tracked terms.
- build_pattern(): base term + literal variants -> one compiled, case-insensitive regex
- LEXICON: full table (slur entries included, used only by the slur guard)
- SAFE_LEXICON: LEXICON without slurs, used for every public scan/listing
The tables are built once at import time and never mutated.
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet, Iterable, List, Tuple

from swearmeter.models import CATEGORIES, LexiconEntry

# Leetspeak / symbol look-alikes per letter
SUBSTITUTIONS: Dict[str, str] = {
    "a": "[a@4]",
    "e": "[e3]",
    "i": "[i1!]",
    "o": "[o0]",
    "s": "[s$5]",
    "u": "[uv]",
}

# Optional separator between letters: f-u-c-k, f_u_c_k, f*u*c*k
CENSOR_GAP = r"[*\-_]?"

# Symbols that may stand in for a letter (never the first one): f*ck, sh#t, f**k
CENSOR_MASK = "[*#]"

SUFFIXES = r"(?:s|ed|ing|er|ers|in'|in)?"


def _letter(ch: str, first: bool) -> str:
    cls = SUBSTITUTIONS.get(ch.lower(), re.escape(ch))
    if first or not ch.isalpha():
        return cls
    return f"(?:{cls}|{CENSOR_MASK})"


def build_pattern(base: str, extras: Iterable[str] = ()) -> re.Pattern:
    """
    Compile the matcher for one entry.

    base:   canonical spelling; gets look-alike classes and censor allowances
    extras: literal alternative spellings, escaped and matched as-is
    """
    body = CENSOR_GAP.join(_letter(ch, i == 0) for i, ch in enumerate(base))
    alternatives = [body] + [re.escape(x) for x in extras]
    return re.compile(rf"\b(?:{'|'.join(alternatives)}){SUFFIXES}\b", re.IGNORECASE)


def _raw(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


# (term, matcher, severity, category)
_TABLE: List[Tuple[str, re.Pattern, int, str]] = [
    # general
    ("fuck", build_pattern("fuck", ["fck", "fuk", "phuck"]), 3, "general"),
    ("shit", build_pattern("shit", ["sht", "shite"]), 2, "scatological"),
    ("damn", build_pattern("damn", ["dam", "dammit", "damnit"]), 1, "religious"),
    ("hell", build_pattern("hell", ["heck"]), 1, "religious"),
    ("ass", build_pattern("ass", ["arse"]), 2, "general"),
    ("asshole", build_pattern("asshole", ["arsehole", "a-hole"]), 2, "general"),
    ("bastard", build_pattern("bastard"), 2, "general"),
    ("bitch", build_pattern("bitch", ["biatch"]), 2, "general"),
    ("crap", build_pattern("crap"), 1, "scatological"),
    ("piss", build_pattern("piss"), 1, "scatological"),
    ("bullshit", build_pattern("bullshit", ["bs", "bull shit"]), 2, "scatological"),
    ("horseshit", build_pattern("horseshit"), 2, "scatological"),
    ("goddam", build_pattern("goddam", ["goddamn", "goddammit"]), 2, "religious"),
    ("jesus", build_pattern("jesus christ", ["jesus h christ"]), 1, "religious"),
    ("bloody", build_pattern("bloody"), 1, "general"),
    ("bugger", build_pattern("bugger"), 1, "general"),
    ("bollocks", build_pattern("bollocks", ["bollox"]), 2, "general"),
    ("wanker", build_pattern("wanker"), 2, "sexual"),
    ("tosser", build_pattern("tosser"), 1, "general"),
    ("sod", build_pattern("sod off", ["sodding"]), 1, "general"),
    ("twat", build_pattern("twat"), 2, "sexual"),
    ("prick", build_pattern("prick"), 2, "sexual"),
    ("dick", build_pattern("dick", ["dck"]), 2, "sexual"),
    ("dickhead", build_pattern("dickhead"), 2, "sexual"),
    ("cock", build_pattern("cock"), 2, "sexual"),
    ("cunt", build_pattern("cunt"), 3, "sexual"),
    ("motherfucker", build_pattern("motherfucker", ["mofo", "mf", "mother fucker"]), 3, "general"),
    ("fuckwit", build_pattern("fuckwit"), 3, "general"),
    ("dipshit", build_pattern("dipshit"), 2, "scatological"),
    ("shithead", build_pattern("shithead"), 2, "scatological"),
    ("jackass", build_pattern("jackass"), 2, "general"),
    ("dumbass", build_pattern("dumbass"), 2, "general"),
    ("badass", build_pattern("badass"), 1, "general"),
    ("clusterfuck", build_pattern("clusterfuck"), 3, "general"),
    ("fubar", build_pattern("fubar"), 2, "general"),
    ("snafu", build_pattern("snafu"), 1, "general"),
    ("wtf", _raw(r"\bwtf\b"), 2, "general"),
    ("stfu", _raw(r"\bstfu\b"), 2, "general"),
    ("omfg", _raw(r"\bomfg\b"), 2, "general"),
    ("lmfao", _raw(r"\blmf?ao\b"), 2, "general"),
    ("af", _raw(r"\baf\b"), 1, "general"),
    ("effing", build_pattern("effing", ["eff", "effed"]), 1, "general"),
    ("freaking", build_pattern("freaking", ["freakin", "frickin", "fricking"]), 1, "general"),
    ("screw", build_pattern("screw", ["screwed"]), 1, "general"),
    ("jerk", build_pattern("jerk", ["jerkoff"]), 1, "general"),
    ("douche", build_pattern("douche", ["douchebag", "douchy"]), 2, "general"),
    ("whore", build_pattern("whore"), 2, "sexual"),
    ("slut", build_pattern("slut"), 2, "sexual"),
    ("skank", build_pattern("skank"), 2, "sexual"),
    ("hoe", _raw(r"\bhoes?\b"), 2, "sexual"),
    ("cum", build_pattern("cum"), 2, "sexual"),
    ("jizz", build_pattern("jizz"), 2, "sexual"),
    ("blowjob", build_pattern("blowjob", ["blow job", "bj"]), 2, "sexual"),
    ("handjob", build_pattern("handjob", ["hand job", "hj"]), 2, "sexual"),
    # regional
    ("merde", build_pattern("merde"), 2, "scatological"),
    ("scheisse", build_pattern("scheisse", ["scheiße"]), 2, "scatological"),
    ("mierda", build_pattern("mierda"), 2, "scatological"),
    ("puta", build_pattern("puta"), 2, "sexual"),
    ("pendejo", build_pattern("pendejo"), 2, "general"),
    ("chingada", build_pattern("chingada", ["chingar"]), 3, "general"),
    ("cazzo", build_pattern("cazzo"), 2, "sexual"),
    ("merda", build_pattern("merda"), 2, "scatological"),
    # mild / euphemisms
    ("darn", build_pattern("darn"), 1, "general"),
    ("gosh", build_pattern("gosh"), 1, "religious"),
    ("shoot", build_pattern("shoot"), 1, "general"),
    ("fudge", build_pattern("fudge"), 1, "general"),
    ("crud", build_pattern("crud"), 1, "general"),
    ("butt", build_pattern("butt", ["butthead"]), 1, "general"),
    ("booty", build_pattern("booty"), 1, "general"),
    # intensifiers
    ("flipping", build_pattern("flipping"), 1, "general"),
    ("blasted", build_pattern("blasted"), 1, "general"),
    ("bleeding", build_pattern("bleeding"), 1, "general"),
    # compounds
    ("shitshow", build_pattern("shitshow", ["shit show"]), 2, "scatological"),
    ("shithole", build_pattern("shithole", ["shit hole"]), 2, "scatological"),
    ("shitstorm", build_pattern("shitstorm", ["shit storm"]), 2, "scatological"),
    ("ratfuck", build_pattern("ratfuck"), 3, "general"),
    ("mindfuck", build_pattern("mindfuck"), 3, "general"),
    ("batshit", build_pattern("batshit"), 2, "scatological"),
    ("apeshit", build_pattern("apeshit"), 2, "scatological"),
    ("chickenshit", build_pattern("chickenshit"), 2, "scatological"),
]

# Slur patterns are gated, never counted or listed. The open table ships a
# placeholder that cannot match real text.
_SLUR_TABLE: List[Tuple[str, re.Pattern]] = [
    ("[slur-racial]", _raw(r"\b(?:placeholder-never-match)\b")),
]


def _build() -> Tuple[LexiconEntry, ...]:
    entries = [LexiconEntry(term=t, pattern=p, severity=sev, category=cat, is_slur=False)
               for t, p, sev, cat in _TABLE]
    entries += [LexiconEntry(term=t, pattern=p, severity=3, category="slur", is_slur=True)
                for t, p in _SLUR_TABLE]
    terms = [e.term for e in entries]
    if len(terms) != len(set(terms)):
        raise ValueError("lexicon: duplicate canonical terms")
    unknown = {e.category for e in entries} - set(CATEGORIES)
    if unknown:
        raise ValueError(f"lexicon: unknown categories {sorted(unknown)}")
    return tuple(entries)


LEXICON: Tuple[LexiconEntry, ...] = _build()

SAFE_LEXICON: Tuple[LexiconEntry, ...] = tuple(e for e in LEXICON if not e.is_slur)

TERM_SET: FrozenSet[str] = frozenset(e.term for e in LEXICON)


def terms_by_category(category: str) -> List[LexiconEntry]:
    return [e for e in LEXICON if e.category == category]


def terms_by_severity(severity: int) -> List[LexiconEntry]:
    return [e for e in SAFE_LEXICON if e.severity == severity]


def public_terms() -> List[dict]:
    """Listing for the query layer; slur entries never appear here."""
    return [{"term": e.term, "severity": e.severity, "category": e.category} for e in SAFE_LEXICON]
