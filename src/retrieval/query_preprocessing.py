"""Query normalisation, abbreviation expansion and keyword extraction."""

from __future__ import annotations

import logging
import re
import time
from collections import Counter
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

FILLER_WORDS = frozenset(
    {
        "um", "uh", "like", "you know", "basically", "actually", "literally",
        "i mean", "sort of", "kind of", "well", "so", "right", "okay", "ok",
        "yeah", "yes", "no", "just", "really", "very", "quite", "pretty",
        "totally", "completely", "absolutely", "definitely", "probably",
        "maybe", "perhaps", "anyway", "anyways", "obviously", "clearly",
    }
)

ABBREVIATIONS: dict[str, str] = {
    "ai": "artificial intelligence",
    "ml": "machine learning",
    "dl": "deep learning",
    "nlp": "natural language processing",
    "api": "application programming interface",
    "ui": "user interface",
    "ux": "user experience",
    "seo": "search engine optimization",
    "css": "cascading style sheets",
    "html": "hypertext markup language",
    "js": "javascript",
    "ts": "typescript",
    "yt": "youtube",
    "vid": "video",
    "vids": "videos",
    "sub": "subscriber",
    "subs": "subscribers",
    "ctr": "click through rate",
    "cpm": "cost per mille",
    "rpm": "revenue per mille",
    "roi": "return on investment",
    "kpi": "key performance indicator",
    "b2b": "business to business",
    "b2c": "business to consumer",
    "saas": "software as a service",
    "etc": "etcetera",
    "vs": "versus",
}

CONTEXTUAL_EXPANSIONS: dict[str, list[str]] = {
    "game": ["gameplay", "gaming", "video game", "esports", "competitive"],
    "fps": ["first person shooter", "frames per second", "shooting game"],
    "mmo": ["massively multiplayer online", "online game", "multiplayer"],
    "pvp": ["player versus player", "competitive", "multiplayer combat"],
    "pve": ["player versus environment", "campaign", "single player"],
    "content": ["video content", "creator content", "entertainment", "media"],
    "creator": ["content creator", "youtuber", "influencer", "streamer"],
    "stream": ["streaming", "live stream", "broadcast", "live content"],
    "thumbnail": ["video thumbnail", "preview image", "cover image"],
    "monetization": ["revenue", "income", "earnings", "ad revenue"],
    "algorithm": ["machine learning", "ai algorithm", "computational method"],
    "data": ["dataset", "information", "analytics", "statistics"],
    "analysis": ["research", "study", "examination", "investigation"],
    "optimization": ["improvement", "enhancement", "efficiency", "performance"],
    "strategy": ["business strategy", "approach", "methodology", "plan"],
    "growth": ["expansion", "scaling", "development", "increase"],
    "marketing": ["promotion", "advertising", "branding", "outreach"],
    "audience": ["viewers", "subscribers", "community", "followers"],
}

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
        "has", "he", "in", "is", "it", "its", "of", "on", "that", "the",
        "to", "was", "will", "with", "this", "these", "they", "them", "their",
        "what", "how", "why", "when", "where", "who", "which", "whose",
        "did", "do", "does", "can", "could", "would", "should", "you", "your",
        "have", "had", "been", "being", "were",
    }
)

MAX_KEYWORDS = 10
TERMS_PER_KEYWORD = 2

_PUNCT_RE = re.compile(r"[.,!?;]+")
_NON_WORD_RE = re.compile(r"[^\w]")
_WHITESPACE_RE = re.compile(r"\s+")
# Longest first so "subs" is not rewritten as "sub" + "s".
_ABBREVIATION_RE = re.compile(
    r"\b(" + "|".join(sorted(map(re.escape, ABBREVIATIONS), key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ProcessedQuery:
    original: str
    cleaned: str
    expanded: str
    contextual: str
    keywords: list[str] = field(default_factory=list)
    contextual_terms: list[str] = field(default_factory=list)
    filler_words_removed: int = 0
    abbreviations_expanded: int = 0


def normalize_text(text: str) -> str:
    text = _PUNCT_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def remove_filler_words(text: str) -> tuple[str, int]:
    kept: list[str] = []
    removed = 0
    for word in text.lower().split():
        if _NON_WORD_RE.sub("", word) in FILLER_WORDS:
            removed += 1
            continue
        kept.append(word)
    return " ".join(kept), removed


def expand_abbreviations(text: str) -> tuple[str, int]:
    count = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal count
        count += 1
        return ABBREVIATIONS[match.group(1).lower()]

    return _ABBREVIATION_RE.sub(_replace, text.lower()), count


def extract_keywords(text: str) -> list[str]:
    """Top words by frequency, excluding stop/filler words and short tokens.

    If filtering removes everything, the original words are returned so the
    keyword search still has something to match.
    """
    words = [_NON_WORD_RE.sub("", w) for w in text.lower().split()]
    filtered = [
        w for w in words if len(w) > 2 and w not in STOP_WORDS and w not in FILLER_WORDS
    ]
    if not filtered:
        return [w for w in words if w][:MAX_KEYWORDS]
    return [word for word, _ in Counter(filtered).most_common(MAX_KEYWORDS)]


def add_contextual_terms(text: str, keywords: list[str]) -> tuple[str, list[str]]:
    terms: list[str] = []
    for keyword in keywords:
        for term in CONTEXTUAL_EXPANSIONS.get(keyword.lower(), [])[:TERMS_PER_KEYWORD]:
            if term not in terms:
                terms.append(term)
    if not terms:
        return text, []
    return f"{text} {' '.join(terms)}", terms


def preprocess_query(query: str) -> ProcessedQuery:
    started = time.perf_counter()
    normalized = normalize_text(query)
    cleaned, fillers = remove_filler_words(normalized)
    expanded, abbreviations = expand_abbreviations(cleaned)
    keywords = extract_keywords(expanded)
    contextual, terms = add_contextual_terms(expanded, keywords)

    logger.debug(
        "Preprocessed query %r -> %r (keywords=%s, %.1fms)",
        query[:50],
        contextual[:80],
        keywords[:3],
        (time.perf_counter() - started) * 1000,
    )
    return ProcessedQuery(
        original=query,
        cleaned=cleaned,
        expanded=expanded,
        contextual=contextual,
        keywords=keywords,
        contextual_terms=terms,
        filler_words_removed=fillers,
        abbreviations_expanded=abbreviations,
    )
