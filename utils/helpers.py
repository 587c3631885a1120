"""Helper utilities for the Research Engine."""

import re
from collections import Counter
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

STOPWORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "how", "what", "where", "when", "why",
    "is", "are", "was", "were", "be", "been", "this", "that", "these",
    "those", "it", "its", "can", "could", "should", "would", "will", "do",
    "does", "did", "have", "has", "had", "not", "about", "into", "than",
    "then", "there", "their", "them", "they", "which", "who", "your", "you",
    "using", "use", "best", "some", "more", "most", "also", "just", "like",
}

_WORD_RE = re.compile(r"[a-zA-Z][a-zA-Z0-9_.+#-]*")


def normalize_query(query: str) -> str:
    """Normalize query whitespace."""
    return " ".join(query.split()).strip()


def extract_keywords(text: str, limit: int = 10) -> List[str]:
    """
    Pull the most frequent meaningful words out of free text.

    Words are lowercased, stopwords and words of three characters or less
    are dropped, and the remainder ranked by frequency then first position.
    """
    words = [w.lower().strip(".-") for w in _WORD_RE.findall(text)]
    words = [w for w in words if len(w) > 3 and w not in STOPWORDS]
    counts = Counter(words)
    first_seen = {}
    for index, word in enumerate(words):
        first_seen.setdefault(word, index)
    ranked = sorted(counts, key=lambda w: (-counts[w], first_seen[w]))
    return ranked[:limit]


def query_terms(query: str) -> List[str]:
    """Lowercase terms of a query, without stopwords, in order."""
    terms = []
    for word in _WORD_RE.findall(query.lower()):
        word = word.strip(".-")
        if len(word) > 2 and word not in STOPWORDS and word not in terms:
            terms.append(word)
    return terms


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive check for whole-word (or phrase) keyword presence."""
    lowered = f" {text.lower()} "
    for keyword in keywords:
        pattern = r"(?<![a-z0-9])" + re.escape(keyword.lower()) + r"(?![a-z0-9])"
        if re.search(pattern, lowered):
            return True
    return False


def html_to_text(html: Optional[str]) -> str:
    """Strip HTML markup, keeping code blocks and paragraph breaks readable."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for pre in soup.find_all("pre"):
        pre.replace_with(f"\n```\n{pre.get_text()}\n```\n")
    text = soup.get_text("\n")
    lines = [line.strip() for line in text.splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def truncate(text: str, length: int, suffix: str = "...") -> str:
    if len(text) <= length:
        return text
    return text[:length].rstrip() + suffix


def normalize_url(url: Optional[str]) -> Optional[str]:
    """Canonical form used for de-duplication: host without www, no trailing slash."""
    if not url:
        return None
    parsed = urlparse(url.strip())
    if not parsed.netloc:
        return url.strip().lower()
    host = parsed.netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{host}{path}{query}"


def term_overlap(terms: List[str], text: str) -> float:
    """Fraction of query terms that appear in text (0 when there are no terms)."""
    if not terms:
        return 0.0
    lowered = text.lower()
    return sum(1 for term in terms if term in lowered) / len(terms)
