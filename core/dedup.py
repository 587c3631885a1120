"""
Document deduplication.

Sources overlap: a web search hit and a Reddit post often point at the
same page. Duplicates are collapsed by normalised URL, falling back to
normalised title for documents without a URL.
"""

import logging
import re
from typing import Dict, List

from models.research import Document
from utils.helpers import normalize_url

__all__ = ["deduplicate_documents"]

logger = logging.getLogger(__name__)


def _normalize_title(title: str) -> str:
    title = title.lower()
    title = re.sub(r"[^a-z0-9\s]", " ", title)
    return " ".join(title.split())


def _build_key(document: Document) -> str:
    url = normalize_url(document.url)
    if url:
        return f"url:{url}"
    title = _normalize_title(document.title)
    if title:
        return f"title:{title}"
    return f"id:{document.id}"


def deduplicate_documents(documents: List[Document]) -> List[Document]:
    """
    Remove duplicate documents, keeping the most relevant copy of each.

    Order of first appearance is preserved so source ordering stays stable.

    Args:
        documents: Documents aggregated from all sources

    Returns:
        Deduplicated documents
    """
    best_by_key: Dict[str, Document] = {}
    order: List[str] = []

    for document in documents:
        key = _build_key(document)
        existing = best_by_key.get(key)
        if existing is None:
            best_by_key[key] = document
            order.append(key)
        elif document.relevance > existing.relevance:
            best_by_key[key] = document

    removed = len(documents) - len(order)
    if removed:
        logger.info(f"Deduplication removed {removed} of {len(documents)} documents")

    return [best_by_key[key] for key in order]
