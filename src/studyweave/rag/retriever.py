"""Adaptive multi-tier retriever over a user's documents.

Tiers, tried in one pass (no retries):
  1. Similarity: cosine similarity against the query embedding, scanning
     ascending thresholds (0.2, 0.3, 0.4, 0.5). The first threshold whose
     result count is usable (1..max_usable_results) wins; an oversized set
     moves on to a stricter threshold.
  2. Keyword: case-insensitive substring match of up to five query terms
     over title/content, newest first, scored with a fixed sentinel.
  3. Fallback: most recent documents in scope, fixed sentinel score. Used
     when the query embedding fails or every other tier comes back empty.

retrieve() never raises: every failure degrades to the next tier with a
logged warning, and the final result is truncated to max_results.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass
from typing import Protocol

from studyweave.config import RetrievalCfg
from studyweave.db.models import Document
from studyweave.db.repository import Repository

logger = logging.getLogger(__name__)

TIER_SIMILARITY = "similarity"
TIER_KEYWORD = "keyword"
TIER_FALLBACK = "fallback"

_TERM_RE = re.compile(r"\w+")


class Embedder(Protocol):
    def embed(self, text: str) -> list[float]: ...


@dataclass
class RetrievedDocument:
    """A document scored for one query. Built per call, never cached.

    Attributes:
        document: The stored Document.
        similarity: Cosine similarity in [0, 1], or the tier's sentinel score
            when similarity search was bypassed.
        tier: Which tier produced it (similarity | keyword | fallback).
    """

    document: Document
    similarity: float
    tier: str = TIER_SIMILARITY

    @property
    def id(self) -> str:
        return self.document.id

    @property
    def title(self) -> str:
        return self.document.title

    @property
    def content(self) -> str:
        return self.document.content

    @property
    def file_name(self) -> str | None:
        return self.document.file_name


def retrieve(
    query: str,
    repo: Repository,
    embedder: Embedder,
    user_id: str,
    subject_id: str | None = None,
    max_results: int | None = None,
    config: RetrievalCfg | None = None,
) -> list[RetrievedDocument]:
    """Return up to *max_results* documents relevant to *query*, best-first.

    Args:
        query: Free-text user question.
        repo: Document store.
        embedder: Embedding provider for the query.
        user_id: Owner whose documents are searched.
        subject_id: Optional subject filter; None searches all the user's documents.
        max_results: Result cap (defaults to ``config.max_results``).
        config: Retrieval policy.
    """
    config = config or RetrievalCfg()
    limit = max_results if max_results is not None else config.max_results
    if limit < 1:
        return []

    try:
        query_embedding = embedder.embed(query)
    except Exception as exc:
        logger.warning("Query embedding failed, falling back to recent documents: %s", exc)
        return _fallback_tier(repo, user_id, subject_id, limit, config)
    if not query_embedding:
        logger.warning("Query embedding was empty, falling back to recent documents")
        return _fallback_tier(repo, user_id, subject_id, limit, config)

    try:
        results = _similarity_tier(repo, query_embedding, user_id, subject_id, config)
    except (sqlite3.Error, ValueError) as exc:
        logger.warning("Similarity search failed, falling back to recent documents: %s", exc)
        return _fallback_tier(repo, user_id, subject_id, limit, config)

    if results:
        return results[:limit]

    logger.warning(
        "No documents above similarity thresholds %s, trying keyword match",
        config.thresholds,
    )
    terms = extract_query_terms(query, config.max_query_terms, config.min_term_length)
    if not terms:
        logger.warning("No usable query terms, falling back to recent documents")
        return _fallback_tier(repo, user_id, subject_id, limit, config)

    try:
        results = _keyword_tier(repo, terms, user_id, subject_id, limit, config)
    except sqlite3.Error as exc:
        logger.warning("Keyword search failed, falling back to recent documents: %s", exc)
        return _fallback_tier(repo, user_id, subject_id, limit, config)

    if results:
        return results[:limit]

    logger.warning("No keyword matches for %s, falling back to recent documents", terms)
    return _fallback_tier(repo, user_id, subject_id, limit, config)


# ------------------------------------------------------------------
# Similarity tier
# ------------------------------------------------------------------


def _similarity_tier(
    repo: Repository,
    embedding: list[float],
    user_id: str,
    subject_id: str | None,
    config: RetrievalCfg,
) -> list[RetrievedDocument]:
    """Scan ascending thresholds for a usable result count.

    When every non-empty threshold is oversized, the strictest non-empty set
    is returned (the caller truncates it).
    """
    cap = config.max_usable_results
    oversized: list[tuple[Document, float]] = []

    for threshold in config.thresholds:
        hits = repo.search_similar(
            user_id, embedding, threshold, limit=cap + 1, subject_id=subject_id
        )
        if not hits:
            # Stricter thresholds cannot return more.
            break
        if len(hits) <= cap:
            logger.info(
                "Similarity tier: %d document(s) above threshold %.2f", len(hits), threshold
            )
            return _scored(hits)
        oversized = hits

    if oversized:
        logger.info(
            "Similarity tier: no threshold gave <= %d results, keeping the strictest set", cap
        )
    return _scored(oversized)


def _scored(hits: list[tuple[Document, float]]) -> list[RetrievedDocument]:
    return [
        RetrievedDocument(
            document=doc, similarity=min(1.0, max(0.0, sim)), tier=TIER_SIMILARITY
        )
        for doc, sim in hits
    ]


# ------------------------------------------------------------------
# Keyword tier
# ------------------------------------------------------------------


def extract_query_terms(query: str, max_terms: int = 5, min_length: int = 3) -> list[str]:
    """Case-folded, de-duplicated word terms of at least *min_length* chars."""
    terms: list[str] = []
    for word in _TERM_RE.findall(query.casefold()):
        if len(word) >= min_length and word not in terms:
            terms.append(word)
        if len(terms) >= max_terms:
            break
    return terms


def _keyword_tier(
    repo: Repository,
    terms: list[str],
    user_id: str,
    subject_id: str | None,
    limit: int,
    config: RetrievalCfg,
) -> list[RetrievedDocument]:
    docs = repo.search_keywords(user_id, terms, limit=limit, subject_id=subject_id)
    if docs:
        logger.info("Keyword tier: %d document(s) matched %s", len(docs), terms)
    return [
        RetrievedDocument(document=d, similarity=config.keyword_similarity, tier=TIER_KEYWORD)
        for d in docs
    ]


# ------------------------------------------------------------------
# Fallback tier
# ------------------------------------------------------------------


def _fallback_tier(
    repo: Repository,
    user_id: str,
    subject_id: str | None,
    limit: int,
    config: RetrievalCfg,
) -> list[RetrievedDocument]:
    try:
        docs = repo.recent_documents(user_id, limit=limit, subject_id=subject_id)
    except sqlite3.Error as exc:
        logger.error("Fallback retrieval failed, continuing without documents: %s", exc)
        return []
    return [
        RetrievedDocument(document=d, similarity=config.fallback_similarity, tier=TIER_FALLBACK)
        for d in docs
    ]
