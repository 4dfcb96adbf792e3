"""Chunk relevance scoring and top-K retrieval."""

import logging
import re
from collections.abc import Sequence
from functools import lru_cache

from backend.app.models.docs import DocumentChunk
from backend.app.models.legal import LegalArticleReference
from backend.app.nlp.knowledge_base import ContextRule, KnowledgeBase, get_knowledge_base
from backend.app.nlp.legal import extract_legal_keywords, extract_references
from backend.app.nlp.matching import FoldedText, contains_any

logger = logging.getLogger(__name__)

# Legal reference signals
ARTICLE_MATCH_POINTS = 50
CLAUSE_MATCH_POINTS = 40
POINT_MATCH_POINTS = 45
DECREE_MATCH_POINTS = 35
ARTICLE_CLAUSE_COMBO_POINTS = 20
CLAUSE_POINT_COMBO_POINTS = 25

SEMANTIC_PHRASE_POINTS = 15

# Keyword weights by specificity
LONG_PHRASE_WEIGHT = 8
PENALTY_TERM_WEIGHT = 5
CITATION_TERM_WEIGHT = 4
DEFAULT_KEYWORD_WEIGHT = 2
LONG_PHRASE_MIN_LENGTH = 11

RED_LIGHT_BOOST = 20
RED_LIGHT_CONFLICT_PENALTY = -10
OVERTAKING_BOOST = 15
OVERTAKING_CONFLICT_PENALTY = -5

DIRECT_PHRASE_POINTS = 15
WORD_OVERLAP_MULTIPLIER = 2
WORD_MIN_LENGTH = 3
LEGAL_CONTENT_POINTS = 5
MONETARY_POINTS = 3

_LEGAL_CONTENT_RE = re.compile(
    r"điều\s+\d+|khoản\s+\d+|nghị\s*định\s+\d+|quyết\s*định\s+\d+", re.IGNORECASE
)
_MONETARY_RE = re.compile(r"\d+\.?\d*\s*(triệu|nghìn|đồng|vnđ)", re.IGNORECASE)


@lru_cache(maxsize=1024)
def _keyword_regex(keyword: str) -> re.Pattern[str]:
    return re.compile(re.escape(keyword.lower()))


def keyword_weight(keyword: str) -> int:
    """Weight of one keyword occurrence, by specificity."""
    lower = keyword.lower()
    if len(keyword) >= LONG_PHRASE_MIN_LENGTH:
        return LONG_PHRASE_WEIGHT
    if "phạt" in lower or "vi phạm" in lower:
        return PENALTY_TERM_WEIGHT
    if "điều" in lower or "khoản" in lower:
        return CITATION_TERM_WEIGHT
    return DEFAULT_KEYWORD_WEIGHT


def _score_legal_references(content: str, ref: LegalArticleReference) -> int:
    score = 0

    for n in ref.articles:
        if re.search(rf"điều\s+{n}\b", content, re.IGNORECASE):
            score += ARTICLE_MATCH_POINTS
    for n in ref.clauses:
        if re.search(rf"khoản\s+{n}\b", content, re.IGNORECASE):
            score += CLAUSE_MATCH_POINTS
    for p in ref.points:
        if re.search(rf"điểm\s+{re.escape(p)}\)", content, re.IGNORECASE):
            score += POINT_MATCH_POINTS
    for n in ref.decrees:
        if re.search(rf"nghị\s*định\s+{n}\b", content, re.IGNORECASE):
            score += DECREE_MATCH_POINTS

    if ref.articles and ref.clauses:
        score += ARTICLE_CLAUSE_COMBO_POINTS
    if ref.clauses and ref.points:
        score += CLAUSE_POINT_COMBO_POINTS

    return score


def _score_semantic_patterns(chunk_lower: str, query_lower: str, kb: KnowledgeBase) -> int:
    score = 0
    for intent_phrase, related in kb.semantic_patterns.items():
        if intent_phrase in query_lower:
            score += SEMANTIC_PHRASE_POINTS * sum(
                1 for phrase in related if phrase.lower() in chunk_lower
            )
    return score


def _score_keywords(chunk_lower: str, keywords: Sequence[str]) -> int:
    return sum(
        len(_keyword_regex(keyword).findall(chunk_lower)) * keyword_weight(keyword)
        for keyword in keywords
        if keyword
    )


def _mentions(chunk_lower: str, terms: list[str]) -> bool:
    return any(term in chunk_lower for term in terms)


def _score_context(chunk_lower: str, query: FoldedText, kb: KnowledgeBase) -> int:
    score = 0
    red_light: ContextRule = kb.red_light_context
    overtaking: ContextRule = kb.overtaking_context

    is_red_light = contains_any(query, red_light.triggers)
    if is_red_light:
        if _mentions(chunk_lower, red_light.boost_terms):
            score += RED_LIGHT_BOOST
        if _mentions(chunk_lower, red_light.conflict_terms) and not _mentions(
            chunk_lower, red_light.guard_terms
        ):
            score += RED_LIGHT_CONFLICT_PENALTY

    if not is_red_light and contains_any(query, overtaking.triggers):
        if _mentions(chunk_lower, overtaking.boost_terms):
            score += OVERTAKING_BOOST
        if _mentions(chunk_lower, overtaking.conflict_terms):
            score += OVERTAKING_CONFLICT_PENALTY

    return score


def _score_word_overlap(chunk_lower: str, query_lower: str) -> int:
    overlap = sum(
        1 for word in query_lower.split() if len(word) >= WORD_MIN_LENGTH and word in chunk_lower
    )
    return overlap * WORD_OVERLAP_MULTIPLIER if overlap > 1 else 0


def score_chunk(
    chunk: DocumentChunk,
    query: str,
    keywords: Sequence[str],
    kb: KnowledgeBase | None = None,
    ref: LegalArticleReference | None = None,
) -> int:
    """Score one chunk against a query.

    Additive over independent signals; only the contextual conflict rules
    subtract. See the module constants for the point values.

    Args:
        chunk: Chunk to score
        query: Raw user query
        keywords: Keywords from extract_legal_keywords
        kb: Knowledge base (default: process-wide)
        ref: Pre-computed citations of the query (computed if omitted)

    Returns:
        Integer relevance score
    """
    kb = kb or get_knowledge_base()
    ref = ref if ref is not None else extract_references(query)
    folded_query = FoldedText.of(query)
    chunk_lower = chunk.content.lower()

    score = 0
    if ref.has_legal_reference:
        score += _score_legal_references(chunk.content, ref)
    score += _score_semantic_patterns(chunk_lower, folded_query.lower, kb)
    score += _score_keywords(chunk_lower, keywords)
    score += _score_context(chunk_lower, folded_query, kb)

    if folded_query.lower and folded_query.lower in chunk_lower:
        score += DIRECT_PHRASE_POINTS

    score += _score_word_overlap(chunk_lower, folded_query.lower)

    if _LEGAL_CONTENT_RE.search(chunk.content):
        score += LEGAL_CONTENT_POINTS
    if _MONETARY_RE.search(chunk.content):
        score += MONETARY_POINTS

    return score


def rank_chunks(
    chunks: Sequence[DocumentChunk],
    query: str,
    keywords: Sequence[str],
    max_chunks: int,
    kb: KnowledgeBase | None = None,
) -> list[tuple[DocumentChunk, int]]:
    """Return up to max_chunks (chunk, score) pairs by descending score.

    Chunks scoring 0 or less are dropped; ties keep input order (stable sort).
    Pure function of its inputs.
    """
    if max_chunks <= 0 or not chunks:
        return []

    kb = kb or get_knowledge_base()
    ref = extract_references(query)

    scored = [(chunk, score_chunk(chunk, query, keywords, kb, ref)) for chunk in chunks]
    scored = [item for item in scored if item[1] > 0]
    scored.sort(key=lambda item: -item[1])

    logger.debug(f"{len(scored)} of {len(chunks)} chunks scored above zero")
    for rank, (chunk, score) in enumerate(scored[:5], start=1):
        logger.debug(f"{rank}. score={score} document={chunk.document_title!r} chunk={chunk.id}")

    return scored[:max_chunks]


def retrieve_chunks(
    chunks: Sequence[DocumentChunk],
    query: str,
    keywords: Sequence[str],
    max_chunks: int,
    kb: KnowledgeBase | None = None,
) -> list[DocumentChunk]:
    """Top chunks of rank_chunks without their scores."""
    return [chunk for chunk, _ in rank_chunks(chunks, query, keywords, max_chunks, kb)]


def rank_for_query(
    chunks: Sequence[DocumentChunk],
    query: str,
    max_chunks: int,
    *,
    legal_search_max_chunks: int = 15,
    kb: KnowledgeBase | None = None,
) -> list[tuple[DocumentChunk, int]]:
    """Extract keywords and rank; citation lookups get a wider limit.

    A query citing a specific provision needs the whole provision, so the
    limit is raised to legal_search_max_chunks.
    """
    kb = kb or get_knowledge_base()

    if extract_references(query).has_legal_reference:
        logger.info("Legal article search detected")
        max_chunks = max(max_chunks, legal_search_max_chunks)

    keywords = extract_legal_keywords(query, kb)
    logger.debug(f"Extracted keywords for query: {keywords}")

    return rank_chunks(chunks, query, keywords, max_chunks, kb)


def retrieve_for_query(
    chunks: Sequence[DocumentChunk],
    query: str,
    max_chunks: int,
    *,
    legal_search_max_chunks: int = 15,
    kb: KnowledgeBase | None = None,
) -> list[DocumentChunk]:
    """Top chunks of rank_for_query without their scores."""
    ranked = rank_for_query(
        chunks, query, max_chunks, legal_search_max_chunks=legal_search_max_chunks, kb=kb
    )
    return [chunk for chunk, _ in ranked]
