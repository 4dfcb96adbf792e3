"""Legal citation extraction and legal/penalty keyword analysis."""

import re

from backend.app.models.legal import LegalArticleReference
from backend.app.nlp.knowledge_base import KnowledgeBase, get_knowledge_base
from backend.app.nlp.matching import FoldedText, contains_any, contains_term

# (category, pattern) pairs; every match of every pattern is collected.
_REFERENCE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("articles", re.compile(r"điều\s+(\d+)", re.IGNORECASE)),
    ("articles", re.compile(r"article\s+(\d+)", re.IGNORECASE)),
    ("clauses", re.compile(r"khoản\s+(\d+)", re.IGNORECASE)),
    ("clauses", re.compile(r"clause\s+(\d+)", re.IGNORECASE)),
    ("points", re.compile(r"điểm\s+([a-zđ])\)", re.IGNORECASE)),
    ("decrees", re.compile(r"nghị\s*định\s+(\d+)", re.IGNORECASE)),
    ("decrees", re.compile(r"decree\s+(\d+)", re.IGNORECASE)),
    ("circulars", re.compile(r"thông\s*tư\s+(\d+)", re.IGNORECASE)),
    ("decisions", re.compile(r"quyết\s*định\s+(\d+)", re.IGNORECASE)),
]


def extract_references(query: str) -> LegalArticleReference:
    """Extract article/clause/point/decree/circular/decision citations.

    Pure and order-independent: all matches per category are kept,
    de-duplicated in first-seen order. Points are lower-cased letters.

    Args:
        query: Raw user query

    Returns:
        LegalArticleReference (has_legal_reference iff any category non-empty)
    """
    found: dict[str, list] = {
        "articles": [],
        "clauses": [],
        "points": [],
        "decrees": [],
        "circulars": [],
        "decisions": [],
    }

    for category, pattern in _REFERENCE_PATTERNS:
        for match in pattern.finditer(query):
            raw = match.group(1)
            value: int | str = raw.lower() if category == "points" else int(raw)
            if value not in found[category]:
                found[category].append(value)

    return LegalArticleReference(**found)


def is_legal_article_search(query: str) -> bool:
    """True if the query cites a specific legal provision."""
    return extract_references(query).has_legal_reference


def is_legal_penalty_query(text: str, kb: KnowledgeBase | None = None) -> bool:
    """True for citation lookups and for penalty or legal vocabulary."""
    if is_legal_article_search(text):
        return True

    kb = kb or get_knowledge_base()
    folded = FoldedText.of(text)
    return contains_any(folded, kb.penalty_terms) or contains_any(folded, kb.legal_terms)


def reference_keywords(ref: LegalArticleReference) -> list[str]:
    """Derive searchable phrases ("điều 6", "khoản 9"...) from citations."""
    keywords: list[str] = []
    keywords.extend(f"điều {n}" for n in ref.articles)
    keywords.extend(f"khoản {n}" for n in ref.clauses)
    keywords.extend(f"điểm {p}" for p in ref.points)
    keywords.extend(f"nghị định {n}" for n in ref.decrees)
    keywords.extend(f"thông tư {n}" for n in ref.circulars)
    keywords.extend(f"quyết định {n}" for n in ref.decisions)
    return keywords


def extract_legal_keywords(query: str, kb: KnowledgeBase | None = None) -> list[str]:
    """Collect weighted-search keywords for a query.

    Union, de-duplicated in insertion order, of:
    1. phrases derived from cited provisions
    2. core vocabulary terms present in the query (diacritic-tolerant)
    3. violation bundles whose trigger paraphrase appears in the query,
       so "vượt đèn đỏ" also searches the statutory wording
       "không chấp hành hiệu lệnh của đèn tín hiệu giao thông"
    """
    kb = kb or get_knowledge_base()
    folded = FoldedText.of(query)

    keywords = reference_keywords(extract_references(query))
    keywords.extend(term for term in kb.core_keywords if contains_term(folded, term))

    for bundle in kb.violation_bundles.values():
        if contains_any(folded, bundle.triggers):
            keywords.extend(bundle.keywords)

    return list(dict.fromkeys(keywords))
