"""Diacritic-tolerant term matching shared by the classifiers."""

import re
from dataclasses import dataclass
from functools import lru_cache

from backend.app.nlp.vietnamese import normalize


@dataclass(frozen=True)
class FoldedText:
    """Lower-cased text together with its diacritic-free form."""

    lower: str
    normalized: str

    @classmethod
    def of(cls, text: str) -> "FoldedText":
        lower = text.lower()
        return cls(lower=lower, normalized=normalize(lower))

    @property
    def words(self) -> list[str]:
        return self.lower.split()

    @property
    def normalized_words(self) -> list[str]:
        return self.normalized.split()


@lru_cache(maxsize=4096)
def _fold_term(term: str) -> tuple[str, str]:
    lower = term.lower()
    return lower, normalize(lower)


@lru_cache(maxsize=4096)
def _word_regex(word: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)


def contains_term(text: FoldedText, term: str) -> bool:
    """Substring match on either the accented or the folded form."""
    lower, normalized = _fold_term(term)
    return lower in text.lower or normalized in text.normalized


def contains_any(text: FoldedText, terms: list[str]) -> bool:
    return any(contains_term(text, term) for term in terms)


def contains_word(text: FoldedText, word: str) -> bool:
    """Whole-word match on either the accented or the folded form."""
    lower, normalized = _fold_term(word)
    return bool(
        _word_regex(lower).search(text.lower)
        or _word_regex(normalized).search(text.normalized)
    )


def contains_keyword(text: FoldedText, keyword: str) -> bool:
    """Single words match on word boundaries, phrases by substring."""
    if " " not in keyword.strip():
        return contains_word(text, keyword)
    return contains_term(text, keyword)


def contains_all_words(text: FoldedText, phrase: str) -> bool:
    """Every word of phrase present somewhere in text, in any order."""
    lower, normalized = _fold_term(phrase)
    words = set(text.words)
    normalized_words = set(text.normalized_words)
    return all(w in words for w in lower.split()) or all(
        w in normalized_words for w in normalized.split()
    )
