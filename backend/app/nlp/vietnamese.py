"""Vietnamese text utilities: diacritic folding and language detection."""

import re
import unicodedata

from backend.app.nlp.knowledge_base import KnowledgeBase, get_knowledge_base

_BASE_LETTERS = {
    "a": "àáạảãâầấậẩẫăằắặẳẵ",
    "e": "èéẹẻẽêềếệểễ",
    "i": "ìíịỉĩ",
    "o": "òóọỏõôồốộổỗơờớợởỡ",
    "u": "ùúụủũưừứựửữ",
    "y": "ỳýỵỷỹ",
    "d": "đ",
}

_TONE_MAP: dict[int, str] = {}
for _base, _marked in _BASE_LETTERS.items():
    for _char in _marked:
        _TONE_MAP[ord(_char)] = _base
        _TONE_MAP[ord(_char.upper())] = _base.upper()

_DIACRITIC_RE = re.compile(f"[{''.join(_BASE_LETTERS.values())}]", re.IGNORECASE)
_NON_WORD_RE = re.compile(r"[^\w]")

# Share of function words above which unaccented text counts as Vietnamese
VIETNAMESE_WORD_RATIO = 0.3


def normalize(text: str) -> str:
    """Strip Vietnamese diacritics, preserving case.

    Decomposed input (combining marks) is composed first so both
    keyboard encodings fold the same way. Idempotent.
    """
    if not text:
        return ""
    return unicodedata.normalize("NFC", text).translate(_TONE_MAP)


def has_diacritics(text: str) -> bool:
    """True if text contains any Vietnamese diacritic letter."""
    return bool(_DIACRITIC_RE.search(unicodedata.normalize("NFC", text)))


def is_vietnamese(text: str, kb: KnowledgeBase | None = None) -> bool:
    """Detect whether text is (primarily) Vietnamese.

    True if any diacritic letter is present, or if more than 30% of the
    whitespace-delimited tokens are known Vietnamese function words.
    """
    if not text:
        return False
    if has_diacritics(text):
        return True

    kb = kb or get_knowledge_base()
    words = text.lower().split()
    if not words:
        return False

    hits = sum(1 for word in words if _NON_WORD_RE.sub("", word) in kb.vietnamese_words)
    return hits > 0 and hits / len(words) > VIETNAMESE_WORD_RATIO
