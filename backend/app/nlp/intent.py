"""Query intent detection: greetings and traffic-law relevance.

Casual Vietnamese is often typed without tone marks, mixed with English and
paraphrased, so relevance is decided by layered fallbacks rather than one
classifier: exact phrases, then vocabulary, then contextual patterns, then
conversation carry-over.
"""

import logging
from collections.abc import Sequence

from backend.app.models.chat import ConversationMessage
from backend.app.nlp.knowledge_base import KnowledgeBase, get_knowledge_base
from backend.app.nlp.legal import is_legal_penalty_query
from backend.app.nlp.matching import FoldedText, contains_all_words, contains_any, contains_keyword

logger = logging.getLogger(__name__)

# Longest message (in tokens) still accepted as a greeting with a short tail
MAX_GREETING_TOKENS = 4

# Conversation turns consulted for follow-up questions
FOLLOW_UP_WINDOW = 3

_TRAILING_PUNCTUATION = ("", "!", ".", "?")


def is_greeting(text: str, kb: KnowledgeBase | None = None) -> bool:
    """True for a bare greeting, optionally punctuated or with a short tail.

    "hello", "Xin chào!", "hi there" are greetings; "hello how do I register
    my car" is not (longer than MAX_GREETING_TOKENS).
    """
    kb = kb or get_knowledge_base()
    folded = FoldedText.of(text.strip())

    for greeting in kb.greetings:
        phrase = FoldedText.of(greeting)
        for candidate, target in (
            (folded.lower, phrase.lower),
            (folded.normalized, phrase.normalized),
        ):
            if any(candidate == target + p for p in _TRAILING_PUNCTUATION):
                return True
            if (
                candidate.startswith(target + " ")
                and len(candidate.split(" ")) <= MAX_GREETING_TOKENS
            ):
                return True
    return False


def _has_traffic_keyword(folded: FoldedText, kb: KnowledgeBase) -> bool:
    return any(contains_keyword(folded, keyword) for keyword in kb.traffic_keywords)


def _has_traffic_pattern(folded: FoldedText, kb: KnowledgeBase) -> bool:
    return any(
        pattern.search(folded.lower) or pattern.search(folded.normalized)
        for pattern in kb.compiled_traffic_patterns
    )


def _has_short_traffic_phrase(folded: FoldedText, kb: KnowledgeBase) -> bool:
    return any(contains_all_words(folded, phrase) for phrase in kb.short_traffic_phrases)


def is_traffic_law_related(
    text: str,
    history: Sequence[ConversationMessage] = (),
    kb: KnowledgeBase | None = None,
) -> bool:
    """Decide whether a message belongs to the traffic-law domain.

    Layers, first hit wins:
    (a) greeting, (b) legal/penalty query, (c) traffic vocabulary,
    (d) contextual regex patterns, (e) short phrases as bag-of-words,
    (f) follow-up marker while one of the last 3 turns was on topic.

    Args:
        text: User message
        history: Prior exchanges, oldest first
        kb: Knowledge base (default: process-wide)

    Returns:
        True if the message should reach the assistant
    """
    kb = kb or get_knowledge_base()

    if is_greeting(text, kb):
        return True
    if is_legal_penalty_query(text, kb):
        return True

    folded = FoldedText.of(text)

    if _has_traffic_keyword(folded, kb):
        return True
    if _has_traffic_pattern(folded, kb):
        return True
    if _has_short_traffic_phrase(folded, kb):
        return True

    if history and contains_any(folded, kb.follow_up_markers):
        # Empty history on the recursive call bounds the recursion depth to 1
        recent = list(history)[-FOLLOW_UP_WINDOW:]
        on_topic = any(
            is_traffic_law_related(turn.question, (), kb)
            or is_traffic_law_related(turn.answer, (), kb)
            for turn in recent
        )
        if on_topic:
            logger.debug("Follow-up message accepted from conversation context")
        return on_topic

    return False
