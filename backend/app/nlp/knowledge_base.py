"""Loader for the traffic-law keyword/pattern knowledge base.

The taxonomy (keyword lists, greeting phrases, contextual regexes, semantic
patterns) is data, not code: it ships as a YAML resource next to this module
and can be replaced through the `knowledge_base_path` setting without a
rebuild.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from backend.app.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_KNOWLEDGE_BASE_PATH = Path(__file__).parent / "data" / "traffic_law.yaml"


class KnowledgeBaseError(Exception):
    """Knowledge base file is missing or malformed."""


class ViolationBundle(BaseModel):
    """Keywords injected when any trigger phrase appears in a query."""

    triggers: list[str]
    keywords: list[str]


class ContextRule(BaseModel):
    """Chunk-scoring context for one violation family."""

    triggers: list[str]
    boost_terms: list[str]
    conflict_terms: list[str] = Field(default_factory=list)
    guard_terms: list[str] = Field(default_factory=list)


class KnowledgeBase(BaseModel):
    """Parsed, validated knowledge base."""

    model_config = ConfigDict(frozen=True)

    version: int
    vietnamese_words: frozenset[str]
    greetings: list[str]
    penalty_terms: list[str]
    legal_terms: list[str]
    core_keywords: list[str]
    violation_bundles: dict[str, ViolationBundle]
    traffic_keywords: list[str]
    traffic_patterns: list[str]
    short_traffic_phrases: list[str]
    follow_up_markers: list[str]
    semantic_patterns: dict[str, list[str]]
    red_light_context: ContextRule
    overtaking_context: ContextRule

    _compiled_patterns: list[re.Pattern[str]] = PrivateAttr(default_factory=list)

    def model_post_init(self, __context: Any) -> None:
        try:
            self._compiled_patterns = [
                re.compile(pattern, re.IGNORECASE) for pattern in self.traffic_patterns
            ]
        except re.error as e:
            raise KnowledgeBaseError(f"Invalid traffic pattern: {e}") from e

    @property
    def compiled_traffic_patterns(self) -> list[re.Pattern[str]]:
        return self._compiled_patterns


def load_knowledge_base(path: str | Path | None = None) -> KnowledgeBase:
    """Parse a knowledge base file.

    Args:
        path: YAML file to load (default: the bundled taxonomy)

    Returns:
        KnowledgeBase with compiled patterns

    Raises:
        KnowledgeBaseError: If the file cannot be read or fails validation
    """
    kb_path = Path(path) if path else DEFAULT_KNOWLEDGE_BASE_PATH

    try:
        with kb_path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise KnowledgeBaseError(f"Cannot read knowledge base {kb_path}: {e}") from e

    if not isinstance(raw, dict):
        raise KnowledgeBaseError(f"Knowledge base {kb_path} must be a mapping")

    try:
        kb = KnowledgeBase.model_validate(raw)
    except ValidationError as e:
        raise KnowledgeBaseError(f"Invalid knowledge base {kb_path}: {e}") from e

    logger.info(f"Loaded knowledge base v{kb.version} from {kb_path}")
    return kb


@lru_cache
def get_knowledge_base() -> KnowledgeBase:
    """Get the process-wide knowledge base (honours KNOWLEDGE_BASE_PATH)."""
    return load_knowledge_base(get_settings().knowledge_base_path)
