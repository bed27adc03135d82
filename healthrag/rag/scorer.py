"""Rule-based relevance scoring, independent of vector similarity.

The score is a secondary filter and rank key for vector candidates. Rules run
in a fixed order; each returns a hit count that is multiplied by its weight.
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence

import structlog

from healthrag.rag.models import Chunk
from healthrag.rag.vocabulary import (
    ANSWER_MARKERS,
    CLINICAL_MODIFIERS,
    QUESTION_MARKERS,
    REFERENCE_TERMS,
    SCORING_KEYWORDS,
    contains_any,
)

logger = structlog.get_logger()

SHORT_CONTENT_CHARS = 100
LONG_CONTENT_CHARS = 800


@dataclass(frozen=True)
class ScoringContext:
    """Case-folded inputs shared by every rule."""

    text: str
    query: str
    title: str


@dataclass(frozen=True)
class ScoringRule:
    """A named predicate and the points each hit is worth."""

    name: str
    weight: float
    hits: Callable[[ScoringContext], int]


def _shared_keywords(ctx: ScoringContext) -> int:
    return sum(1 for kw in SCORING_KEYWORDS if kw in ctx.query and kw in ctx.text)


def _question_marker(ctx: ScoringContext) -> int:
    return int(contains_any(ctx.text, QUESTION_MARKERS))


def _answer_marker(ctx: ScoringContext) -> int:
    return int(contains_any(ctx.text, ANSWER_MARKERS))


def _reference_range(ctx: ScoringContext) -> int:
    return int(contains_any(ctx.text, REFERENCE_TERMS))


def _title_in_query(ctx: ScoringContext) -> int:
    return int(bool(ctx.title) and ctx.title in ctx.query)


def _moderate_length(ctx: ScoringContext) -> int:
    return int(SHORT_CONTENT_CHARS <= len(ctx.text) <= LONG_CONTENT_CHARS)


def _clinical_modifiers(ctx: ScoringContext) -> int:
    return sum(1 for term in CLINICAL_MODIFIERS if term in ctx.text)


DEFAULT_RULES: Sequence[ScoringRule] = (
    ScoringRule("shared_keyword", 100.0, _shared_keywords),
    ScoringRule("question_marker", 80.0, _question_marker),
    ScoringRule("answer_marker", 80.0, _answer_marker),
    ScoringRule("reference_range", 60.0, _reference_range),
    ScoringRule("title_in_query", 50.0, _title_in_query),
    ScoringRule("moderate_length", 20.0, _moderate_length),
    ScoringRule("clinical_modifier", 10.0, _clinical_modifiers),
)


class RelevanceScorer:
    """Additive heuristic scorer over an ordered rule list."""

    def __init__(self, rules: Sequence[ScoringRule] = None):
        self.rules: List[ScoringRule] = list(rules if rules is not None else DEFAULT_RULES)

    @staticmethod
    def _context(chunk: Chunk, query: str) -> ScoringContext:
        return ScoringContext(
            text=chunk.text.casefold(),
            query=(query or "").casefold(),
            title=(chunk.metadata.title or "").casefold(),
        )

    def explain(self, chunk: Chunk, query: str) -> Dict[str, float]:
        """Per-rule contributions, in rule order, for rules that fired."""
        ctx = self._context(chunk, query)
        contributions = {}
        for rule in self.rules:
            hits = rule.hits(ctx)
            if hits:
                contributions[rule.name] = rule.weight * hits
        return contributions

    def score(self, chunk: Chunk, query: str) -> float:
        """Compute the heuristic relevance score of a chunk for a query."""
        contributions = self.explain(chunk, query)
        total = sum(contributions.values())

        logger.debug(
            "chunk_scored",
            chunk_id=chunk.id,
            score=total,
            rules=contributions,
        )

        return total
