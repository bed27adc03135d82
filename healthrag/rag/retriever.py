"""Retriever for relevance-ranked search over the knowledge index.

Handles:
- Domain prefilter on the raw query
- Query embedding generation
- Vector search over the index
- Heuristic scoring, thresholding and ranking
- Context formatting for answer generation
"""
import asyncio
from typing import List, Optional

import structlog

from healthrag import config
from healthrag.llm_client import Embedder
from healthrag.rag.models import ScoredResult, SearchOutcome
from healthrag.rag.scorer import RelevanceScorer
from healthrag.rag.store_faiss import FAISSVectorIndex
from healthrag.rag.vocabulary import DOMAIN_KEYWORDS, contains_any

logger = structlog.get_logger()

NOT_IN_DOMAIN_MESSAGE = "query is not in the medical knowledge domain"

# Hard ceiling on results per query, whatever RESULT_LIMIT says
MAX_RESULTS = 5


def is_domain_query(query: str) -> bool:
    """Return True if the query mentions at least one domain keyword."""
    if not query or not query.strip():
        return False
    return contains_any(query.casefold(), DOMAIN_KEYWORDS)


class Retriever:
    """Prefilter, vector search, then heuristic re-ranking."""

    def __init__(
        self,
        index: FAISSVectorIndex,
        embedder: Embedder,
        scorer: Optional[RelevanceScorer] = None,
        relevance_floor: float = None,
        result_limit: int = None,
        embedding_timeout: float = None,
    ):
        """Initialize the retriever.

        Args:
            index: Vector index to search
            embedder: Embedding provider for queries
            scorer: Heuristic scorer (default rules if not provided)
            relevance_floor: Candidates scoring at or below this are dropped (default from config)
            result_limit: Maximum results returned (default from config, capped at MAX_RESULTS)
            embedding_timeout: Deadline for the query embedding in seconds (default from config)
        """
        self.index = index
        self.embedder = embedder
        self.scorer = scorer or RelevanceScorer()
        self.relevance_floor = (
            relevance_floor if relevance_floor is not None else config.RELEVANCE_FLOOR
        )
        requested_limit = result_limit or config.RESULT_LIMIT
        self.result_limit = min(requested_limit, MAX_RESULTS)
        if requested_limit > MAX_RESULTS:
            logger.warning(
                "result_limit_capped", requested=requested_limit, limit=MAX_RESULTS
            )
        self.embedding_timeout = embedding_timeout or config.EMBEDDING_TIMEOUT

        logger.info(
            "retriever_initialized",
            relevance_floor=self.relevance_floor,
            result_limit=self.result_limit,
        )

    async def retrieve(self, query: str) -> SearchOutcome:
        """Retrieve ranked chunks for a query.

        Never raises: embedding or search failures come back as an empty
        outcome with ``error`` set.

        Args:
            query: User query text

        Returns:
            SearchOutcome with at most ``result_limit`` results
        """
        if not is_domain_query(query):
            logger.info("query_outside_domain", query_preview=(query or "")[:100])
            return SearchOutcome(query=query, message=NOT_IN_DOMAIN_MESSAGE)

        logger.info("retrieval_started", query_length=len(query))

        try:
            query_embedding = await asyncio.wait_for(
                self.embedder.embed(query), timeout=self.embedding_timeout
            )
            candidates = self.index.search_with_scores(query_embedding)
        except asyncio.TimeoutError:
            logger.error("query_embedding_timeout", timeout=self.embedding_timeout)
            return SearchOutcome(
                query=query,
                error=f"Query embedding timed out after {self.embedding_timeout}s",
            )
        except Exception as e:
            logger.error(
                "retrieval_failed",
                error=str(e),
                error_type=type(e).__name__,
                query_preview=query[:100],
            )
            return SearchOutcome(query=query, error=f"Retrieval failed: {e}")

        scored: List[ScoredResult] = []
        for chunk, similarity in candidates:
            heuristic = self.scorer.score(chunk, query)
            if heuristic > self.relevance_floor:
                scored.append(
                    ScoredResult(chunk=chunk, vector_score=similarity, heuristic_score=heuristic)
                )

        # sort() is stable, ties keep vector-rank order
        scored.sort(key=lambda r: r.heuristic_score, reverse=True)
        results = scored[: self.result_limit]

        logger.info(
            "retrieval_completed",
            query_length=len(query),
            candidates=len(candidates),
            above_floor=len(scored),
            results_returned=len(results),
            top_score=results[0].heuristic_score if results else None,
        )

        return SearchOutcome(query=query, results=results)

    async def retrieve_context(self, query: str, max_chars: int = None) -> str:
        """Retrieve and format context for an answer-generation prompt.

        Args:
            query: User query text
            max_chars: Maximum total characters of context (default from config)

        Returns:
            Formatted context string, empty if nothing relevant was found
        """
        outcome = await self.retrieve(query)
        return format_context(outcome.results, max_chars=max_chars)


def format_context(results: List[ScoredResult], max_chars: int = None) -> str:
    """Format retrieved chunks as a source-labelled context block.

    Args:
        results: Ranked results, best first
        max_chars: Maximum total characters of context (default from config)

    Returns:
        Context string, empty when there are no results
    """
    max_chars = max_chars or config.MAX_CONTEXT_CHARS

    if not results:
        return ""

    context_parts = []
    total_chars = 0

    for i, result in enumerate(results, 1):
        metadata = result.chunk.metadata
        label = metadata.source
        if metadata.title:
            label = f"{label} > {metadata.title}"

        chunk_text = f"[Source {i}: {label}]\n{result.chunk.text.strip()}\n"

        if total_chars + len(chunk_text) > max_chars:
            remaining = max_chars - total_chars
            if remaining > 200:
                context_parts.append(chunk_text[:remaining] + "...\n")
            break

        context_parts.append(chunk_text)
        total_chars += len(chunk_text)

    context = "\n".join(context_parts)

    logger.debug(
        "context_formatted",
        num_chunks=len(context_parts),
        total_chars=len(context),
    )

    return context
