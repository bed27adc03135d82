"""Ingest pipeline for indexing knowledge documents.

Orchestrates:
- Chunking
- Bounded-concurrency embedding with a per-call deadline
- Vector index insertion

A failed embedding skips its chunk; a failed document skips the document.
Neither aborts the rest of the batch.
"""
import asyncio
from typing import Iterable, List, Optional, Tuple

import structlog

from healthrag import config
from healthrag.llm_client import Embedder
from healthrag.rag.chunker import HeadingChunker
from healthrag.rag.models import Chunk, Embedding, IngestReport
from healthrag.rag.store_faiss import FAISSVectorIndex

logger = structlog.get_logger()


class IngestPipeline:
    """Pipeline for chunking, embedding and indexing documents."""

    def __init__(
        self,
        index: FAISSVectorIndex,
        embedder: Embedder,
        chunker: Optional[HeadingChunker] = None,
        concurrency: int = None,
        embedding_timeout: float = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            index: Vector index receiving the records
            embedder: Embedding provider
            chunker: Chunker (default settings if not provided)
            concurrency: Embedding calls in flight per document (default from config)
            embedding_timeout: Deadline for one embedding call in seconds (default from config)
        """
        self.index = index
        self.embedder = embedder
        self.chunker = chunker or HeadingChunker()
        self.concurrency = concurrency or config.EMBEDDING_CONCURRENCY
        self.embedding_timeout = embedding_timeout or config.EMBEDDING_TIMEOUT

        logger.info(
            "ingest_pipeline_initialized",
            concurrency=self.concurrency,
            embedding_timeout=self.embedding_timeout,
        )

    async def _embed_chunk(
        self, chunk: Chunk, semaphore: asyncio.Semaphore
    ) -> Optional[Embedding]:
        """Embed one chunk, returning None on any failure."""
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    self.embedder.embed(chunk.text), timeout=self.embedding_timeout
                )
            except asyncio.TimeoutError:
                logger.error(
                    "chunk_embedding_timeout",
                    chunk_id=chunk.id,
                    timeout=self.embedding_timeout,
                )
            except Exception as e:
                logger.error(
                    "chunk_embedding_failed",
                    chunk_id=chunk.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return None

    async def embed_chunks(self, chunks: List[Chunk]) -> List[Tuple[Chunk, Embedding]]:
        """Embed chunks concurrently, dropping the ones that failed.

        Returns:
            (chunk, embedding) pairs in chunk order
        """
        if not chunks:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)
        embeddings = await asyncio.gather(
            *(self._embed_chunk(chunk, semaphore) for chunk in chunks)
        )

        return [
            (chunk, embedding)
            for chunk, embedding in zip(chunks, embeddings)
            if embedding is not None
        ]

    async def ingest_document(
        self,
        content: str,
        source_id: str,
        knowledge_type: Optional[str] = None,
        title: Optional[str] = None,
        replace: bool = False,
    ) -> IngestReport:
        """Chunk, embed and index a single document.

        Args:
            content: Raw document text
            source_id: Origin document identifier
            knowledge_type: Domain category (derived from source_id if omitted)
            title: Document title, used for chunks without a heading of their own
            replace: Swap out the source's existing chunks in the same index write

        Returns:
            IngestReport for this document
        """
        stale = self.index.ids_for_source(source_id) if replace else []
        chunks = self.chunker.split(
            content, source_id, knowledge_type=knowledge_type, document_title=title
        )

        if not chunks:
            logger.info("no_chunks_created", source=source_id)
            if stale:
                self.index.delete(stale)
            return IngestReport(documents=1)

        logger.debug("document_chunked", source=source_id, **self.chunker.get_chunk_stats(chunks))

        pairs = await self.embed_chunks(chunks)
        # No embeddings: the source keeps its previous chunks
        accepted = self.index.add(pairs, replacing=stale) if pairs else 0
        rejected = len(chunks) - accepted

        logger.info(
            "document_ingested",
            source=source_id,
            chunks_created=len(chunks),
            accepted=accepted,
            rejected=rejected,
        )

        return IngestReport(
            accepted=accepted,
            rejected=rejected,
            documents=1,
            failed_documents=0 if accepted else 1,
        )

    async def ingest(self, documents: Iterable[Tuple[str, str]]) -> IngestReport:
        """Ingest a batch of (content, source_id) documents.

        Args:
            documents: Pairs of raw content and source id

        Returns:
            Aggregated IngestReport
        """
        report = IngestReport()

        for content, source_id in documents:
            try:
                report = report.merge(await self.ingest_document(content, source_id))
            except Exception as e:
                logger.error(
                    "document_ingestion_failed",
                    source=source_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                report = report.merge(IngestReport(documents=1, failed_documents=1))

        logger.info("ingest_batch_completed", **report.to_dict())

        return report
