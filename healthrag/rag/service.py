"""Knowledge base service: the public surface of the retrieval core.

Owns the vector index and wires the chunker, embedder, scorer and retriever
together. Every public method returns a structured outcome; nothing raises
across this boundary.
"""
import asyncio
from pathlib import Path
from typing import Iterable, Optional, Tuple

import structlog

from healthrag import config
from healthrag.llm_client import Embedder
from healthrag.rag.chunker import HeadingChunker
from healthrag.rag.ingest import IngestPipeline
from healthrag.rag.loader import KnowledgeLoader
from healthrag.rag.models import IndexStats, IngestReport, SearchOutcome
from healthrag.rag.retriever import Retriever
from healthrag.rag.scorer import RelevanceScorer
from healthrag.rag.store_faiss import FAISSVectorIndex

logger = structlog.get_logger()


class KnowledgeBase:
    """Ingestion, search and maintenance over one explicitly owned index."""

    def __init__(
        self,
        embedder: Embedder,
        index: Optional[FAISSVectorIndex] = None,
        chunker: Optional[HeadingChunker] = None,
        scorer: Optional[RelevanceScorer] = None,
        loader: Optional[KnowledgeLoader] = None,
    ):
        """Initialize the knowledge base.

        Args:
            embedder: Embedding provider
            index: Vector index (a new one with config defaults if not provided)
            chunker: Chunker (default settings if not provided)
            scorer: Heuristic scorer (default rules if not provided)
            loader: Knowledge file loader (config knowledge dir if not provided)
        """
        self.embedder = embedder
        self.index = index if index is not None else FAISSVectorIndex(
            dimension=config.EMBEDDING_DIMENSION,
            default_top_k=config.SEARCH_CANDIDATES,
        )
        self.loader = loader or KnowledgeLoader()
        self.pipeline = IngestPipeline(self.index, embedder, chunker=chunker)
        self.retriever = Retriever(self.index, embedder, scorer=scorer)

        # Serializes writers (ingest, reload, reindex, delete); searches never wait
        self._maintenance_lock = asyncio.Lock()

        logger.info("knowledge_base_initialized", knowledge_dir=str(self.loader.root))

    async def ingest(self, documents: Iterable[Tuple[str, str]]) -> IngestReport:
        """Ingest (content, source_id) documents.

        Returns:
            IngestReport with accepted and rejected chunk counts
        """
        async with self._maintenance_lock:
            return await self.pipeline.ingest(documents)

    async def search(self, query: str) -> SearchOutcome:
        """Relevance-ranked search; degrades to an empty outcome on failure."""
        return await self.retriever.retrieve(query)

    def stats(self) -> IndexStats:
        return self.index.stats()

    async def load_directory(self, directory: Path = None) -> IngestReport:
        """Ingest every knowledge file in a directory.

        Args:
            directory: Directory to load (the loader's root if not provided)

        Returns:
            Aggregated IngestReport; a missing directory yields an empty report
        """
        loader = self.loader if directory is None else KnowledgeLoader(
            root=directory, extensions=self.loader.extensions
        )

        async with self._maintenance_lock:
            return await self._load_into(self.pipeline, loader)

    async def _load_into(self, pipeline: IngestPipeline, loader: KnowledgeLoader) -> IngestReport:
        try:
            files = loader.discover()
        except FileNotFoundError as e:
            logger.warning("knowledge_dir_missing", error=str(e))
            return IngestReport()

        report = IngestReport()
        for path in files:
            report = report.merge(await self._ingest_file(pipeline, loader, path))

        logger.info(
            "knowledge_dir_loaded",
            knowledge_dir=str(loader.root),
            files=len(files),
            **report.to_dict(),
        )

        return report

    async def _ingest_file(
        self,
        pipeline: IngestPipeline,
        loader: KnowledgeLoader,
        path: Path,
        replace: bool = False,
    ) -> IngestReport:
        try:
            doc = loader.load(path)
            return await pipeline.ingest_document(
                doc.content,
                doc.source_id,
                knowledge_type=doc.knowledge_type,
                title=doc.title,
                replace=replace,
            )
        except Exception as e:
            logger.error(
                "knowledge_file_ingestion_failed",
                path=str(path),
                error=str(e),
                error_type=type(e).__name__,
            )
            return IngestReport(documents=1, failed_documents=1)

    async def reload(self) -> IngestReport:
        """Rebuild the index from the knowledge directory.

        The new contents are built in a staging index and swapped in at the
        end, so searches keep seeing the previous contents until then.
        """
        async with self._maintenance_lock:
            logger.warning("knowledge_base_reloading", knowledge_dir=str(self.loader.root))

            staging = self.index.empty_copy()
            pipeline = IngestPipeline(
                staging,
                self.embedder,
                chunker=self.pipeline.chunker,
                concurrency=self.pipeline.concurrency,
                embedding_timeout=self.pipeline.embedding_timeout,
            )
            report = await self._load_into(pipeline, self.loader)
            self.index.replace_contents(staging)

        return report

    async def delete_source(self, source_id: str) -> int:
        """Remove every chunk of one source.

        Returns:
            Number of chunks removed
        """
        async with self._maintenance_lock:
            return self._remove_source(source_id)

    def _remove_source(self, source_id: str) -> int:
        ids = self.index.ids_for_source(source_id)
        if not ids:
            logger.debug("no_chunks_found_for_source", source=source_id)
            return 0

        removed = self.index.delete(ids)
        logger.info("source_removed", source=source_id, chunk_count=removed)
        return removed

    async def reindex_source(self, path: Path) -> IngestReport:
        """Replace one knowledge file's chunks with a fresh ingestion.

        Old and new chunks are swapped in a single index write. A file that
        no longer exists is only removed.
        """
        path = Path(path)

        async with self._maintenance_lock:
            if not path.exists():
                logger.warning("file_disappeared", path=str(path))
                self._remove_source(self.loader.source_id_for(path))
                return IngestReport()

            return await self._ingest_file(self.pipeline, self.loader, path, replace=True)

    async def close(self) -> None:
        """Release the index contents at shutdown."""
        async with self._maintenance_lock:
            self.index.clear()
        logger.info("knowledge_base_closed")
