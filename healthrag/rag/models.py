"""Data types shared by the chunker, index, scorer and retriever."""
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

Embedding = Sequence[float]


class ContentKind(str, Enum):
    """Coarse classification of what a chunk contains."""

    FAQ = "FAQ"
    REFERENCE = "REFERENCE"
    ADVICE = "ADVICE"
    GENERAL = "GENERAL"


@dataclass
class ChunkMetadata:
    """Typed chunk metadata with an open map for anything else."""

    source: str
    type: str = "GENERAL"
    sequence: int = 0
    title: Optional[str] = None
    parent_title: Optional[str] = None
    length: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    content_kind: ContentKind = ContentKind.GENERAL
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        """Render the metadata with its wire (camelCase) key names."""
        data = dict(self.extra)
        data.update(
            {
                "source": self.source,
                "type": self.type,
                "sequence": self.sequence,
                "length": self.length,
                "createdAt": self.created_at.isoformat(),
                "contentKind": self.content_kind.value,
            }
        )
        if self.title is not None:
            data["title"] = self.title
        if self.parent_title is not None:
            data["parentTitle"] = self.parent_title
        return data


@dataclass
class Chunk:
    """A bounded fragment of source text, the unit of indexing and retrieval."""

    id: str
    text: str
    metadata: ChunkMetadata

    @property
    def record_id(self) -> str:
        """Identifier used for deletion; falls back to a content fingerprint."""
        if self.id:
            return self.id
        digest = hashlib.sha1(
            f"{self.metadata.source}\x00{self.text}".encode("utf-8")
        ).hexdigest()
        return f"sha1:{digest}"


@dataclass
class ScoredResult:
    """A retrieved chunk with its vector and heuristic scores."""

    chunk: Chunk
    vector_score: float
    heuristic_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.chunk.id,
            "content": self.chunk.text,
            "metadata": self.chunk.metadata.as_dict(),
            "score": self.heuristic_score,
            "vectorScore": round(self.vector_score, 6),
        }


@dataclass
class IngestReport:
    """Outcome of an ingestion call.

    ``accepted`` and ``rejected`` count chunks; ``documents`` counts the
    documents seen and ``failed_documents`` those that produced no chunk
    because every embedding failed.
    """

    accepted: int = 0
    rejected: int = 0
    documents: int = 0
    failed_documents: int = 0

    def merge(self, other: "IngestReport") -> "IngestReport":
        return IngestReport(
            accepted=self.accepted + other.accepted,
            rejected=self.rejected + other.rejected,
            documents=self.documents + other.documents,
            failed_documents=self.failed_documents + other.failed_documents,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "accepted": self.accepted,
            "rejected": self.rejected,
            "documents": self.documents,
            "failedDocuments": self.failed_documents,
        }


@dataclass
class SearchOutcome:
    """Result of a retrieval call; ``error`` is set when retrieval degraded."""

    query: str
    results: List[ScoredResult] = field(default_factory=list)
    message: Optional[str] = None
    error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "query": self.query,
            "results": [r.to_dict() for r in self.results],
            "count": self.count,
        }
        if self.message is not None:
            data["message"] = self.message
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class IndexStats:
    """Snapshot statistics about the vector index."""

    total_chunks: int
    total_sources: int
    dimension: Optional[int] = None
    types: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalChunks": self.total_chunks,
            "totalSources": self.total_sources,
            "dimension": self.dimension,
            "types": dict(self.types),
        }
