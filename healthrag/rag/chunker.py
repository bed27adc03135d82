"""Title-aware text chunking for the knowledge base.

Splits on markdown headings first (### then ##), then breaks oversized
sections on paragraph boundaries. Character-based to avoid tokenizer
dependencies, which matters for CJK text.
"""
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import structlog

from healthrag import config
from healthrag.rag.models import Chunk, ChunkMetadata, ContentKind
from healthrag.rag.vocabulary import (
    ADVICE_TERMS,
    ANSWER_MARKERS,
    QUESTION_MARKERS,
    REFERENCE_TERMS,
    contains_any,
    knowledge_type_for,
)

logger = structlog.get_logger()

# Strongest structural boundary first
HEADING_SPLITS = (
    ("h3", re.compile(r"(?=^###\s)", re.MULTILINE)),
    ("h2", re.compile(r"(?=^##\s)", re.MULTILINE)),
)
PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")
SENTENCE_TERMINATORS = (".", "。", "!", "！", "?", "？")
MAX_TITLE_CHARS = 100


def extract_title(text: str) -> Optional[str]:
    """Extract a title from chunk text.

    Lines are scanned top-down. A markdown heading line yields its text with
    the ``#`` markers stripped; a short line without sentence punctuation
    yields itself.

    Args:
        text: Chunk or section text

    Returns:
        The title, or None if no line qualifies
    """
    if not text:
        return None

    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue

        if line.startswith("#"):
            heading = line.lstrip("#").strip()
            if heading:
                return heading
            continue

        if len(line) < MAX_TITLE_CHARS and not any(
            mark in line for mark in SENTENCE_TERMINATORS
        ):
            return line

    return None


def classify_content(text: str) -> ContentKind:
    """Classify chunk text; the first matching rule wins."""
    folded = text.casefold()
    if contains_any(folded, QUESTION_MARKERS) or contains_any(folded, ANSWER_MARKERS):
        return ContentKind.FAQ
    if contains_any(folded, REFERENCE_TERMS):
        return ContentKind.REFERENCE
    if contains_any(folded, ADVICE_TERMS):
        return ContentKind.ADVICE
    return ContentKind.GENERAL


class HeadingChunker:
    """Heading-first chunker with paragraph-level sub-splitting."""

    def __init__(
        self,
        min_chunk_chars: int = None,
        max_section_chars: int = None,
        max_chunk_chars: int = None,
    ):
        """Initialize the chunker.

        Args:
            min_chunk_chars: Noise floor, shorter candidates are dropped (default from config)
            max_section_chars: Sections above this are sub-split (default from config)
            max_chunk_chars: Target upper bound for sub-chunks (default from config)
        """
        self.min_chunk_chars = min_chunk_chars or config.MIN_CHUNK_CHARS
        self.max_section_chars = max_section_chars or config.MAX_SECTION_CHARS
        self.max_chunk_chars = max_chunk_chars or config.MAX_CHUNK_CHARS

        if self.max_chunk_chars > self.max_section_chars:
            raise ValueError(
                f"Chunk bound ({self.max_chunk_chars}) must not exceed "
                f"section bound ({self.max_section_chars})"
            )

        logger.info(
            "chunker_initialized",
            min_chunk_chars=self.min_chunk_chars,
            max_section_chars=self.max_section_chars,
            max_chunk_chars=self.max_chunk_chars,
        )

    def split(
        self,
        content: str,
        source_id: str,
        knowledge_type: Optional[str] = None,
        document_title: Optional[str] = None,
    ) -> List[Chunk]:
        """Split document content into chunks.

        Never raises for malformed input: empty or whitespace-only content
        yields no chunks.

        Args:
            content: Raw document text
            source_id: Identifier of the origin document
            knowledge_type: Domain category (derived from source_id if omitted)
            document_title: Fallback title for chunks that have none of their own

        Returns:
            List of Chunk objects in document order
        """
        if not content or not content.strip():
            logger.debug("empty_content_skipped", source=source_id)
            return []

        knowledge_type = knowledge_type or knowledge_type_for(source_id)
        created_at = datetime.now(timezone.utc)

        # (text, parent_title, section_index)
        candidates: List[Tuple[str, Optional[str], int]] = []
        for section_index, section in enumerate(self._split_sections(content)):
            if len(section) > self.max_section_chars:
                parent_title = extract_title(section)
                for piece in self._split_long_section(section):
                    candidates.append((piece, parent_title, section_index))
            else:
                candidates.append((section, None, section_index))

        chunks = []
        for text, parent_title, section_index in candidates:
            if len(text) < self.min_chunk_chars:
                continue

            sequence = len(chunks)
            extra = {"section": section_index}
            if document_title:
                extra["documentTitle"] = document_title
            metadata = ChunkMetadata(
                source=source_id,
                type=knowledge_type,
                sequence=sequence,
                title=extract_title(text) or document_title,
                parent_title=parent_title,
                length=len(text),
                created_at=created_at,
                content_kind=classify_content(text),
                extra=extra,
            )
            chunks.append(Chunk(id=f"{source_id}#{sequence}", text=text, metadata=metadata))

        logger.info(
            "content_chunked",
            source=source_id,
            knowledge_type=knowledge_type,
            content_length=len(content),
            chunk_count=len(chunks),
        )

        return chunks

    def _split_sections(self, content: str) -> List[str]:
        """Split content on the strongest heading level that yields usable sections.

        Args:
            content: Raw document text

        Returns:
            Non-empty, stripped sections
        """
        for level, pattern in HEADING_SPLITS:
            if not pattern.search(content):
                continue

            sections = [s.strip() for s in pattern.split(content)]
            sections = [s for s in sections if s]

            if any(len(s) > self.min_chunk_chars for s in sections):
                logger.debug("sections_split", level=level, section_count=len(sections))
                return sections

        return [content.strip()]

    def _split_long_section(self, section: str) -> List[str]:
        """Break an oversized section into paragraph-aligned pieces.

        Paragraphs accumulate into a buffer that is flushed before it would
        pass ``max_chunk_chars``. A buffer at or below the noise floor is
        dropped on flush. A single paragraph over the bound is kept whole.

        Args:
            section: Section text longer than ``max_section_chars``

        Returns:
            List of piece texts
        """
        pieces = []
        buffer = ""

        for paragraph in PARAGRAPH_BREAK.split(section):
            paragraph = paragraph.strip()
            if not paragraph:
                continue

            if buffer and len(buffer) + 2 + len(paragraph) > self.max_chunk_chars:
                if len(buffer) > self.min_chunk_chars:
                    pieces.append(buffer)
                buffer = ""

            buffer = f"{buffer}\n\n{paragraph}" if buffer else paragraph

        if len(buffer) > self.min_chunk_chars:
            pieces.append(buffer)

        return pieces

    def get_chunk_stats(self, chunks: List[Chunk]) -> Dict[str, int]:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of Chunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.text) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
        }
