"""Loader for knowledge base files (.md and .txt).

Handles:
- File discovery under the knowledge directory
- Optional YAML front matter (``type``, ``title``)
- Source id derivation
"""
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
import yaml

from healthrag import config
from healthrag.rag.vocabulary import knowledge_type_for

logger = structlog.get_logger()


@dataclass
class KnowledgeDocument:
    """A knowledge file ready for chunking."""

    path: Path
    source_id: str
    content: str
    knowledge_type: str
    frontmatter: Dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> Optional[str]:
        title = self.frontmatter.get("title")
        return str(title) if title is not None else None


class KnowledgeLoader:
    """Reads knowledge files and their front matter."""

    # YAML front matter must open the file
    FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)

    def __init__(self, root: Path = None, extensions: Tuple[str, ...] = None):
        """Initialize the loader.

        Args:
            root: Knowledge directory, source ids are relative to it (default from config)
            extensions: File suffixes to load (default from config)
        """
        self.root = Path(root) if root is not None else config.KNOWLEDGE_DIR
        self.extensions = tuple(e.lower() for e in (extensions or config.KNOWLEDGE_EXTENSIONS))

    def accepts(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    def discover(self) -> List[Path]:
        """Find knowledge files under the root, sorted for stable ingestion order.

        Raises:
            FileNotFoundError: If the knowledge directory doesn't exist
        """
        if not self.root.exists():
            raise FileNotFoundError(f"Knowledge directory not found: {self.root}")

        files = sorted(p for p in self.root.rglob("*") if p.is_file() and self.accepts(p))

        logger.info(
            "knowledge_files_discovered",
            count=len(files),
            knowledge_dir=str(self.root),
        )

        return files

    def source_id_for(self, path: Path) -> str:
        """Source id of a file: its path relative to the root, or its name."""
        try:
            return Path(path).relative_to(self.root).as_posix()
        except ValueError:
            return Path(path).name

    def load(self, path: Path) -> KnowledgeDocument:
        """Read one knowledge file.

        Args:
            path: File to read

        Returns:
            KnowledgeDocument with front matter removed from the content

        Raises:
            FileNotFoundError: If the file doesn't exist
            UnicodeDecodeError: If the file isn't valid UTF-8
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Knowledge file not found: {path}")

        try:
            raw = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            logger.error("knowledge_file_encoding_error", path=str(path), error=str(e))
            raise

        frontmatter, content = self._parse_frontmatter(raw)
        source_id = self.source_id_for(path)
        knowledge_type = str(frontmatter.get("type") or knowledge_type_for(source_id)).upper()

        logger.debug(
            "knowledge_file_loaded",
            path=str(path),
            source=source_id,
            knowledge_type=knowledge_type,
            has_frontmatter=bool(frontmatter),
            content_length=len(content),
        )

        return KnowledgeDocument(
            path=path,
            source_id=source_id,
            content=content,
            knowledge_type=knowledge_type,
            frontmatter=frontmatter,
        )

    def _parse_frontmatter(self, raw: str) -> Tuple[Dict[str, Any], str]:
        """Split YAML front matter from the body.

        Malformed front matter is logged and ignored; the body is still
        returned without it.
        """
        match = self.FRONTMATTER_PATTERN.match(raw)
        if not match:
            return {}, raw

        try:
            frontmatter = yaml.safe_load(match.group(1))
        except yaml.YAMLError as e:
            logger.warning(
                "frontmatter_parse_error",
                error=str(e),
                yaml_preview=match.group(1)[:100],
            )
            frontmatter = {}

        if not isinstance(frontmatter, dict):
            frontmatter = {}

        return frontmatter, raw[match.end():]
