"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
KNOWLEDGE_DIR = Path(os.getenv("KNOWLEDGE_DIR", str(BASE_DIR / "knowledge")))
KNOWLEDGE_EXTENSIONS = (".md", ".txt")

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "qwen2.5:7b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "bge-m3:latest")
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))
EMBEDDING_CONCURRENCY = int(os.getenv("EMBEDDING_CONCURRENCY", "4"))
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "120.0"))

# Fixed index dimensionality; empty = taken from the first accepted record
_dimension = os.getenv("EMBEDDING_DIMENSION", "")
EMBEDDING_DIMENSION = int(_dimension) if _dimension else None

# Chunking (character-based, CJK text has no reliable whitespace tokens)
MIN_CHUNK_CHARS = int(os.getenv("MIN_CHUNK_CHARS", "50"))
MAX_SECTION_CHARS = int(os.getenv("MAX_SECTION_CHARS", "1000"))
MAX_CHUNK_CHARS = int(os.getenv("MAX_CHUNK_CHARS", "800"))

# Retrieval
SEARCH_CANDIDATES = int(os.getenv("SEARCH_CANDIDATES", "20"))  # vector over-fetch
RESULT_LIMIT = int(os.getenv("RESULT_LIMIT", "5"))
RELEVANCE_FLOOR = float(os.getenv("RELEVANCE_FLOOR", "30"))
MAX_CONTEXT_CHARS = int(os.getenv("MAX_CONTEXT_CHARS", "4000"))

# File watching
WATCH_KNOWLEDGE_DIR = os.getenv("WATCH_KNOWLEDGE_DIR", "false").lower() == "true"
WATCH_DEBOUNCE_SECONDS = float(os.getenv("WATCH_DEBOUNCE_SECONDS", "2.0"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "true").lower() == "true"
