"""Test doubles and sample documents shared by the unit tests."""
import asyncio
from typing import List

from healthrag.rag.models import Chunk, ChunkMetadata

DIMENSION = 16


class FakeEmbedder:
    """Deterministic character-bucket embedder."""

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        vector = [0.0] * self.dimension
        for ch in text:
            vector[ord(ch) % self.dimension] += 1.0
        return vector


class FailingEmbedder(FakeEmbedder):
    """Fails for any text containing the marker."""

    def __init__(self, marker: str = "FAIL", dimension: int = DIMENSION):
        super().__init__(dimension)
        self.marker = marker

    async def embed(self, text: str) -> List[float]:
        if self.marker in text:
            raise RuntimeError("embedding backend unavailable")
        return await super().embed(text)


class SlowEmbedder(FakeEmbedder):
    async def embed(self, text: str) -> List[float]:
        await asyncio.sleep(1.0)
        return await super().embed(text)


class DelayedEmbedder(FakeEmbedder):
    """Sleeps before each embedding so tests can act mid-ingest."""

    def __init__(self, delay: float, dimension: int = DIMENSION):
        super().__init__(dimension)
        self.delay = delay

    async def embed(self, text: str) -> List[float]:
        await asyncio.sleep(self.delay)
        return await super().embed(text)


class FakeGenerator:
    def __init__(self):
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return "建议定期复查血常规。"


def make_chunk(text: str, chunk_id: str = "doc#0", source: str = "doc", title: str = None) -> Chunk:
    return Chunk(
        id=chunk_id,
        text=text,
        metadata=ChunkMetadata(source=source, title=title, length=len(text)),
    )


# ~60 chars of Chinese prose, repeated to build sections of a known size
SENTENCE = "白细胞是血液中的免疫细胞，正常参考值为4.0-10.0×10^9/L，升高常见于细菌感染和炎症反应。"

BLOOD_DOC = f"""# 血常规知识

### 白细胞
{SENTENCE}
{SENTENCE}

### 血小板
血小板正常范围为100-300×10^9/L，降低时需要注意出血倾向，建议复查血常规并咨询医生，必要时进行骨髓检查。

### 备注
太短
"""
