"""Pytest configuration and fixtures for unit tests."""
import pytest

from healthrag.rag.chunker import HeadingChunker
from healthrag.rag.loader import KnowledgeLoader
from healthrag.rag.service import KnowledgeBase
from healthrag.rag.store_faiss import FAISSVectorIndex

from helpers import BLOOD_DOC, FakeEmbedder


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def chunker():
    return HeadingChunker()


@pytest.fixture
def index():
    return FAISSVectorIndex()


@pytest.fixture
def knowledge_dir(tmp_path):
    root = tmp_path / "knowledge"
    root.mkdir()
    (root / "medical_knowledge.md").write_text(BLOOD_DOC, encoding="utf-8")
    (root / "medical_knowledge_liver.txt").write_text(
        "## 肝功能检查\n谷丙转氨酶（ALT）正常参考值为0-40U/L，升高提示肝细胞损伤，可能与脂肪肝、病毒性肝炎或药物有关，建议结合其他指标判断。\n",
        encoding="utf-8",
    )
    (root / "notes.json").write_text("{}", encoding="utf-8")
    return root


@pytest.fixture
def knowledge_base(embedder, knowledge_dir):
    return KnowledgeBase(
        embedder=embedder,
        index=FAISSVectorIndex(default_top_k=20),
        loader=KnowledgeLoader(root=knowledge_dir),
    )
