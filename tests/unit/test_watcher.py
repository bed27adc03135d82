"""Tests for the knowledge directory watcher."""
import asyncio

import pytest
from watchdog.events import DirCreatedEvent, FileCreatedEvent, FileDeletedEvent, FileModifiedEvent

from healthrag.rag.loader import KnowledgeLoader
from healthrag.rag.service import KnowledgeBase
from healthrag.rag.store_faiss import FAISSVectorIndex
from healthrag.rag.watcher import KnowledgeFileHandler, KnowledgeWatcher

from helpers import SENTENCE, DelayedEmbedder


@pytest.mark.asyncio
async def test_relevant_events(knowledge_base, knowledge_dir):
    handler = KnowledgeFileHandler(knowledge_base, asyncio.get_running_loop(), debounce_seconds=0)

    assert handler._relevant(FileCreatedEvent(str(knowledge_dir / "a.md")))
    assert handler._relevant(FileCreatedEvent(str(knowledge_dir / "a.TXT")))
    assert not handler._relevant(FileCreatedEvent(str(knowledge_dir / "a.json")))
    assert not handler._relevant(DirCreatedEvent(str(knowledge_dir / "sub.md")))


@pytest.mark.asyncio
async def test_reindex_files(knowledge_base, knowledge_dir):
    await knowledge_base.load_directory()
    handler = KnowledgeFileHandler(knowledge_base, asyncio.get_running_loop(), debounce_seconds=0)
    new_file = knowledge_dir / "diabetes.md"
    new_file.write_text(f"### 血糖\n{SENTENCE}\n", encoding="utf-8")

    await handler.reindex_files({new_file})

    assert knowledge_base.index.ids_for_source("diabetes.md") == ["diabetes.md#0"]
    assert knowledge_base.stats().types["DIABETES"] == 1


@pytest.mark.asyncio
async def test_handle_deletion(knowledge_base, knowledge_dir):
    await knowledge_base.load_directory()
    handler = KnowledgeFileHandler(knowledge_base, asyncio.get_running_loop(), debounce_seconds=0)

    await handler.handle_deletion(knowledge_dir / "medical_knowledge.md")

    assert knowledge_base.index.ids_for_source("medical_knowledge.md") == []
    assert len(knowledge_base.index) == 1


@pytest.mark.asyncio
async def test_deleted_event_is_dispatched_to_loop(knowledge_base, knowledge_dir):
    await knowledge_base.load_directory()
    handler = KnowledgeFileHandler(knowledge_base, asyncio.get_running_loop(), debounce_seconds=0)

    await asyncio.to_thread(
        handler.on_deleted, FileDeletedEvent(str(knowledge_dir / "medical_knowledge_liver.txt"))
    )
    for _ in range(50):
        if len(knowledge_base.index) == 2:
            break
        await asyncio.sleep(0.01)

    assert len(knowledge_base.index) == 2


@pytest.mark.asyncio
async def test_created_events_are_debounced(knowledge_base, knowledge_dir):
    handler = KnowledgeFileHandler(knowledge_base, asyncio.get_running_loop(), debounce_seconds=0.05)
    path = knowledge_dir / "medical_knowledge.md"

    await asyncio.to_thread(handler.on_created, FileCreatedEvent(str(path)))
    await asyncio.to_thread(handler.on_modified, FileModifiedEvent(str(path)))
    for _ in range(100):
        if len(knowledge_base.index) and not handler._processing:
            break
        await asyncio.sleep(0.01)

    assert len(knowledge_base.index) == 2


@pytest.mark.asyncio
async def test_watcher_lifecycle(knowledge_base):
    watcher = KnowledgeWatcher(knowledge_base, debounce_seconds=0.05)

    watcher.start()
    try:
        assert watcher.is_alive()
    finally:
        watcher.stop()

    assert not watcher.is_alive()


@pytest.mark.asyncio
async def test_watcher_skips_missing_directory(embedder, tmp_path):
    kb = KnowledgeBase(embedder=embedder, loader=KnowledgeLoader(root=tmp_path / "missing"))
    watcher = KnowledgeWatcher(kb)

    watcher.start()

    assert not watcher.is_alive()


@pytest.mark.asyncio
async def test_change_during_reindex_is_processed(knowledge_dir):
    kb = KnowledgeBase(
        embedder=DelayedEmbedder(0.2),
        index=FAISSVectorIndex(default_top_k=20),
        loader=KnowledgeLoader(root=knowledge_dir),
    )
    handler = KnowledgeFileHandler(kb, asyncio.get_running_loop(), debounce_seconds=0.02)

    await asyncio.to_thread(
        handler.on_modified, FileModifiedEvent(str(knowledge_dir / "medical_knowledge.md"))
    )
    for _ in range(100):
        if handler._processing and not handler._pending_changes:
            break
        await asyncio.sleep(0.005)
    assert handler._processing

    # Arrives while the first file is still being embedded
    second = knowledge_dir / "diabetes.md"
    second.write_text(f"### 血糖\n{SENTENCE}\n", encoding="utf-8")
    await asyncio.to_thread(handler.on_modified, FileModifiedEvent(str(second)))

    for _ in range(200):
        if kb.index.ids_for_source("diabetes.md") and not handler._processing:
            break
        await asyncio.sleep(0.01)

    assert kb.index.ids_for_source("diabetes.md") == ["diabetes.md#0"]
    assert kb.index.ids_for_source("medical_knowledge.md")
    assert not handler._processing
    assert not handler._pending_changes
