"""Tests for the FAISS cosine index."""
import threading

import numpy as np
import pytest

from healthrag.rag.store_faiss import FAISSVectorIndex, cosine_similarity

from helpers import make_chunk


def _chunks(n, source="doc"):
    return [make_chunk(f"chunk {i}", chunk_id=f"{source}#{i}", source=source) for i in range(n)]


class TestCosineSimilarity:
    @pytest.mark.parametrize(
        "a,b",
        [
            ([1.0, 2.0, 3.0], [3.0, -1.0, 0.5]),
            ([0.1, 0.0], [5.0, 5.0]),
            ([-1.0, -1.0, 2.0], [4.0, 0.0, 1.0]),
        ],
    )
    def test_symmetric(self, a, b):
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_self_similarity_is_one(self):
        assert cosine_similarity([0.3, -2.0, 7.5], [0.3, -2.0, 7.5]) == pytest.approx(1.0)

    def test_orthogonal_and_opposite(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-2.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_norm_is_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_length_mismatch_is_zero(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0


def test_search_on_empty_index(index):
    assert index.search([1.0, 0.0]) == []
    assert index.search_with_scores([1.0, 0.0], top_k=3) == []


def test_search_ranks_by_cosine(index):
    a, b, c = _chunks(3)
    index.add([(a, [1.0, 0.0, 0.0]), (b, [0.0, 1.0, 0.0]), (c, [0.7, 0.7, 0.0])])

    results = index.search_with_scores([1.0, 0.1, 0.0], top_k=3)

    assert [chunk.id for chunk, _ in results] == ["doc#0", "doc#2", "doc#1"]
    assert results[0][1] == pytest.approx(cosine_similarity([1.0, 0.1, 0.0], [1.0, 0.0, 0.0]), abs=1e-5)


def test_default_top_k_applies_when_not_positive(index):
    chunks = _chunks(8)
    index.add((c, [1.0, float(i)]) for i, c in enumerate(chunks))

    assert len(index.search([1.0, 1.0])) == 5
    assert len(index.search([1.0, 1.0], top_k=0)) == 5
    assert len(index.search([1.0, 1.0], top_k=-3)) == 5
    assert len(index.search([1.0, 1.0], top_k=2)) == 2
    assert len(index.search([1.0, 1.0], top_k=100)) == 8


def test_custom_default_top_k():
    index = FAISSVectorIndex(default_top_k=7)
    index.add((c, [1.0, 0.5]) for c in _chunks(10))

    assert len(index.search([1.0, 0.0])) == 7


def test_dimension_mismatch_rejected_at_add(index):
    first, second, third = _chunks(3)

    assert index.add([(first, [1.0, 0.0])]) == 1
    assert index.add([(second, [1.0, 0.0, 0.0]), (third, [0.0, 1.0])]) == 1

    assert len(index) == 2
    assert index.dimension == 2
    assert [c.id for c in index.search([0.0, 1.0], top_k=5)] == ["doc#2", "doc#0"]


def test_configured_dimension_enforced():
    index = FAISSVectorIndex(dimension=3)
    (chunk,) = _chunks(1)

    assert index.add([(chunk, [1.0, 2.0])]) == 0
    assert len(index) == 0


def test_malformed_embedding_rejected(index):
    a, b = _chunks(2)

    assert index.add([(a, []), (b, [[1.0], [2.0, 3.0]])]) == 0
    assert len(index) == 0


def test_query_dimension_mismatch_scores_zero(index):
    index.add((c, [1.0, float(i)]) for i, c in enumerate(_chunks(3)))

    results = index.search_with_scores([1.0, 0.0, 0.0], top_k=5)

    assert [c.id for c, _ in results] == ["doc#0", "doc#1", "doc#2"]
    assert all(score == 0.0 for _, score in results)


def test_zero_vectors_score_zero(index):
    zero, unit = _chunks(2)
    index.add([(zero, [0.0, 0.0]), (unit, [0.0, 3.0])])

    results = dict((c.id, s) for c, s in index.search_with_scores([0.0, 1.0], top_k=2))
    assert results["doc#0"] == pytest.approx(0.0)
    assert results["doc#1"] == pytest.approx(1.0, abs=1e-5)

    assert all(s == 0.0 for _, s in index.search_with_scores([0.0, 0.0], top_k=2))


def test_duplicate_ids_are_kept_and_deleted_together(index):
    chunk = make_chunk("same", chunk_id="dup#0")
    index.add([(chunk, [1.0, 0.0]), (chunk, [0.0, 1.0])])
    assert len(index) == 2

    assert index.delete({"dup#0"}) == 2
    assert len(index) == 0


def test_delete_unknown_id_is_noop(index):
    index.add((c, [1.0, 1.0]) for c in _chunks(2))

    assert index.delete({"missing#9"}) == 0
    assert index.delete(set()) == 0
    assert len(index) == 2


def test_delete_falls_back_to_fingerprint(index):
    anonymous = make_chunk("no id here", chunk_id="")
    index.add([(anonymous, [1.0, 0.0])])

    assert anonymous.record_id.startswith("sha1:")
    assert index.delete([anonymous.record_id]) == 1


def test_ids_for_source_and_stats(index):
    index.add((c, [1.0, 0.0]) for c in _chunks(2, source="a.md"))
    index.add((c, [0.0, 1.0]) for c in _chunks(3, source="b.md"))

    assert index.ids_for_source("a.md") == ["a.md#0", "a.md#1"]

    stats = index.stats()
    assert stats.total_chunks == 5
    assert stats.total_sources == 2
    assert stats.dimension == 2
    assert stats.types == {"GENERAL": 5}


def test_clear_forgets_learned_dimension(index):
    index.add((c, [1.0, 0.0]) for c in _chunks(2))
    index.clear()

    assert len(index) == 0
    assert index.dimension is None
    assert index.add((c, [1.0, 0.0, 0.0]) for c in _chunks(1)) == 1


def test_concurrent_searches_during_writes(index):
    rng = np.random.default_rng(7)
    index.add((c, rng.random(8).tolist()) for c in _chunks(50))
    errors = []

    def reader():
        try:
            for _ in range(200):
                results = index.search(rng.random(8).tolist(), top_k=10)
                assert 0 < len(results) <= 10
        except Exception as e:
            errors.append(e)

    def writer():
        for i in range(20):
            batch = _chunks(5, source=f"w{i}")
            index.add((c, rng.random(8).tolist()) for c in batch)
            index.delete(c.id for c in batch[:3])

    threads = [threading.Thread(target=reader) for _ in range(4)] + [threading.Thread(target=writer)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(index) == 50 + 20 * 2


def test_add_replacing_swaps_in_one_step(index):
    index.add((c, [1.0, 0.0]) for c in _chunks(3, source="a.md"))
    index.add((c, [0.0, 1.0]) for c in _chunks(1, source="b.md"))
    fresh = [make_chunk("new text", chunk_id="a.md#0", source="a.md")]

    accepted = index.add([(fresh[0], [0.0, 1.0])], replacing=index.ids_for_source("a.md"))

    assert accepted == 1
    assert index.ids_for_source("a.md") == ["a.md#0"]
    assert len(index) == 2
    assert index.stats().total_sources == 2


def test_add_replacing_with_only_rejected_items_still_removes(index):
    index.add((c, [1.0, 0.0]) for c in _chunks(2, source="a.md"))

    accepted = index.add(
        [(make_chunk("bad", chunk_id="a.md#0", source="a.md"), [1.0, 0.0, 0.0])],
        replacing=index.ids_for_source("a.md"),
    )

    assert accepted == 0
    assert len(index) == 0


def test_replace_contents_from_staging_copy():
    live = FAISSVectorIndex(dimension=2, default_top_k=7)
    live.add((c, [1.0, 0.0]) for c in _chunks(4, source="old.md"))

    staging = live.empty_copy()
    assert len(staging) == 0
    assert staging.dimension == 2
    assert staging.default_top_k == 7
    staging.add((c, [0.0, 1.0]) for c in _chunks(2, source="new.md"))
    assert len(live) == 4

    live.replace_contents(staging)

    assert live.ids_for_source("old.md") == []
    assert live.ids_for_source("new.md") == ["new.md#0", "new.md#1"]
    assert [c.id for c in live.search([0.0, 1.0], top_k=1)] == ["new.md#0"]
