import pytest

from shared.index.VectorIndex import VectorIndex
from shared.models.embedding import VectorRecord


@pytest.fixture
def index(helper_config):
    return VectorIndex(helper_config=helper_config)


class TestVectorIndexSearch:
    """Exact cosine search over the stored vectors."""

    def test_self_retrieval(self, index, vector):
        index.add("doc-1", vector([1, 0, 0]), {"title": "One"})
        index.add("doc-2", vector([0, 1, 0]), {"title": "Two"})

        result = index.search(vector([0, 1, 0]), top_k=1)

        assert result.document_ids() == ["doc-2"]
        assert result.hits[0].score == pytest.approx(1.0)
        assert result.hits[0].title == "Two"

    @pytest.mark.parametrize("top_k", [1, 2, 3, 10])
    def test_length_and_order(self, index, vector, top_k):
        index.add("a", vector([1, 0, 0]))
        index.add("b", vector([1, 1, 0]))
        index.add("c", vector([0, 0, 1]))

        result = index.search(vector([1, 0.2, 0]), top_k=top_k)

        assert len(result) == min(top_k, 3)
        scores = [hit.score for hit in result.hits]
        assert scores == sorted(scores, reverse=True)
        assert result.document_ids()[0] == "a"

    def test_non_positive_top_k(self, index, vector):
        index.add("a", vector([1, 0]))

        assert len(index.search(vector([1, 0]), top_k=0)) == 0
        assert len(index.search(vector([1, 0]), top_k=-1)) == 0

    def test_empty_index(self, index, vector):
        assert index.search(vector([1, 0]), top_k=3).hits == []

    def test_ties_keep_insertion_order(self, index, vector):
        index.add("first", vector([1, 0]))
        index.add("second", vector([2, 0]))
        index.add("third", vector([3, 0]))

        assert index.search(vector([1, 0]), top_k=3).document_ids() == ["first", "second", "third"]

    def test_zero_vectors_score_zero(self, index, vector):
        index.add("zero", vector([0, 0, 0]))
        index.add("unit", vector([1, 0, 0]))

        scores = {hit.document_id: hit.score for hit in index.search(vector([1, 0, 0]), top_k=2).hits}
        assert scores["zero"] == 0.0
        assert all(hit.score == 0.0 for hit in index.search(vector([0, 0, 0]), top_k=2).hits)

    def test_mixed_dimensions_are_skipped(self, index, vector):
        index.add("small", vector([1, 0, 0]))
        index.add("large", vector([1, 0, 0, 0]))

        result = index.search(vector([1, 0, 0]), top_k=5)

        assert result.document_ids() == ["small"]

    def test_other_model_generations_are_skipped(self, index, vector):
        index.add("old", vector([1, 0, 0], model_id="model-a"))
        index.add("new", vector([1, 0, 0], model_id="model-b"))
        index.add("untagged", vector([1, 0, 0]))

        result = index.search(vector([1, 0, 0], model_id="model-b"), top_k=5)

        assert sorted(result.document_ids()) == ["new", "untagged"]

    def test_hit_metadata_is_a_copy(self, index, vector):
        index.add("a", vector([1, 0]), {"title": "A"})

        index.search(vector([1, 0]), top_k=1).hits[0].metadata["title"] = "changed"

        assert index.get("a").metadata["title"] == "A"


class TestVectorIndexWrites:
    def test_remove_excludes_from_search(self, index, vector):
        index.add("a", vector([1, 0]))
        index.add("b", vector([0, 1]))

        assert index.remove("a") is True
        assert "a" not in index.search(vector([1, 0]), top_k=5).document_ids()
        assert index.remove("a") is False

    def test_add_twice_keeps_one_record(self, index, vector):
        index.add("a", vector([1, 0]))
        index.add("a", vector([0, 1]))

        assert index.count() == 1
        hit = index.search(vector([0, 1]), top_k=5).hits[0]
        assert hit.document_id == "a"
        assert hit.score == pytest.approx(1.0)

    def test_hit_reports_owning_document(self, index, vector):
        index.add("doc-1:0", vector([1, 0]), {"document_id": "doc-1"})
        index.add("doc-1:1", vector([2, 1]), {"document_id": "doc-1"})

        result = index.search(vector([1, 0]), top_k=5)

        assert [hit.record_id for hit in result.hits] == ["doc-1:0", "doc-1:1"]
        assert result.document_ids() == ["doc-1"]

    def test_replace_keeps_insertion_position(self, index, vector):
        index.add("a", vector([1, 0]))
        index.add("b", vector([1, 0]))
        index.add("a", vector([2, 0]))

        assert index.search(vector([1, 0]), top_k=2).document_ids() == ["a", "b"]

    def test_rebuild_swaps_the_corpus(self, index, vector):
        index.add("old", vector([1, 0]))

        index.rebuild([
            VectorRecord(document_id="new-1", embedding=vector([1, 0, 0, 0])),
            VectorRecord(document_id="new-2", embedding=vector([0, 1, 0, 0])),
        ])

        assert not index.contains("old")
        assert index.count() == 2
        assert index.dimensions_histogram() == {4: 2}

    def test_clear(self, index, vector):
        index.add("a", vector([1, 0]))
        index.clear()

        assert index.count() == 0

    def test_dimensions_histogram(self, index, vector):
        index.add("a", vector([1, 0]))
        index.add("b", vector([0, 1]))
        index.add("c", vector([1, 0, 0]))

        assert index.dimensions_histogram() == {2: 2, 3: 1}


class TestVectorIndexCapacity:
    def test_unbounded_by_default(self, index):
        assert index.get_max_records() is None

    def test_capacity_from_env(self, helper_config, monkeypatch):
        monkeypatch.setenv("INDEX_MAX_RECORDS", "25")

        assert VectorIndex(helper_config=helper_config).get_max_records() == 25

    def test_least_recently_used_record_is_evicted(self, helper_config, vector):
        index = VectorIndex(helper_config=helper_config, max_records=2)
        index.add("a", vector([1, 0]))
        index.add("b", vector([0, 1]))
        # a search counts as a use of "a"
        index.search(vector([1, 0]), top_k=1)

        evicted = index.add("c", vector([1, 1]))

        assert evicted == ["b"]
        assert index.count() == 2
        assert not index.contains("b")

    def test_replacing_does_not_evict(self, helper_config, vector):
        index = VectorIndex(helper_config=helper_config, max_records=1)
        index.add("a", vector([1, 0]))

        assert index.add("a", vector([0, 1])) == []
        assert index.count() == 1

    def test_rebuild_respects_capacity(self, helper_config, vector):
        index = VectorIndex(helper_config=helper_config, max_records=2)

        index.rebuild([VectorRecord(document_id=f"d{n}", embedding=vector([n + 1, 0])) for n in range(3)])

        assert index.count() == 2
        assert not index.contains("d0")
