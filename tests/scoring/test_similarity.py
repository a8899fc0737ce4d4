"""
similarity.pyのテスト
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from evaltrace.harness_config import HarnessConfig
from evaltrace.scoring.similarity import (
    Embedder,
    embedding_similarity,
    create_embedder,
    score_semantic_similarity,
)


class FakeEmbedder:
    def __init__(self, vectors=None, error=None):
        self._vectors = vectors
        self._error = error
        self.calls = []

    def embed(self, texts):
        self.calls.append(texts)
        if self._error:
            raise self._error
        return self._vectors


class TestEmbeddingSimilarity:
    """scikit-learn のコサイン類似度"""

    def test_identical(self):
        assert embedding_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert embedding_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_vector(self):
        assert embedding_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError, match="same dimension"):
            embedding_similarity([1.0], [1.0, 2.0])


class TestEmbedder:
    def test_embed(self):
        client = MagicMock()
        client.embeddings.create.return_value = SimpleNamespace(
            data=[SimpleNamespace(embedding=[0.1, 0.2]), SimpleNamespace(embedding=[0.3, 0.4])]
        )

        vectors = Embedder(client, "nomic-embed-text").embed(["a", "b"])

        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        client.embeddings.create.assert_called_once_with(model="nomic-embed-text", input=["a", "b"])

    def test_create_embedder_prefers_openai(self):
        config = HarnessConfig()
        config.providers.openai_api_key = "sk-test"
        assert create_embedder(config).model == "text-embedding-3-small"

    def test_create_embedder_falls_back_to_ollama(self):
        assert create_embedder(HarnessConfig()).model == "nomic-embed-text"


class TestScoreSemanticSimilarity:
    """意味的類似度の評価"""

    def test_above_threshold(self):
        embedder = FakeEmbedder([[1.0, 0.0], [0.9, 0.1]])
        verdict = score_semantic_similarity("Paris is the capital", "The capital is Paris", embedder)
        assert verdict.passed is True
        assert verdict.score > 0.9
        assert verdict.reason.endswith("(threshold: 70%)")
        assert embedder.calls == [["Paris is the capital", "The capital is Paris"]]

    def test_below_threshold(self):
        verdict = score_semantic_similarity("a", "b", FakeEmbedder([[1.0, 0.0], [0.0, 1.0]]))
        assert verdict.passed is False
        assert verdict.reason == "Similarity: 0.0% (threshold: 70%)"

    def test_custom_threshold(self):
        embedder = FakeEmbedder([[1.0, 0.0], [1.0, 1.0]])
        assert score_semantic_similarity("a", "b", embedder, threshold=0.5).passed is True
        assert score_semantic_similarity("a", "b", embedder, threshold=0.8).passed is False

    def test_no_reference_is_inconclusive(self):
        verdict = score_semantic_similarity(None, "b", FakeEmbedder())
        assert verdict.passed is None
        assert verdict.score is None

    def test_no_embedder_is_inconclusive(self):
        assert score_semantic_similarity("a", "b", None).passed is None

    def test_dimension_mismatch_is_inconclusive(self):
        verdict = score_semantic_similarity("a", "b", FakeEmbedder([[1.0, 0.0], [1.0, 0.0, 0.0]]))
        assert verdict.passed is None
        assert "same dimension" in verdict.reason

    def test_returns_plain_float(self):
        verdict = score_semantic_similarity("a", "b", FakeEmbedder([[1.0, 2.0], [2.0, 4.0]]))
        assert type(verdict.score) is float
        assert verdict.score == pytest.approx(1.0)

    def test_embedding_error_is_inconclusive(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", "http://localhost/v1/embeddings"))
        verdict = score_semantic_similarity("a", "b", FakeEmbedder(error=error))
        assert verdict.passed is None
        assert verdict.reason.startswith("Similarity error")
