"""
Semantic similarity scoring

Embeds the reference and the response and compares them by cosine similarity.
Embeddings come from OpenAI when an API key is configured, otherwise from the
local Ollama server through its OpenAI-compatible endpoint.
"""

from __future__ import annotations

import logging

import openai
from openai import OpenAI
from sklearn.metrics.pairwise import cosine_similarity

from evaltrace.domain.value_objects import EvalVerdict
from evaltrace.harness_config import HarnessConfig

logger = logging.getLogger(__name__)


def embedding_similarity(a: list[float], b: list[float]) -> float:
    """
    Cosine similarity of two embedding vectors (0.0 when either is all zeros)

    Raises:
        ValueError: If the vectors differ in dimension
    """
    if len(a) != len(b):
        raise ValueError(f"Vectors must have same dimension ({len(a)} != {len(b)})")
    return float(cosine_similarity([a], [b])[0][0])


class Embedder:
    """Embeddings through an OpenAI-compatible endpoint"""

    def __init__(self, client: OpenAI, model: str) -> None:
        self._client = client
        self.model = model

    def embed(self, texts: list[str]) -> list[list[float]]:
        response = self._client.embeddings.create(model=self.model, input=texts)
        return [item.embedding for item in response.data]


def create_embedder(config: HarnessConfig) -> Embedder:
    """OpenAI embeddings when a key is configured, otherwise Ollama"""
    pc = config.providers
    if pc.openai_api_key:
        client = OpenAI(
            api_key=pc.openai_api_key,
            base_url=pc.openai_base_url,
            timeout=pc.timeout_seconds,
            max_retries=0,
        )
        return Embedder(client, config.similarity.openai_model)
    client = OpenAI(
        api_key="ollama",
        base_url=pc.ollama_base_url.rstrip("/") + "/v1",
        timeout=pc.timeout_seconds,
        max_retries=0,
    )
    return Embedder(client, config.similarity.ollama_model)


def score_semantic_similarity(
    reference: str | None,
    actual: str,
    embedder: Embedder | None,
    threshold: float = 0.7,
) -> EvalVerdict:
    """
    Semantic similarity evaluation

    Returns:
        EvalVerdict (inconclusive when there is no reference or embedding fails)
    """
    if not reference:
        return EvalVerdict(
            passed=None,
            score=None,
            reason="No expected text for semantic similarity",
            eval_type="semantic_similarity",
        )
    if embedder is None:
        return EvalVerdict(
            passed=None,
            score=None,
            reason="Similarity error: no embedding provider configured",
            eval_type="semantic_similarity",
        )

    try:
        expected_vec, actual_vec = embedder.embed([str(reference), actual])
        similarity = embedding_similarity(expected_vec, actual_vec)
    except (openai.OpenAIError, ValueError) as e:
        logger.warning("Semantic similarity failed: %s", e)
        return EvalVerdict(
            passed=None,
            score=None,
            reason=f"Similarity error: {e}",
            eval_type="semantic_similarity",
        )

    passed = similarity >= threshold
    return EvalVerdict(
        passed=passed,
        score=similarity,
        reason=f"Similarity: {similarity * 100:.1f}% (threshold: {threshold * 100:.0f}%)",
        eval_type="semantic_similarity",
        details={"similarity": similarity, "threshold": threshold},
    )
