"""Weighted Reciprocal Rank Fusion."""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from typing import TypeVar

from rag_memory.core.constants import DEFAULT_RRF_K

T = TypeVar("T", bound=Hashable)


def rrf_scores(
    sorted_lists: Sequence[Sequence[T]],
    *,
    k: float = DEFAULT_RRF_K,
    weights: Sequence[float] | None = None,
) -> dict[T, float]:
    """Sum ``weight / (k + rank)`` per item across ranked lists.

    Ranks are 1-based. An item repeated within one list only votes at its
    first position. The returned dict preserves first-seen order.
    """
    if k <= 0:
        raise ValueError("k must be positive")
    if weights is None:
        weights = [1.0] * len(sorted_lists)
    if len(weights) != len(sorted_lists):
        raise ValueError("weights must have one entry per list")

    scores: dict[T, float] = {}
    for ranked, weight in zip(sorted_lists, weights):
        seen: set[T] = set()
        for position, item in enumerate(ranked, start=1):
            if item in seen:
                continue
            seen.add(item)
            scores[item] = scores.get(item, 0.0) + weight / (k + position)
    return scores


def hybrid_rank(
    sorted_lists: Sequence[Sequence[T]],
    *,
    k: float = DEFAULT_RRF_K,
    weights: Sequence[float] | None = None,
) -> list[T]:
    """Merge ranked lists into one, best first; ties keep first-seen order."""
    scores = rrf_scores(sorted_lists, k=k, weights=weights)
    return sorted(scores, key=lambda item: scores[item], reverse=True)


def position_scores(count: int) -> list[float]:
    """Linear display scores: the i-th of N (1-based) gets ``(N - i + 1) / N``."""
    return [(count - i) / count for i in range(count)]
