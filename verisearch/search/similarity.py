"""
Text Similarity & MMR Ordering
===============================

Similarity used by diverse decoding to measure how redundant two
candidates are: an even blend of token-set Jaccard similarity and
normalized edit-distance similarity.

MMR (maximal marginal relevance) then orders candidates by

    lambda * utility - (1 - lambda) * penalty

where ``penalty`` is the highest similarity to anything already chosen,
halved when it stays below ``diversity_threshold``.
"""

from __future__ import annotations

from typing import Sequence

from verisearch.schemas.candidate import Candidate

MAX_EDIT_CHARS = 500


def jaccard_similarity(a: str, b: str) -> float:
    tokens_a = set(a.lower().split())
    tokens_b = set(b.lower().split())
    if not tokens_a and not tokens_b:
        return 1.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance (two-row dynamic programming)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ch_a in enumerate(a, start=1):
        current = [i]
        for j, ch_b in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ch_a != ch_b),
            ))
        previous = current
    return previous[-1]


def edit_similarity(a: str, b: str) -> float:
    a, b = a[:MAX_EDIT_CHARS], b[:MAX_EDIT_CHARS]
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - edit_distance(a, b) / longest


def similarity(a: str, b: str) -> float:
    """Combined similarity in [0, 1]."""
    return 0.5 * jaccard_similarity(a, b) + 0.5 * edit_similarity(a, b)


def mmr_order(
    candidates: Sequence[Candidate],
    mmr_lambda: float = 0.5,
    diversity_threshold: float = 0.7,
) -> list[Candidate]:
    """Order candidates by maximal marginal relevance (ties: earliest)."""
    remaining = list(candidates)
    ordered: list[Candidate] = []
    while remaining:
        best_index, best_score = 0, None
        for index, candidate in enumerate(remaining):
            max_sim = max(
                (similarity(candidate.content, chosen.content) for chosen in ordered),
                default=0.0,
            )
            penalty = max_sim if max_sim > diversity_threshold else max_sim * 0.5
            score = mmr_lambda * candidate.utility - (1.0 - mmr_lambda) * penalty
            if best_score is None or score > best_score:
                best_index, best_score = index, score
        ordered.append(remaining.pop(best_index))
    return ordered
