from __future__ import annotations

from typing import List, Optional

from rapidfuzz.distance import Levenshtein

DEFAULT_TOKEN_THRESHOLD = 0.65


def _strip_token(word: str) -> str:
    start, end = 0, len(word)
    while start < end and not word[start].isalnum():
        start += 1
    while end > start and not word[end - 1].isalnum():
        end -= 1
    return word[start:end]


def tokenize(text: Optional[str]) -> List[str]:
    """Lowercased, edge-stripped, de-duplicated tokens in sorted order."""
    if not text:
        return []
    tokens = {_strip_token(word).lower() for word in str(text).split()}
    tokens.discard("")
    return sorted(tokens)


def token_score(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest


def _greedy_pairing(left: List[str], right: List[str], threshold: float) -> float:
    pool = list(right)
    total = 0.0
    for token in left:
        best_idx = -1
        best_score = 0.0
        for idx, other in enumerate(pool):
            score = token_score(token, other)
            if score > best_score:
                best_score = score
                best_idx = idx
        if best_idx >= 0 and best_score > threshold:
            total += best_score
            pool.pop(best_idx)
    return total


def similarity(a: Optional[str], b: Optional[str], threshold: float = DEFAULT_TOKEN_THRESHOLD) -> float:
    """
    Token-level Dice coefficient tolerant of misspellings.

    Each token of one side is paired with its closest unused token on the other
    side; a pair counts when its normalized edit similarity exceeds the threshold.
    """
    left = tokenize(a)
    right = tokenize(b)
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0

    matched = max(
        _greedy_pairing(left, right, threshold),
        _greedy_pairing(right, left, threshold),
    )
    return min(1.0, 2.0 * matched / (len(left) + len(right)))
