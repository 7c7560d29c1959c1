"""Edit-distance scoring for fuzzy subject matching."""

from rapidfuzz.distance import Levenshtein


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum single-character insertions, deletions and substitutions."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """
    Normalized similarity in [0, 1]: 1 - distance / max(len(a), len(b)).

    Two empty strings are identical.
    """
    return Levenshtein.normalized_similarity(a, b)
