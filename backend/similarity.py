# Name similarity - normalized Levenshtein edit distance
from rapidfuzz.distance import Levenshtein


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit-cost insertions, deletions and substitutions"""
    return Levenshtein.distance(a, b)


def name_similarity(a: str, b: str) -> float:
    """
    Similarity in [0, 1]: 1 - distance / max(len(a), len(b)).
    Two empty strings are identical (1.0). Callers lower-case first.
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - levenshtein_distance(a, b) / longest
