"""
Fuzzy String Matching for OCR-to-Form Comparison.

Decides whether two already-normalized field values are the same value
read with some OCR noise (a misread character, a dropped separator).

Similarity is the normalized Levenshtein similarity:

    similarity = 1 - edit_distance(a, b) / max(len(a), len(b))

A pair matches when similarity >= threshold. The default threshold is
FUZZY_MATCH_THRESHOLD (0.85): one wrong character is tolerated in values of
seven or more characters, two in values of fourteen or more.

Edge cases:
- "" vs ""        -> match
- "" vs non-empty -> mismatch
"""
from rapidfuzz.distance import Levenshtein

from utils.config import FUZZY_MATCH_THRESHOLD


class FuzzyComparator:
    """Symmetric noise-tolerant equality with a fixed threshold."""

    def __init__(self, threshold: float = FUZZY_MATCH_THRESHOLD):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be between 0 and 1, got {threshold}")
        self.threshold = threshold

    def similarity(self, a: str, b: str) -> float:
        """Normalized Levenshtein similarity in [0, 1]."""
        a = a or ""
        b = b or ""
        if not a and not b:
            return 1.0
        if not a or not b:
            return 0.0
        return Levenshtein.normalized_similarity(a, b)

    def matches(self, a: str, b: str) -> bool:
        return self.similarity(a, b) >= self.threshold

    __call__ = matches

    def __repr__(self) -> str:
        return f"FuzzyComparator(threshold={self.threshold})"


default_comparator = FuzzyComparator()


def compare_strings(a: str, b: str) -> bool:
    """Compare two normalized values with the default comparator."""
    return default_comparator.matches(a, b)
