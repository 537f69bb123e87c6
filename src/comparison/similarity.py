"""
Lexical similarity between two HTML documents.

Both metrics work on character n-gram bags (bigrams by default), compared
case-insensitively. They measure markup overlap, not visual difference;
visual differences are only captured as screenshots.
"""

from collections import Counter

DEFAULT_NGRAM_SIZE = 2


def ngram_counts(text: str, size: int = DEFAULT_NGRAM_SIZE) -> Counter:
    """
    Count the character n-grams of ``text``.

    Text shorter than ``size`` forms a single gram.
    """
    if size <= 0:
        size = DEFAULT_NGRAM_SIZE
    if not text:
        return Counter()
    if len(text) < size:
        return Counter({text: 1})
    return Counter(text[i : i + size] for i in range(len(text) - size + 1))


def _overlap(a: str, b: str, size: int, case_sensitive: bool):
    if not case_sensitive:
        a, b = a.lower(), b.lower()
    counts_a = ngram_counts(a, size)
    counts_b = ngram_counts(b, size)
    common = sum((counts_a & counts_b).values())
    return common, sum(counts_a.values()), sum(counts_b.values())


def jaccard_similarity(
    a: str, b: str, ngram_size: int = DEFAULT_NGRAM_SIZE, case_sensitive: bool = False
) -> float:
    """
    Jaccard index of the two n-gram bags: intersection size over union size.

    Returns 1.0 for identical (or both empty) inputs and 0.0 for inputs
    sharing no n-gram.
    """
    if not a and not b:
        return 1.0

    common, total_a, total_b = _overlap(a, b, ngram_size, case_sensitive)
    total = total_a + total_b
    if total == 0:
        return 0.0
    return common / (total - common)


def sorensen_dice_similarity(
    a: str, b: str, ngram_size: int = DEFAULT_NGRAM_SIZE, case_sensitive: bool = False
) -> float:
    """Sorensen-Dice coefficient of the two n-gram bags: 2 * intersection / (|A| + |B|)."""
    if not a and not b:
        return 1.0

    common, total_a, total_b = _overlap(a, b, ngram_size, case_sensitive)
    total = total_a + total_b
    if total == 0:
        return 0.0
    return 2 * common / total
