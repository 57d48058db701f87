"""Bounded text similarity shared by every dedup and clustering step."""

from __future__ import annotations

from reconcile_engine.similarity.tokenizer import bigrams, tokenize

WORD_WEIGHT = 0.6
BIGRAM_WEIGHT = 0.4


def jaccard(a: set, b: set) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def similarity(a: str, b: str) -> float:
    """Blend of word-set Jaccard and adjacent-bigram Jaccard, in [0, 1].

    Both texts without qualifying words score 1.0; exactly one empty scores 0.0.
    When neither text has a bigram the score is the word overlap alone.
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)

    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0

    word_score = jaccard(set(tokens_a), set(tokens_b))
    bigrams_a = bigrams(tokens_a)
    bigrams_b = bigrams(tokens_b)
    if not bigrams_a and not bigrams_b:
        return word_score

    return WORD_WEIGHT * word_score + BIGRAM_WEIGHT * jaccard(bigrams_a, bigrams_b)
