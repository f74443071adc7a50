"""Matcher - Fuzzy text matching for resilient element and token lookup."""

from typing import Callable, Sequence

from rapidfuzz import fuzz, utils


DEFAULT_THRESHOLD = 70.0

Scorer = Callable[[str, str], float]


def score(target: str, candidate: str) -> float:
    """Best of three similarity scores on a 0-100 scale.

    Combines the normalized edit-distance ratio, the partial-substring
    ratio and the token-order-insensitive ratio. Both strings are
    lowercased and stripped of non-alphanumeric characters first.

    Args:
        target: String being looked for
        candidate: String to compare against

    Returns:
        Similarity score (0-100)
    """
    return max(
        fuzz.ratio(target, candidate, processor=utils.default_process),
        fuzz.partial_ratio(target, candidate, processor=utils.default_process),
        fuzz.token_sort_ratio(target, candidate, processor=utils.default_process),
    )


def whole_score(target: str, candidate: str) -> float:
    """Similarity of the complete strings, with no credit for substrings.

    A fragment such as "e" scores low against "Save Changes" here, while
    ``score`` would rate it a perfect partial match. Use this when
    candidates may be noise, like OCR tokens or arbitrary page labels.
    """
    return max(
        fuzz.ratio(target, candidate, processor=utils.default_process),
        fuzz.token_sort_ratio(target, candidate, processor=utils.default_process),
    )


def rank(
    target: str, candidates: Sequence[str], limit: int | None = None
) -> list[tuple[str, float, int]]:
    """Score every candidate, best first.

    Args:
        target: String being looked for
        candidates: Candidate strings
        limit: Keep only the top N entries

    Returns:
        (candidate, score, index) tuples sorted by score, then by index
    """
    scored = [
        (candidate, score(target, candidate), index)
        for index, candidate in enumerate(candidates)
    ]
    scored.sort(key=lambda entry: (-entry[1], entry[2]))
    return scored[:limit] if limit is not None else scored


def best_match(
    target: str,
    candidates: Sequence[str],
    threshold: float = DEFAULT_THRESHOLD,
    scorer: Scorer = score,
) -> str | None:
    """Return the candidate most similar to the target.

    Ties go to the first occurrence in ``candidates``.

    Args:
        target: String being looked for
        candidates: Candidate strings
        threshold: Minimum score (0-100) to accept a match
        scorer: Similarity function, ``score`` or ``whole_score``

    Returns:
        Best candidate, or None if nothing reaches the threshold
    """
    best: str | None = None
    best_score = -1.0

    for candidate in candidates:
        candidate_score = scorer(target, candidate)
        if candidate_score > best_score:
            best_score = candidate_score
            best = candidate

    if best is None or best_score < threshold:
        return None
    return best
