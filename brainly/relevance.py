"""
Relevance filtering of search results.

Decides how many of the retrieved candidates to surface. When the top
result clearly dominates, or the runner-up is weak in absolute terms,
only the top result is shown; otherwise the top few are kept.
"""

from typing import Sequence

from .types import Content

# Score gap above which the top result is shown alone
DOMINANCE_GAP = 0.10

# Runner-up scores below this are treated as noise
CONFIDENCE_FLOOR = 0.75

MAX_RESULTS = 3


def _score(content: Content) -> float:
    return content.score if content.score is not None else 0.0


def filter_relevant(
    results: Sequence[Content],
    *,
    gap: float = DOMINANCE_GAP,
    floor: float = CONFIDENCE_FLOOR,
    max_results: int = MAX_RESULTS,
) -> list[Content]:
    """Filter score-ordered results (best first).

    Pure and deterministic. Fewer than two candidates pass through as-is.
    """
    if len(results) < 2:
        return list(results)

    top, second = _score(results[0]), _score(results[1])
    if top - second > gap:
        return [results[0]]
    if second < floor:
        return [results[0]]
    return list(results[:max_results])
