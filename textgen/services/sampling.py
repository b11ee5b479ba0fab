"""
Sampling helpers shared by the model variants.
Randomness always comes from an injected random_fn returning floats in [0, 1).
"""
from __future__ import annotations

import math
from typing import Any, Callable, Dict, Optional, Sequence, TypeVar

T = TypeVar("T")

RandomFn = Callable[[], float]

# Guards the renormalization denominator when every scaled weight underflows
EPSILON = 1e-10


def sample_index(probs: Sequence[float], random_fn: RandomFn) -> int:
    """
    Inverse-CDF sampling over a probability vector.

    Each index owns the half-open interval [cumulative, cumulative + p), so a
    zero-probability index is never returned.

    Args:
        probs: Probabilities (expected to sum to ~1)
        random_fn: Uniform [0, 1) source

    Returns:
        Sampled index (the last positive one if rounding leaves r above the total)
    """
    r = random_fn()
    cumulative = 0.0
    last_positive = len(probs) - 1
    for i, p in enumerate(probs):
        if p <= 0:
            continue
        last_positive = i
        cumulative += p
        if r < cumulative:
            return i
    return last_positive


def parse_count(value: Any) -> Optional[int]:
    """
    Parse a persisted occurrence count.

    Accepts ints, integral floats and numeric strings; returns None for
    bools, values below 1 and anything non-integral.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        count = int(value)
    except (ValueError, OverflowError):
        return None
    if count < 1 or (isinstance(value, float) and count != value):
        return None
    return count


def argmax_token(counts: Dict[T, int]) -> T:
    """Highest-count key; ties go to the first encountered."""
    best = None
    best_count = -1
    for token, count in counts.items():
        if count > best_count:
            best, best_count = token, count
    return best


def apply_temperature(probs: Sequence[float], temperature: float) -> list:
    """Raise each probability to 1/temperature and renormalize."""
    scaled = [math.pow(p, 1.0 / temperature) for p in probs]
    total = sum(scaled) + EPSILON
    return [p / total for p in scaled]


def sample_from_counts(
    counts: Dict[T, int],
    temperature: float,
    random_fn: RandomFn,
) -> Optional[T]:
    """
    Sample a key from a count distribution with temperature control.

    Args:
        counts: Mapping of candidate -> occurrence count
        temperature: 0 = deterministic argmax, 1 = unmodified, >1 = flatter
        random_fn: Uniform [0, 1) source

    Returns:
        Sampled key, or None for an empty distribution
    """
    if not counts:
        return None

    if temperature == 0:
        return argmax_token(counts)

    tokens = list(counts.keys())
    total = sum(counts.values())
    probs = apply_temperature([counts[t] / total for t in tokens], temperature)
    return tokens[sample_index(probs, random_fn)]
