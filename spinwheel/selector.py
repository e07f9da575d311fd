"""Weighted winner draw.

Inverse-CDF sampling over the cumulative weights: draw ``r`` uniformly from
``[0, total)`` and take the first index whose cumulative weight reaches
``r``. A draw that lands exactly on a boundary belongs to the earlier item.
Items with no weight are never picked.
"""
import logging
import math
import random
from collections import Counter

from .errors import EmptySelectionError, NoWeightError

logger = logging.getLogger(__name__)


def total_weight(items):
    return sum(float(item.weight) for item in items)


def select(items, rng=None):
    """Return the index of the winning item.

    ``rng`` only needs a ``random()`` method returning floats in ``[0, 1)``;
    the module-level ``random`` is used when it is omitted.
    """
    if not items:
        raise EmptySelectionError()

    total = total_weight(items)
    if not total > 0 or math.isinf(total):
        raise NoWeightError(total)

    draw = (rng or random).random() * total
    cumulative = 0.0
    last_weighted = None
    for index, item in enumerate(items):
        if item.weight <= 0:
            continue
        last_weighted = index
        cumulative += item.weight
        if cumulative >= draw:
            logger.debug(f"Winner calculation: {draw:.3f}/{total:.3f} -> item {index}")
            return index

    # Float drift can leave the running sum a hair under the draw
    logger.debug("Winner calculation fallback to last weighted item")
    return last_weighted


def probabilities(items):
    """Chance of each item being drawn, in item order"""
    total = total_weight(items)
    if total <= 0:
        return [0.0 for _ in items]
    return [max(float(item.weight), 0.0) / total for item in items]


def simulate(items, draws, rng=None):
    """Run ``draws`` selections and count wins per item id"""
    counts = Counter()
    for _ in range(draws):
        counts[items[select(items, rng)].id] += 1
    return counts
