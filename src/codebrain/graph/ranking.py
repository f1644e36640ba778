"""
Relevance ranking.

score = weight * 1 / (1 + age_days), where age_days is measured from the
node's last use. A strong node that has gone stale is eventually outranked by
a weaker node that was used recently: for weights w1 > w2 and ages a1 > a2,
node 2 wins once (1 + a1) / (1 + a2) > w1 / w2.
"""

from typing import List, Sequence, Tuple

import numpy as np

from ..models import Node

SECONDS_PER_DAY = 86400.0


def age_days(node: Node, now: float) -> float:
    return max(0.0, now - node.timestamps.last_used) / SECONDS_PER_DAY


def relevance_score(node: Node, now: float) -> float:
    """Recency-decayed weight of a single node."""
    return node.scores.weight / (1.0 + age_days(node, now))


def score_array(nodes: Sequence[Node], now: float) -> np.ndarray:
    """Vectorised relevance scores, aligned with ``nodes``."""
    if not nodes:
        return np.zeros(0, dtype=np.float64)
    weights = np.fromiter((n.scores.weight for n in nodes), dtype=np.float64, count=len(nodes))
    last_used = np.fromiter((n.timestamps.last_used for n in nodes), dtype=np.float64, count=len(nodes))
    ages = np.maximum(0.0, now - last_used) / SECONDS_PER_DAY
    return weights / (1.0 + ages)


def rank(nodes: Sequence[Node], now: float) -> List[Tuple[Node, float]]:
    """
    Sort nodes by descending relevance.

    Ties keep their original encounter order (stable sort).

    Returns:
        List of (node, score) tuples, best first
    """
    scores = score_array(nodes, now)
    order = np.argsort(-scores, kind="stable")
    return [(nodes[i], float(scores[i])) for i in order]
