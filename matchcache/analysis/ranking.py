"""Deterministic ordering of scored player props."""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Tuple, Union

from matchcache.models import PropPrediction

PropLike = Union[PropPrediction, Dict[str, Any]]


def _as_prediction(prop: PropLike) -> PropPrediction:
    if isinstance(prop, PropPrediction):
        return prop
    return PropPrediction.from_dict(prop)


def _desc(value) -> float:
    # missing values sort after every real score
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return math.inf
    return -float(value)


def rank_key(prop: PropPrediction) -> Tuple[float, float]:
    return (_desc(prop.green_score), _desc(prop.predicted_side_probability))


def rank_props(props: Iterable[PropLike]) -> List[PropPrediction]:
    """
    Order props by greenScore, then by the probability of the predicted side.

    Both keys sort descending. ``sorted`` is stable, so props that tie on
    both keys keep the order the scorer returned them in.
    """
    return sorted((_as_prediction(p) for p in props), key=rank_key)


def rank_prop_dicts(props: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [p.to_dict() for p in rank_props(props)]


def confidence_tier(prop: PropPrediction, high_edge: float = 0.15, medium_edge: float = 0.10) -> str:
    """
    'high', 'medium' or 'low'.

    Uses the scorer's own ``confidenceTier`` when present, otherwise the edge
    of the predicted side over a coin flip.
    """
    tier = str(prop.extra.get("confidenceTier") or "").strip().lower()
    if tier in {"high", "medium", "low"}:
        return tier
    prob = prop.predicted_side_probability
    if prob is None:
        return "low"
    edge = prob - 0.5
    if edge > high_edge:
        return "high"
    if edge >= medium_edge:
        return "medium"
    return "low"


def count_by_confidence(props: Iterable[PropPrediction]) -> Dict[str, int]:
    """Tier counts for when the scorer omits highConfidenceCount/mediumConfidenceCount."""
    counts = {"high": 0, "medium": 0, "low": 0}
    for prop in props:
        counts[confidence_tier(prop)] += 1
    return counts
