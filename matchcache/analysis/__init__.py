from .ranking import confidence_tier, count_by_confidence, rank_key, rank_prop_dicts, rank_props

__all__ = [
    'confidence_tier',
    'count_by_confidence',
    'rank_key',
    'rank_prop_dicts',
    'rank_props',
]
