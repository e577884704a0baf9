from .cache_entry import (
    ML_PROPS_PATH,
    CacheEntry,
    MLPlayerProps,
    PropPrediction,
    TeamIds,
    Teams,
)
from .keys import derive_cache_id, matchup_key, normalize_sport, normalize_team_name

__all__ = [
    'ML_PROPS_PATH',
    'CacheEntry',
    'MLPlayerProps',
    'PropPrediction',
    'TeamIds',
    'Teams',
    'derive_cache_id',
    'matchup_key',
    'normalize_sport',
    'normalize_team_name',
]
