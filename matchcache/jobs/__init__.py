from .report import ERROR, SKIPPED, SUCCESS, EntryOutcome, JobReport
from .refresh import RefreshOrchestrator, build_props_payload, build_score_request, refresh_order_key
from .eviction import EvictionJob
from .dedup import DedupDetector, DuplicateGroup, choose_keeper

__all__ = [
    'ERROR',
    'SKIPPED',
    'SUCCESS',
    'EntryOutcome',
    'JobReport',
    'RefreshOrchestrator',
    'build_props_payload',
    'build_score_request',
    'refresh_order_key',
    'EvictionJob',
    'DedupDetector',
    'DuplicateGroup',
    'choose_keeper',
]
