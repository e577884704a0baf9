from .base_client import APIError, BaseAPIClient
from .props_scorer import PropsScorer, PropsScorerClient, ScoreRequest, ScoreResult

__all__ = [
    'APIError',
    'BaseAPIClient',
    'PropsScorer',
    'PropsScorerClient',
    'ScoreRequest',
    'ScoreResult',
]
