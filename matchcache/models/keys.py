"""Cache id derivation and matchup normalization."""

import re
from typing import Iterable, Tuple

DEFAULT_LANGUAGE = "en"


def normalize_sport(value: object) -> str:
    return str(value or "").strip().lower()


def normalize_team_id(value: object) -> str:
    return str(value if value is not None else "").strip()


def normalize_team_name(value: object) -> str:
    """Lower-case alphanumerics only, with a leading 'the' dropped ("The Lakers" -> "lakers")."""
    text = re.sub(r"[^a-z0-9 ]", "", str(value or "").lower()).strip()
    if text.startswith("the "):
        text = text[4:]
    return text.replace(" ", "")


def matchup_key(sport: object, team_ids: Iterable[object]) -> Tuple[str, Tuple[str, ...]]:
    """Order-independent identity of a real-world matchup: (sport, sorted team ids)."""
    ids = tuple(sorted(normalize_team_id(t) for t in team_ids if normalize_team_id(t)))
    return normalize_sport(sport), ids


def derive_cache_id(sport: object, team1_id: object, team2_id: object, language: str = DEFAULT_LANGUAGE) -> str:
    """
    Deterministic document id for a matchup.

    Team ids are sorted so home/away order does not matter:
        derive_cache_id("NBA", 14, 2) == "nba_14-2_en"   (string sort)
    """
    sport_norm, ids = matchup_key(sport, (team1_id, team2_id))
    if not sport_norm or len(ids) != 2:
        raise ValueError("sport and two team ids are required to derive a cache id")
    return f"{sport_norm}_{'-'.join(ids)}_{language or DEFAULT_LANGUAGE}"
