"""
backend/oddsleague/utils/team_matching.py

Purpose:
    Fuzzy team-name matching used to link provider events and results to
    fixtures. Deterministic and deliberately simple; provider event ids take
    precedence once a fixture is mapped.
"""

from __future__ import annotations

import re
import unicodedata

# Common short forms -> canonical names
_ALIASES = {
    "wolves": "wolverhampton wanderers",
    "wolverhampton": "wolverhampton wanderers",
    "spurs": "tottenham hotspur",
    "man city": "manchester city",
    "man utd": "manchester united",
    "man united": "manchester united",
    "notts forest": "nottingham forest",
    "nottm forest": "nottingham forest",
    "forest": "nottingham forest",
    "newcastle": "newcastle united",
}

_NOISE = {"fc", "afc", "cf", "sc", "ac", "club", "the", "and"}


def normalize_team_name(name: str) -> str:
    """Lowercase, accent-free, punctuation collapsed, "utd" spelled out, aliases resolved."""
    normalized = unicodedata.normalize("NFKD", name or "")
    normalized = "".join(ch for ch in normalized if not unicodedata.combining(ch)).lower()
    normalized = normalized.replace("&", " and ")
    normalized = re.sub(r"[^a-z0-9]+", " ", normalized)
    normalized = re.sub(r"\butd\b", "united", normalized).strip()
    padded = f" {normalized} "
    for alias, canonical in _ALIASES.items():
        if f" {alias} " in padded:
            return canonical
    return normalized


def _tokens(name: str) -> set[str]:
    return {
        token for token in normalize_team_name(name).split()
        if token not in _NOISE and len(token) >= 3
    }


def _token_match(token: str, others: set[str]) -> bool:
    if token in others:
        return True
    return any(
        len(token) >= 4 and len(other) >= 4
        and (other.startswith(token) or token.startswith(other))
        for other in others
    )


def teams_match(name_a: str, name_b: str) -> bool:
    """Return True when both names likely refer to the same team.

    Every token of the shorter name must appear in the longer one, so
    "Arsenal FC" matches "Arsenal" but "Manchester City" never matches
    "Manchester United".
    """
    tokens_a = _tokens(name_a)
    tokens_b = _tokens(name_b)
    if not tokens_a or not tokens_b:
        return False

    shorter, longer = sorted((tokens_a, tokens_b), key=len)
    return all(_token_match(token, longer) for token in shorter)


def fixture_matches(home_a: str, away_a: str, home_b: str, away_b: str) -> bool:
    """Both sides match, home to home and away to away."""
    return teams_match(home_a, home_b) and teams_match(away_a, away_b)
