# src/replaylink/config.py

"""Runtime settings read from environment variables."""

import os
from dataclasses import dataclass
from functools import lru_cache

DEFAULT_REPLAY_BASE_URL = "https://replay.pokemonshowdown.com"


@dataclass(frozen=True)
class Settings:
    """Application settings.

    Attributes:
        operator_name: Display name of the person running the app; sides whose
            player name normalizes to it are the user's sides.
        replay_base_url: Root of the replay source.
        fetch_timeout: Seconds before a replay fetch is aborted.
        revealed_trust_floor: Minimum revealed species before revealed sets
            are trusted as link evidence.
        autolink_team_limit: Max candidate team versions per auto-link.
    """

    operator_name: str | None = None
    replay_base_url: str = DEFAULT_REPLAY_BASE_URL
    fetch_timeout: float = 20.0
    revealed_trust_floor: int = 4
    autolink_team_limit: int = 200


@lru_cache
def get_settings() -> Settings:
    """Settings from the environment, read once per process."""
    return Settings(
        operator_name=os.getenv("REPLAYLINK_OPERATOR_NAME") or None,
        replay_base_url=os.getenv(
            "REPLAYLINK_REPLAY_BASE_URL", DEFAULT_REPLAY_BASE_URL
        ).rstrip("/"),
        fetch_timeout=float(os.getenv("REPLAYLINK_FETCH_TIMEOUT", "20")),
        revealed_trust_floor=int(os.getenv("REPLAYLINK_REVEALED_TRUST_FLOOR", "4")),
        autolink_team_limit=int(os.getenv("REPLAYLINK_AUTOLINK_TEAM_LIMIT", "200")),
    )
