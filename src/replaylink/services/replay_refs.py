# src/replaylink/services/replay_refs.py

"""Normalization of user-supplied replay references (URLs or bare ids)."""

from __future__ import annotations

import re
from dataclasses import dataclass

import httpx

from replaylink.config import DEFAULT_REPLAY_BASE_URL
from replaylink.exceptions import InvalidReplayReferenceError

# <format>-<number>, optionally followed by a private-replay password suffix
REPLAY_ID_RE = re.compile(r"^[a-z0-9]+-\d+(?:-[a-z0-9]+)?$", re.IGNORECASE)
_SUFFIX_RE = re.compile(r"\.(json|log)$", re.IGNORECASE)


@dataclass(frozen=True)
class ReplayRef:
    replay_id: str
    replay_url: str
    json_url: str

    @property
    def key(self) -> str:
        """Case-insensitive identity used for de-duplication."""
        return self.replay_id.lower()


def _extract_id(raw: str) -> str | None:
    candidate = raw
    if raw.startswith(("http://", "https://")):
        try:
            path = httpx.URL(raw).path
        except httpx.InvalidURL:
            return None
        candidate = path.rstrip("/").rsplit("/", 1)[-1]
    candidate = _SUFFIX_RE.sub("", candidate)
    return candidate if REPLAY_ID_RE.match(candidate) else None


def parse_replay_ref(
    raw: str, base_url: str = DEFAULT_REPLAY_BASE_URL
) -> ReplayRef:
    """Turn a replay URL or id into canonical page and JSON URLs.

    Raises:
        InvalidReplayReferenceError: If no replay id can be read from ``raw``.
    """
    text = (raw or "").strip()
    replay_id = _extract_id(text) if text else None
    if not replay_id:
        raise InvalidReplayReferenceError(text)

    replay_url = f"{base_url.rstrip('/')}/{replay_id}"
    return ReplayRef(
        replay_id=replay_id, replay_url=replay_url, json_url=f"{replay_url}.json"
    )


def split_references(text: str) -> list[str]:
    """Non-blank lines of a pasted block of replay links."""
    return [line.strip() for line in text.splitlines() if line.strip()]
