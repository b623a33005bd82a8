# src/replaylink/protocol/classifier.py

"""Classification and extraction of replay protocol lines.

``scan_transcript`` walks a log once, in order. Every line becomes exactly one
``EventRecord`` stamped with the turn / time marker current at that line, and
the line types we understand also contribute side, preview, revealed-set and
header facts to the resulting ``TranscriptScan``. Unknown line types only
produce their event, so new protocol messages never break ingestion.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum

from .names import names_match, normalize_showdown_name, normalize_species
from .showteam import RevealedSet, parse_showteam_blob
from .tokenizer import parse_int, token_at, tokenize_line

logger = logging.getLogger(__name__)

SIDES = ("p1", "p2")
SWITCH_LINE_TYPES = frozenset({"switch", "drag", "replace"})
UNKNOWN_LINE_TYPE = "unknown"

_LEVEL_TOKEN_RE = re.compile(r"^L(\d+)$", re.IGNORECASE)


class WinnerStatus(str, Enum):
    """Outcome of winner detection for a transcript."""

    NONE = "none"  # no win line at all
    UNRESOLVED = "unresolved"  # a winner was announced but matches no side
    RESOLVED = "resolved"


# ===============================================
# Records produced by the scan
# ===============================================


@dataclass(frozen=True)
class EventRecord:
    event_index: int
    turn_num: int | None
    t_unix: int | None
    line_type: str
    raw_line: str
    move_name: str | None = None


@dataclass(frozen=True)
class SideRecord:
    side: str
    player_name: str
    avatar: str | None
    rating: int | None
    is_user: bool


@dataclass(frozen=True)
class PreviewRecord:
    side: str
    slot_index: int
    species: str
    level: int | None
    gender: str | None
    shiny: bool
    raw_text: str


@dataclass(frozen=True)
class RevealedRecord:
    side: str
    revealed: RevealedSet


@dataclass(frozen=True)
class ScanCursor:
    """Running context threaded through the forward pass.

    Holds the current turn, the current time marker and the number of preview
    slots already claimed per side. Each update returns a new cursor.
    """

    turn: int | None = None
    t_unix: int | None = None
    p1_slots: int = 0
    p2_slots: int = 0

    def advance(self, line_type: str, tokens: list[str]) -> ScanCursor:
        """Apply ``turn`` and ``t:`` lines; any other line leaves it unchanged."""
        if line_type == "turn":
            return replace(self, turn=parse_int(token_at(tokens, 1)))
        if line_type == "t:":
            return replace(self, t_unix=parse_int(token_at(tokens, 1)))
        return self

    def claim_slot(self, side: str) -> tuple[int, ScanCursor]:
        """Next 1-based preview slot for ``side`` and the updated cursor."""
        if side == "p1":
            return self.p1_slots + 1, replace(self, p1_slots=self.p1_slots + 1)
        return self.p2_slots + 1, replace(self, p2_slots=self.p2_slots + 1)


@dataclass
class TranscriptScan:
    """Everything extracted from one transcript."""

    events: list[EventRecord] = field(default_factory=list)
    sides: dict[str, SideRecord] = field(default_factory=dict)
    previews: list[PreviewRecord] = field(default_factory=list)
    revealed: list[RevealedRecord] = field(default_factory=list)
    gen: int | None = None
    gen_seen: bool = False
    game_type: str | None = None
    is_rated: bool = False
    winner_name: str | None = None
    first_t_unix: int | None = None

    @property
    def winner_side(self) -> str | None:
        """Side whose player name normalizes to the announced winner."""
        if not self.winner_name:
            return None
        for side in SIDES:
            record = self.sides.get(side)
            if record and names_match(record.player_name, self.winner_name):
                return side
        return None

    @property
    def winner_status(self) -> WinnerStatus:
        if not self.winner_name:
            return WinnerStatus.NONE
        if self.winner_side is None:
            return WinnerStatus.UNRESOLVED
        return WinnerStatus.RESOLVED

    def revealed_for(self, side: str) -> list[RevealedSet]:
        return [r.revealed for r in self.revealed if r.side == side]


# ===============================================
# Helpers
# ===============================================


def classify(tokens: list[str]) -> str:
    """Line type tag; lines with no usable first token are ``unknown``."""
    head = (token_at(tokens, 0) or "").strip()
    return head or UNKNOWN_LINE_TYPE


def parse_preview_details(raw_text: str) -> tuple[str, int | None, str | None, bool]:
    """Split ``"Okidogi, L50, M"`` into species, level, gender and shiny flag."""
    species = raw_text.split(",", 1)[0].strip()
    bits = [b.strip() for b in raw_text.split(",")[1:] if b.strip()]

    level = None
    for bit in bits:
        match = _LEVEL_TOKEN_RE.match(bit)
        if match:
            level = parse_int(match.group(1))
            break

    gender = "M" if "M" in bits else "F" if "F" in bits else None
    return species, level, gender, "shiny" in bits


# ===============================================
# Per-type extractors
# ===============================================

Extractor = Callable[[list[str], ScanCursor, TranscriptScan, str], ScanCursor]


def _extract_player(
    tokens: list[str], cursor: ScanCursor, scan: TranscriptScan, operator: str
) -> ScanCursor:
    side = token_at(tokens, 1)
    name = (token_at(tokens, 2) or "").strip()
    if side not in SIDES or not name:
        return cursor

    is_user = bool(operator) and normalize_showdown_name(name) == operator
    scan.sides[side] = SideRecord(
        side=side,
        player_name=name,
        avatar=token_at(tokens, 3) or None,
        rating=parse_int(token_at(tokens, 4)),
        is_user=is_user,
    )
    return cursor


def _extract_preview(
    tokens: list[str], cursor: ScanCursor, scan: TranscriptScan, operator: str
) -> ScanCursor:
    side = token_at(tokens, 1)
    if side not in SIDES:
        return cursor

    slot_index, cursor = cursor.claim_slot(side)
    raw_text = token_at(tokens, 2) or ""
    species, level, gender, shiny = parse_preview_details(raw_text)
    if species:
        scan.previews.append(
            PreviewRecord(
                side=side,
                slot_index=slot_index,
                species=species,
                level=level,
                gender=gender,
                shiny=shiny,
                raw_text=raw_text,
            )
        )
    return cursor


def _extract_showteam(
    tokens: list[str], cursor: ScanCursor, scan: TranscriptScan, operator: str
) -> ScanCursor:
    side = token_at(tokens, 1)
    if side not in SIDES:
        return cursor

    seen = {normalize_species(s.species) for s in scan.revealed_for(side)}
    for revealed in parse_showteam_blob("|".join(tokens[2:])):
        key = normalize_species(revealed.species)
        if key in seen:
            continue
        seen.add(key)
        scan.revealed.append(RevealedRecord(side=side, revealed=revealed))
    return cursor


def _extract_win(
    tokens: list[str], cursor: ScanCursor, scan: TranscriptScan, operator: str
) -> ScanCursor:
    name = (token_at(tokens, 1) or "").strip()
    if name:
        scan.winner_name = name
    return cursor


def _extract_rated(
    tokens: list[str], cursor: ScanCursor, scan: TranscriptScan, operator: str
) -> ScanCursor:
    scan.is_rated = True
    return cursor


def _extract_gen(
    tokens: list[str], cursor: ScanCursor, scan: TranscriptScan, operator: str
) -> ScanCursor:
    if not scan.gen_seen:
        scan.gen_seen = True
        scan.gen = parse_int(token_at(tokens, 1))
    return cursor


def _extract_gametype(
    tokens: list[str], cursor: ScanCursor, scan: TranscriptScan, operator: str
) -> ScanCursor:
    if scan.game_type is None:
        scan.game_type = (token_at(tokens, 1) or "").strip() or None
    return cursor


def _extract_time(
    tokens: list[str], cursor: ScanCursor, scan: TranscriptScan, operator: str
) -> ScanCursor:
    if scan.first_t_unix is None:
        scan.first_t_unix = cursor.t_unix
    return cursor


_EXTRACTORS: dict[str, Extractor] = {
    "player": _extract_player,
    "poke": _extract_preview,
    "showteam": _extract_showteam,
    "win": _extract_win,
    "rated": _extract_rated,
    "gen": _extract_gen,
    "gametype": _extract_gametype,
    "t:": _extract_time,
}


# ===============================================
# Forward pass
# ===============================================


def scan_transcript(
    lines: Iterable[str], operator_name: str | None = None
) -> TranscriptScan:
    """Scan transcript lines into events and extracted facts. Never raises."""
    operator = normalize_showdown_name(operator_name)
    scan = TranscriptScan()
    cursor = ScanCursor()

    for index, raw_line in enumerate(lines):
        tokens = tokenize_line(raw_line)
        line_type = classify(tokens)

        # The cursor moves before the event of the same line is stamped
        cursor = cursor.advance(line_type, tokens)
        extractor = _EXTRACTORS.get(line_type)
        if extractor is not None:
            cursor = extractor(tokens, cursor, scan, operator)

        scan.events.append(
            EventRecord(
                event_index=index,
                turn_num=cursor.turn,
                t_unix=cursor.t_unix,
                line_type=line_type,
                raw_line=raw_line,
                move_name=token_at(tokens, 2) if line_type == "move" else None,
            )
        )

    logger.debug(
        "Scanned transcript",
        extra={
            "event_count": len(scan.events),
            "preview_count": len(scan.previews),
            "revealed_count": len(scan.revealed),
        },
    )
    return scan
