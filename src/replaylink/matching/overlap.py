# src/replaylink/matching/overlap.py

"""Species-overlap scoring between a battle and a team roster.

Nothing here touches the database: callers pass species lists in, and get
back a ``LinkDecision`` that says whether the roster should be linked, how
confident the match is, and which evidence it was based on.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from replaylink.protocol.names import normalize_species, unique_species

DEFAULT_REVEALED_TRUST_FLOOR = 4


class EvidenceSource(str, Enum):
    """Which derived fact set the battle species came from, in trust order."""

    BROUGHT = "brought"
    REVEALED = "revealed"
    PREVIEW = "preview"
    NONE = "none"


METHOD_BY_SOURCE = {
    EvidenceSource.BROUGHT: "team-link_brought_overlap",
    EvidenceSource.REVEALED: "team-link_revealed_overlap",
    EvidenceSource.PREVIEW: "team-link_preview_overlap",
    EvidenceSource.NONE: "team-link_no_data",
}
METHOD_TEAM_EMPTY = "team_empty"
METHOD_BATTLE_EMPTY = "battle_species_empty"


@dataclass(frozen=True)
class SpeciesEvidence:
    species: list[str]
    source: EvidenceSource


@dataclass(frozen=True)
class LinkThresholds:
    min_overlap: int
    min_confidence: float


# Preview only shows species, so it needs a closer match to count
PREVIEW_THRESHOLDS = LinkThresholds(min_overlap=5, min_confidence=0.83)
DEFAULT_THRESHOLDS = LinkThresholds(min_overlap=4, min_confidence=0.66)


@dataclass(frozen=True)
class LinkDecision:
    """Outcome of scoring one team version against one battle."""

    linked: bool
    confidence: float
    method: str
    source: EvidenceSource
    team_size: int
    overlap: int
    team_version_id: int | None = None


def select_evidence(
    brought: Iterable[str],
    revealed: Iterable[str],
    preview: Iterable[str],
    trust_floor: int = DEFAULT_REVEALED_TRUST_FLOOR,
) -> SpeciesEvidence:
    """Pick the most trustworthy species list available for a side.

    Brought species win whenever there are any. Revealed sets are only
    trusted once at least ``trust_floor`` distinct species were revealed;
    otherwise team preview is used, and with nothing at all the source is
    ``none``.
    """
    brought_species = unique_species(list(brought))
    if brought_species:
        return SpeciesEvidence(brought_species, EvidenceSource.BROUGHT)

    revealed_species = unique_species(list(revealed))
    if len(revealed_species) >= trust_floor:
        return SpeciesEvidence(revealed_species, EvidenceSource.REVEALED)

    preview_species = unique_species(list(preview))
    if preview_species:
        return SpeciesEvidence(preview_species, EvidenceSource.PREVIEW)

    return SpeciesEvidence([], EvidenceSource.NONE)


def thresholds_for(
    source: EvidenceSource,
    min_overlap: int | None = None,
    min_confidence: float | None = None,
) -> LinkThresholds:
    """Acceptance thresholds for an evidence source, with per-call overrides."""
    base = PREVIEW_THRESHOLDS if source is EvidenceSource.PREVIEW else DEFAULT_THRESHOLDS
    return LinkThresholds(
        min_overlap=base.min_overlap if min_overlap is None else min_overlap,
        min_confidence=base.min_confidence if min_confidence is None else min_confidence,
    )


def overlap_count(battle_species: Iterable[str], team_species: Iterable[str]) -> int:
    """Number of distinct normalized species present in both lists."""
    battle = {normalize_species(s) for s in battle_species} - {""}
    team = {normalize_species(s) for s in team_species} - {""}
    return len(battle & team)


def score_team(
    evidence: SpeciesEvidence,
    team_species: Iterable[str],
    min_overlap: int | None = None,
    min_confidence: float | None = None,
    team_version_id: int | None = None,
) -> LinkDecision:
    """Score a roster against battle evidence.

    confidence = overlap / roster size, so it lies in [0, 1] and is 1 when the
    whole roster was seen in the battle.
    """
    team = unique_species(list(team_species))
    battle = unique_species(evidence.species)

    if not team or not battle:
        return LinkDecision(
            linked=False,
            confidence=0.0,
            method=METHOD_TEAM_EMPTY if not team else METHOD_BATTLE_EMPTY,
            source=evidence.source,
            team_size=len(team),
            overlap=0,
            team_version_id=team_version_id,
        )

    overlap = overlap_count(battle, team)
    confidence = overlap / len(team)
    limits = thresholds_for(evidence.source, min_overlap, min_confidence)

    return LinkDecision(
        linked=overlap >= limits.min_overlap and confidence >= limits.min_confidence,
        confidence=confidence,
        method=METHOD_BY_SOURCE[evidence.source],
        source=evidence.source,
        team_size=len(team),
        overlap=overlap,
        team_version_id=team_version_id,
    )


def pick_best(decisions: Iterable[LinkDecision]) -> LinkDecision | None:
    """Highest-confidence linked decision; on ties the earliest one wins."""
    best: LinkDecision | None = None
    for decision in decisions:
        if not decision.linked:
            continue
        if best is None or decision.confidence > best.confidence:
            best = decision
    return best
