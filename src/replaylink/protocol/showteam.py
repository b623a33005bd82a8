# src/replaylink/protocol/showteam.py

"""Parser for packed team blobs revealed by ``|showteam|`` lines.

A blob is a ``]``-separated list of packed sets. Each packed set is a
``|``-separated record with fixed positions::

    NICKNAME|SPECIES|ITEM|ABILITY|MOVES|NATURE|EVS|GENDER|IVS|SHINY|LEVEL|MISC

SPECIES is blank when it equals NICKNAME, and MISC is a comma-separated tail
(happiness, pokeball, hidden power, gigantamax, dynamax level, tera type).
Empty fields map to None; missing trailing fields are tolerated.
"""

from dataclasses import dataclass, field

from .tokenizer import parse_int

ENTRY_SEPARATOR = "]"
FIELD_SEPARATOR = "|"

# Field positions inside one packed set
NAME = 0
SPECIES = 1
ITEM = 2
ABILITY = 3
MOVES = 4
GENDER = 7
SHINY = 9
LEVEL = 10
MISC = 11


@dataclass(frozen=True)
class RevealedSet:
    """One set from a team-reveal blob."""

    species: str
    nickname: str | None = None
    item: str | None = None
    ability: str | None = None
    moves: list[str] = field(default_factory=list)
    gender: str | None = None
    level: int | None = None
    shiny: bool = False
    tera_type: str | None = None
    raw: str = ""


def _field(fields: list[str], index: int) -> str | None:
    if index >= len(fields):
        return None
    value = fields[index].strip()
    return value or None


def parse_moves(csv: str | None) -> list[str]:
    """Comma-split move list with blanks removed."""
    if not csv:
        return []
    return [move.strip() for move in csv.split(",") if move.strip()]


def parse_tera_type(misc: str | None) -> str | None:
    """Tera type is the segment after the last comma of the MISC tail."""
    if not misc or "," not in misc:
        return None
    return misc.rsplit(",", 1)[1].strip() or None


def parse_showteam_entry(entry: str) -> RevealedSet | None:
    """Parse one packed set; returns None when no species can be read."""
    fields = entry.split(FIELD_SEPARATOR)
    name = _field(fields, NAME)
    species = _field(fields, SPECIES) or name
    if not species:
        return None

    nickname = name if name and name != species else None
    gender = _field(fields, GENDER)

    return RevealedSet(
        species=species,
        nickname=nickname,
        item=_field(fields, ITEM),
        ability=_field(fields, ABILITY),
        moves=parse_moves(_field(fields, MOVES)),
        gender=gender if gender in ("M", "F") else None,
        level=parse_int(_field(fields, LEVEL)),
        shiny=_field(fields, SHINY) == "S",
        tera_type=parse_tera_type(_field(fields, MISC)),
        raw=entry,
    )


def parse_showteam_blob(blob: str | None) -> list[RevealedSet]:
    """Parse every readable set of a blob, skipping empty or broken entries."""
    if not blob:
        return []
    sets = []
    for chunk in blob.split(ENTRY_SEPARATOR):
        if not chunk.strip():
            continue
        parsed = parse_showteam_entry(chunk.strip())
        if parsed is not None:
            sets.append(parsed)
    return sets
