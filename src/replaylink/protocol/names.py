# src/replaylink/protocol/names.py

"""Normalization primitives shared by every name and species comparison."""

import re

# Auth / rank symbols Showdown prepends to display names
_DECORATION_RE = re.compile(r"^[@☆★+%~*&#]+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_showdown_name(name: str | None) -> str:
    """Reduce a Showdown display name to a comparable id.

    Leading decorative symbols are stripped, then everything that is not an
    ASCII letter or digit, and the result is case-folded. Names made only of
    non-ASCII characters fall back to their case-folded, whitespace-free form
    so they still compare equal to themselves.

    >>> normalize_showdown_name("☆Ash Ketchum")
    'ashketchum'
    >>> normalize_showdown_name("  @Red-2 ")
    'red2'
    """
    if not name:
        return ""
    trimmed = _DECORATION_RE.sub("", name.strip())
    folded = trimmed.casefold()
    ident = _NON_ALNUM_RE.sub("", folded)
    return ident or _WHITESPACE_RE.sub("", folded)


def names_match(a: str | None, b: str | None) -> bool:
    """Exact equality of two normalized names; empty names never match."""
    na = normalize_showdown_name(a)
    return bool(na) and na == normalize_showdown_name(b)


def normalize_species(species: str | None) -> str:
    """Trim and case-fold a species name.

    Used on both sides of every species comparison (instances, revealed sets,
    team rosters) so that "Flutter Mane" and " flutter mane" are one species.
    """
    return (species or "").strip().casefold()


def unique_species(names: list[str]) -> list[str]:
    """Trimmed species in first-seen order, dropping blanks and duplicates."""
    out: list[str] = []
    seen: set[str] = set()
    for raw in names:
        key = normalize_species(raw)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(raw.strip())
    return out
