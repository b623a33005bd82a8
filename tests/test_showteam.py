# tests/test_showteam.py

"""Unit tests for the packed team-reveal parser."""

from replaylink.protocol.showteam import (
    parse_moves,
    parse_showteam_blob,
    parse_showteam_entry,
    parse_tera_type,
)

from samples import SHOWTEAM_P1


def test_parse_full_blob():
    sets = parse_showteam_blob(SHOWTEAM_P1)

    assert [s.species for s in sets] == [
        "Incineroar",
        "Flutter Mane",
        "Rillaboom",
        "Amoonguss",
    ]
    flutter = sets[1]
    assert flutter.item == "Booster Energy"
    assert flutter.ability == "Protosynthesis"
    assert flutter.moves == ["Moonblast", "Shadow Ball", "Protect", "Icy Wind"]
    assert flutter.level == 50
    assert flutter.tera_type == "Fairy"
    assert flutter.nickname is None
    assert flutter.gender is None


def test_gender_and_shiny_fields():
    sets = parse_showteam_blob(SHOWTEAM_P1)
    rillaboom = sets[2]
    assert rillaboom.gender == "M"
    assert rillaboom.shiny is True
    assert rillaboom.tera_type == "Fire"
    assert sets[3].gender == "F"
    assert sets[3].shiny is False


def test_nickname_with_explicit_species():
    entry = "Bruno|Incineroar|Sitrus Berry|Intimidate|Fake Out|||M|||50|"
    parsed = parse_showteam_entry(entry)
    assert parsed is not None
    assert parsed.species == "Incineroar"
    assert parsed.nickname == "Bruno"
    assert parsed.raw == entry


def test_truncated_entry_is_tolerated():
    parsed = parse_showteam_entry("Pelipper||Damp Rock")
    assert parsed is not None
    assert parsed.species == "Pelipper"
    assert parsed.item == "Damp Rock"
    assert parsed.moves == []
    assert parsed.level is None
    assert parsed.tera_type is None


def test_entry_without_species_is_skipped():
    assert parse_showteam_entry("||Leftovers|") is None
    assert parse_showteam_blob("]]  ]") == []
    assert parse_showteam_blob(None) == []


def test_moves_and_tera_helpers():
    assert parse_moves("Protect, ,Tailwind,") == ["Protect", "Tailwind"]
    assert parse_moves(None) == []
    assert parse_tera_type(",,,,,Grass") == "Grass"
    assert parse_tera_type("Grass") is None
    assert parse_tera_type(",,,,,") is None


def test_non_numeric_level_is_ignored():
    parsed = parse_showteam_entry("Chi-Yu||Choice Specs|Beads of Ruin|Overheat||||||x|")
    assert parsed is not None
    assert parsed.level is None
