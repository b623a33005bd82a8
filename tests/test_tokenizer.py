# tests/test_tokenizer.py

"""Unit tests for line tokenizing and name normalization."""

import pytest
from replaylink.protocol.names import (
    names_match,
    normalize_showdown_name,
    normalize_species,
    unique_species,
)
from replaylink.protocol.tokenizer import (
    parse_int,
    split_log_lines,
    token_at,
    tokenize_line,
)


def test_tokenize_drops_leading_empty_token():
    tokens = tokenize_line("|switch|p1a: Amoonguss|Amoonguss, L50, F|100/100")
    assert tokens == ["switch", "p1a: Amoonguss", "Amoonguss, L50, F", "100/100"]


def test_tokenize_line_without_leading_delimiter():
    assert tokenize_line("turn|3") == ["turn", "3"]


def test_tokenize_empty_and_none():
    assert tokenize_line("") == []
    assert tokenize_line(None) == []


def test_tokenize_keeps_inner_and_trailing_empty_tokens():
    assert tokenize_line("|poke|p1|Incineroar, L50|") == [
        "poke",
        "p1",
        "Incineroar, L50",
        "",
    ]
    assert tokenize_line("|") == [""]


def test_split_log_lines_strips_and_drops_blanks():
    raw = "|j|Ash  \n\n|turn|1\r\n   \n|win|Ash"
    assert split_log_lines(raw) == ["|j|Ash", "|turn|1", "|win|Ash"]
    assert split_log_lines("") == []
    assert split_log_lines(None) == []


def test_token_at_out_of_range():
    tokens = ["move", "p1a: Incineroar"]
    assert token_at(tokens, 1) == "p1a: Incineroar"
    assert token_at(tokens, 2) is None
    assert token_at(tokens, -1) is None


def test_normalize_showdown_name():
    assert normalize_showdown_name("☆Ash Ketchum") == "ashketchum"
    assert normalize_showdown_name("  @Red-2 ") == "red2"
    assert normalize_showdown_name("") == ""
    assert normalize_showdown_name(None) == ""
    # Non-ASCII names still normalize to something comparable
    assert normalize_showdown_name("サトシ") == "サトシ"


def test_names_match():
    assert names_match("Ash Ketchum", "☆ash_ketchum")
    assert not names_match("Ash", "Ashley")
    assert not names_match("", "")
    assert not names_match(None, "Ash")


def test_species_normalization_and_unique():
    assert normalize_species("  Flutter Mane ") == "flutter mane"
    assert unique_species(["Flutter Mane", " flutter mane", "", "Incineroar"]) == [
        "Flutter Mane",
        "Incineroar",
    ]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1718000060", 1718000060),
        (" 3.0 ", 3),
        ("-7", -7),
        ("9223372036854775807", 2**63 - 1),
        ("9223372036854775808", None),
        ("99999999999999999999", None),
        ("1e30", None),
        ("-1e19", None),
        ("inf", None),
        ("nan", None),
        ("", None),
        (None, None),
        (2**64, None),
        (1500, 1500),
    ],
)
def test_parse_int_bounds(raw, expected):
    assert parse_int(raw) == expected
