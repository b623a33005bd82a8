# tests/samples.py

"""Replay logs and payload builders shared by the tests."""

OPERATOR = "Ash Ketchum"
FORMAT_ID = "gen9vgc2024regg"
FORMAT_NAME = "[Gen 9] VGC 2024 Reg G"

USER_ROSTER = [
    "Incineroar",
    "Amoonguss",
    "Rillaboom",
    "Urshifu-Rapid-Strike",
    "Flutter Mane",
    "Landorus-Therian",
]
OPPONENT_ROSTER = [
    "Calyrex-Shadow",
    "Pelipper",
    "Archaludon",
    "Farigiraf",
    "Ogerpon-Hearthflame",
    "Chi-Yu",
]

SHOWTEAM_P1 = (
    "Incineroar||Safety Goggles|Intimidate|Fake Out,Flare Blitz,Knock Off,Parting Shot"
    "|Careful|252,4,,,252,||,,,,,||50|,,,,,Ghost]"
    "Flutter Mane||Booster Energy|Protosynthesis|Moonblast,Shadow Ball,Protect,Icy Wind"
    "|Timid|4,,,252,,252||,0,,,,||50|,,,,,Fairy]"
    "Rillaboom||Assault Vest|Grassy Surge|Fake Out,Wood Hammer,Grassy Glide,U-turn"
    "|Adamant|252,252,,,4,|M||S|50|,,,,,Fire]"
    "Amoonguss||Rocky Helmet|Regenerator|Spore,Rage Powder,Pollen Puff,Protect"
    "|Relaxed|252,,156,,100,|F|,0,,,,0||50|,,,,,Water"
)

# Doubles game: p1 (the operator) brings Incineroar, Flutter Mane, Rillaboom
# and Amoonguss. Flutter Mane faints on turn 1; Calyrex faints on turn 2.
VGC_LOG = "\n".join(
    [
        "|j|☆Ash Ketchum",
        "|j|☆Gary Oak",
        "|t:|1718000000",
        "|gametype|doubles",
        "|player|p1|Ash Ketchum|ethan|1520",
        "|player|p2|Gary Oak|blue|1480",
        "|teamsize|p1|6",
        "|teamsize|p2|6",
        "|gen|9",
        f"|tier|{FORMAT_NAME}",
        "|rated|",
        "|clearpoke",
        *[f"|poke|p1|{species}, L50|" for species in USER_ROSTER],
        *[f"|poke|p2|{species}, L50|" for species in OPPONENT_ROSTER],
        "|teampreview|4",
        f"|showteam|p1|{SHOWTEAM_P1}",
        "|",
        "|t:|1718000030",
        "|start",
        "|switch|p1a: Incineroar|Incineroar, L50, M|100/100",
        "|switch|p1b: Flutter Mane|Flutter Mane, L50|100/100",
        "|switch|p2a: Calyrex|Calyrex-Shadow, L50|100/100",
        "|switch|p2b: Pelipper|Pelipper, L50, F|100/100",
        "|turn|1",
        "|",
        "|t:|1718000060",
        "|move|p1a: Incineroar|Fake Out|p2a: Calyrex",
        "|move|p2a: Calyrex|Astral Barrage|p1b: Flutter Mane|[spread] p1b",
        "|faint|p1b: Flutter Mane",
        "|switch|p1b: Rillaboom|Rillaboom, L50, M|100/100",
        "|turn|2",
        "|",
        "|t:|1718000090",
        "|switch|p1a: Amoonguss|Amoonguss, L50, F|100/100",
        "|move|p1b: Rillaboom|Wood Hammer|p2a: Calyrex",
        "|faint|p2a: Calyrex",
        "|win|Ash Ketchum",
    ]
)


def preview_only_log(user_species: list[str], player: str = OPERATOR) -> str:
    """A log that ends at team preview: no switches, no reveal."""
    return "\n".join(
        [
            "|t:|1718100000",
            f"|player|p1|{player}|ethan|",
            "|player|p2|Misty|misty|",
            *[f"|poke|p1|{species}, L50|" for species in user_species],
            "|teampreview|4",
        ]
    )


def replay_payload(replay_id: str, log: str = VGC_LOG, **overrides: object) -> dict:
    """A replay document in the shape the replay source serves."""
    payload: dict = {
        "id": replay_id,
        "format": FORMAT_NAME,
        "formatid": FORMAT_ID,
        "players": [OPERATOR, "Gary Oak"],
        "log": log,
        "uploadtime": 1718000500,
        "views": 12,
        "rating": 1500,
        "private": False,
    }
    payload.update(overrides)
    return payload
