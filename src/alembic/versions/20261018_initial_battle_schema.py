"""Initial battle, team-link and battle-set schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

Creates:
- battles: one row per replay id, header upserted on every ingestion
- battle_sides / battle_preview_pokemon / battle_revealed_sets / battle_events:
  rows rebuilt from the transcript on every ingestion
- battle_pokemon_instances / battle_brought_pokemon: derived from events
- battle_analysis_cache: cached analyses, dropped on re-ingestion
- teams / team_versions / team_version_slots: rosters written by team import
- battle_team_links: user-side links (auto or user)
- battle_sets / battle_set_games: replays imported together
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261018_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SIDE_CHECK = "side IN ('p1', 'p2')"


def _battle_fk() -> sa.Column:
    return sa.Column(
        "battle_id",
        sa.Integer(),
        sa.ForeignKey("battles.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "battles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("replay_id", sa.String(), nullable=False, unique=True),
        sa.Column("replay_url", sa.String(), nullable=True),
        sa.Column("replay_json_url", sa.String(), nullable=True),
        sa.Column("format_id", sa.String(), nullable=True),
        sa.Column("format_name", sa.String(), nullable=True),
        sa.Column("gen", sa.Integer(), nullable=True),
        sa.Column("game_type", sa.String(), nullable=True),
        sa.Column("upload_time", sa.DateTime(), nullable=True),
        sa.Column("played_at", sa.DateTime(), nullable=True),
        sa.Column("views", sa.Integer(), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("is_private", sa.Boolean(), nullable=False),
        sa.Column("is_rated", sa.Boolean(), nullable=False),
        sa.Column("winner_name", sa.String(), nullable=True),
        sa.Column("winner_side", sa.String(2), nullable=True),
        sa.Column("winner_status", sa.String(), nullable=False),
        sa.Column("raw_log", sa.Text(), nullable=False),
        sa.Column("raw_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_battles_format_id", "battles", ["format_id"])
    op.create_index("ix_battles_played_at", "battles", ["played_at"])

    op.create_table(
        "battle_sides",
        sa.Column("id", sa.Integer(), primary_key=True),
        _battle_fk(),
        sa.Column("side", sa.String(2), nullable=False),
        sa.Column("player_name", sa.String(), nullable=False),
        sa.Column("avatar", sa.String(), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("is_user", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("battle_id", "side", name="_battle_side_uc"),
        sa.CheckConstraint(SIDE_CHECK, name="ck_battle_sides_side"),
    )
    op.create_index("ix_battle_sides_battle_id", "battle_sides", ["battle_id"])

    op.create_table(
        "battle_preview_pokemon",
        sa.Column("id", sa.Integer(), primary_key=True),
        _battle_fk(),
        sa.Column("side", sa.String(2), nullable=False),
        sa.Column("slot_index", sa.Integer(), nullable=False),
        sa.Column("species_name", sa.String(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=True),
        sa.Column("gender", sa.String(1), nullable=True),
        sa.Column("shiny", sa.Boolean(), nullable=False),
        sa.Column("raw_text", sa.String(), nullable=True),
        sa.UniqueConstraint("battle_id", "side", "slot_index", name="_preview_slot_uc"),
        sa.CheckConstraint(SIDE_CHECK, name="ck_battle_preview_side"),
    )
    op.create_index(
        "ix_battle_preview_pokemon_battle_id", "battle_preview_pokemon", ["battle_id"]
    )

    op.create_table(
        "battle_revealed_sets",
        sa.Column("id", sa.Integer(), primary_key=True),
        _battle_fk(),
        sa.Column("side", sa.String(2), nullable=False),
        sa.Column("species_name", sa.String(), nullable=False),
        sa.Column("species_key", sa.String(), nullable=False),
        sa.Column("nickname", sa.String(), nullable=True),
        sa.Column("item_name", sa.String(), nullable=True),
        sa.Column("ability_name", sa.String(), nullable=True),
        sa.Column("tera_type", sa.String(), nullable=True),
        sa.Column("level", sa.Integer(), nullable=True),
        sa.Column("gender", sa.String(1), nullable=True),
        sa.Column("shiny", sa.Boolean(), nullable=False),
        sa.Column("moves", sa.JSON(), nullable=True),
        sa.Column("raw_fragment", sa.Text(), nullable=True),
        sa.UniqueConstraint(
            "battle_id", "side", "species_key", name="_revealed_set_uc"
        ),
        sa.CheckConstraint(SIDE_CHECK, name="ck_battle_revealed_side"),
    )
    op.create_index(
        "ix_battle_revealed_sets_battle_id", "battle_revealed_sets", ["battle_id"]
    )

    op.create_table(
        "battle_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        _battle_fk(),
        sa.Column("event_index", sa.Integer(), nullable=False),
        sa.Column("turn_num", sa.Integer(), nullable=True),
        sa.Column("t_unix", sa.Integer(), nullable=True),
        sa.Column("line_type", sa.String(), nullable=False),
        sa.Column("raw_line", sa.Text(), nullable=False),
        sa.Column("move_name", sa.String(), nullable=True),
        sa.UniqueConstraint("battle_id", "event_index", name="_battle_event_index_uc"),
    )
    op.create_index("ix_battle_events_battle_id", "battle_events", ["battle_id"])
    op.create_index("ix_battle_events_line_type", "battle_events", ["line_type"])

    op.create_table(
        "battle_pokemon_instances",
        sa.Column("id", sa.Integer(), primary_key=True),
        _battle_fk(),
        sa.Column("side", sa.String(2), nullable=False),
        sa.Column("species_name", sa.String(), nullable=False),
        sa.Column("species_key", sa.String(), nullable=False),
        sa.UniqueConstraint("battle_id", "side", "species_key", name="_instance_uc"),
        sa.CheckConstraint(SIDE_CHECK, name="ck_battle_instances_side"),
    )
    op.create_index(
        "ix_battle_pokemon_instances_battle_id",
        "battle_pokemon_instances",
        ["battle_id"],
    )

    op.create_table(
        "battle_brought_pokemon",
        sa.Column("id", sa.Integer(), primary_key=True),
        _battle_fk(),
        sa.Column("side", sa.String(2), nullable=False),
        sa.Column(
            "pokemon_instance_id",
            sa.Integer(),
            sa.ForeignKey("battle_pokemon_instances.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("first_seen_event_index", sa.Integer(), nullable=False),
        sa.Column("is_lead", sa.Integer(), nullable=False),
        sa.Column("fainted", sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            "battle_id", "side", "pokemon_instance_id", name="_brought_instance_uc"
        ),
        sa.CheckConstraint(SIDE_CHECK, name="ck_battle_brought_side"),
    )
    op.create_index(
        "ix_battle_brought_pokemon_battle_id", "battle_brought_pokemon", ["battle_id"]
    )
    op.create_index(
        "ix_battle_brought_pokemon_pokemon_instance_id",
        "battle_brought_pokemon",
        ["pokemon_instance_id"],
    )

    op.create_table(
        "battle_analysis_cache",
        sa.Column("id", sa.Integer(), primary_key=True),
        _battle_fk(),
        sa.Column("analysis_kind", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("battle_id", "analysis_kind", name="_analysis_kind_uc"),
    )
    op.create_index(
        "ix_battle_analysis_cache_battle_id", "battle_analysis_cache", ["battle_id"]
    )

    # Rosters
    op.create_table(
        "teams",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("format_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_teams_format_id", "teams", ["format_id"])

    op.create_table(
        "team_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "team_id",
            sa.Integer(),
            sa.ForeignKey("teams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("version_num", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("team_id", "version_num", name="_team_version_num_uc"),
    )
    op.create_index("ix_team_versions_team_id", "team_versions", ["team_id"])

    op.create_table(
        "team_version_slots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "team_version_id",
            sa.Integer(),
            sa.ForeignKey("team_versions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slot_index", sa.Integer(), nullable=False),
        sa.Column("species_name", sa.String(), nullable=False),
        sa.UniqueConstraint("team_version_id", "slot_index", name="_team_slot_uc"),
    )
    op.create_index(
        "ix_team_version_slots_team_version_id",
        "team_version_slots",
        ["team_version_id"],
    )

    # Links and sets
    op.create_table(
        "battle_team_links",
        sa.Column("id", sa.Integer(), primary_key=True),
        _battle_fk(),
        sa.Column("side", sa.String(2), nullable=False),
        sa.Column(
            "team_version_id",
            sa.Integer(),
            sa.ForeignKey("team_versions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("match_confidence", sa.Float(), nullable=True),
        sa.Column("match_method", sa.String(), nullable=True),
        sa.Column("matched_by", sa.String(), nullable=False),
        sa.Column("matched_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("battle_id", "side", name="_battle_link_side_uc"),
        sa.CheckConstraint(SIDE_CHECK, name="ck_battle_links_side"),
        sa.CheckConstraint(
            "matched_by IN ('auto', 'user')", name="ck_links_matched_by"
        ),
    )
    op.create_index(
        "ix_battle_team_links_battle_id", "battle_team_links", ["battle_id"]
    )
    op.create_index(
        "ix_battle_team_links_team_version_id", "battle_team_links", ["team_version_id"]
    )

    op.create_table(
        "battle_sets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("set_key", sa.String(), nullable=False, unique=True),
        sa.Column("format_id", sa.String(), nullable=True),
        sa.Column("format_name", sa.String(), nullable=True),
        sa.Column("player1_name", sa.String(), nullable=True),
        sa.Column("player2_name", sa.String(), nullable=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "battle_set_games",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "set_id",
            sa.Integer(),
            sa.ForeignKey("battle_sets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _battle_fk(),
        sa.Column("game_number", sa.Integer(), nullable=False),
        sa.Column("total_games", sa.Integer(), nullable=False),
        sa.UniqueConstraint("set_id", "battle_id", name="_set_battle_uc"),
    )
    op.create_index("ix_battle_set_games_set_id", "battle_set_games", ["set_id"])
    op.create_index("ix_battle_set_games_battle_id", "battle_set_games", ["battle_id"])


def downgrade() -> None:
    """Drop all tables, dependents first."""
    for table in (
        "battle_set_games",
        "battle_sets",
        "battle_team_links",
        "team_version_slots",
        "team_versions",
        "teams",
        "battle_analysis_cache",
        "battle_brought_pokemon",
        "battle_pokemon_instances",
        "battle_events",
        "battle_revealed_sets",
        "battle_preview_pokemon",
        "battle_sides",
        "battles",
    ):
        op.drop_table(table)
