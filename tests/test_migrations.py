# tests/test_migrations.py

"""The Alembic history must build the same schema as the ORM models."""

from pathlib import Path

from alembic import command
from alembic.config import Config
from replaylink.db.models import Base
from sqlalchemy import create_engine, inspect

ROOT = Path(__file__).resolve().parents[1]


def _alembic_config(db_path: Path) -> Config:
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "src" / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")
    # Leave pytest's logging setup alone
    config.attributes["configure_logger"] = False
    return config


def test_upgrade_head_matches_models(tmp_path: Path):
    db_path = tmp_path / "migrated.db"

    command.upgrade(_alembic_config(db_path), "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names()) - {"alembic_version"}
        assert tables == set(Base.metadata.tables)

        for name, table in Base.metadata.tables.items():
            migrated = {c["name"] for c in inspector.get_columns(name)}
            assert migrated == {c.name for c in table.columns}, name
    finally:
        engine.dispose()


def test_downgrade_base_drops_everything(tmp_path: Path):
    db_path = tmp_path / "migrated.db"
    config = _alembic_config(db_path)

    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
