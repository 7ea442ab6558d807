from pathlib import Path

import sqlalchemy as sa
from alembic import command
from alembic.config import Config

import assocportal.config as app_config
from assocportal.models.models import Association, AuditLog

ALEMBIC_INI = Path(__file__).resolve().parents[1] / "assocportal" / "alembic.ini"


def _alembic_config() -> Config:
    config = Config(str(ALEMBIC_INI))
    config.attributes["configure_logger"] = False
    return config


def test_upgrade_head_creates_every_model_table(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'migrations.db'}"
    monkeypatch.setattr(app_config.settings, "database_url", db_url, raising=False)

    command.upgrade(_alembic_config(), "head")

    engine = sa.create_engine(db_url)
    try:
        tables = set(sa.inspect(engine).get_table_names())
        assert set(app_config.Base.metadata.tables) <= tables
        audit_columns = {column["name"] for column in sa.inspect(engine).get_columns("audit_logs")}
        assert "metadata" in audit_columns

        with sa.orm.Session(engine) as session:
            session.query(Association).all()
            session.query(AuditLog).all()
    finally:
        engine.dispose()


def test_downgrade_base_drops_tables(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'roundtrip.db'}"
    monkeypatch.setattr(app_config.settings, "database_url", db_url, raising=False)
    config = _alembic_config()

    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = sa.create_engine(db_url)
    try:
        assert set(sa.inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
