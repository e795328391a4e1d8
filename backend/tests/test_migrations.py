from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text


def _make_alembic_config(db_url: str) -> Config:
    backend_dir = Path(__file__).resolve().parents[1]
    config = Config(str(backend_dir / "alembic.ini"))
    config.set_main_option("script_location", str(backend_dir / "alembic"))
    config.set_main_option("sqlalchemy.url", db_url)
    config.set_main_option("prepend_sys_path", str(backend_dir))
    return config


def _tour_columns(engine) -> set[str]:
    return {col["name"] for col in inspect(engine).get_columns("tours")}


def test_migrations_add_optional_columns_and_backfill(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'migration_test.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    config = _make_alembic_config(db_url)
    engine = create_engine(db_url, future=True)

    command.upgrade(config, "7d1e4a2b9c30")
    assert {"tours", "tours_i18n", "tour_completions", "tours_usergroups"} <= set(
        inspect(engine).get_table_names()
    )
    columns = _tour_columns(engine)
    assert "autoplay" not in columns
    assert "propagation_method" not in columns

    with engine.begin() as conn:
        for pk, translatable in ((1, True), (2, False)):
            conn.execute(
                text(
                    "INSERT INTO tours (id, tour_id, name, enabled, translatable, uid, created_at, updated_at) "
                    "VALUES (:id, :tour_id, 'Tour', 1, :translatable, :uid, '2024-01-01', '2024-01-01')"
                ),
                {"id": pk, "tour_id": f"tour_{pk}", "translatable": translatable, "uid": f"uid-{pk}"},
            )

    command.upgrade(config, "head")
    assert {"autoplay", "propagation_method"} <= _tour_columns(engine)
    assert "can_manage_tours" in {col["name"] for col in inspect(engine).get_columns("users")}
    with engine.connect() as conn:
        rows = conn.execute(text("SELECT id, propagation_method FROM tours ORDER BY id")).all()
    assert [tuple(row) for row in rows] == [(1, "all"), (2, "none")]

    command.downgrade(config, "base")
    assert "tours" not in inspect(engine).get_table_names()
    engine.dispose()
