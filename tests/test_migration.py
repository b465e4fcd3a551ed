import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

MIGRATION = Path(__file__).resolve().parent.parent / "alembic" / "versions" / "001_lineage_schema.py"


def _load_migration():
    spec = importlib.util.spec_from_file_location("lineage_schema_migration", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def migrated_engine():
    engine = create_engine("sqlite://")
    migration = _load_migration()
    with engine.begin() as conn:
        ctx = MigrationContext.configure(conn)
        with Operations.context(ctx):
            migration.upgrade()
    yield engine
    engine.dispose()


def test_upgrade_creates_lineage_tables(migrated_engine):
    tables = set(inspect(migrated_engine).get_table_names())
    assert {"master_recipes", "recipe_versions", "recipe_source_links", "cook_sessions"} <= tables


def test_version_numbers_unique_per_recipe(migrated_engine):
    insert = text(
        "INSERT INTO recipe_versions (id, master_recipe_id, version_number, ingredients, steps, created_from_mode) "
        "VALUES (:id, 'r1', :n, '[]', '[]', 'edit')"
    )
    with migrated_engine.begin() as conn:
        conn.execute(text("INSERT INTO master_recipes (id, owner_id, title) VALUES ('r1', 'local', 'Soup')"))
        conn.execute(insert, {"id": "v1", "n": 1})
        conn.execute(insert, {"id": "v2", "n": 2})

    with pytest.raises(IntegrityError):
        with migrated_engine.begin() as conn:
            conn.execute(insert, {"id": "v3", "n": 2})
