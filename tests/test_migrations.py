import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from waitlist.core.database import Base
from waitlist import models  # noqa: F401

VERSIONS = Path(__file__).resolve().parent.parent / "alembic" / "versions"


def _load_revision(filename):
    module_spec = importlib.util.spec_from_file_location(filename[:-3], VERSIONS / filename)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def _schema(engine):
    inspector = inspect(engine)
    return {
        "columns": sorted(c["name"] for c in inspector.get_columns("waitlist_entries")),
        "indexes": sorted(
            (ix["name"], tuple(ix["column_names"]), bool(ix["unique"]))
            for ix in inspector.get_indexes("waitlist_entries")
        ),
        "unique_constraints": sorted(
            tuple(uc["column_names"]) for uc in inspector.get_unique_constraints("waitlist_entries")
        ),
    }


def test_initial_migration_builds_the_model_schema():
    migrated = create_engine("sqlite://")
    with migrated.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            _load_revision("20261018_01_create_waitlist_entries.py").upgrade()

    modeled = create_engine("sqlite://")
    Base.metadata.create_all(bind=modeled)

    schema = _schema(migrated)
    assert schema == _schema(modeled)
    assert ("ix_waitlist_entries_email", ("email",), True) in schema["indexes"]
    assert ("ix_waitlist_entries_referral_code", ("referral_code",), True) in schema["indexes"]
