"""The Alembic revision must build the same schema as the ORM models."""

import importlib.util
from pathlib import Path

import pytest
from alembic.runtime.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from app.database import Base
from app import models  # noqa: F401

VERSIONS_DIR = Path(__file__).resolve().parent.parent / "app" / "migrations" / "versions"


def _load_revision(filename):
    spec = importlib.util.spec_from_file_location(filename[:-3], VERSIONS_DIR / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def migrated_engine():
    engine = create_engine("sqlite://")
    revision = _load_revision("001_rental_billing_tables.py")
    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            revision.upgrade()
    yield engine, revision
    engine.dispose()


def test_revision_chain_root():
    revision = _load_revision("001_rental_billing_tables.py")
    assert revision.revision == "001_rental_billing"
    assert revision.down_revision is None


def test_upgrade_matches_models(migrated_engine):
    engine, _ = migrated_engine
    inspector = inspect(engine)
    assert set(inspector.get_table_names()) == set(Base.metadata.tables)

    for name, table in Base.metadata.tables.items():
        migrated = {col["name"] for col in inspector.get_columns(name)}
        assert migrated == {col.name for col in table.columns}, name


def test_unique_constraints(migrated_engine):
    engine, _ = migrated_engine
    inspector = inspect(engine)
    names = {
        uc["name"]
        for table in ("rental_leases", "rental_installments", "rental_payments")
        for uc in inspector.get_unique_constraints(table)
    }
    assert {
        "uq_rental_lease_number",
        "uq_rental_installment_period",
        "uq_rental_payment_idempotency",
    } <= names


def test_downgrade_drops_everything(migrated_engine):
    engine, revision = migrated_engine
    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            revision.downgrade()
    assert inspect(engine).get_table_names() == []
