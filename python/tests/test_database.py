"""
Unit tests for database models, connection management and monitoring.

Uses an in-memory SQLite database (see conftest.py) built from the models.
"""

import uuid
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from database.connection import DatabaseSettings, UnitOfWork, get_pool_settings
from database.models import (
    Account,
    ActorType,
    AuthorityLevel,
    Base,
    Concept,
    ConceptDomain,
    JournalEntryRecord,
    MatchStrategy,
    PackStatus,
    StandardPack,
)
from database.monitoring import (
    check_health,
    get_db_metrics,
    query_timer,
    reset_metrics,
    timed_query,
)


class TestEnums:
    """Tests for enum values stored in the database."""

    def test_authority_levels(self):
        """Authority levels are LAW, INDUSTRY and INTERNAL."""
        assert [a.value for a in AuthorityLevel] == ["LAW", "INDUSTRY", "INTERNAL"]

    def test_pack_status(self):
        """Packs are either ACTIVE or DEPRECATED."""
        assert PackStatus.ACTIVE.value == "ACTIVE"
        assert PackStatus.DEPRECATED.value == "DEPRECATED"

    def test_match_strategy_values_are_lowercase(self):
        """Usage log stores the strategy in lower case."""
        assert MatchStrategy.CANONICAL_KEY.value == "canonical_key"
        assert MatchStrategy.ALIAS.value == "alias"

    def test_enums_are_strings(self):
        """String enums compare equal to their values."""
        assert ActorType.AGENT == "AGENT"
        assert ConceptDomain.FINANCE == "FINANCE"


class TestSchema:
    """Tests for the table layout."""

    def test_all_tables_declared(self):
        """Every ledger and lawbook table is part of the metadata."""
        expected = {
            "mdm_standard_pack", "mdm_concept", "mdm_alias", "accounts",
            "journal_entries", "journal_lines", "mdm_usage_log",
        }
        assert expected <= set(Base.metadata.tables)

    def test_snapshot_column_not_nullable(self):
        """Every persisted line carries a snapshot."""
        column = Base.metadata.tables["journal_lines"].c.mdm_snapshot
        assert column.nullable is False

    def test_concept_key_unique_per_tenant(self, provider):
        """The same canonical key cannot be defined twice for one tenant."""
        tenant_id = uuid.uuid4()
        with pytest.raises(IntegrityError):
            with provider.session_scope() as session:
                for _ in range(2):
                    session.add(Concept(
                        tenant_id=tenant_id, canonical_key="revenue", label="Revenue",
                        domain=ConceptDomain.FINANCE, governance_tier=3,
                    ))
                    session.flush()

    def test_concept_key_shared_across_tenants(self, provider):
        """Different tenants may use the same canonical key."""
        with provider.session_scope() as session:
            for _ in range(2):
                session.add(Concept(
                    tenant_id=uuid.uuid4(), canonical_key="revenue", label="Revenue",
                    domain=ConceptDomain.FINANCE, governance_tier=3,
                ))
            session.flush()
            count = session.execute(select(func.count()).select_from(Concept)).scalar_one()
        assert count == 2

    def test_tier_range_enforced(self, provider):
        """Governance tier must lie between 1 and 5."""
        with pytest.raises(IntegrityError):
            with provider.session_scope() as session:
                session.add(Concept(
                    tenant_id=uuid.uuid4(), canonical_key="bad", label="Bad",
                    domain=ConceptDomain.OTHER, governance_tier=6,
                ))
                session.flush()

    def test_pack_to_dict(self, provider):
        """Pack serialization uses enum values."""
        with provider.session_scope() as session:
            pack = StandardPack(
                code="IFRS_CORE", name="IFRS Core", domain="FINANCE",
                authority_level=AuthorityLevel.LAW,
            )
            session.add(pack)
            session.flush()
            data = pack.to_dict()
        assert data["authority_level"] == "LAW"
        assert data["status"] == "ACTIVE"
        assert data["version"] == "1.0"


class TestConnection:
    """Tests for settings, the unit of work and the provider."""

    def test_settings_from_env(self, monkeypatch):
        """Environment variables override the defaults."""
        monkeypatch.setenv("DB_HOST", "db.internal")
        monkeypatch.setenv("DB_PORT", "6543")
        monkeypatch.delenv("DATABASE_URL", raising=False)
        settings = DatabaseSettings.from_env()
        assert settings.host == "db.internal"
        assert settings.port == 6543
        assert settings.get_url().startswith("postgresql+psycopg2://")

    def test_database_url_wins(self, monkeypatch):
        """A full DATABASE_URL takes precedence."""
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        assert DatabaseSettings().get_url() == "sqlite://"

    def test_pool_settings(self):
        """Pool settings always enable pre-ping."""
        settings = DatabaseSettings(pool_size=7)
        pool = get_pool_settings(settings)
        assert pool["pool_size"] == 7
        assert pool["pool_pre_ping"] is True

    def test_unit_of_work_requires_context(self, provider):
        """The session is only available inside the with block."""
        uow = UnitOfWork(provider.session_factory)
        with pytest.raises(RuntimeError):
            uow.session

    def test_unit_of_work_rolls_back_without_commit(self, provider):
        """Leaving the block without commit() discards the writes."""
        tenant_id = uuid.uuid4()
        with provider.get_unit_of_work() as uow:
            uow.session.add(Account(tenant_id=tenant_id, code="1000", name="Cash"))
            uow.session.flush()

        with provider.session_scope() as session:
            count = session.execute(
                select(func.count()).select_from(Account).where(Account.tenant_id == tenant_id)
            ).scalar_one()
        assert count == 0

    def test_unit_of_work_commit(self, provider):
        """Committed writes survive the block."""
        tenant_id = uuid.uuid4()
        with provider.get_unit_of_work() as uow:
            uow.session.add(Account(tenant_id=tenant_id, code="1000", name="Cash"))
            uow.commit()

        with provider.session_scope() as session:
            count = session.execute(
                select(func.count()).select_from(Account).where(Account.tenant_id == tenant_id)
            ).scalar_one()
        assert count == 1

    def test_session_scope_rolls_back_on_error(self, provider):
        """An exception inside session_scope discards the writes."""
        tenant_id = uuid.uuid4()
        with pytest.raises(ValueError):
            with provider.session_scope() as session:
                session.add(JournalEntryRecord(
                    id=uuid.uuid4(), tenant_id=tenant_id, journal_number="JE-1",
                    posting_date=date(2025, 1, 31),
                ))
                session.flush()
                raise ValueError("boom")

        with provider.session_scope() as session:
            count = session.execute(select(func.count()).select_from(JournalEntryRecord)).scalar_one()
        assert count == 0

    def test_health_check(self, provider):
        """Health check succeeds against the test database."""
        assert provider.health_check() is True

    def test_engine_requires_init(self):
        """Accessing the engine before init() is an error."""
        from database.connection import DatabaseSessionProvider
        provider = DatabaseSessionProvider(settings=DatabaseSettings())
        with pytest.raises(RuntimeError):
            provider.engine


class TestMonitoring:
    """Tests for query timing and health metrics."""

    def setup_method(self):
        reset_metrics()

    def test_query_timer_records_stats(self):
        """Timed blocks are counted per operation."""
        with query_timer("unit.test"):
            pass
        stats = get_db_metrics("unit.test")
        assert stats["count"] == 1
        assert stats["errors"] == 0

    def test_query_timer_records_errors(self):
        """Exceptions are re-raised and counted as errors."""
        with pytest.raises(KeyError):
            with query_timer("unit.error"):
                raise KeyError("missing")
        assert get_db_metrics("unit.error")["errors"] == 1

    def test_timed_query_decorator(self):
        """The decorator times every call and keeps the return value."""
        @timed_query("unit.decorated")
        def compute(x):
            return x * 2

        assert compute(21) == 42
        assert compute(1) == 2
        assert get_db_metrics("unit.decorated")["count"] == 2

    def test_check_health(self, provider):
        """check_health reports a healthy database with latency."""
        status = check_health(provider.engine, provider.session_factory)
        assert status.healthy is True
        assert status.latency_ms >= 0
        assert status.to_dict()["error"] is None
