"""
Shared fixtures for the ledger test suite.

Tests run against an in-memory SQLite database built from the ORM models.
A single StaticPool connection is shared by every session, with explicit
BEGIN so SAVEPOINT and ROLLBACK behave as on PostgreSQL.
"""

import sys
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import create_test_provider
from database.models import (
    Account,
    Alias,
    AliasType,
    AuthorityLevel,
    Concept,
    ConceptDomain,
    ConceptType,
    PackStatus,
    StandardPack,
)


@dataclass
class Lawbook:
    """Ids of the seeded packs, concepts and accounts."""
    tenant_id: uuid.UUID
    other_tenant_id: uuid.UUID
    packs: Dict[str, uuid.UUID] = field(default_factory=dict)
    concepts: Dict[str, uuid.UUID] = field(default_factory=dict)
    accounts: Dict[str, uuid.UUID] = field(default_factory=dict)


@pytest.fixture
def engine():
    """In-memory SQLite engine with savepoint support."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    yield engine
    engine.dispose()


@pytest.fixture
def provider(engine):
    """Initialized provider with all tables created."""
    provider = create_test_provider(engine=engine)
    provider.init()
    provider.create_tables()
    yield provider
    provider.close()


@pytest.fixture
def lawbook(provider) -> Lawbook:
    """Seed standard packs, concepts, aliases and accounts for two tenants."""
    book = Lawbook(tenant_id=uuid.uuid4(), other_tenant_id=uuid.uuid4())

    with provider.session_scope() as session:
        packs = {
            'IFRS_CORE': StandardPack(
                code='IFRS_CORE', name='IFRS Core', domain='FINANCE',
                authority_level=AuthorityLevel.LAW, version='2024', status=PackStatus.ACTIVE,
            ),
            'IAS_OLD': StandardPack(
                code='IAS_OLD', name='Legacy IAS', domain='FINANCE',
                authority_level=AuthorityLevel.LAW, version='2001', status=PackStatus.DEPRECATED,
            ),
            'AICPA_GUIDE': StandardPack(
                code='AICPA_GUIDE', name='AICPA Industry Guide', domain='FINANCE',
                authority_level=AuthorityLevel.INDUSTRY, version='2023', status=PackStatus.ACTIVE,
            ),
            'HR_POLICY': StandardPack(
                code='HR_POLICY', name='House HR Policy', domain='HR',
                authority_level=AuthorityLevel.INTERNAL, version='1.0', status=PackStatus.ACTIVE,
            ),
        }
        session.add_all(packs.values())
        session.flush()
        book.packs = {code: pack.id for code, pack in packs.items()}

        concepts = {
            'revenue': Concept(
                tenant_id=book.tenant_id, canonical_key='revenue', label='Revenue',
                domain=ConceptDomain.FINANCE, concept_type=ConceptType.FIELD,
                governance_tier=1, standard_pack_id_primary=packs['IFRS_CORE'].id,
                standard_ref='IFRS 15',
            ),
            'inventory_cost': Concept(
                tenant_id=book.tenant_id, canonical_key='inventory_cost', label='Inventory Cost',
                domain=ConceptDomain.FINANCE, concept_type=ConceptType.FIELD,
                governance_tier=1, standard_pack_id_primary=packs['AICPA_GUIDE'].id,
                standard_ref='AICPA 12.3',
            ),
            'office_supplies': Concept(
                tenant_id=book.tenant_id, canonical_key='office_supplies', label='Office Supplies',
                domain=ConceptDomain.FINANCE, concept_type=ConceptType.FIELD,
                governance_tier=4,
            ),
            'headcount': Concept(
                tenant_id=book.tenant_id, canonical_key='headcount', label='Headcount',
                domain=ConceptDomain.HR, concept_type=ConceptType.KPI,
                governance_tier=3, standard_pack_id_primary=packs['HR_POLICY'].id,
            ),
            'other_revenue': Concept(
                tenant_id=book.other_tenant_id, canonical_key='revenue', label='Revenue (other tenant)',
                domain=ConceptDomain.FINANCE, concept_type=ConceptType.FIELD,
                governance_tier=1, standard_pack_id_primary=packs['IFRS_CORE'].id,
            ),
        }
        session.add_all(concepts.values())
        session.flush()
        book.concepts = {key: concept.id for key, concept in concepts.items()}

        session.add_all([
            Alias(concept_id=concepts['revenue'].id, alias_value='Turnover',
                  alias_type=AliasType.LEGACY_SYSTEM, source_system='SAP'),
            Alias(concept_id=concepts['revenue'].id, alias_value='Sales',
                  alias_type=AliasType.LEXICAL, is_preferred_for_display=True),
            Alias(concept_id=concepts['revenue'].id, alias_value='Income',
                  alias_type=AliasType.LEXICAL),
            Alias(concept_id=concepts['other_revenue'].id, alias_value='Takings',
                  alias_type=AliasType.LEXICAL),
        ])

        accounts = {
            '1000': Account(tenant_id=book.tenant_id, code='1000', name='Cash'),
            '1300': Account(tenant_id=book.tenant_id, code='1300', name='Inventory',
                            mdm_concept_id=concepts['inventory_cost'].id, governance_tier=1),
            '2000': Account(tenant_id=book.tenant_id, code='2000', name='Accounts Payable',
                            governance_tier=1),
            '3000': Account(tenant_id=book.tenant_id, code='3000', name='Retained Earnings',
                            mdm_concept_id=uuid.uuid4(), governance_tier=2),
            '4000': Account(tenant_id=book.tenant_id, code='4000', name='Revenue',
                            mdm_concept_id=concepts['revenue'].id, governance_tier=1),
            '5000': Account(tenant_id=book.tenant_id, code='5000', name='Office Supplies',
                            mdm_concept_id=concepts['office_supplies'].id, governance_tier=4),
            '9000': Account(tenant_id=book.other_tenant_id, code='9000', name='Foreign Cash',
                            governance_tier=3),
        }
        session.add_all(accounts.values())
        session.flush()
        book.accounts = {code: account.id for code, account in accounts.items()}

    return book


@pytest.fixture
def session(provider, lawbook):
    """Session over the seeded database; commits on exit."""
    with provider.session_scope() as session:
        yield session
