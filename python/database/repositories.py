"""
Repository Pattern for PostingGuard Database Operations

Provides clean data access layer with proper typing and error handling.
Tenant filtering lives in TenantScopedRepository so no ledger query can
be issued without the tenant predicate.
"""

import logging
from typing import List, Optional, Dict, Any, Iterable, Tuple
from uuid import UUID
from datetime import date
from decimal import Decimal

from sqlalchemy import select, func, Select
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from database.models import (
    StandardPack,
    Concept,
    Alias,
    Account,
    JournalEntryRecord,
    JournalLineRecord,
    UsageLog,
    JournalStatus,
    MatchStrategy,
    ActorType,
)
from database.monitoring import timed_query

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class EntityNotFoundError(RepositoryError):
    """Raised when an entity is not found."""
    pass


class DuplicateEntityError(RepositoryError):
    """Raised when attempting to create a duplicate entity."""
    pass


class TenantScopedRepository:
    """
    Base class for repositories whose rows belong to a tenant.

    Every query built by a subclass goes through _scoped(), which appends
    the tenant predicate for the given model.
    """

    def __init__(self, session: Session, tenant_id: UUID):
        if tenant_id is None:
            raise ValueError("tenant_id is required for a tenant-scoped repository")
        self.session = session
        self.tenant_id = tenant_id

    def _scoped(self, query: Select, model) -> Select:
        return query.where(model.tenant_id == self.tenant_id)


# ============================================
# STANDARD PACK REPOSITORY
# ============================================

class StandardPackRepository:
    """Repository for standard pack operations. Packs are global, not per tenant."""

    def __init__(self, session: Session):
        self.session = session

    @timed_query("standard_packs.get_by_id")
    def get_by_id(self, pack_id: UUID) -> Optional[StandardPack]:
        query = select(StandardPack).where(StandardPack.id == pack_id)
        return self.session.execute(query).scalar_one_or_none()

    @timed_query("standard_packs.get_by_code")
    def get_by_code(self, code: str) -> Optional[StandardPack]:
        query = select(StandardPack).where(StandardPack.code == code)
        return self.session.execute(query).scalar_one_or_none()

    def list(self, domain: Optional[str] = None) -> List[StandardPack]:
        """
        List standard packs ordered by code.

        Args:
            domain: Optional domain filter

        Returns:
            List of packs
        """
        query = select(StandardPack)
        if domain:
            query = query.where(StandardPack.domain == domain)
        query = query.order_by(StandardPack.code.asc())
        return list(self.session.execute(query).scalars().all())

    def create(self, pack_data: Dict[str, Any]) -> StandardPack:
        """
        Create a standard pack.

        Raises:
            DuplicateEntityError: If a pack with the same code exists
        """
        try:
            pack = StandardPack(**pack_data)
            self.session.add(pack)
            self.session.flush()
            logger.debug(f"Created standard pack: {pack.code}")
            return pack
        except IntegrityError as e:
            raise DuplicateEntityError(f"Standard pack already exists: {e}")


# ============================================
# CONCEPT REPOSITORY
# ============================================

class ConceptRepository:
    """
    Repository for concepts and aliases.

    Term lookups are tenant-scoped; lookup by id is not, because an id is
    already unambiguous.
    """

    def __init__(self, session: Session):
        self.session = session

    @timed_query("concepts.get_with_pack")
    def get_with_pack(
        self,
        concept_id: UUID
    ) -> Optional[Tuple[Concept, Optional[str], Optional[str], Optional[str]]]:
        """
        Get a concept with its primary pack's code, name and authority level.

        Returns:
            Tuple (concept, pack_code, pack_name, authority_level) or None.
            The pack fields are None when the concept has no primary pack.
        """
        query = (
            select(
                Concept,
                StandardPack.code,
                StandardPack.name,
                StandardPack.authority_level,
            )
            .outerjoin(StandardPack, Concept.standard_pack_id_primary == StandardPack.id)
            .where(Concept.id == concept_id)
            .limit(1)
        )
        row = self.session.execute(query).first()
        if row is None:
            return None
        concept, pack_code, pack_name, authority_level = row
        return (
            concept,
            pack_code,
            pack_name,
            authority_level.value if authority_level is not None else None,
        )

    def list_aliases(self, concept_id: UUID) -> List[Alias]:
        """Aliases of a concept: preferred-for-display first, then type, then value."""
        query = (
            select(Alias)
            .where(Alias.concept_id == concept_id)
            .order_by(
                Alias.is_preferred_for_display.desc(),
                Alias.alias_type,
                Alias.alias_value,
            )
        )
        return list(self.session.execute(query).scalars().all())


class TenantConceptRepository(TenantScopedRepository):
    """Tenant-scoped concept queries (term resolution and definition)."""

    @timed_query("concepts.find_by_canonical_key")
    def find_by_canonical_key(self, normalized_term: str) -> Optional[Concept]:
        query = self._scoped(select(Concept), Concept).where(
            func.lower(Concept.canonical_key) == normalized_term
        ).limit(1)
        return self.session.execute(query).scalars().first()

    @timed_query("concepts.find_by_alias")
    def find_by_alias(self, normalized_term: str) -> Optional[Concept]:
        query = self._scoped(
            select(Concept).join(Alias, Alias.concept_id == Concept.id),
            Concept
        ).where(
            func.lower(Alias.alias_value) == normalized_term
        ).limit(1)
        return self.session.execute(query).scalars().first()

    def create(self, concept_data: Dict[str, Any]) -> Concept:
        """
        Create a concept for this tenant.

        Raises:
            DuplicateEntityError: If the canonical key is already used by the tenant
        """
        try:
            concept = Concept(tenant_id=self.tenant_id, **concept_data)
            self.session.add(concept)
            self.session.flush()
            logger.debug(f"Created concept: {concept.id} ({concept.canonical_key})")
            return concept
        except IntegrityError as e:
            raise DuplicateEntityError(f"Concept already exists: {e}")

    def add_alias(self, concept_id: UUID, alias_data: Dict[str, Any]) -> Alias:
        concept = self.session.execute(
            self._scoped(select(Concept), Concept).where(Concept.id == concept_id)
        ).scalar_one_or_none()
        if concept is None:
            raise EntityNotFoundError(f"Concept not found: {concept_id}")

        alias = Alias(concept_id=concept_id, **alias_data)
        self.session.add(alias)
        self.session.flush()
        return alias


# ============================================
# ACCOUNT REPOSITORY
# ============================================

class AccountRepository(TenantScopedRepository):
    """Repository for chart-of-accounts rows of one tenant."""

    @timed_query("accounts.get_many")
    def get_many(self, account_ids: Iterable[UUID]) -> Dict[UUID, Account]:
        """
        Fetch accounts by id.

        Ids that do not exist, or exist for another tenant, are simply
        absent from the result.
        """
        ids = list(account_ids)
        if not ids:
            return {}
        query = self._scoped(select(Account), Account).where(Account.id.in_(ids))
        return {a.id: a for a in self.session.execute(query).scalars().all()}

    @timed_query("accounts.get_by_codes")
    def get_by_codes(self, codes: Iterable[str]) -> Dict[str, Account]:
        """Fetch accounts by code, keyed by code."""
        code_list = list(codes)
        if not code_list:
            return {}
        query = self._scoped(select(Account), Account).where(Account.code.in_(code_list))
        return {a.code: a for a in self.session.execute(query).scalars().all()}

    def create(self, account_data: Dict[str, Any]) -> Account:
        """
        Create an account for this tenant.

        Raises:
            DuplicateEntityError: If the account code is already used by the tenant
        """
        try:
            account = Account(tenant_id=self.tenant_id, **account_data)
            self.session.add(account)
            self.session.flush()
            return account
        except IntegrityError as e:
            raise DuplicateEntityError(f"Account already exists: {e}")


# ============================================
# JOURNAL REPOSITORY
# ============================================

class JournalRepository(TenantScopedRepository):
    """Repository for persisted journals of one tenant."""

    def add_entry(
        self,
        journal_id: UUID,
        journal_number: str,
        posting_date: date,
        so_t_pack_id: Optional[UUID],
        description: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> JournalEntryRecord:
        """
        Insert a journal header with status POSTED.

        Raises:
            DuplicateEntityError: If the journal id already exists
        """
        entry = JournalEntryRecord(
            id=journal_id,
            tenant_id=self.tenant_id,
            journal_number=journal_number,
            posting_date=posting_date,
            description=description,
            so_t_pack_id=so_t_pack_id,
            status=JournalStatus.POSTED,
            created_by=created_by,
        )
        try:
            self.session.add(entry)
            self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityError(f"Journal already exists: {e}")
        return entry

    def add_line(
        self,
        line_id: UUID,
        journal_id: UUID,
        account_id: UUID,
        debit: Decimal,
        credit: Decimal,
        mdm_snapshot: Dict[str, Any],
        description: Optional[str] = None,
        line_number: int = 0
    ) -> JournalLineRecord:
        """
        Insert a journal line carrying its metadata snapshot.

        Raises:
            DuplicateEntityError: If the line id already exists
        """
        line = JournalLineRecord(
            id=line_id,
            journal_id=journal_id,
            account_id=account_id,
            debit=debit,
            credit=credit,
            description=description,
            line_number=line_number,
            mdm_snapshot=mdm_snapshot,
        )
        try:
            self.session.add(line)
            self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityError(f"Journal line already exists: {e}")
        return line

    @timed_query("journals.list_recent")
    def list_recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        """
        Recent journal headers with their standard pack code and name.

        Ordered by posting date, then creation time, newest first.
        """
        query = self._scoped(
            select(
                JournalEntryRecord,
                StandardPack.code,
                StandardPack.name,
            ).outerjoin(StandardPack, JournalEntryRecord.so_t_pack_id == StandardPack.id),
            JournalEntryRecord
        ).order_by(
            JournalEntryRecord.posting_date.desc(),
            JournalEntryRecord.created_at.desc()
        ).limit(limit)

        journals = []
        for entry, pack_code, pack_name in self.session.execute(query).all():
            journals.append({
                'id': str(entry.id),
                'journal_number': entry.journal_number,
                'posting_date': entry.posting_date.isoformat(),
                'description': entry.description,
                'status': entry.status.value,
                'created_at': entry.created_at.isoformat() if entry.created_at else None,
                'standard_pack_code': pack_code,
                'standard_pack_name': pack_name,
            })
        return journals

    def get_with_lines(self, journal_id: UUID) -> Optional[JournalEntryRecord]:
        query = self._scoped(select(JournalEntryRecord), JournalEntryRecord).where(
            JournalEntryRecord.id == journal_id
        )
        return self.session.execute(query).scalar_one_or_none()


# ============================================
# USAGE LOG REPOSITORY
# ============================================

class UsageLogRepository:
    """Repository for concept lookup telemetry."""

    def __init__(self, session: Session):
        self.session = session

    def record(
        self,
        tenant_id: UUID,
        term: str,
        found: bool,
        concept_id: Optional[UUID] = None,
        canonical_key: Optional[str] = None,
        matched_via: Optional[MatchStrategy] = None,
        actor_type: ActorType = ActorType.AGENT,
        tool_name: str = "metadata.lookupConcept"
    ) -> UsageLog:
        """Append one usage row."""
        log = UsageLog(
            tool_name=tool_name,
            tenant_id=tenant_id,
            term=term,
            found=found,
            concept_id=concept_id,
            canonical_key=canonical_key,
            matched_via=matched_via,
            actor_type=actor_type,
            details={'term': term, 'canonical_key': canonical_key},
        )
        self.session.add(log)
        self.session.flush()
        return log

    def count(self, tenant_id: Optional[UUID] = None, found: Optional[bool] = None) -> int:
        query = select(func.count()).select_from(UsageLog)
        if tenant_id is not None:
            query = query.where(UsageLog.tenant_id == tenant_id)
        if found is not None:
            query = query.where(UsageLog.found == found)
        return self.session.execute(query).scalar_one()
