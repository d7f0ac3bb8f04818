"""
SQLAlchemy ORM Models for the PostingGuard Ledger Service

This module defines the metadata "lawbook" and the ledger tables:
- Standard packs (governing regulatory standards such as IFRS)
- Canonical concepts and their aliases, scoped per tenant
- Chart of accounts rows anchored to concepts
- Posted journal headers and lines with their metadata snapshots
- Lookup telemetry for usage analytics

Tables:
1. mdm_standard_pack - Governing standards with an authority level
2. mdm_concept - Canonical business terms per tenant
3. mdm_alias - Alternate names for concepts (many-to-one)
4. accounts - Chart of accounts, tenant-scoped
5. journal_entries - Posted journal headers
6. journal_lines - Posted journal lines (with mdm_snapshot)
7. mdm_usage_log - Concept lookup telemetry

Column types are the portable SQLAlchemy ones (Uuid, JSON with a JSONB
variant) so the schema also builds on SQLite for tests.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import (
    String, Integer, Boolean, DateTime, Date, Text, Numeric,
    ForeignKey, Index, CheckConstraint, UniqueConstraint, Enum,
    JSON, Uuid
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, declarative_base, Mapped, mapped_column
from sqlalchemy.sql import func

# Base class for all models
Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


# ============================================
# ENUMS
# ============================================

class AuthorityLevel(str, PyEnum):
    """Authority of a standard pack (LAW > INDUSTRY > INTERNAL)"""
    LAW = "LAW"
    INDUSTRY = "INDUSTRY"
    INTERNAL = "INTERNAL"


class PackStatus(str, PyEnum):
    """Lifecycle status of a standard pack"""
    ACTIVE = "ACTIVE"
    DEPRECATED = "DEPRECATED"


class ConceptDomain(str, PyEnum):
    """Business domain of a concept"""
    FINANCE = "FINANCE"
    HR = "HR"
    SCM = "SCM"
    IT = "IT"
    OTHER = "OTHER"


class ConceptType(str, PyEnum):
    """Kind of canonical concept"""
    FIELD = "FIELD"
    KPI = "KPI"
    ENTITY = "ENTITY"
    SERVICE_RULE = "SERVICE_RULE"


class AliasType(str, PyEnum):
    """Origin of an alias"""
    LEXICAL = "LEXICAL"
    SEMANTIC = "SEMANTIC"
    LEGACY_SYSTEM = "LEGACY_SYSTEM"


class JournalStatus(str, PyEnum):
    """Status of a persisted journal header"""
    POSTED = "POSTED"


class MatchStrategy(str, PyEnum):
    """How a concept lookup term was matched"""
    CANONICAL_KEY = "canonical_key"
    ALIAS = "alias"


class ActorType(str, PyEnum):
    """Who performed a metadata lookup"""
    AGENT = "AGENT"
    HUMAN = "HUMAN"
    SYSTEM = "SYSTEM"


# ============================================
# MIXIN CLASSES
# ============================================

class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


# ============================================
# METADATA LAWBOOK
# ============================================

class StandardPack(Base, TimestampMixin):
    """
    A named regulatory or interpretive standard (e.g. IFRS_CORE).

    Only ACTIVE packs may govern a posted journal. Packs are never deleted;
    they move to DEPRECATED instead.
    """
    __tablename__ = "mdm_standard_pack"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    authority_level: Mapped[AuthorityLevel] = mapped_column(
        Enum(AuthorityLevel, native_enum=False),
        nullable=False
    )
    version: Mapped[str] = mapped_column(String(50), nullable=False, default="1.0")
    status: Mapped[PackStatus] = mapped_column(
        Enum(PackStatus, native_enum=False),
        nullable=False,
        default=PackStatus.ACTIVE
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    concepts: Mapped[List["Concept"]] = relationship(
        "Concept",
        back_populates="standard_pack"
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "code": self.code,
            "name": self.name,
            "domain": self.domain,
            "authority_level": self.authority_level.value,
            "version": self.version,
            "status": self.status.value,
            "notes": self.notes,
        }

    def __repr__(self) -> str:
        return f"<StandardPack(code='{self.code}', authority={self.authority_level}, status={self.status})>"


class Concept(Base, TimestampMixin):
    """
    A canonical business term (e.g. "revenue") scoped to a tenant.

    Tier 1/2 FINANCE concepts must reference a LAW-level pack; that rule is
    enforced by the concept validator before a concept is written.
    """
    __tablename__ = "mdm_concept"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    canonical_key: Mapped[str] = mapped_column(String(200), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    domain: Mapped[ConceptDomain] = mapped_column(
        Enum(ConceptDomain, native_enum=False),
        nullable=False
    )
    concept_type: Mapped[ConceptType] = mapped_column(
        Enum(ConceptType, native_enum=False),
        nullable=False,
        default=ConceptType.FIELD
    )
    # 1 = strictest, 5 = loosest
    governance_tier: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    standard_pack_id_primary: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("mdm_standard_pack.id"),
        nullable=True
    )
    standard_ref: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    standard_pack: Mapped[Optional["StandardPack"]] = relationship(
        "StandardPack",
        back_populates="concepts"
    )
    aliases: Mapped[List["Alias"]] = relationship(
        "Alias",
        back_populates="concept",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint('tenant_id', 'canonical_key', name='uq_concept_tenant_key'),
        CheckConstraint('governance_tier BETWEEN 1 AND 5', name='ck_concept_tier_range'),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "canonical_key": self.canonical_key,
            "label": self.label,
            "description": self.description,
            "domain": self.domain.value,
            "concept_type": self.concept_type.value,
            "governance_tier": self.governance_tier,
            "standard_pack_id_primary": (
                str(self.standard_pack_id_primary) if self.standard_pack_id_primary else None
            ),
            "standard_ref": self.standard_ref,
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<Concept(key='{self.canonical_key}', tier={self.governance_tier})>"


class Alias(Base, TimestampMixin):
    """Alternate lexical or legacy name mapped to a concept."""
    __tablename__ = "mdm_alias"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    concept_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("mdm_concept.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    alias_value: Mapped[str] = mapped_column(String(255), nullable=False)
    alias_type: Mapped[AliasType] = mapped_column(
        Enum(AliasType, native_enum=False),
        nullable=False,
        default=AliasType.LEXICAL
    )
    source_system: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_preferred_for_display: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    concept: Mapped["Concept"] = relationship("Concept", back_populates="aliases")

    __table_args__ = (
        Index('ix_alias_value', 'alias_value'),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "concept_id": str(self.concept_id),
            "alias_value": self.alias_value,
            "alias_type": self.alias_type.value,
            "source_system": self.source_system,
            "is_preferred_for_display": self.is_preferred_for_display,
        }

    def __repr__(self) -> str:
        return f"<Alias(concept_id={self.concept_id}, alias='{self.alias_value}')>"


# ============================================
# LEDGER
# ============================================

class Account(Base, TimestampMixin):
    """
    Chart of accounts row, tenant-scoped.

    Consulted but never mutated during posting. A null governance_tier is
    treated as tier 3.
    """
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    mdm_concept_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("mdm_concept.id"),
        nullable=True
    )
    governance_tier: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_account_tenant_code'),
    )

    def __repr__(self) -> str:
        return f"<Account(code='{self.code}', tier={self.governance_tier})>"


class JournalEntryRecord(Base, TimestampMixin):
    """Persisted journal header."""
    __tablename__ = "journal_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    journal_number: Mapped[str] = mapped_column(String(100), nullable=False)
    posting_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    so_t_pack_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("mdm_standard_pack.id"),
        nullable=True
    )
    status: Mapped[JournalStatus] = mapped_column(
        Enum(JournalStatus, native_enum=False),
        nullable=False,
        default=JournalStatus.POSTED
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    lines: Mapped[List["JournalLineRecord"]] = relationship(
        "JournalLineRecord",
        back_populates="journal",
        order_by="JournalLineRecord.line_number"
    )
    standard_pack: Mapped[Optional["StandardPack"]] = relationship("StandardPack")

    def __repr__(self) -> str:
        return f"<JournalEntryRecord(number='{self.journal_number}', date={self.posting_date})>"


class JournalLineRecord(Base, TimestampMixin):
    """
    Persisted journal line.

    mdm_snapshot holds the MetadataSnapshot captured at validation time and
    is never updated afterwards.
    """
    __tablename__ = "journal_lines"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    journal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("accounts.id"),
        nullable=False,
        index=True
    )
    debit: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=0)
    credit: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=0)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mdm_snapshot: Mapped[dict] = mapped_column(JSONDocument, nullable=False)

    journal: Mapped["JournalEntryRecord"] = relationship(
        "JournalEntryRecord",
        back_populates="lines"
    )

    __table_args__ = (
        CheckConstraint('debit >= 0 AND credit >= 0', name='ck_line_non_negative'),
    )

    def __repr__(self) -> str:
        return f"<JournalLineRecord(journal_id={self.journal_id}, line={self.line_number})>"


# ============================================
# TELEMETRY
# ============================================

class UsageLog(Base):
    """One row per concept lookup attempt, found or not."""
    __tablename__ = "mdm_usage_log"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    tool_name: Mapped[str] = mapped_column(String(100), nullable=False)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    term: Mapped[str] = mapped_column(String(255), nullable=False)
    found: Mapped[bool] = mapped_column(Boolean, nullable=False)
    concept_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    canonical_key: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    matched_via: Mapped[Optional[MatchStrategy]] = mapped_column(
        Enum(MatchStrategy, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=True
    )
    actor_type: Mapped[ActorType] = mapped_column(
        Enum(ActorType, native_enum=False),
        nullable=False,
        default=ActorType.AGENT
    )
    details: Mapped[Optional[dict]] = mapped_column(JSONDocument, nullable=True)
    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        Index('ix_usage_tenant_used_at', 'tenant_id', 'used_at'),
    )

    def __repr__(self) -> str:
        return f"<UsageLog(term='{self.term}', found={self.found})>"
