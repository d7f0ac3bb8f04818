"""
In-process types for journal validation and posting.

These are plain dataclasses, independent of the ORM models: the guard
and executor operate on them, and only the executor turns them into rows.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional

# Literal stored as concept_key on tier 3+ lines whose account has a concept
UNRESOLVED_CONCEPT_KEY = "unknown"

# Journal line amounts are stored as NUMERIC(18, 2)
AMOUNT_MAX_DIGITS = 18


def to_decimal(value: Any) -> Decimal:
    """Convert an amount to Decimal. None and empty values become zero."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() first so floats like 0.1 keep their printed value
    return Decimal(str(value))


def quantize_amount(value: Decimal, precision: int = 2) -> Decimal:
    """Round an amount half-up to the given number of decimal places."""
    return value.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)


def amount_in_range(value: Decimal, precision: int = 2) -> bool:
    """True when the amount is finite and fits AMOUNT_MAX_DIGITS at the given precision."""
    if not value.is_finite():
        return False
    return value.is_zero() or value.adjusted() < AMOUNT_MAX_DIGITS - precision


class ConceptAnchor(str, Enum):
    """How firmly a snapshot's line is anchored to a concept."""
    RESOLVED = "RESOLVED"
    PRESENT_UNRESOLVED = "PRESENT_UNRESOLVED"
    ABSENT = "ABSENT"


@dataclass
class JournalLine:
    """One leg of a journal."""
    id: uuid.UUID
    account_id: uuid.UUID
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    description: Optional[str] = None
    line_number: Optional[int] = None

    def __post_init__(self):
        self.debit = to_decimal(self.debit)
        self.credit = to_decimal(self.credit)


@dataclass
class JournalEntry:
    """A proposed journal: header plus ordered lines, all references as ids."""
    id: uuid.UUID
    tenant_id: uuid.UUID
    posting_date: date
    so_t_pack_id: Optional[uuid.UUID]
    lines: List[JournalLine] = field(default_factory=list)
    description: Optional[str] = None
    journal_number: Optional[str] = None
    created_by: Optional[str] = None


@dataclass(frozen=True)
class MetadataSnapshot:
    """
    Audit record of the metadata that governed a line at validation time.

    All five fields are always serialized, including nulls. Tier 3+ lines
    whose account carries a concept id store the literal "unknown" as
    concept_key; use anchor_state rather than comparing against it.
    """
    concept_key: Optional[str]
    standard_pack: Optional[str]
    standard_ref: Optional[str]
    governance_tier: int
    validated_at: datetime

    @property
    def anchor_state(self) -> ConceptAnchor:
        if self.concept_key is None:
            return ConceptAnchor.ABSENT
        if self.concept_key == UNRESOLVED_CONCEPT_KEY:
            return ConceptAnchor.PRESENT_UNRESOLVED
        return ConceptAnchor.RESOLVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "concept_key": self.concept_key,
            "standard_pack": self.standard_pack,
            "standard_ref": self.standard_ref,
            "governance_tier": self.governance_tier,
            "validated_at": self.validated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetadataSnapshot":
        validated_at = data["validated_at"]
        if isinstance(validated_at, str):
            validated_at = datetime.fromisoformat(validated_at)
        return cls(
            concept_key=data.get("concept_key"),
            standard_pack=data.get("standard_pack"),
            standard_ref=data.get("standard_ref"),
            governance_tier=data["governance_tier"],
            validated_at=validated_at,
        )

    @classmethod
    def now(
        cls,
        governance_tier: int,
        concept_key: Optional[str] = None,
        standard_pack: Optional[str] = None,
        standard_ref: Optional[str] = None
    ) -> "MetadataSnapshot":
        return cls(
            concept_key=concept_key,
            standard_pack=standard_pack,
            standard_ref=standard_ref,
            governance_tier=governance_tier,
            validated_at=datetime.now(timezone.utc),
        )


@dataclass
class ValidationResult:
    """Outcome of running the posting guard over a journal."""
    valid: bool
    snapshots: Dict[uuid.UUID, MetadataSnapshot] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "snapshots": {str(k): v.to_dict() for k, v in self.snapshots.items()},
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


class PostingStatus(str, Enum):
    """Outcome of a posting attempt. Only ERROR is worth retrying unchanged."""
    POSTED = "posted"
    REJECTED = "rejected"
    ERROR = "error"


@dataclass
class PostingResult:
    """Structured result returned by the posting executor."""
    status: PostingStatus
    journal_id: uuid.UUID
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    snapshots: Dict[uuid.UUID, MetadataSnapshot] = field(default_factory=dict)
    journal_number: Optional[str] = None
    posted_at: Optional[datetime] = None

    @property
    def posted(self) -> bool:
        return self.status == PostingStatus.POSTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "journal_id": str(self.journal_id),
            "journal_number": self.journal_number,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "snapshots": {str(k): v.to_dict() for k, v in self.snapshots.items()},
            "posted_at": self.posted_at.isoformat() if self.posted_at else None,
        }
