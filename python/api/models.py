"""
Pydantic request/response schemas for the PostingGuard Ledger API

Request schemas accept both snake_case and camelCase field names, since
agents and the web front end post camelCase drafts.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional, Dict, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ledger.draft_resolver import JournalDraft, JournalLineDraft

# Largest amount a NUMERIC(18, 2) journal line column holds
MAX_LINE_AMOUNT = Decimal("9999999999999999.99")


class JournalLineDraftRequest(BaseModel):
    """One line of a journal draft, referencing its account by code."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    account_code: str = Field(..., min_length=1, max_length=50, description="Account code, e.g. '4000'")
    debit: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_LINE_AMOUNT, description="Debit amount")
    credit: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_LINE_AMOUNT, description="Credit amount")
    description: Optional[str] = Field(default=None, max_length=1000)
    line_number: Optional[int] = Field(default=None, ge=0)
    business_term: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Business term the caller had in mind (informational)"
    )
    id: Optional[UUID] = Field(default=None, description="Line id (generated when absent)")


class JournalDraftRequest(BaseModel):
    """Journal draft using human-readable codes."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tenant_id: UUID
    so_t_pack_code: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Governing standard pack code, e.g. 'IFRS_CORE'"
    )
    posting_date: date
    description: Optional[str] = Field(default=None, max_length=1000)
    journal_number: Optional[str] = Field(default=None, max_length=100)
    created_by: Optional[str] = Field(default=None, max_length=100)
    lines: List[JournalLineDraftRequest] = Field(default_factory=list)

    @field_validator('so_t_pack_code')
    @classmethod
    def strip_pack_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None

    def to_draft(self) -> JournalDraft:
        return JournalDraft(
            tenant_id=self.tenant_id,
            posting_date=self.posting_date,
            so_t_pack_code=self.so_t_pack_code,
            description=self.description,
            journal_number=self.journal_number,
            created_by=self.created_by,
            lines=[
                JournalLineDraft(
                    account_code=line.account_code,
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description,
                    line_number=line.line_number,
                    business_term=line.business_term,
                    id=line.id,
                )
                for line in self.lines
            ],
        )


class SnapshotResponse(BaseModel):
    """Metadata snapshot captured for a journal line."""
    concept_key: Optional[str] = None
    standard_pack: Optional[str] = None
    standard_ref: Optional[str] = None
    governance_tier: int
    validated_at: str


class PostingResponse(BaseModel):
    """Response schema for journal posting."""
    status: str = Field(..., description="posted, rejected or error")
    journal_id: Optional[str] = Field(default=None, description="Journal id (null if the draft did not resolve)")
    journal_number: Optional[str] = None
    posted_at: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    snapshots: Dict[str, SnapshotResponse] = Field(default_factory=dict)


class ValidationResponse(BaseModel):
    """Response schema for a dry-run validation."""
    valid: bool
    journal_id: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    snapshots: Dict[str, SnapshotResponse] = Field(default_factory=dict)


class JournalSummary(BaseModel):
    """Posted journal header."""
    id: str
    journal_number: str
    posting_date: str
    description: Optional[str] = None
    status: str
    created_at: Optional[str] = None
    standard_pack_code: Optional[str] = None
    standard_pack_name: Optional[str] = None


class JournalListResponse(BaseModel):
    """Response schema for journal listing."""
    journals: List[JournalSummary] = Field(default_factory=list)
    count: int = Field(..., ge=0)


class StandardPackResponse(BaseModel):
    """Standard pack details."""
    id: str
    code: str
    name: str
    domain: str
    authority_level: str
    version: str
    status: str
    notes: Optional[str] = None


class StandardPackListResponse(BaseModel):
    """Response schema for standard pack listing."""
    packs: List[StandardPackResponse] = Field(default_factory=list)
    count: int = Field(..., ge=0)


class ConceptLookupResponse(BaseModel):
    """Response schema for concept lookup."""
    concept: Dict[str, Any]
    standard_pack: Optional[StandardPackResponse] = None
    aliases: List[Dict[str, Any]] = Field(default_factory=list)
    matched_via: Optional[str] = Field(default=None, description="canonical_key or alias")


class HealthResponse(BaseModel):
    """Response schema for health check endpoint."""
    status: str = Field(default="healthy", description="Service status")
    database: Dict[str, Any] = Field(default_factory=dict, description="Database health details")
    version: str = Field(..., description="API version")
    memory_usage_mb: Optional[float] = Field(default=None, description="Process resident memory in MB")
    uptime_seconds: Optional[int] = Field(
        default=None,
        description="Server uptime in seconds"
    )
    error_message: Optional[str] = None


class ErrorDetail(BaseModel):
    """Detailed error information."""
    code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    field: Optional[str] = Field(default=None, description="Field that caused error")
    suggestion: Optional[str] = Field(default=None, description="How to fix the error")
    timestamp: str = Field(..., description="Error timestamp (ISO 8601)")


class ErrorResponse(BaseModel):
    """Standardized error response format."""
    error: ErrorDetail
