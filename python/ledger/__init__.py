"""
Ledger Package for the PostingGuard Ledger Service

This package provides:
- In-process journal, snapshot and result types
- Concept tier enforcement (Tier 1/2 FINANCE concepts need LAW packs)
- The finance field contract validator
- The posting guard and posting executor
- Draft resolution from codes to ids
"""

from ledger.types import (
    ConceptAnchor,
    JournalEntry,
    JournalLine,
    MetadataSnapshot,
    PostingResult,
    PostingStatus,
    ValidationResult,
    UNRESOLVED_CONCEPT_KEY,
)
from ledger.concept_validator import (
    ConceptValidationResult,
    validate_concept,
    validate_tier_enforcement,
)
from ledger.field_contract import (
    FieldContractReport,
    FieldContractValidator,
    FieldValidationResult,
    FinanceFieldConfig,
)
from ledger.posting_guard import PostingGuard
from ledger.posting_executor import PostingExecutor, JournalPostingError
from ledger.draft_resolver import (
    DraftResolutionError,
    JournalDraft,
    JournalDraftResolver,
    JournalLineDraft,
)

__all__ = [
    # Types
    'ConceptAnchor',
    'JournalEntry',
    'JournalLine',
    'MetadataSnapshot',
    'PostingResult',
    'PostingStatus',
    'ValidationResult',
    'UNRESOLVED_CONCEPT_KEY',
    # Concept governance
    'ConceptValidationResult',
    'validate_concept',
    'validate_tier_enforcement',
    # Field contract
    'FieldContractReport',
    'FieldContractValidator',
    'FieldValidationResult',
    'FinanceFieldConfig',
    # Posting
    'PostingGuard',
    'PostingExecutor',
    'JournalPostingError',
    # Drafts
    'DraftResolutionError',
    'JournalDraft',
    'JournalDraftResolver',
    'JournalLineDraft',
]
