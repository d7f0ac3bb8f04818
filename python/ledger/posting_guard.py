"""
Posting Guard

Validates a journal entry against accounting invariants and the metadata
lawbook before it may be posted:

1. Debits equal credits, and every line is either a debit or a credit
2. The governing standard pack exists and is ACTIVE
3. Every account belongs to the journal's tenant
4. Tier 1/2 accounts are anchored to a concept with a LAW-level pack

Every check runs and every error is collected, so a caller sees the full
set of rejection reasons at once. A MetadataSnapshot is produced for each
line whose account resolves, whether or not that line is at fault.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from database.metadata_service import MetadataService
from database.models import Account, AuthorityLevel, PackStatus
from database.repositories import AccountRepository
from ledger.types import (
    JournalEntry,
    MetadataSnapshot,
    ValidationResult,
    AMOUNT_MAX_DIGITS,
    UNRESOLVED_CONCEPT_KEY,
    amount_in_range,
    quantize_amount,
)

logger = logging.getLogger(__name__)


class PostingGuard:
    """
    Single-pass validation pipeline over a journal.

    Business-rule violations never raise; they come back as errors on the
    ValidationResult. SQLAlchemyError from the store propagates.
    """

    def __init__(self, session: Session, config: Optional[Any] = None):
        """
        Initialize the posting guard.

        Args:
            session: SQLAlchemy database session
            config: Optional ConfigManager instance
        """
        self.session = session
        self.config = config
        self.metadata = MetadataService(session, config)

        self._default_tier = 3
        self._precision = 2
        self._prefix = "PostingGuard: "
        if config is not None and hasattr(config, 'posting'):
            self._default_tier = config.posting.default_governance_tier
            self._precision = config.posting.amount_precision
            self._prefix = config.posting.guard_error_prefix

    def validate_journal_before_post(self, journal: JournalEntry) -> ValidationResult:
        """
        Validate a journal before posting.

        Args:
            journal: Journal with all references already resolved to ids

        Returns:
            ValidationResult with snapshots keyed by line id
        """
        errors: List[str] = []
        warnings: List[str] = []
        snapshots: Dict[Any, MetadataSnapshot] = {}

        self._check_balance(journal, errors)
        self._check_standard_pack(journal, errors)
        accounts = self._resolve_accounts(journal, errors)
        self._enforce_tiers(journal, accounts, errors, snapshots)

        result = ValidationResult(
            valid=not errors,
            snapshots=snapshots,
            errors=errors,
            warnings=warnings,
        )
        if not result.valid:
            logger.info(f"Journal {journal.id} rejected with {len(errors)} error(s)")
        return result

    def _error(self, message: str) -> str:
        return f"{self._prefix}{message}"

    def _check_balance(self, journal: JournalEntry, errors: List[str]) -> None:
        out_of_range = [
            line for line in journal.lines
            if not (amount_in_range(line.debit, self._precision) and amount_in_range(line.credit, self._precision))
        ]
        if out_of_range:
            # Totals are meaningless when a leg cannot be stored
            for line in out_of_range:
                errors.append(self._error(
                    f"Journal line {line.id} amount is out of range "
                    f"(at most {AMOUNT_MAX_DIGITS - self._precision} integer digits)"
                ))
            return

        total_debit = sum((line.debit for line in journal.lines), Decimal("0"))
        total_credit = sum((line.credit for line in journal.lines), Decimal("0"))

        rounded_debit = quantize_amount(total_debit, self._precision)
        rounded_credit = quantize_amount(total_credit, self._precision)

        if rounded_debit != rounded_credit:
            errors.append(self._error(
                f"Debits ({rounded_debit}) do not equal credits ({rounded_credit})"
            ))

        if not journal.lines:
            errors.append(self._error("Journal entry has no lines"))

        for line in journal.lines:
            has_debit = line.debit > 0
            has_credit = line.credit > 0

            if has_debit and has_credit:
                errors.append(self._error(f"Journal line {line.id} has both debit and credit"))
            if not has_debit and not has_credit:
                errors.append(self._error(f"Journal line {line.id} has neither debit nor credit"))

    def _check_standard_pack(self, journal: JournalEntry, errors: List[str]) -> None:
        if not journal.so_t_pack_id:
            errors.append(self._error(
                "so_t_pack_id is required for all journal entries. "
                "Every journal must state which IFRS/MFRS law governs it."
            ))
            return

        pack = self.metadata.get_standard_pack_by_id(journal.so_t_pack_id)
        if pack is None:
            errors.append(self._error(f"Standard pack {journal.so_t_pack_id} not found"))
        elif pack.status != PackStatus.ACTIVE:
            errors.append(self._error(
                f"Standard pack {pack.code} is not ACTIVE (status={pack.status.value})"
            ))

    def _resolve_accounts(self, journal: JournalEntry, errors: List[str]) -> Dict[Any, Account]:
        if journal.tenant_id is None:
            errors.append(self._error("tenant_id is required for all journal entries"))
            return {}

        # Distinct ids, in first-seen order so errors are stable
        account_ids = list(dict.fromkeys(line.account_id for line in journal.lines))

        accounts = AccountRepository(self.session, journal.tenant_id).get_many(account_ids)

        for account_id in account_ids:
            if account_id not in accounts:
                errors.append(self._error(
                    f"Account {account_id} not found or does not belong to tenant {journal.tenant_id}"
                ))
        return accounts

    def _enforce_tiers(
        self,
        journal: JournalEntry,
        accounts: Dict[Any, Account],
        errors: List[str],
        snapshots: Dict[Any, MetadataSnapshot]
    ) -> None:
        for line in journal.lines:
            account = accounts.get(line.account_id)
            if account is None:
                continue

            tier = account.governance_tier if account.governance_tier is not None else self._default_tier

            if tier <= 2:
                snapshots[line.id] = self._governed_snapshot(account, tier, errors)
            else:
                snapshots[line.id] = MetadataSnapshot.now(
                    governance_tier=tier,
                    concept_key=UNRESOLVED_CONCEPT_KEY if account.mdm_concept_id else None,
                )

    def _governed_snapshot(self, account: Account, tier: int, errors: List[str]) -> MetadataSnapshot:
        """Enforce the concept anchor of a tier 1/2 account and snapshot it."""
        if not account.mdm_concept_id:
            errors.append(self._error(
                f"Tier {tier} finance account {account.code} / {account.name} has no "
                f"mdm_concept_id. Tier 1/2 accounts must be anchored to a canonical concept."
            ))
            return MetadataSnapshot.now(governance_tier=tier)

        concept = self.metadata.get_concept_by_id(account.mdm_concept_id)
        if concept is None:
            errors.append(self._error(
                f"mdm_concept {account.mdm_concept_id} not found for account {account.code}"
            ))
            return MetadataSnapshot.now(governance_tier=tier)

        if concept.authority_level and concept.authority_level != AuthorityLevel.LAW.value:
            errors.append(self._error(
                f"Tier {tier} finance account {account.code} is anchored to non-LAW pack "
                f"{concept.pack_code} (authority_level={concept.authority_level}). "
                f"Tier 1/2 finance accounts must use LAW-level standard packs (IFRS/MFRS)."
            ))

        return MetadataSnapshot.now(
            governance_tier=tier,
            concept_key=concept.canonical_key,
            standard_pack=concept.pack_code,
            standard_ref=concept.standard_ref,
        )
