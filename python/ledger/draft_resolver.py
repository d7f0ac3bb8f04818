"""
Journal draft resolution.

Callers submit drafts that use human-readable codes: a standard pack code
on the header and an account code on each line. The resolver turns those
into ids so the posting guard only ever sees ids.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from database.models import PackStatus
from database.repositories import (
    AccountRepository,
    JournalRepository,
    StandardPackRepository,
)
from ledger.types import JournalEntry, JournalLine, to_decimal

logger = logging.getLogger(__name__)


class DraftResolutionError(Exception):
    """Raised when a draft references codes that cannot be resolved"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass
class JournalLineDraft:
    account_code: str
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    description: Optional[str] = None
    line_number: Optional[int] = None
    business_term: Optional[str] = None
    id: Optional[uuid.UUID] = None


@dataclass
class JournalDraft:
    tenant_id: uuid.UUID
    posting_date: date
    so_t_pack_code: Optional[str]
    lines: List[JournalLineDraft] = field(default_factory=list)
    description: Optional[str] = None
    journal_number: Optional[str] = None
    created_by: Optional[str] = None
    id: Optional[uuid.UUID] = None


class JournalDraftResolver:
    """Resolves draft codes to ids within one tenant."""

    def __init__(self, session: Session):
        self.session = session

    def resolve(self, draft: JournalDraft) -> JournalEntry:
        """
        Build a JournalEntry from a draft.

        A missing pack code is passed through as a null so_t_pack_id for
        the posting guard to reject.

        Raises:
            DraftResolutionError: Unknown or inactive pack code, or unknown
                account codes (all of them named in one message)
        """
        errors: List[str] = []
        so_t_pack_id = None

        if draft.so_t_pack_code:
            pack = StandardPackRepository(self.session).get_by_code(draft.so_t_pack_code)
            if pack is None:
                errors.append(f"Unknown standard pack code: {draft.so_t_pack_code}")
            elif pack.status != PackStatus.ACTIVE:
                errors.append(
                    f"Standard pack {draft.so_t_pack_code} is not ACTIVE (status={pack.status.value})"
                )
            else:
                so_t_pack_id = pack.id

        codes = list(dict.fromkeys(line.account_code for line in draft.lines))
        accounts = AccountRepository(self.session, draft.tenant_id).get_by_codes(codes)
        missing = [code for code in codes if code not in accounts]
        if missing:
            errors.append(f"Unknown account codes: {', '.join(missing)}")

        if errors:
            logger.info(f"Draft for tenant {draft.tenant_id} not resolvable: {errors}")
            raise DraftResolutionError(errors)

        lines = [
            JournalLine(
                id=line.id or uuid.uuid4(),
                account_id=accounts[line.account_code].id,
                debit=to_decimal(line.debit),
                credit=to_decimal(line.credit),
                description=line.description,
                line_number=line.line_number if line.line_number is not None else index + 1,
            )
            for index, line in enumerate(draft.lines)
        ]

        return JournalEntry(
            id=draft.id or uuid.uuid4(),
            tenant_id=draft.tenant_id,
            posting_date=draft.posting_date,
            so_t_pack_id=so_t_pack_id,
            lines=lines,
            description=draft.description,
            journal_number=draft.journal_number,
            created_by=draft.created_by,
        )

    def list_journals(self, tenant_id: uuid.UUID, limit: int = 50) -> List[Dict[str, Any]]:
        """Recent journal headers for the tenant, newest posting date first."""
        return JournalRepository(self.session, tenant_id).list_recent(limit)
