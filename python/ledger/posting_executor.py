"""
Posting Executor

Re-validates a journal with the posting guard and, when it passes, writes
the header and every line in a single transaction. Each line carries the
MetadataSnapshot produced by the guard.

Outcomes:
- posted: header and all lines committed
- rejected: the guard found business-rule violations; nothing written
- error: the store or the guard failed; the transaction rolled back, nothing written

Usage:
    executor = PostingExecutor(db_provider, config)
    result = executor.post_journal(journal)
    if result.status == PostingStatus.REJECTED:
        ...
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from audit_logger import PostingAuditLogger, get_audit_logger
from database.connection import DatabaseSessionProvider
from database.monitoring import record_posting_outcome
from database.repositories import JournalRepository, RepositoryError
from ledger.posting_guard import PostingGuard
from ledger.types import (
    JournalEntry,
    PostingResult,
    PostingStatus,
    ValidationResult,
    quantize_amount,
)

logger = logging.getLogger(__name__)


class JournalPostingError(Exception):
    """Raised by post_journal_entry when a journal was not posted"""

    def __init__(self, status: PostingStatus, errors: List[str], result: Optional[PostingResult] = None):
        self.status = status
        self.errors = list(errors)
        self.result = result
        super().__init__(f"Journal {status.value}: {'; '.join(self.errors)}")


class PostingExecutor:
    """Validates and persists journals. Posting is never retried here."""

    def __init__(
        self,
        provider: DatabaseSessionProvider,
        config: Optional[Any] = None,
        audit_logger: Optional[PostingAuditLogger] = None
    ):
        """
        Initialize the posting executor.

        Args:
            provider: Database session provider
            config: Optional ConfigManager instance
            audit_logger: Posting audit logger (built from config when omitted)
        """
        self.provider = provider
        self.config = config

        self._prefix = "JE-"
        self._precision = 2
        if config is not None and hasattr(config, 'posting'):
            self._prefix = config.posting.journal_number_prefix
            self._precision = config.posting.amount_precision

        if audit_logger is None:
            if config is not None and hasattr(config, 'logging'):
                audit_logger = get_audit_logger(
                    log_dir=config.logging.audit_log_dir,
                    enable_file=config.logging.audit_to_file
                )
            else:
                audit_logger = PostingAuditLogger(enable_file=False)
        self.audit_logger = audit_logger

    def validate(self, journal: JournalEntry) -> ValidationResult:
        """Dry run: run the guard without writing anything."""
        with self.provider.get_unit_of_work() as uow:
            return PostingGuard(uow.session, self.config).validate_journal_before_post(journal)

    def _journal_number(self, journal: JournalEntry) -> str:
        if journal.journal_number:
            return journal.journal_number
        return f"{self._prefix}{int(time.time() * 1000)}"

    def post_journal(self, journal: JournalEntry, request_id: str = "") -> PostingResult:
        """
        Validate and post a journal.

        Never raises; business-rule violations, store failures and
        unexpected errors all come back as a PostingResult.

        Args:
            journal: Journal with all references resolved to ids
            request_id: Correlation id carried into the audit event

        Returns:
            PostingResult with status posted, rejected or error
        """
        journal_number = self._journal_number(journal)

        try:
            with self.provider.get_unit_of_work() as uow:
                validation = PostingGuard(uow.session, self.config).validate_journal_before_post(journal)

                if not validation.valid:
                    result = PostingResult(
                        status=PostingStatus.REJECTED,
                        journal_id=journal.id,
                        errors=list(validation.errors),
                        warnings=list(validation.warnings),
                        snapshots=validation.snapshots,
                    )
                else:
                    repo = JournalRepository(uow.session, journal.tenant_id)
                    repo.add_entry(
                        journal_id=journal.id,
                        journal_number=journal_number,
                        posting_date=journal.posting_date,
                        so_t_pack_id=journal.so_t_pack_id,
                        description=journal.description,
                        created_by=journal.created_by,
                    )
                    for line in journal.lines:
                        repo.add_line(
                            line_id=line.id,
                            journal_id=journal.id,
                            account_id=line.account_id,
                            debit=quantize_amount(line.debit, self._precision),
                            credit=quantize_amount(line.credit, self._precision),
                            mdm_snapshot=validation.snapshots[line.id].to_dict(),
                            description=line.description,
                            line_number=line.line_number or 0,
                        )
                    uow.commit()

                    result = PostingResult(
                        status=PostingStatus.POSTED,
                        journal_id=journal.id,
                        warnings=list(validation.warnings),
                        snapshots=validation.snapshots,
                        journal_number=journal_number,
                        posted_at=datetime.now(timezone.utc),
                    )
        except (SQLAlchemyError, RepositoryError) as e:
            logger.error(f"Posting journal {journal.id} failed: {e}")
            result = PostingResult(
                status=PostingStatus.ERROR,
                journal_id=journal.id,
                errors=[str(e) or "Unknown error during posting"],
            )
        except Exception as e:
            logger.error(f"Unexpected error posting journal {journal.id}: {e}", exc_info=True)
            result = PostingResult(
                status=PostingStatus.ERROR,
                journal_id=journal.id,
                errors=[f"Unexpected {type(e).__name__} during posting"],
            )

        self._record(journal, result, request_id)
        return result

    def _record(self, journal: JournalEntry, result: PostingResult, request_id: str) -> None:
        record_posting_outcome(result.status.value)

        if result.status == PostingStatus.POSTED:
            logger.info(f"Posted journal {journal.id} ({result.journal_number}, {len(journal.lines)} lines)")
            self.audit_logger.log_posted(journal, result.journal_number, request_id)
        elif result.status == PostingStatus.REJECTED:
            self.audit_logger.log_rejected(journal, result.errors, request_id)
        else:
            self.audit_logger.log_error(journal, result.errors[0], request_id)

    def post_journal_entry(self, journal: JournalEntry, request_id: str = "") -> PostingResult:
        """
        Post a journal, raising when it is not posted.

        Raises:
            JournalPostingError: With status rejected or error
        """
        result = self.post_journal(journal, request_id)
        if not result.posted:
            raise JournalPostingError(result.status, result.errors, result)
        return result
