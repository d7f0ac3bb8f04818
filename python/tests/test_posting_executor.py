"""
Tests for the posting executor.

The executor opens its own unit of work, so these tests never hold a
session across a posting call; state is checked in a fresh session.
"""

import json
import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from audit_logger import PostingAuditLogger
from database.models import JournalEntryRecord, JournalLineRecord
from database.repositories import JournalRepository
from ledger.posting_executor import JournalPostingError, PostingExecutor
from ledger.posting_guard import PostingGuard
from ledger.types import JournalEntry, JournalLine, MetadataSnapshot, PostingStatus


def make_journal(lawbook, legs, pack="IFRS_CORE", **kwargs):
    lines = [
        JournalLine(
            id=uuid.uuid4(), account_id=lawbook.accounts[code],
            debit=Decimal(str(debit)), credit=Decimal(str(credit)), line_number=n,
        )
        for n, (code, debit, credit) in enumerate(legs, start=1)
    ]
    return JournalEntry(
        id=uuid.uuid4(),
        tenant_id=lawbook.tenant_id,
        posting_date=date(2025, 1, 31),
        so_t_pack_id=lawbook.packs[pack] if pack else None,
        lines=lines,
        **kwargs
    )


def count_rows(provider, model):
    with provider.session_scope() as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.fixture
def executor(provider):
    return PostingExecutor(provider, audit_logger=PostingAuditLogger(enable_file=False))


class TestPostJournal:
    """Posting outcomes and persisted rows."""

    def test_posts_header_and_lines(self, executor, provider, lawbook):
        """A valid journal is written with one row per line."""
        journal = make_journal(
            lawbook, [("1000", 100, 0), ("4000", 0, 100)],
            description="January sales", created_by="jdoe",
        )
        result = executor.post_journal(journal)

        assert result.status == PostingStatus.POSTED
        assert result.posted is True
        assert result.errors == []
        assert result.posted_at is not None

        with provider.session_scope() as session:
            entry = JournalRepository(session, lawbook.tenant_id).get_with_lines(journal.id)
            assert entry is not None
            assert entry.description == "January sales"
            assert entry.created_by == "jdoe"
            assert entry.so_t_pack_id == lawbook.packs["IFRS_CORE"]
            assert [line.line_number for line in entry.lines] == [1, 2]
            assert entry.lines[0].debit == Decimal("100.00")
            assert entry.lines[1].credit == Decimal("100.00")

    def test_lines_carry_snapshots(self, executor, provider, lawbook):
        """Each persisted line stores the guard's snapshot document."""
        journal = make_journal(lawbook, [("5000", 40, 0), ("4000", 0, 40)])
        result = executor.post_journal(journal)

        with provider.session_scope() as session:
            lines = {
                line.id: line.mdm_snapshot
                for line in session.execute(select(JournalLineRecord)).scalars()
            }

        revenue = lines[journal.lines[1].id]
        assert revenue["concept_key"] == "revenue"
        assert revenue["standard_pack"] == "IFRS_CORE"
        assert revenue["standard_ref"] == "IFRS 15"
        assert revenue["governance_tier"] == 1

        supplies = lines[journal.lines[0].id]
        assert supplies["concept_key"] == "unknown"
        assert supplies["standard_pack"] is None
        assert supplies["governance_tier"] == 4

        assert lines[journal.lines[0].id] == result.snapshots[journal.lines[0].id].to_dict()

    def test_persisted_snapshot_reloads(self, executor, provider, lawbook):
        """A stored snapshot document reads back into the same snapshot."""
        journal = make_journal(lawbook, [("1000", 40, 0), ("4000", 0, 40)])
        result = executor.post_journal(journal)
        line_id = journal.lines[1].id

        with provider.session_scope() as session:
            stored = session.get(JournalLineRecord, line_id).mdm_snapshot

        reloaded = MetadataSnapshot.from_dict(stored)
        assert reloaded == result.snapshots[line_id]
        assert reloaded.validated_at.tzinfo is not None

    def test_amounts_quantized(self, executor, provider, lawbook):
        """Amounts are stored at two decimal places, half-up."""
        journal = make_journal(lawbook, [("1000", "12.345", 0), ("5000", 0, "12.35")])
        assert executor.post_journal(journal).posted

        with provider.session_scope() as session:
            debits = session.execute(
                select(JournalLineRecord.debit).where(JournalLineRecord.journal_id == journal.id)
            ).scalars().all()
        assert Decimal("12.35") in debits

    def test_rejected_writes_nothing(self, executor, provider, lawbook):
        """Guard failures leave no header and no lines."""
        journal = make_journal(lawbook, [("2000", 10, 0), ("1000", 0, 10)])
        result = executor.post_journal(journal)

        assert result.status == PostingStatus.REJECTED
        assert len(result.errors) == 1
        assert result.journal_number is None
        assert journal.lines[0].id in result.snapshots
        assert count_rows(provider, JournalEntryRecord) == 0
        assert count_rows(provider, JournalLineRecord) == 0

    def test_store_failure_rolls_back(self, executor, provider, lawbook, monkeypatch):
        """A failure part-way through the lines leaves nothing behind."""
        calls = []
        original = JournalRepository.add_line

        def failing_add_line(self, *args, **kwargs):
            calls.append(1)
            if len(calls) == 2:
                raise OperationalError("INSERT INTO journal_lines", {}, Exception("connection lost"))
            return original(self, *args, **kwargs)

        monkeypatch.setattr(JournalRepository, "add_line", failing_add_line)

        journal = make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)])
        result = executor.post_journal(journal)

        assert result.status == PostingStatus.ERROR
        assert "connection lost" in result.errors[0]
        assert count_rows(provider, JournalEntryRecord) == 0
        assert count_rows(provider, JournalLineRecord) == 0

    def test_duplicate_journal_id_is_error(self, executor, provider, lawbook):
        """Posting the same journal twice fails the second time as an error."""
        journal = make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)])
        assert executor.post_journal(journal).posted

        result = executor.post_journal(journal)
        assert result.status == PostingStatus.ERROR
        assert count_rows(provider, JournalEntryRecord) == 1


class TestJournalNumber:
    """Journal numbering."""

    def test_given_number_kept(self, executor, lawbook):
        """A caller-supplied number is used as is."""
        journal = make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)], journal_number="GL-2025-001")
        assert executor.post_journal(journal).journal_number == "GL-2025-001"

    def test_generated_number_uses_default_prefix(self, executor, lawbook):
        """Generated numbers start with JE-."""
        journal = make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)])
        number = executor.post_journal(journal).journal_number
        assert number.startswith("JE-")
        assert number[3:].isdigit()

    def test_prefix_from_config(self, provider, lawbook):
        """The prefix comes from the posting configuration."""
        config = SimpleNamespace(posting=SimpleNamespace(
            journal_number_prefix="GL-", amount_precision=2,
            default_governance_tier=3, guard_error_prefix="PostingGuard: ",
        ))
        executor = PostingExecutor(provider, config, audit_logger=PostingAuditLogger(enable_file=False))
        journal = make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)])
        assert executor.post_journal(journal).journal_number.startswith("GL-")


class TestPostJournalEntry:
    """The raising variant."""

    def test_returns_result_when_posted(self, executor, lawbook):
        """Posted journals return the result."""
        journal = make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)])
        assert executor.post_journal_entry(journal).posted

    def test_raises_when_rejected(self, executor, lawbook):
        """Rejected journals raise with the guard's errors."""
        journal = make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)], pack=None)
        with pytest.raises(JournalPostingError) as exc_info:
            executor.post_journal_entry(journal)

        assert exc_info.value.status == PostingStatus.REJECTED
        assert "so_t_pack_id is required" in exc_info.value.errors[0]
        assert exc_info.value.result.journal_id == journal.id


class TestValidate:
    """Dry runs."""

    def test_validate_writes_nothing(self, executor, provider, lawbook):
        """validate() runs the guard without persisting."""
        journal = make_journal(lawbook, [("1000", 10, 0), ("4000", 0, 10)])
        result = executor.validate(journal)
        assert result.valid is True
        assert count_rows(provider, JournalEntryRecord) == 0


class TestAuditTrail:
    """Audit events and metrics per outcome."""

    def test_posted_event(self, executor, lawbook, caplog):
        """Posting emits a JOURNAL_POSTED event."""
        journal = make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)])
        executor.post_journal(journal)
        assert "JOURNAL_POSTED" in caplog.text
        assert str(journal.id) in caplog.text

    def test_rejected_event(self, executor, lawbook, caplog):
        """Rejection emits a JOURNAL_REJECTED event with the errors."""
        journal = make_journal(lawbook, [("1000", 10, 0)])
        executor.post_journal(journal)
        assert "JOURNAL_REJECTED" in caplog.text
        assert "do not equal credits" in caplog.text

    def test_outcome_counted(self, executor, lawbook, monkeypatch):
        """Every attempt is counted by outcome."""
        seen = []
        monkeypatch.setattr(
            "ledger.posting_executor.record_posting_outcome", lambda status: seen.append(status)
        )
        executor.post_journal(make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)]))
        executor.post_journal(make_journal(lawbook, [("1000", 10, 0)]))
        assert seen == ["posted", "rejected"]

    def test_request_id_on_event(self, executor, lawbook, caplog):
        """The caller's request id is carried into the audit event."""
        executor.post_journal(make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)]), request_id="REQ-abc123")
        executor.post_journal(make_journal(lawbook, [("1000", 10, 0)]))

        events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "posting_audit"]
        assert [(e["event_type"], e["request_id"]) for e in events] == [
            ("JOURNAL_POSTED", "REQ-abc123"),
            ("JOURNAL_REJECTED", ""),
        ]


class TestOutOfRangeInput:
    """Input the store cannot hold comes back as a result, never an exception."""

    def test_huge_balanced_amounts_rejected(self, executor, provider, lawbook):
        """Amounts beyond the column precision are rejected, not raised."""
        journal = make_journal(lawbook, [("5000", "1E+30", 0), ("1000", 0, "1E+30")])
        result = executor.post_journal(journal)

        assert result.status == PostingStatus.REJECTED
        assert all("out of range" in e for e in result.errors)
        assert len(result.errors) == 2
        assert count_rows(provider, JournalEntryRecord) == 0

    def test_missing_tenant_rejected(self, executor, lawbook):
        """A journal without a tenant is rejected by the guard."""
        journal = make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)])
        journal.tenant_id = None
        result = executor.post_journal(journal)

        assert result.status == PostingStatus.REJECTED
        assert any("tenant_id is required" in e for e in result.errors)

    def test_unexpected_exception_is_error_result(self, executor, provider, lawbook, monkeypatch, caplog):
        """Anything raised inside the unit of work becomes an error result."""
        def broken_validate(self, journal):
            raise RuntimeError("boom")

        monkeypatch.setattr(PostingGuard, "validate_journal_before_post", broken_validate)
        journal = make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)])
        result = executor.post_journal(journal)

        assert result.status == PostingStatus.ERROR
        assert result.errors == ["Unexpected RuntimeError during posting"]
        assert count_rows(provider, JournalEntryRecord) == 0
        assert "JOURNAL_ERROR" in caplog.text

    def test_unexpected_exception_raises_posting_error(self, executor, lawbook, monkeypatch):
        """post_journal_entry wraps the error result like any other failure."""
        def broken_validate(self, journal):
            raise ValueError("bad")

        monkeypatch.setattr(PostingGuard, "validate_journal_before_post", broken_validate)
        with pytest.raises(JournalPostingError) as exc_info:
            executor.post_journal_entry(make_journal(lawbook, [("1000", 10, 0), ("5000", 0, 10)]))
        assert exc_info.value.status == PostingStatus.ERROR
