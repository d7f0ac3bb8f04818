"""
Posting Audit Logging Module

Provides structured logging for journal posting outcomes:
- Journals posted (with journal number and line count)
- Journals rejected by the posting guard (with the error list)
- Postings that failed on infrastructure errors

SECURITY: All free-text values are sanitized before logging to prevent
log injection.
"""

import logging
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field as dataclass_field


def sanitize_for_logging(text: str) -> str:
    """Sanitize user input for safe logging, preventing log injection

    Removes newlines, carriage returns, and other control characters
    that could be used to inject fake log entries.

    Args:
        text: User input text

    Returns:
        Sanitized text safe for logging
    """
    if not text:
        return ''
    # Remove newlines, carriage returns, and other control characters
    sanitized = re.sub(r'[\r\n\x00-\x1f\x7f-\x9f]', ' ', str(text))
    # Collapse multiple spaces
    sanitized = re.sub(r'\s+', ' ', sanitized).strip()
    # Truncate to reasonable length
    return sanitized[:500] if len(sanitized) > 500 else sanitized


@dataclass
class PostingEvent:
    """Structured posting event for logging"""
    event_type: str  # JOURNAL_POSTED, JOURNAL_REJECTED, JOURNAL_ERROR
    severity: str  # INFO, WARNING, ERROR
    journal_id: str = ""
    tenant_id: str = ""
    journal_number: str = ""
    standard_pack_id: str = ""
    line_count: int = 0
    errors: List[str] = dataclass_field(default_factory=list)
    request_id: str = ""
    user_id: str = ""
    additional_context: Dict[str, Any] = dataclass_field(default_factory=dict)
    timestamp: str = dataclass_field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            'timestamp': self.timestamp,
            'event_type': self.event_type,
            'severity': self.severity,
            'journal_id': self.journal_id,
            'tenant_id': self.tenant_id,
            'journal_number': self.journal_number,
            'standard_pack_id': self.standard_pack_id,
            'line_count': self.line_count,
            'errors': self.errors,
            'request_id': self.request_id,
            'user_id': self.user_id,
            'context': self.additional_context
        }

    def to_json(self) -> str:
        """Convert to JSON string"""
        return json.dumps(self.to_dict(), ensure_ascii=False)


class PostingAuditLogger:
    """Handles posting event logging with structured output

    Features:
    - Separate posting_audit.log file
    - JSON-formatted events for easy parsing
    - Automatic sanitization of free-text values
    - Request ID correlation
    """

    def __init__(
        self,
        log_dir: str = "logs",
        log_level: int = logging.INFO,
        enable_console: bool = False,
        enable_file: bool = True
    ):
        """Initialize posting audit logger

        Args:
            log_dir: Directory for log files
            log_level: Minimum log level to record
            enable_console: Also output to console
            enable_file: Write to posting_audit.log file
        """
        self.log_dir = Path(log_dir)

        self.logger = logging.getLogger('posting_audit')
        self.logger.setLevel(log_level)
        self.logger.handlers.clear()

        formatter = logging.Formatter(
            '%(asctime)s - POSTING - %(levelname)s - %(message)s'
        )

        if enable_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.log_dir / "posting_audit.log", encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if enable_console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(log_level)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

    def _sanitize(self, text: Any, max_length: int = 200) -> str:
        if text is None:
            return ""
        sanitized = sanitize_for_logging(str(text))
        if len(sanitized) > max_length:
            return sanitized[:max_length] + "...(truncated)"
        return sanitized

    def _emit(self, event: PostingEvent) -> None:
        if event.severity == "ERROR":
            self.logger.error(event.to_json())
        elif event.severity == "WARNING":
            self.logger.warning(event.to_json())
        else:
            self.logger.info(event.to_json())

    def _event(
        self,
        event_type: str,
        severity: str,
        journal,
        errors: Optional[List[str]] = None,
        journal_number: Optional[str] = None,
        request_id: str = ""
    ) -> PostingEvent:
        return PostingEvent(
            event_type=event_type,
            severity=severity,
            journal_id=str(journal.id),
            tenant_id=str(journal.tenant_id),
            journal_number=self._sanitize(journal_number or journal.journal_number or "", 100),
            standard_pack_id=str(journal.so_t_pack_id) if journal.so_t_pack_id else "",
            line_count=len(journal.lines),
            errors=[self._sanitize(e, 500) for e in (errors or [])],
            request_id=self._sanitize(request_id, 64),
            user_id=self._sanitize(journal.created_by or "", 100),
        )

    def log_posted(self, journal, journal_number: str, request_id: str = "") -> None:
        """Log a successfully posted journal"""
        self._emit(self._event(
            "JOURNAL_POSTED", "INFO", journal, journal_number=journal_number, request_id=request_id
        ))

    def log_rejected(self, journal, errors: List[str], request_id: str = "") -> None:
        """Log a journal rejected by the posting guard"""
        self._emit(self._event("JOURNAL_REJECTED", "WARNING", journal, errors=errors, request_id=request_id))

    def log_error(self, journal, error: str, request_id: str = "") -> None:
        """Log a posting that failed on an infrastructure error"""
        self._emit(self._event("JOURNAL_ERROR", "ERROR", journal, errors=[error], request_id=request_id))


# Global posting audit logger instance
_audit_logger: Optional[PostingAuditLogger] = None


def get_audit_logger(
    log_dir: str = "logs",
    enable_console: bool = False,
    enable_file: bool = True
) -> PostingAuditLogger:
    """Get or create the global posting audit logger instance

    Args:
        log_dir: Directory for log files
        enable_console: Also output to console
        enable_file: Write to posting_audit.log

    Returns:
        PostingAuditLogger instance
    """
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = PostingAuditLogger(
            log_dir=log_dir,
            enable_console=enable_console,
            enable_file=enable_file
        )
    return _audit_logger


def reset_audit_logger() -> None:
    """Reset the global posting audit logger (for testing)"""
    global _audit_logger
    _audit_logger = None
