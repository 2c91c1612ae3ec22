"""Collaborators outside the game core: payment verification, question
content and the audit sink.

Each is a narrow interface with a default implementation good enough to run
the app; deployments swap them via ``create_app(integrations=...)``.
"""
import logging
import threading
from typing import Dict, List, Optional, Protocol, Tuple

from quizpot.repositories import QuestionRepository

audit_logger = logging.getLogger('quizpot.audit')


class PaymentVerifier(Protocol):
    def verify_entry_payment(self, user_id: int, period_id: int) -> Optional[str]:
        """Opaque payment reference when the entry fee is captured, else None."""


class QuestionSource(Protocol):
    def get_random_questions(self, language: str, count: int) -> List:
        ...


class AuditSink(Protocol):
    def emit(self, action: str, **fields) -> None:
        ...


class EntryPaymentRegistry:
    """In-memory record of verified cash entry fees.

    The payment webhook reports captures through ``record_payment``; the
    session manager only ever asks ``verify_entry_payment``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._payments: Dict[Tuple[int, int], str] = {}

    def record_payment(self, user_id: int, period_id: int, reference: str) -> None:
        with self._lock:
            self._payments[(user_id, period_id)] = reference

    def verify_entry_payment(self, user_id: int, period_id: int) -> Optional[str]:
        with self._lock:
            return self._payments.get((user_id, period_id))


class DatabaseQuestionSource:
    def __init__(self, questions: Optional[QuestionRepository] = None):
        self.questions = questions or QuestionRepository()

    def get_random_questions(self, language: str, count: int) -> List:
        return self.questions.random(language, count)


class LoggingAuditSink:
    def emit(self, action: str, **fields) -> None:
        audit_logger.info(f"[audit] action={action} " + ' '.join(f"{k}={v}" for k, v in sorted(fields.items())))


def safe_emit(sink: AuditSink, action: str, **fields) -> None:
    """Fire-and-forget: audit failures never reach the caller."""
    try:
        sink.emit(action, **fields)
    except Exception as exc:
        audit_logger.warning(f"[audit-failed] action={action} error={exc!r}")
