import random
from datetime import datetime, timedelta
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quizpot import db
from quizpot.errors import (
    AlreadyJoined,
    ContentUnavailable,
    DependencyError,
    InsufficientCredits,
    InsufficientFunds,
    InvalidState,
    NotFound,
    PaymentRequired,
    QuizpotError,
    ValidationError,
)
from quizpot.models import GameSession, utcnow
from quizpot.repositories import OPEN_SESSION_STATUSES, PeriodRepository, SessionRepository, UserRepository
from quizpot.services.integrations import AuditSink, PaymentVerifier, QuestionSource, safe_emit
from quizpot.services.locks import KeyedLocks
from quizpot.services.wallet import WalletLedger
from quizpot.settings import GameSettings

TERMINAL_STATUSES = ('COMPLETED', 'CANCELLED', 'EXPIRED')
ALL_STATUSES = OPEN_SESSION_STATUSES + TERMINAL_STATUSES


def shuffle_assignments(questions, seed: str):
    """Question order and per-question option order for one session.

    Computed once at join time and stored, so every later fetch replays the
    same order.
    """
    rng = random.Random(seed)
    ordered = list(questions)
    rng.shuffle(ordered)
    assignments = []
    for question in ordered:
        options = list(question.options)
        rng.shuffle(options)
        assignments.append((question.id, options))
    return assignments


class SessionManager:
    """One user's run through a period: join, question delivery, pause/resume,
    cancellation and passive expiry."""

    def __init__(self, settings: GameSettings, locks: KeyedLocks, ledger: WalletLedger,
                 payments: PaymentVerifier, questions: QuestionSource, audit: AuditSink,
                 sessions: Optional[SessionRepository] = None, periods: Optional[PeriodRepository] = None,
                 users: Optional[UserRepository] = None):
        self.settings = settings
        self.locks = locks
        self.ledger = ledger
        self.payments = payments
        self.questions = questions
        self.audit = audit
        self.sessions = sessions or SessionRepository()
        self.periods = periods or PeriodRepository()
        self.users = users or UserRepository()

    @property
    def idle_timeout(self) -> timedelta:
        return timedelta(minutes=self.settings.session_idle_timeout_minutes)

    def load(self, session_id: int, user_id: Optional[int] = None) -> GameSession:
        session = self.sessions.get(session_id)
        if session is None or (user_id is not None and session.user_id != user_id):
            raise NotFound('Session not found', session_id=session_id)
        return session

    def expire_if_idle(self, session: GameSession, now: Optional[datetime] = None) -> GameSession:
        now = now or utcnow()
        if session.status in OPEN_SESSION_STATUSES and now - session.last_activity_at > self.idle_timeout:
            session.status = 'EXPIRED'
            db.session.commit()
            current_app.logger.info(f"[session-expired] session={session.id} user={session.user_id} idle_since={session.last_activity_at}")
        return session

    def join(self, user_id: int, period_id: int, device_info: Optional[str] = None,
             ip_address: Optional[str] = None, now: Optional[datetime] = None) -> GameSession:
        now = now or utcnow()
        if self.users.get(user_id) is None:
            raise NotFound('User not found', user_id=user_id)
        period = self.periods.get(period_id)
        if period is None:
            raise NotFound('Game period not found', period_id=period_id)
        if not period.is_open(now):
            raise InvalidState('Game period is not active', period_id=period_id, status=period.status)
        mode = period.mode

        with self.locks.hold('join', user_id, period_id), self.locks.hold('wallet', user_id):
            first_attempt = self.sessions.find_latest(user_id, period_id, ALL_STATUSES) is None
            existing = self.sessions.find_latest(user_id, period_id, OPEN_SESSION_STATUSES + ('COMPLETED',))
            if existing is not None:
                self.expire_if_idle(existing, now)
                if existing.status in OPEN_SESSION_STATUSES:
                    raise AlreadyJoined(session_id=existing.id)
                if existing.status == 'COMPLETED':
                    raise AlreadyJoined('Period already completed by this user', session_id=existing.id)

            fee = mode.entry_fee
            entry_reference = None
            if fee > 0 and mode.entry_fee_currency != 'CREDITS':
                entry_reference = self.payments.verify_entry_payment(user_id, period_id)
                if not entry_reference:
                    raise PaymentRequired(amount=fee, currency=mode.entry_fee_currency, period_id=period_id)

            try:
                if fee > 0 and mode.entry_fee_currency == 'CREDITS':
                    try:
                        debit = self.ledger.adjust_balance(
                            user_id, -fee, 'ENTRY_FEE', f'Game entry fee - {mode.mode_type} (-{fee} credits)',
                            reference=str(period_id),
                            metadata={'mode_type': mode.mode_type, 'period_id': period_id, 'entry_fee': fee},
                            commit=False,
                        )
                    except InsufficientFunds as exc:
                        raise InsufficientCredits(required=fee) from exc
                    entry_reference = f'wallet-tx:{debit.transaction.id}'

                try:
                    session = self.sessions.add(GameSession(
                        user_id=user_id,
                        period_id=period_id,
                        status='ACTIVE',
                        total_questions=mode.questions,
                        device_info=device_info,
                        ip_address=ip_address,
                        entry_reference=entry_reference,
                        started_at=now,
                        last_activity_at=now,
                    ))
                except IntegrityError as exc:
                    # Another worker committed an attempt between our check and insert
                    raise AlreadyJoined(period_id=period_id) from exc
                try:
                    questions = self.questions.get_random_questions(mode.language, mode.questions)
                except Exception as exc:
                    raise ContentUnavailable('Question store unavailable') from exc
                if len(questions) < mode.questions:
                    raise ContentUnavailable(required=mode.questions, available=len(questions))
                self.sessions.assign_questions(
                    session.id, shuffle_assignments(questions[:mode.questions], f'{user_id}:{period_id}:{session.id}')
                )
                if first_attempt:
                    self.periods.increment_participants(period_id)
                db.session.commit()
            except QuizpotError:
                db.session.rollback()
                raise
            except SQLAlchemyError as exc:
                db.session.rollback()
                current_app.logger.error(f"[join-error] user={user_id} period={period_id} error={exc!r}")
                raise DependencyError('Failed to join game') from exc

        current_app.logger.info(f"[join] user={user_id} period={period_id} session={session.id} mode={mode.mode_type} fee={fee}")
        safe_emit(self.audit, 'game_joined', user_id=user_id, period_id=period_id, session_id=session.id,
                  mode_type=mode.mode_type, entry_fee=fee, ip_address=ip_address)
        return session

    def get_next_questions(self, session_id: int, batch_size: Optional[int] = None,
                           user_id: Optional[int] = None, now: Optional[datetime] = None) -> dict:
        batch_size = self.settings.questions_per_batch if batch_size is None else batch_size
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or not 1 <= batch_size <= self.settings.max_batch_size:
            raise ValidationError(f'batch_size must be between 1 and {self.settings.max_batch_size}')
        now = now or utcnow()
        with self.locks.hold('session', session_id):
            session = self.expire_if_idle(self.load(session_id, user_id), now)
            if session.status != 'ACTIVE':
                raise InvalidState('Session is not active', status=session.status)
            batch = self.sessions.unanswered_questions(session.id, batch_size)
            payload = {
                'session_id': session.id,
                'questions': [sq.to_client_dict(self.settings.question_timer_sec) for sq in batch],
                'answered_questions': session.answered_questions,
                'total_questions': session.total_questions,
                'time_remaining': max(0, int((session.period.end_date - now).total_seconds())),
            }
            session.last_activity_at = now
            db.session.commit()
        return payload

    def pause(self, session_id: int, user_id: Optional[int] = None, now: Optional[datetime] = None) -> GameSession:
        return self._transition(session_id, user_id, now, allowed=('ACTIVE',), target='PAUSED')

    def resume(self, session_id: int, user_id: Optional[int] = None, now: Optional[datetime] = None) -> GameSession:
        return self._transition(session_id, user_id, now, allowed=('PAUSED',), target='ACTIVE')

    def cancel(self, session_id: int, user_id: Optional[int] = None, now: Optional[datetime] = None) -> GameSession:
        return self._transition(session_id, user_id, now, allowed=OPEN_SESSION_STATUSES, target='CANCELLED')

    def _transition(self, session_id, user_id, now, allowed, target) -> GameSession:
        now = now or utcnow()
        with self.locks.hold('session', session_id):
            session = self.expire_if_idle(self.load(session_id, user_id), now)
            if session.status not in allowed:
                raise InvalidState(f'Cannot move session from {session.status} to {target}', status=session.status)
            previous = session.status
            session.status = target
            session.last_activity_at = now
            db.session.commit()
        current_app.logger.info(f"[session-{target.lower()}] session={session_id} from={previous}")
        return session

    def get_session(self, session_id: int, user_id: Optional[int] = None, now: Optional[datetime] = None) -> GameSession:
        with self.locks.hold('session', session_id):
            return self.expire_if_idle(self.load(session_id, user_id), now)

    def list_active_sessions(self, user_id: int, now: Optional[datetime] = None) -> List[GameSession]:
        now = now or utcnow()
        active = []
        for session in self.sessions.list_for_user(user_id, OPEN_SESSION_STATUSES):
            with self.locks.hold('session', session.id):
                if self.expire_if_idle(session, now).status in OPEN_SESSION_STATUSES:
                    active.append(session)
        return active
