from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from quizpot import db
from quizpot.errors import DependencyError, InvalidState, NotFound, QuizpotError, ValidationError
from quizpot.models import FraudFlag, Winner, utcnow
from quizpot.repositories import FraudFlagRepository, PeriodRepository, UserRepository, WinnerRepository
from quizpot.services.integrations import AuditSink, safe_emit
from quizpot.services.locks import KeyedLocks
from quizpot.settings import GameSettings


@dataclass(frozen=True)
class FinalizeResult:
    period_id: int
    winners: List[Winner] = field(default_factory=list)
    fraud_cases: int = 0

    def to_dict(self):
        return {
            'period_id': self.period_id,
            'winners_created': len(self.winners),
            'fraud_cases': self.fraud_cases,
            'winners': [w.to_dict() for w in self.winners],
        }


class WinnerResolver:
    """Closes a period: ranks, screens, and writes the winner set exactly once.

    The ``ACTIVE -> COMPLETED`` compare-and-set on the period row is the
    single point that admits a finalisation; everything it writes commits in
    the same transaction, so a failure leaves the period ACTIVE and no
    winners behind.
    """

    def __init__(self, settings: GameSettings, locks: KeyedLocks, ranker, fraud, audit: AuditSink,
                 periods: Optional[PeriodRepository] = None, winners: Optional[WinnerRepository] = None,
                 users: Optional[UserRepository] = None, flags: Optional[FraudFlagRepository] = None):
        self.settings = settings
        self.locks = locks
        self.ranker = ranker
        self.fraud = fraud
        self.audit = audit
        self.periods = periods or PeriodRepository()
        self.winners = winners or WinnerRepository()
        self.users = users or UserRepository()
        self.flags = flags or FraudFlagRepository()

    def conversion_rate(self, currency: str) -> float:
        rate = self.settings.earnings_conversion_rates.get(currency)
        if rate is None:
            raise ValidationError(f'No earnings conversion rate configured for {currency}')
        return float(rate)

    def finalize_period(self, period_id: int) -> FinalizeResult:
        period = self.periods.get(period_id)
        if period is None:
            raise NotFound('Game period not found', period_id=period_id)
        mode = period.mode
        rate = self.conversion_rate(mode.payout_currency)
        flagged = []

        with self.locks.hold('period', period_id):
            try:
                if not self.periods.transition(period_id, 'ACTIVE', 'COMPLETED'):
                    raise InvalidState('Only an ACTIVE period can be finalized', period_id=period_id)

                survivors = []
                for entry in self.ranker.recalculate_ranks(period_id, commit=False):
                    if len(survivors) >= mode.max_winners:
                        break
                    if not entry.is_qualified:
                        continue
                    assessment = self.fraud.screen(entry)
                    if assessment.is_suspicious:
                        self.flags.add(FraudFlag(
                            user_id=entry.user_id,
                            period_id=period_id,
                            session_id=entry.session_id,
                            risk_level=assessment.risk_level,
                            reasons=[r.code for r in assessment.reasons],
                        ))
                        flagged.append((entry.user_id, assessment))
                        continue
                    survivors.append(entry)

                created = []
                for rank, entry in enumerate(survivors, start=1):
                    earnings = mode.payout * rate
                    created.append(self.winners.add(Winner(
                        user_id=entry.user_id,
                        period_id=period_id,
                        rank=rank,
                        score=entry.score,
                        payout_amount=mode.payout,
                        payout_currency=mode.payout_currency,
                        earnings_credited=earnings,
                        conversion_rate=rate,
                        rate_version=self.settings.earnings_rate_version,
                        status='PENDING',
                    )))
                    self.users.add_earnings(entry.user_id, earnings)
                db.session.commit()
            except QuizpotError:
                db.session.rollback()
                raise
            except SQLAlchemyError as exc:
                db.session.rollback()
                current_app.logger.error(f"[finalize-error] period={period_id} error={exc!r}")
                raise DependencyError('Failed to finalize period') from exc

        for user_id, assessment in flagged:
            current_app.logger.warning(
                f"[fraud-flag] period={period_id} user={user_id} risk={assessment.risk_level} "
                f"reasons={','.join(r.code for r in assessment.reasons)}"
            )
            safe_emit(self.audit, 'winner_fraud_detected', period_id=period_id, user_id=user_id,
                      risk_level=assessment.risk_level)
        current_app.logger.info(f"[finalize] period={period_id} winners={len(created)} fraud_cases={len(flagged)}")
        safe_emit(self.audit, 'period_finalized', period_id=period_id, winners=len(created), fraud_cases=len(flagged))
        return FinalizeResult(period_id=period_id, winners=created, fraud_cases=len(flagged))

    def finalize_due_periods(self, now: Optional[datetime] = None) -> List[FinalizeResult]:
        now = now or utcnow()
        results = []
        for period in self.periods.due_for_finalization(now):
            try:
                results.append(self.finalize_period(period.id))
            except InvalidState:
                current_app.logger.info(f"[finalize-skip] period={period.id} already finalized")
            except QuizpotError as exc:
                current_app.logger.error(f"[finalize-failed] period={period.id} error={exc.code} message={exc.message}")
        return results

    def activate_due_periods(self, now: Optional[datetime] = None) -> List[int]:
        now = now or utcnow()
        activated = []
        for period in self.periods.due_for_activation(now):
            if self.periods.transition(period.id, 'UPCOMING', 'ACTIVE'):
                activated.append(period.id)
        db.session.commit()
        if activated:
            current_app.logger.info(f"[activate] periods={activated}")
        return activated

    def _load_winner(self, winner_id: int) -> Winner:
        winner = self.winners.get(winner_id)
        if winner is None:
            raise NotFound('Winner not found', winner_id=winner_id)
        return winner

    def approve_winner(self, winner_id: int) -> Winner:
        with self.locks.hold('winner', winner_id):
            winner = self._load_winner(winner_id)
            if winner.status != 'PENDING':
                raise InvalidState('Only PENDING winners can be approved', status=winner.status)
            winner.status = 'APPROVED'
            db.session.commit()
        safe_emit(self.audit, 'winner_approved', winner_id=winner_id)
        return winner

    def reject_winner(self, winner_id: int, reason: str = '') -> Winner:
        """Reject before payout and take back the lifetime earnings it credited."""
        with self.locks.hold('winner', winner_id):
            winner = self._load_winner(winner_id)
            if winner.status not in ('PENDING', 'APPROVED'):
                raise InvalidState('Winner can no longer be rejected', status=winner.status)
            winner.status = 'REJECTED'
            self.users.add_earnings(winner.user_id, -winner.earnings_credited)
            db.session.commit()
        current_app.logger.info(f"[winner-rejected] winner={winner_id} reason={reason!r}")
        safe_emit(self.audit, 'winner_rejected', winner_id=winner_id, reason=reason)
        return winner

    def mark_winner_paid(self, winner_id: int, payment_reference: str, now: Optional[datetime] = None) -> Winner:
        if not payment_reference:
            raise ValidationError('payment_reference is required')
        with self.locks.hold('winner', winner_id):
            winner = self._load_winner(winner_id)
            if winner.status != 'APPROVED':
                raise InvalidState('Only APPROVED winners can be paid', status=winner.status)
            winner.status = 'PAID'
            winner.payment_reference = payment_reference
            winner.paid_at = now or utcnow()
            db.session.commit()
        safe_emit(self.audit, 'winner_paid', winner_id=winner_id, reference=payment_reference)
        return winner
