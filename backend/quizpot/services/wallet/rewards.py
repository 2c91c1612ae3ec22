"""Credit sources layered on the ledger: daily claim, ad rewards, bundle
purchases, refunds and operator bonuses or penalties."""
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from quizpot import db
from quizpot.errors import (
    AlreadyClaimedToday,
    AlreadyProcessed,
    DailyClaimNotAvailable,
    DailyLimitReached,
    QuizpotError,
    ValidationError,
)
from quizpot.models import utcnow
from quizpot.settings import GameSettings
from quizpot.services.integrations import AuditSink, safe_emit
from quizpot.services.wallet.ledger import AdjustResult, WalletLedger


def next_utc_midnight(now: datetime) -> datetime:
    return datetime(now.year, now.month, now.day) + timedelta(days=1)


class WalletRewards:
    def __init__(self, ledger: WalletLedger, settings: GameSettings, audit: AuditSink):
        self.ledger = ledger
        self.wallets = ledger.wallets
        self.locks = ledger.locks
        self.settings = settings
        self.audit = audit

    @property
    def claim_interval(self) -> timedelta:
        return timedelta(hours=self.settings.daily_claim_interval_hours)

    def next_daily_claim_at(self, last_claim_at: Optional[datetime]) -> Optional[datetime]:
        return last_claim_at + self.claim_interval if last_claim_at else None

    def claim_daily(self, user_id: int, now: Optional[datetime] = None) -> AdjustResult:
        """Credit the daily amount if the stored last claim is at least one interval old."""
        now = now or utcnow()
        amount = self.settings.daily_claim_amount
        with self.locks.hold('wallet', user_id):
            wallet = self.ledger.get_wallet(user_id)
            try:
                if not self.wallets.take_daily_claim(user_id, now, now - self.claim_interval):
                    next_at = self.next_daily_claim_at(wallet.last_daily_claim_at)
                    raise DailyClaimNotAvailable(next_claim_at=next_at.isoformat() if next_at else None)
                result = self.ledger.adjust_balance(
                    user_id, amount, 'DAILY_CLAIM', f'Daily credits claim (+{amount} credits)',
                    metadata={'claimed_at': now.isoformat()}, commit=False,
                )
                db.session.commit()
            except QuizpotError:
                db.session.rollback()
                raise
        current_app.logger.info(f"[daily-claim] user={user_id} amount={amount} balance={result.new_balance}")
        safe_emit(self.audit, 'daily_credits_claimed', user_id=user_id, amount=amount)
        return result

    def claim_ad_reward(self, user_id: int, ad_type: str, now: Optional[datetime] = None) -> AdjustResult:
        """One claim per ad type per UTC day, capped across all types."""
        amount = self.settings.ad_reward_amounts.get(ad_type)
        if not amount:
            raise ValidationError(f'Unknown ad type {ad_type}')
        now = now or utcnow()
        day = now.date()
        limit = self.settings.ad_reward_daily_limit
        with self.locks.hold('wallet', user_id):
            self.ledger.get_wallet(user_id)
            try:
                self.wallets.reset_ad_counter(user_id, now, next_utc_midnight(now))
                if self.wallets.ad_claim_exists(user_id, ad_type, day):
                    raise AlreadyClaimedToday(ad_type=ad_type)
                if not self.wallets.take_ad_slot(user_id, limit):
                    raise DailyLimitReached(limit=limit)
                try:
                    self.wallets.add_ad_claim(user_id, ad_type, day, amount)
                except IntegrityError as exc:
                    raise AlreadyClaimedToday(ad_type=ad_type) from exc
                result = self.ledger.adjust_balance(
                    user_id, amount, 'AD_REWARD', f'Ad reward - {ad_type} (+{amount} credits)',
                    reference=ad_type, metadata={'ad_type': ad_type, 'claim_date': day.isoformat()},
                    commit=False,
                )
                db.session.commit()
            except QuizpotError:
                db.session.rollback()
                raise
        current_app.logger.info(f"[ad-reward] user={user_id} type={ad_type} amount={amount} balance={result.new_balance}")
        safe_emit(self.audit, 'ad_reward_claimed', user_id=user_id, ad_type=ad_type, amount=amount)
        return result

    def purchase_credits(self, user_id: int, bundle: str, payment_reference: str) -> AdjustResult:
        bundle_cfg = self.settings.credit_bundles.get(bundle)
        if not bundle_cfg:
            raise ValidationError(f'Unknown bundle {bundle}')
        if not payment_reference:
            raise ValidationError('payment_reference is required')
        credits = int(bundle_cfg['credits'])
        with self.locks.hold('wallet', user_id):
            if self.wallets.find_transaction(user_id, 'PURCHASE', payment_reference):
                raise AlreadyProcessed(reference=payment_reference)
            # A concurrent credit on another worker is caught by the reference index
            result = self.ledger.adjust_balance(
                user_id, credits, 'PURCHASE', f'Credits purchase - {bundle} (+{credits} credits)',
                reference=payment_reference,
                metadata={'bundle': bundle, 'price': bundle_cfg.get('price')},
            )
        safe_emit(self.audit, 'credits_purchased', user_id=user_id, bundle=bundle, reference=payment_reference)
        return result

    def refund(self, user_id: int, amount: int, reason: str, reference: Optional[str] = None) -> AdjustResult:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError('Refund amount must be a positive integer')
        result = self.ledger.adjust_balance(
            user_id, amount, 'REFUND', reason, reference=reference,
            metadata={'refund_reason': reason},
        )
        safe_emit(self.audit, 'credits_refunded', user_id=user_id, amount=amount, reference=reference)
        return result

    def award_bonus_credits(self, user_id: int, amount: int, reason: str,
                            admin_id: Optional[int] = None) -> AdjustResult:
        """Operator-granted credits, recorded as a BONUS ledger row."""
        self._check_admin_amount(amount, reason)
        result = self.ledger.adjust_balance(
            user_id, amount, 'BONUS', reason,
            metadata={'bonus_reason': reason, 'awarded_by': admin_id},
        )
        current_app.logger.info(f"[bonus-credits] user={user_id} amount={amount} by={admin_id}")
        safe_emit(self.audit, 'bonus_credits_awarded', user_id=user_id, amount=amount, reason=reason, admin_id=admin_id)
        return result

    def penalize_credits(self, user_id: int, amount: int, reason: str,
                         admin_id: Optional[int] = None) -> AdjustResult:
        """Remove credits for a rule violation; never overdraws the wallet."""
        self._check_admin_amount(amount, reason)
        result = self.ledger.adjust_balance(
            user_id, -amount, 'PENALTY', reason,
            metadata={'penalty_reason': reason, 'penalized_by': admin_id},
        )
        current_app.logger.warning(f"[penalty-credits] user={user_id} amount={amount} by={admin_id}")
        safe_emit(self.audit, 'credits_penalized', user_id=user_id, amount=amount, reason=reason, admin_id=admin_id)
        return result

    @staticmethod
    def _check_admin_amount(amount, reason):
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError('amount must be a positive integer')
        if not reason:
            raise ValidationError('reason is required')

    def wallet_summary(self, user_id: int, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        wallet = self.ledger.get_wallet(user_id)
        next_claim = self.next_daily_claim_at(wallet.last_daily_claim_at)
        ads_today = wallet.ad_rewards_today
        if wallet.ad_rewards_reset_at is None or now >= wallet.ad_rewards_reset_at:
            ads_today = 0
        return {
            'balance': wallet.balance,
            'can_claim_daily': next_claim is None or now >= next_claim,
            'next_daily_claim_at': next_claim.isoformat() if next_claim else None,
            'ad_rewards_today': ads_today,
            'ad_reward_limit': self.settings.ad_reward_daily_limit,
        }
