from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quizpot import db
from quizpot.errors import AlreadyProcessed, DependencyError, InsufficientFunds, NotFound, QuizpotError, ValidationError
from quizpot.models import Wallet, WalletTransaction
from quizpot.repositories import UserRepository, WalletRepository
from quizpot.services.locks import KeyedLocks

TRANSACTION_TYPES = frozenset({
    'DAILY_CLAIM', 'AD_REWARD', 'PURCHASE', 'ENTRY_FEE', 'REFUND', 'ADJUSTMENT', 'BONUS', 'PENALTY',
})


@dataclass(frozen=True)
class AdjustResult:
    new_balance: int
    transaction: WalletTransaction


class WalletLedger:
    """Sole writer of wallet balances.

    Every successful mutation is a conditional ``UPDATE`` (the balance never
    goes below zero) plus exactly one immutable ``WalletTransaction`` row
    carrying the post-mutation balance, written in the same DB transaction.
    """

    def __init__(self, locks: KeyedLocks, wallets: Optional[WalletRepository] = None,
                 users: Optional[UserRepository] = None):
        self.locks = locks
        self.wallets = wallets or WalletRepository()
        self.users = users or UserRepository()

    def ensure_wallet(self, user_id: int, commit: bool = True) -> Wallet:
        wallet = self.wallets.get(user_id)
        if wallet is None:
            if self.users.get(user_id) is None:
                raise NotFound('User not found', user_id=user_id)
            wallet = self.wallets.create(user_id)
            if commit:
                db.session.commit()
        return wallet

    def get_wallet(self, user_id: int) -> Wallet:
        wallet = self.wallets.get(user_id)
        if wallet is None:
            raise NotFound('Wallet not found', user_id=user_id)
        return wallet

    def list_transactions(self, user_id: int, limit: int = 50, offset: int = 0) -> List[WalletTransaction]:
        if not 1 <= limit <= 200 or offset < 0:
            raise ValidationError('limit must be 1..200 and offset >= 0')
        self.get_wallet(user_id)
        return self.wallets.list_transactions(user_id, limit, offset)

    def adjust_balance(self, user_id: int, amount: int, tx_type: str, description: str,
                       reference: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
                       commit: bool = True) -> AdjustResult:
        """Credit (positive) or debit (negative) a wallet.

        With ``commit=False`` the caller owns the surrounding transaction and
        must commit or roll back; the balance check is still atomic.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
            raise ValidationError('amount must be a non-zero integer', amount=amount)
        if tx_type not in TRANSACTION_TYPES:
            raise ValidationError(f'Unknown transaction type {tx_type}')

        with self.locks.hold('wallet', user_id):
            try:
                if self.wallets.get(user_id) is None:
                    raise NotFound('Wallet not found', user_id=user_id)
                new_balance = self.wallets.apply_delta(user_id, amount)
                if new_balance is None:
                    raise InsufficientFunds(user_id=user_id, amount=amount)
                tx = self.wallets.add_transaction(
                    user_id=user_id,
                    type=tx_type,
                    amount=amount,
                    balance_after=new_balance,
                    description=description,
                    reference=reference,
                    meta=metadata,
                )
                if commit:
                    db.session.commit()
            except QuizpotError:
                if commit:
                    db.session.rollback()
                raise
            except IntegrityError as exc:
                # Only the purchase-reference index can reject a ledger row
                db.session.rollback()
                raise AlreadyProcessed(reference=reference) from exc
            except SQLAlchemyError as exc:
                db.session.rollback()
                current_app.logger.error(f"[wallet-error] user={user_id} type={tx_type} amount={amount} error={exc!r}")
                raise DependencyError('Wallet update failed') from exc

        current_app.logger.info(
            f"[wallet-adjust] user={user_id} type={tx_type} amount={amount} balance={new_balance} tx={tx.id}"
        )
        return AdjustResult(new_balance=new_balance, transaction=tx)
