"""Per-entity persistence interfaces.

Services only talk to these classes; each exposes the handful of queries and
conditional writes its service needs. All writes go through ``db.session``
and are committed by the calling service, so one service operation is one
database transaction.
"""
from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy import case, func, select, update

from quizpot import db
from quizpot.models import (
    AdRewardClaim,
    Answer,
    FraudFlag,
    GameSession,
    LeaderboardEntry,
    Period,
    Question,
    SessionQuestion,
    User,
    Wallet,
    WalletTransaction,
    Winner,
)

OPEN_SESSION_STATUSES = ('ACTIVE', 'PAUSED')


class UserRepository:
    def get(self, user_id: int) -> Optional[User]:
        return db.session.get(User, user_id)

    def get_fresh(self, user_id: int) -> Optional[User]:
        return User.query.filter_by(id=user_id).execution_options(populate_existing=True).first()

    def by_username(self, username: str) -> Optional[User]:
        return User.query.filter_by(username=username).first()

    def add(self, user: User) -> User:
        db.session.add(user)
        db.session.flush()
        return user

    def add_earnings(self, user_id: int, delta: float) -> None:
        db.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(lifetime_earnings=case(
                (User.lifetime_earnings + delta < 0, 0.0),
                else_=User.lifetime_earnings + delta,
            ))
            .execution_options(synchronize_session=False)
        )


class WalletRepository:
    def get(self, user_id: int) -> Optional[Wallet]:
        return Wallet.query.filter_by(user_id=user_id).execution_options(populate_existing=True).first()

    def create(self, user_id: int) -> Wallet:
        wallet = Wallet(user_id=user_id, balance=0, ad_rewards_today=0)
        db.session.add(wallet)
        db.session.flush()
        return wallet

    def apply_delta(self, user_id: int, amount: int) -> Optional[int]:
        """Conditionally add ``amount``; returns the new balance or None when it would go negative."""
        result = db.session.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id, Wallet.balance + amount >= 0)
            .values(balance=Wallet.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return db.session.execute(select(Wallet.balance).where(Wallet.user_id == user_id)).scalar_one()

    def add_transaction(self, **fields) -> WalletTransaction:
        tx = WalletTransaction(status='COMPLETED', **fields)
        db.session.add(tx)
        db.session.flush()
        return tx

    def list_transactions(self, user_id: int, limit: int, offset: int) -> List[WalletTransaction]:
        return (
            WalletTransaction.query.filter_by(user_id=user_id)
            .order_by(WalletTransaction.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def find_transaction(self, user_id: int, tx_type: str, reference: str) -> Optional[WalletTransaction]:
        return WalletTransaction.query.filter_by(user_id=user_id, type=tx_type, reference=reference).first()

    def sum_amounts(self, user_id: int, tx_types: Iterable[str]) -> int:
        total = db.session.execute(
            select(func.coalesce(func.sum(WalletTransaction.amount), 0))
            .where(WalletTransaction.user_id == user_id, WalletTransaction.type.in_(list(tx_types)))
        ).scalar_one()
        return int(total)

    def take_daily_claim(self, user_id: int, now: datetime, last_allowed: datetime) -> bool:
        """Stamp ``last_daily_claim_at`` only if the previous claim is at or before ``last_allowed``."""
        result = db.session.execute(
            update(Wallet)
            .where(
                Wallet.user_id == user_id,
                (Wallet.last_daily_claim_at.is_(None)) | (Wallet.last_daily_claim_at <= last_allowed),
            )
            .values(last_daily_claim_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def reset_ad_counter(self, user_id: int, now: datetime, next_reset: datetime) -> None:
        db.session.execute(
            update(Wallet)
            .where(
                Wallet.user_id == user_id,
                (Wallet.ad_rewards_reset_at.is_(None)) | (Wallet.ad_rewards_reset_at <= now),
            )
            .values(ad_rewards_today=0, ad_rewards_reset_at=next_reset)
            .execution_options(synchronize_session=False)
        )

    def take_ad_slot(self, user_id: int, limit: int) -> bool:
        result = db.session.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id, Wallet.ad_rewards_today < limit)
            .values(ad_rewards_today=Wallet.ad_rewards_today + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def ad_claim_exists(self, user_id: int, ad_type: str, day: date) -> bool:
        return AdRewardClaim.query.filter_by(user_id=user_id, ad_type=ad_type, claim_date=day).first() is not None

    def add_ad_claim(self, user_id: int, ad_type: str, day: date, credits: int) -> AdRewardClaim:
        claim = AdRewardClaim(user_id=user_id, ad_type=ad_type, claim_date=day, credits=credits)
        db.session.add(claim)
        db.session.flush()
        return claim


class PeriodRepository:
    def get(self, period_id: int) -> Optional[Period]:
        return Period.query.filter_by(id=period_id).execution_options(populate_existing=True).first()

    def transition(self, period_id: int, from_status: str, to_status: str) -> bool:
        """Compare-and-set on ``status``; True only for the caller that moved it."""
        result = db.session.execute(
            update(Period)
            .where(Period.id == period_id, Period.status == from_status)
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment_participants(self, period_id: int) -> None:
        db.session.execute(
            update(Period)
            .where(Period.id == period_id)
            .values(total_participants=Period.total_participants + 1)
            .execution_options(synchronize_session=False)
        )

    def due_for_finalization(self, now: datetime) -> List[Period]:
        return Period.query.filter(Period.status == 'ACTIVE', Period.end_date <= now).order_by(Period.id).all()

    def due_for_activation(self, now: datetime) -> List[Period]:
        return Period.query.filter(
            Period.status == 'UPCOMING', Period.start_date <= now, Period.end_date > now
        ).order_by(Period.id).all()


class QuestionRepository:
    def random(self, language: str, count: int) -> List[Question]:
        return (
            Question.query.filter_by(language=language, is_active=True)
            .order_by(db.func.random())
            .limit(count)
            .all()
        )


class SessionRepository:
    def get(self, session_id: int) -> Optional[GameSession]:
        return GameSession.query.filter_by(id=session_id).execution_options(populate_existing=True).first()

    def find_latest(self, user_id: int, period_id: int, statuses: Iterable[str]) -> Optional[GameSession]:
        return (
            GameSession.query.filter(
                GameSession.user_id == user_id,
                GameSession.period_id == period_id,
                GameSession.status.in_(list(statuses)),
            )
            .order_by(GameSession.id.desc())
            .first()
        )

    def list_for_user(self, user_id: int, statuses: Iterable[str]) -> List[GameSession]:
        return (
            GameSession.query.filter(GameSession.user_id == user_id, GameSession.status.in_(list(statuses)))
            .order_by(GameSession.id.desc())
            .all()
        )

    def completed_for_user(self, user_id: int) -> List[GameSession]:
        """Completed sessions, most recent first."""
        return (
            GameSession.query.filter(GameSession.user_id == user_id, GameSession.status == 'COMPLETED')
            .order_by(GameSession.completed_at.desc(), GameSession.id.desc())
            .all()
        )

    def add(self, session: GameSession) -> GameSession:
        db.session.add(session)
        db.session.flush()
        return session

    def assign_questions(self, session_id: int, assignments) -> None:
        for position, (question_id, options) in enumerate(assignments):
            db.session.add(SessionQuestion(
                session_id=session_id,
                question_id=question_id,
                position=position,
                options=options,
            ))
        db.session.flush()

    def unanswered_questions(self, session_id: int, limit: int) -> List[SessionQuestion]:
        answered = select(Answer.question_id).where(Answer.session_id == session_id)
        return (
            SessionQuestion.query.filter(
                SessionQuestion.session_id == session_id,
                SessionQuestion.question_id.not_in(answered),
            )
            .order_by(SessionQuestion.position)
            .limit(limit)
            .all()
        )

    def get_assignment(self, session_id: int, question_id: int) -> Optional[SessionQuestion]:
        return SessionQuestion.query.filter_by(session_id=session_id, question_id=question_id).first()

    def count_by_status(self, period_id: int, status: str) -> int:
        return GameSession.query.filter_by(period_id=period_id, status=status).count()

    def other_users_on_ip(self, period_id: int, ip_address: str, user_id: int) -> int:
        return (
            db.session.query(func.count(func.distinct(GameSession.user_id)))
            .filter(
                GameSession.period_id == period_id,
                GameSession.ip_address == ip_address,
                GameSession.user_id != user_id,
            )
            .scalar()
        ) or 0

    def other_users_on_device(self, device_info: str, user_id: int) -> int:
        return (
            db.session.query(func.count(func.distinct(GameSession.user_id)))
            .filter(GameSession.device_info == device_info, GameSession.user_id != user_id)
            .scalar()
        ) or 0

    def previous_completed_scores(self, user_id: int, exclude_period_id: int, limit: int) -> List[int]:
        rows = (
            db.session.query(GameSession.score)
            .filter(
                GameSession.user_id == user_id,
                GameSession.status == 'COMPLETED',
                GameSession.period_id != exclude_period_id,
            )
            .order_by(GameSession.completed_at.desc(), GameSession.id.desc())
            .limit(limit)
            .all()
        )
        return [r[0] for r in rows]


class AnswerRepository:
    def exists(self, session_id: int, question_id: int) -> bool:
        return Answer.query.filter_by(session_id=session_id, question_id=question_id).first() is not None

    def add(self, answer: Answer) -> Answer:
        db.session.add(answer)
        db.session.flush()
        return answer

    def list_for_session(self, session_id: int) -> List[Answer]:
        return Answer.query.filter_by(session_id=session_id).order_by(Answer.id).all()

    def count_since(self, session_id: int, since: datetime) -> int:
        return Answer.query.filter(Answer.session_id == session_id, Answer.created_at > since).count()


class LeaderboardRepository:
    def get(self, user_id: int, period_id: int) -> Optional[LeaderboardEntry]:
        return LeaderboardEntry.query.filter_by(user_id=user_id, period_id=period_id).first()

    def add(self, entry: LeaderboardEntry) -> LeaderboardEntry:
        db.session.add(entry)
        db.session.flush()
        return entry

    def list_for_period(self, period_id: int) -> List[LeaderboardEntry]:
        return (
            LeaderboardEntry.query.filter_by(period_id=period_id)
            .execution_options(populate_existing=True)
            .order_by(LeaderboardEntry.id)
            .all()
        )

    def top(self, period_id: int, limit: int) -> List[LeaderboardEntry]:
        return (
            LeaderboardEntry.query.filter_by(period_id=period_id)
            .order_by(LeaderboardEntry.rank.is_(None), LeaderboardEntry.rank, LeaderboardEntry.id)
            .limit(limit)
            .all()
        )

    def list_for_user(self, user_id: int) -> List[LeaderboardEntry]:
        return LeaderboardEntry.query.filter_by(user_id=user_id).order_by(LeaderboardEntry.id).all()


class WinnerRepository:
    def get(self, winner_id: int) -> Optional[Winner]:
        return Winner.query.filter_by(id=winner_id).execution_options(populate_existing=True).first()

    def add(self, winner: Winner) -> Winner:
        db.session.add(winner)
        db.session.flush()
        return winner

    def list_for_period(self, period_id: int) -> List[Winner]:
        return Winner.query.filter_by(period_id=period_id).order_by(Winner.rank).all()

    def list_for_user(self, user_id: int) -> List[Winner]:
        return Winner.query.filter_by(user_id=user_id).order_by(Winner.id).all()


class FraudFlagRepository:
    def add(self, flag: FraudFlag) -> FraudFlag:
        db.session.add(flag)
        db.session.flush()
        return flag

    def list_open(self, period_id: Optional[int] = None) -> List[FraudFlag]:
        query = FraudFlag.query.filter_by(review_status='OPEN')
        if period_id is not None:
            query = query.filter_by(period_id=period_id)
        return query.order_by(FraudFlag.id).all()
