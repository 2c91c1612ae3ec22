from dataclasses import dataclass
from typing import Optional

from quizpot.services.games import (
    FraudDetector,
    LeaderboardRanker,
    ScoringEngine,
    SessionManager,
    StatsReader,
    WinnerGate,
    WinnerResolver,
)
from quizpot.services.integrations import (
    AuditSink,
    DatabaseQuestionSource,
    EntryPaymentRegistry,
    LoggingAuditSink,
    PaymentVerifier,
    QuestionSource,
)
from quizpot.services.locks import KeyedLocks
from quizpot.services.wallet import WalletLedger, WalletRewards
from quizpot.settings import GameSettings


@dataclass
class GameServices:
    settings: GameSettings
    locks: KeyedLocks
    payments: PaymentVerifier
    questions: QuestionSource
    audit: AuditSink
    ledger: WalletLedger
    rewards: WalletRewards
    sessions: SessionManager
    leaderboard: LeaderboardRanker
    scoring: ScoringEngine
    fraud: FraudDetector
    winners: WinnerResolver
    gate: WinnerGate
    stats: StatsReader


def build_services(settings: GameSettings, payments: Optional[PaymentVerifier] = None,
                   questions: Optional[QuestionSource] = None, audit: Optional[AuditSink] = None,
                   fraud: Optional[FraudDetector] = None) -> GameServices:
    locks = KeyedLocks()
    payments = payments or EntryPaymentRegistry()
    questions = questions or DatabaseQuestionSource()
    audit = audit or LoggingAuditSink()
    ledger = WalletLedger(locks)
    leaderboard = LeaderboardRanker(locks)
    sessions = SessionManager(settings, locks, ledger, payments, questions, audit)
    fraud = fraud or FraudDetector(settings)
    return GameServices(
        settings=settings,
        locks=locks,
        payments=payments,
        questions=questions,
        audit=audit,
        ledger=ledger,
        rewards=WalletRewards(ledger, settings, audit),
        sessions=sessions,
        leaderboard=leaderboard,
        scoring=ScoringEngine(settings, locks, sessions, leaderboard, audit),
        fraud=fraud,
        winners=WinnerResolver(settings, locks, leaderboard, fraud, audit),
        gate=WinnerGate(settings),
        stats=StatsReader(),
    )
