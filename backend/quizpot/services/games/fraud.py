"""Winner-candidate fraud screening.

Evidence for one candidate is fetched up front into ``FraudEvidence``; each
signal is a pure function ``(evidence, settings) -> FraudReason | None`` so it
can be tested on its own. ``FraudDetector.assess`` runs every signal and
reports the worst severity that fired.
"""
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Tuple

from flask import current_app

from quizpot.models import LeaderboardEntry
from quizpot.repositories import AnswerRepository, SessionRepository
from quizpot.settings import GameSettings

LOW, MEDIUM, HIGH = 'LOW', 'MEDIUM', 'HIGH'
SEVERITY = {LOW: 0, MEDIUM: 1, HIGH: 2}


@dataclass(frozen=True)
class FraudReason:
    code: str
    message: str
    risk_level: str


@dataclass(frozen=True)
class FraudEvidence:
    user_id: int
    period_id: int
    session_id: Optional[int] = None
    ip_address: Optional[str] = None
    other_users_on_ip: int = 0
    device_info: Optional[str] = None
    other_users_on_device: int = 0
    response_times: Tuple[float, ...] = ()
    correct_answers: int = 0
    current_score: int = 0
    previous_scores: Tuple[int, ...] = ()

    @property
    def answer_count(self) -> int:
        return len(self.response_times)

    @property
    def average_response_time(self) -> float:
        return sum(self.response_times) / len(self.response_times) if self.response_times else 0.0

    @property
    def accuracy(self) -> float:
        return self.correct_answers / len(self.response_times) if self.response_times else 0.0


@dataclass(frozen=True)
class FraudAssessment:
    is_suspicious: bool
    reasons: Tuple[FraudReason, ...] = field(default_factory=tuple)
    risk_level: str = LOW

    def to_dict(self):
        return {
            'is_suspicious': self.is_suspicious,
            'risk_level': self.risk_level,
            'reasons': [{'code': r.code, 'message': r.message, 'risk_level': r.risk_level} for r in self.reasons],
        }


def variance(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def shared_ip(evidence: FraudEvidence, settings: GameSettings) -> Optional[FraudReason]:
    if evidence.ip_address and evidence.other_users_on_ip > 0:
        return FraudReason('shared_ip', 'Multiple accounts from same IP address in this period', HIGH)
    return None


def fast_and_accurate(evidence: FraudEvidence, settings: GameSettings) -> Optional[FraudReason]:
    if not evidence.answer_count:
        return None
    if (evidence.average_response_time < settings.fraud_fast_response_sec
            and evidence.accuracy > settings.fraud_high_accuracy):
        return FraudReason('fast_and_accurate', 'Unrealistic response times with high accuracy', HIGH)
    return None


def uniform_response_times(evidence: FraudEvidence, settings: GameSettings) -> Optional[FraudReason]:
    if evidence.answer_count < settings.fraud_variance_min_samples:
        return None
    if variance(evidence.response_times) < settings.fraud_min_variance:
        return FraudReason('uniform_response_times', 'Suspiciously consistent response times', MEDIUM)
    return None


def shared_device(evidence: FraudEvidence, settings: GameSettings) -> Optional[FraudReason]:
    if evidence.device_info and evidence.other_users_on_device > settings.fraud_max_users_per_device:
        return FraudReason('shared_device', 'Multiple accounts from same device', HIGH)
    return None


def sudden_improvement(evidence: FraudEvidence, settings: GameSettings) -> Optional[FraudReason]:
    if not evidence.previous_scores:
        return None
    average = sum(evidence.previous_scores) / len(evidence.previous_scores)
    if average > 0 and evidence.current_score > 2 * average:
        return FraudReason('sudden_improvement', 'Dramatic improvement over historical average', MEDIUM)
    return None


Signal = Callable[[FraudEvidence, GameSettings], Optional[FraudReason]]

DEFAULT_SIGNALS: Tuple[Signal, ...] = (
    shared_ip,
    fast_and_accurate,
    uniform_response_times,
    shared_device,
    sudden_improvement,
)


class FraudDetector:
    def __init__(self, settings: GameSettings, signals: Sequence[Signal] = DEFAULT_SIGNALS,
                 sessions: Optional[SessionRepository] = None, answers: Optional[AnswerRepository] = None):
        self.settings = settings
        self.signals = tuple(signals)
        self.sessions = sessions or SessionRepository()
        self.answers = answers or AnswerRepository()

    def gather_evidence(self, entry: LeaderboardEntry) -> FraudEvidence:
        session = self.sessions.get(entry.session_id)
        if session is None:
            return FraudEvidence(user_id=entry.user_id, period_id=entry.period_id, current_score=entry.score)
        answers = self.answers.list_for_session(session.id)
        return FraudEvidence(
            user_id=entry.user_id,
            period_id=entry.period_id,
            session_id=session.id,
            ip_address=session.ip_address,
            other_users_on_ip=(
                self.sessions.other_users_on_ip(entry.period_id, session.ip_address, entry.user_id)
                if session.ip_address else 0
            ),
            device_info=session.device_info,
            other_users_on_device=(
                self.sessions.other_users_on_device(session.device_info, entry.user_id)
                if session.device_info else 0
            ),
            response_times=tuple(a.response_time for a in answers),
            correct_answers=sum(1 for a in answers if a.is_correct),
            current_score=entry.score,
            previous_scores=tuple(self.sessions.previous_completed_scores(
                entry.user_id, entry.period_id, self.settings.fraud_history_window
            )),
        )

    def assess(self, evidence: FraudEvidence) -> FraudAssessment:
        reasons = []
        for signal in self.signals:
            try:
                reason = signal(evidence, self.settings)
            except Exception as exc:
                current_app.logger.warning(
                    f"[fraud-signal-error] signal={getattr(signal, '__name__', signal)} user={evidence.user_id} error={exc!r}"
                )
                continue
            if reason is not None:
                reasons.append(reason)
        if not reasons:
            return FraudAssessment(is_suspicious=False)
        risk = max((r.risk_level for r in reasons), key=SEVERITY.__getitem__)
        return FraudAssessment(is_suspicious=True, reasons=tuple(reasons), risk_level=risk)

    def screen(self, entry: LeaderboardEntry) -> FraudAssessment:
        return self.assess(self.gather_evidence(entry))
