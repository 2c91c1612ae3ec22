import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quizpot import db
from quizpot.errors import (
    AlreadyAnswered,
    DependencyError,
    InvalidState,
    NotFound,
    QuizpotError,
    SubmissionRateExceeded,
    ValidationError,
)
from quizpot.models import Answer, GameSession, utcnow
from quizpot.repositories import AnswerRepository, SessionRepository
from quizpot.services.integrations import AuditSink, safe_emit
from quizpot.services.locks import KeyedLocks
from quizpot.settings import GameSettings

RATE_WINDOW = timedelta(minutes=1)


@dataclass(frozen=True)
class AnswerResult:
    session_id: int
    question_id: int
    is_correct: bool
    is_skipped: bool
    points: int
    score: int
    answered_questions: int
    total_questions: int
    completed: bool
    correct_answer: Optional[str] = None

    def to_dict(self):
        return {
            'session_id': self.session_id,
            'question_id': self.question_id,
            'is_correct': self.is_correct,
            'is_skipped': self.is_skipped,
            'points': self.points,
            'score': self.score,
            'progress': {
                'answered_questions': self.answered_questions,
                'total_questions': self.total_questions,
            },
            'completed': self.completed,
            'correct_answer': self.correct_answer,
        }


def score_delta(is_correct: bool, response_time: float, settings: GameSettings) -> int:
    """Points for one answer.

    Zero unless correct. A correct answer earns the base points plus a speed
    bonus that shrinks linearly to zero over the speed window, so a faster
    correct answer never earns less than a slower one.
    """
    if not is_correct:
        return 0
    window = settings.score_speed_window_sec
    fraction = max(0.0, 1.0 - response_time / window) if window > 0 else 0.0
    return settings.score_correct_points + int(math.floor(settings.score_speed_bonus * fraction))


class ScoringEngine:
    def __init__(self, settings: GameSettings, locks: KeyedLocks, session_manager, ranker, audit: AuditSink,
                 sessions: Optional[SessionRepository] = None, answers: Optional[AnswerRepository] = None):
        self.settings = settings
        self.locks = locks
        self.session_manager = session_manager
        self.ranker = ranker
        self.audit = audit
        self.sessions = sessions or SessionRepository()
        self.answers = answers or AnswerRepository()

    def submit_answer(self, session_id: int, question_id: int, selected_option: Optional[str],
                      response_time: float, is_skipped: bool = False, user_id: Optional[int] = None,
                      now: Optional[datetime] = None) -> AnswerResult:
        """Record one answer and fold it into the session aggregates.

        A client-side timeout arrives as ``selected_option=None, is_skipped=True``
        and is handled exactly like a voluntary skip. The answer that brings
        ``answered_questions`` up to ``total_questions`` completes the session
        and upserts its leaderboard entry in the same transaction.
        """
        if isinstance(response_time, bool) or not isinstance(response_time, (int, float)) or response_time < 0:
            raise ValidationError('response_time must be a non-negative number')
        now = now or utcnow()

        with self.locks.hold('session', session_id):
            session = self.session_manager.expire_if_idle(self.session_manager.load(session_id, user_id), now)
            if session.status != 'ACTIVE':
                raise InvalidState('Session cannot accept answers', status=session.status)
            period_id, owner_id = session.period_id, session.user_id
            assignment = self.sessions.get_assignment(session.id, question_id)
            if assignment is None:
                raise NotFound('Question is not part of this session', question_id=question_id)
            if self.answers.exists(session.id, question_id):
                raise AlreadyAnswered(question_id=question_id)
            limit = self.settings.answer_rate_limit_per_minute
            if limit and self.answers.count_since(session.id, now - RATE_WINDOW) >= limit:
                current_app.logger.warning(f"[answer-rate-limit] session={session_id} user={session.user_id} limit={limit}")
                raise SubmissionRateExceeded(limit=limit)

            if is_skipped:
                selected_option = None
            elif selected_option is None or selected_option not in assignment.options:
                raise ValidationError('selected_option must be one of the question options')

            correct_answer = assignment.question.correct_answer
            is_correct = not is_skipped and selected_option == correct_answer
            points = score_delta(is_correct, float(response_time), self.settings)

            try:
                try:
                    self.answers.add(Answer(
                        session_id=session.id,
                        question_id=question_id,
                        selected_option=selected_option,
                        is_skipped=bool(is_skipped),
                        is_correct=is_correct,
                        response_time=float(response_time),
                        points=points,
                        created_at=now,
                    ))
                except IntegrityError as exc:
                    raise AlreadyAnswered(question_id=question_id) from exc

                # SQL-side increments so concurrent writers on other workers never lose an update
                session.answered_questions = GameSession.answered_questions + 1
                session.score = GameSession.score + points
                session.total_time_spent = GameSession.total_time_spent + float(response_time)
                if is_correct:
                    session.correct_answers = GameSession.correct_answers + 1
                elif is_skipped:
                    session.skipped_answers = GameSession.skipped_answers + 1
                else:
                    session.incorrect_answers = GameSession.incorrect_answers + 1
                session.last_activity_at = now
                db.session.flush()

                completed = session.answered_questions >= session.total_questions
                if completed:
                    session.status = 'COMPLETED'
                    session.completed_at = now
                    self.ranker.upsert_entry(session, commit=False)
                result = AnswerResult(
                    session_id=session.id,
                    question_id=question_id,
                    is_correct=is_correct,
                    is_skipped=bool(is_skipped),
                    points=points,
                    score=session.score,
                    answered_questions=session.answered_questions,
                    total_questions=session.total_questions,
                    completed=completed,
                    correct_answer=correct_answer if is_skipped else None,
                )
                db.session.commit()
            except QuizpotError:
                db.session.rollback()
                raise
            except SQLAlchemyError as exc:
                db.session.rollback()
                current_app.logger.error(f"[answer-error] session={session_id} question={question_id} error={exc!r}")
                raise DependencyError('Failed to submit answer') from exc

        current_app.logger.info(
            f"[answer] session={session_id} question={question_id} correct={is_correct} skipped={bool(is_skipped)} "
            f"points={points} completed={result.completed}"
        )
        if result.completed:
            try:
                self.ranker.recalculate_ranks(period_id)
            except SQLAlchemyError as exc:
                # The answer is committed; ranks are rebuilt by the next recalculation
                db.session.rollback()
                current_app.logger.error(f"[rank-error] period={period_id} session={session_id} error={exc!r}")
            safe_emit(self.audit, 'game_completed', session_id=session_id, user_id=owner_id,
                      period_id=period_id, score=result.score)
        return result
