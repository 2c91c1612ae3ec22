from typing import List, Optional

from flask import current_app

from quizpot import db
from quizpot.errors import NotFound, ValidationError
from quizpot.models import GameSession, LeaderboardEntry
from quizpot.repositories import LeaderboardRepository, PeriodRepository, SessionRepository
from quizpot.services.locks import KeyedLocks


def rank_key(entry: LeaderboardEntry):
    """Higher score, then faster average response, then earlier completion,
    then creation order."""
    return (-entry.score, entry.average_response_time, entry.completed_at, entry.id)


class LeaderboardRanker:
    MAX_LIMIT = 1000

    def __init__(self, locks: KeyedLocks, entries: Optional[LeaderboardRepository] = None,
                 periods: Optional[PeriodRepository] = None, sessions: Optional[SessionRepository] = None):
        self.locks = locks
        self.entries = entries or LeaderboardRepository()
        self.periods = periods or PeriodRepository()
        self.sessions = sessions or SessionRepository()

    def upsert_entry(self, session: GameSession, commit: bool = True) -> LeaderboardEntry:
        mode = session.period.mode
        entry = self.entries.get(session.user_id, session.period_id)
        if entry is None:
            entry = self.entries.add(LeaderboardEntry(
                user_id=session.user_id,
                period_id=session.period_id,
                session_id=session.id,
                completed_at=session.completed_at,
            ))
        entry.session_id = session.id
        entry.score = session.score
        entry.answered_questions = session.answered_questions
        entry.correct_answers = session.correct_answers
        entry.is_qualified = session.answered_questions >= mode.min_answers_to_qualify
        entry.average_response_time = session.average_response_time
        entry.completed_at = session.completed_at
        if commit:
            db.session.commit()
        return entry

    def recalculate_ranks(self, period_id: int, commit: bool = True) -> List[LeaderboardEntry]:
        """Rewrite ``rank`` for every entry of the period; stable under repeats."""
        with self.locks.hold('period', period_id):
            ordered = sorted(self.entries.list_for_period(period_id), key=rank_key)
            changed = 0
            for position, entry in enumerate(ordered, start=1):
                if entry.rank != position:
                    entry.rank = position
                    changed += 1
            if commit:
                db.session.commit()
        current_app.logger.info(f"[ranks] period={period_id} entries={len(ordered)} changed={changed}")
        return ordered

    def get_leaderboard(self, period_id: int, user_id: Optional[int] = None, limit: int = 100) -> dict:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self.MAX_LIMIT:
            raise ValidationError(f'limit must be between 1 and {self.MAX_LIMIT}')
        period = self.periods.get(period_id)
        if period is None:
            raise NotFound('Game period not found', period_id=period_id)
        entries = self.entries.top(period_id, limit)
        user_entry = self.entries.get(user_id, period_id) if user_id is not None else None
        return {
            'period': period.to_dict(),
            'entries': [e.to_dict() for e in entries],
            'user_entry': user_entry.to_dict() if user_entry else None,
            'total_participants': period.total_participants,
        }

    def period_stats(self, period_id: int) -> dict:
        period = self.periods.get(period_id)
        if period is None:
            raise NotFound('Game period not found', period_id=period_id)
        entries = self.entries.list_for_period(period_id)
        scores = [e.score for e in entries]
        return {
            'period_id': period_id,
            'total_participants': period.total_participants,
            'completed_sessions': self.sessions.count_by_status(period_id, 'COMPLETED'),
            'qualified_participants': sum(1 for e in entries if e.is_qualified),
            'average_score': (sum(scores) / len(scores)) if scores else 0.0,
            'top_score': max(scores) if scores else 0,
        }
