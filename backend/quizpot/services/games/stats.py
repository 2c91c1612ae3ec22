from dataclasses import asdict, dataclass
from typing import Optional

from quizpot.errors import NotFound
from quizpot.repositories import LeaderboardRepository, SessionRepository, UserRepository, WalletRepository, WinnerRepository

EARNED_CREDIT_TYPES = ('DAILY_CLAIM', 'AD_REWARD', 'BONUS')


@dataclass(frozen=True)
class PlayerStats:
    games_played: int
    games_won: int
    total_score: int
    average_score: int
    win_rate: int
    current_streak: int
    longest_streak: int
    credits_earned: int
    total_play_time: int
    best_rank: Optional[int]
    current_rank: Optional[int]
    lifetime_earnings: float

    def to_dict(self):
        return asdict(self)


def win_streaks(outcomes):
    """(current, longest) run of wins in ``outcomes``, newest first."""
    current = longest = run = 0
    broken = False
    for won in outcomes:
        if won:
            run += 1
            longest = max(longest, run)
            if not broken:
                current = run
        else:
            broken = True
            run = 0
    return current, longest


class StatsReader:
    """Per-player history: games played, wins, streaks and ranks.

    A game counts as won when the player holds a non-rejected Winner row for
    that period.
    """

    def __init__(self, users: Optional[UserRepository] = None, sessions: Optional[SessionRepository] = None,
                 winners: Optional[WinnerRepository] = None, entries: Optional[LeaderboardRepository] = None,
                 wallets: Optional[WalletRepository] = None):
        self.users = users or UserRepository()
        self.sessions = sessions or SessionRepository()
        self.winners = winners or WinnerRepository()
        self.entries = entries or LeaderboardRepository()
        self.wallets = wallets or WalletRepository()

    def user_stats(self, user_id: int) -> PlayerStats:
        user = self.users.get_fresh(user_id)
        if user is None:
            raise NotFound('User not found', user_id=user_id)

        completed = self.sessions.completed_for_user(user_id)
        won_periods = {w.period_id for w in self.winners.list_for_user(user_id) if w.status != 'REJECTED'}
        played = len(completed)
        total_score = sum(s.score for s in completed)
        play_time = sum((s.completed_at - s.started_at).total_seconds() for s in completed if s.completed_at)
        current_streak, longest_streak = win_streaks(s.period_id in won_periods for s in completed)

        entries = self.entries.list_for_user(user_id)
        ranks = [e.rank for e in entries if e.rank is not None]
        latest = entries[-1] if entries else None

        return PlayerStats(
            games_played=played,
            games_won=len(won_periods),
            total_score=total_score,
            average_score=round(total_score / played) if played else 0,
            win_rate=round(len(won_periods) / played * 100) if played else 0,
            current_streak=current_streak,
            longest_streak=longest_streak,
            credits_earned=self.wallets.sum_amounts(user_id, EARNED_CREDIT_TYPES),
            total_play_time=round(play_time),
            best_rank=min(ranks) if ranks else None,
            current_rank=latest.rank if latest else None,
            lifetime_earnings=user.lifetime_earnings,
        )
