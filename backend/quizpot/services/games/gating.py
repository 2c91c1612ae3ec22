"""Winner display gating.

Viewers whose lifetime earnings are below their mode's threshold see a
synthetic winners list instead of the real one. The decision is recomputed
on every call.
"""
import random
from datetime import timedelta
from typing import List, Optional

from quizpot.errors import NotFound
from quizpot.models import Period
from quizpot.repositories import PeriodRepository, UserRepository, WinnerRepository
from quizpot.settings import GameSettings

SYNTHETIC_NAMES = [
    'winner1', 'champion', 'topplayer', 'quizmaster', 'smartuser',
    'triviaking', 'brainiac', 'genius', 'scholar', 'expert',
]


def should_show_actual_winners(user_lifetime_earnings: Optional[float], mode_type: str,
                               settings: GameSettings) -> bool:
    if user_lifetime_earnings is None:
        return False
    threshold = settings.winner_gating_thresholds.get(mode_type.upper())
    if threshold is None:
        return False
    return user_lifetime_earnings >= threshold


def synthetic_winners(period: Period) -> List[dict]:
    mode = period.mode
    rng = random.Random(f'synthetic:{period.id}')
    winners = []
    for i in range(mode.max_winners):
        name = SYNTHETIC_NAMES[i] if i < len(SYNTHETIC_NAMES) else f'aiwinner{i + 1}'
        winners.append({
            'id': f'ai-winner-{i + 1}',
            'user_id': f'ai-user-{i + 1}',
            'username': name,
            'period_id': period.id,
            'rank': i + 1,
            'score': 900 + rng.randint(0, 99),
            'payout_amount': mode.payout,
            'payout_currency': mode.payout_currency,
            'status': 'PAID',
            'paid_at': (period.end_date - timedelta(days=rng.randint(0, 29))).isoformat(),
        })
    winners.sort(key=lambda w: -w['score'])
    for rank, winner in enumerate(winners, start=1):
        winner['rank'] = rank
    return winners


class WinnerGate:
    def __init__(self, settings: GameSettings, users: Optional[UserRepository] = None,
                 periods: Optional[PeriodRepository] = None, winners: Optional[WinnerRepository] = None):
        self.settings = settings
        self.users = users or UserRepository()
        self.periods = periods or PeriodRepository()
        self.winners = winners or WinnerRepository()

    def get_winners(self, period_id: int, viewer_id: Optional[int] = None) -> dict:
        period = self.periods.get(period_id)
        if period is None:
            raise NotFound('Game period not found', period_id=period_id)
        viewer = self.users.get_fresh(viewer_id) if viewer_id is not None else None
        earnings = viewer.lifetime_earnings if viewer is not None else None
        show_actual = should_show_actual_winners(earnings, period.mode.mode_type, self.settings)
        if show_actual:
            winners = [w.to_dict() for w in self.winners.list_for_period(period_id)]
        else:
            winners = synthetic_winners(period)
        return {
            'period': period.to_dict(),
            'showing_actual_winners': show_actual,
            'winners': winners,
        }
