"""Game domain services: sessions, scoring, ranking, fraud screening and
winner resolution, plus per-player statistics.

This package contains the domain logic imported by HTTP routes and CLI
commands, keeping transport concerns separated from core game mechanics.
"""

from .fraud import FraudDetector
from .gating import WinnerGate, should_show_actual_winners
from .leaderboard import LeaderboardRanker
from .scoring import ScoringEngine, score_delta
from .sessions import SessionManager
from .stats import StatsReader
from .winners import WinnerResolver

__all__ = [
    'FraudDetector',
    'LeaderboardRanker',
    'ScoringEngine',
    'SessionManager',
    'StatsReader',
    'WinnerGate',
    'WinnerResolver',
    'score_delta',
    'should_show_actual_winners',
]
