from datetime import timedelta

import pytest

from quizpot.errors import NotFound
from quizpot.models import utcnow
from quizpot.services.games.stats import win_streaks


@pytest.mark.parametrize('outcomes, expected', [
    ([], (0, 0)),
    ([False, True], (0, 1)),
    ([True, True, False, True, True, True, False], (2, 3)),
])
def test_win_streaks(outcomes, expected):
    assert win_streaks(outcomes) == expected


def _played_history(services, factory):
    now = utcnow()
    player, rival = factory.user(), factory.user()
    periods = [factory.period(factory.mode(max_winners=1)) for _ in range(3)]
    scores = [(30, 28), (25, 50), (35, None)]
    for hours_ago, period, (mine, theirs) in zip((3, 2, 1), periods, scores):
        completed_at = now - timedelta(hours=hours_ago)
        factory.entry(player, period, score=mine, completed_at=completed_at)
        if theirs is not None:
            factory.entry(rival, period, score=theirs, completed_at=completed_at)
    results = [services.winners.finalize_period(p.id) for p in periods]
    return player, results


def test_user_stats_counts_games_wins_and_streaks(services, factory):
    player, _ = _played_history(services, factory)
    services.rewards.claim_daily(player.id)
    services.rewards.award_bonus_credits(player.id, 15, 'tournament host')

    stats = services.stats.user_stats(player.id)

    assert stats.games_played == 3
    assert stats.games_won == 2
    assert stats.win_rate == 67
    assert stats.total_score == 90
    assert stats.average_score == 30
    assert (stats.current_streak, stats.longest_streak) == (1, 1)
    assert stats.best_rank == 1
    assert stats.current_rank == 1
    assert stats.credits_earned == services.settings.daily_claim_amount + 15
    assert stats.lifetime_earnings == pytest.approx(2 * 100.0 * 800.0)
    assert stats.to_dict()['games_won'] == 2


def test_rejected_win_no_longer_counts(services, factory):
    player, results = _played_history(services, factory)
    services.winners.reject_winner(results[2].winners[0].id, reason='chargeback')

    stats = services.stats.user_stats(player.id)

    assert stats.games_won == 1
    assert stats.win_rate == 33
    assert (stats.current_streak, stats.longest_streak) == (0, 1)


def test_user_stats_for_new_and_unknown_players(services, factory):
    stats = services.stats.user_stats(factory.user().id)
    assert stats.games_played == 0
    assert stats.win_rate == 0
    assert stats.best_rank is None and stats.current_rank is None
    with pytest.raises(NotFound):
        services.stats.user_stats(4242)
