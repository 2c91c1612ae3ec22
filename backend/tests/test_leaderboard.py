from datetime import timedelta

import pytest

from conftest import play
from quizpot.errors import NotFound, ValidationError
from quizpot.models import LeaderboardEntry, utcnow


def _ranks(period_id):
    return {e.user_id: e.rank for e in LeaderboardEntry.query.filter_by(period_id=period_id)}


def test_ordering_and_tie_breaks(services, factory):
    period = factory.period()
    t0 = utcnow()
    top, fast_late, slow_early, same_as_slow = (factory.user() for _ in range(4))
    factory.entry(top, period, score=50, average_response_time=9.0, completed_at=t0)
    # Equal scores: faster average wins even though it completed later
    factory.entry(fast_late, period, score=40, average_response_time=2.0, completed_at=t0 + timedelta(hours=2))
    factory.entry(slow_early, period, score=40, average_response_time=6.0, completed_at=t0)
    # Same score and speed: earlier completion wins
    factory.entry(same_as_slow, period, score=40, average_response_time=6.0, completed_at=t0 + timedelta(minutes=1))

    ordered = services.leaderboard.recalculate_ranks(period.id)
    assert [e.user_id for e in ordered] == [top.id, fast_late.id, slow_early.id, same_as_slow.id]
    assert [e.rank for e in ordered] == [1, 2, 3, 4]


def test_creation_order_breaks_full_ties(services, factory):
    period = factory.period()
    t0 = utcnow()
    first, second = factory.user(), factory.user()
    factory.entry(first, period, score=30, average_response_time=4.0, completed_at=t0)
    factory.entry(second, period, score=30, average_response_time=4.0, completed_at=t0)
    services.leaderboard.recalculate_ranks(period.id)
    assert _ranks(period.id) == {first.id: 1, second.id: 2}


def test_recalculation_is_idempotent(services, factory):
    period = factory.period()
    for score in (10, 70, 30, 70, 50):
        factory.entry(factory.user(), period, score=score)
    services.leaderboard.recalculate_ranks(period.id)
    once = _ranks(period.id)
    services.leaderboard.recalculate_ranks(period.id)
    assert _ranks(period.id) == once
    assert sorted(once.values()) == [1, 2, 3, 4, 5]


def test_leaderboard_includes_own_entry_outside_top(services, factory):
    period = factory.period()
    users = [factory.user() for _ in range(5)]
    for score, user in zip((90, 80, 70, 60, 50), users):
        factory.entry(user, period, score=score)
    services.leaderboard.recalculate_ranks(period.id)
    board = services.leaderboard.get_leaderboard(period.id, user_id=users[-1].id, limit=2)
    assert [e['user_id'] for e in board['entries']] == [users[0].id, users[1].id]
    assert board['user_entry']['rank'] == 5
    assert board['user_entry']['username'] == users[-1].username
    anonymous = services.leaderboard.get_leaderboard(period.id, limit=10)
    assert anonymous['user_entry'] is None


def test_leaderboard_arguments(services, factory):
    period = factory.period()
    with pytest.raises(ValidationError):
        services.leaderboard.get_leaderboard(period.id, limit=0)
    with pytest.raises(ValidationError):
        services.leaderboard.get_leaderboard(period.id, limit=1001)
    with pytest.raises(NotFound):
        services.leaderboard.get_leaderboard(12345)


def test_qualification_set_at_completion(services, factory):
    factory.questions(6)
    period = factory.period(factory.mode(questions=3, min_answers_to_qualify=4))
    user = factory.user()
    session = services.sessions.join(user.id, period.id)
    play(services, session)
    entry = LeaderboardEntry.query.filter_by(user_id=user.id).one()
    assert entry.is_qualified is False
    board = services.leaderboard.get_leaderboard(period.id)
    assert board['entries'][0]['is_qualified'] is False


def test_period_stats(services, factory):
    factory.questions(6)
    period = factory.period()
    for wrong in (0, 1):
        session = services.sessions.join(factory.user().id, period.id)
        play(services, session, wrong=wrong)
    stats = services.leaderboard.period_stats(period.id)
    assert stats['total_participants'] == 2
    assert stats['completed_sessions'] == 2
    assert stats['qualified_participants'] == 2
    assert stats['top_score'] > stats['average_score'] > 0
