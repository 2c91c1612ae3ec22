import threading
from datetime import timedelta

import pytest

from conftest import Factory, play
from quizpot import db, get_services
from quizpot.errors import InvalidState, NotFound, ValidationError
from quizpot.models import FraudFlag, Winner, utcnow
from quizpot.repositories import PeriodRepository, UserRepository


def _earnings(user_id):
    return UserRepository().get_fresh(user_id).lifetime_earnings


def test_flagged_leader_is_replaced_by_next_candidates(services, factory):
    factory.questions(5)
    period = factory.period(factory.mode(questions=3, min_answers_to_qualify=3, max_winners=2, payout=100.0))
    cheater, steady, slower = factory.user(), factory.user(), factory.user()
    # Sub-second, all-correct answers trip the fast-and-accurate signal
    play(services, services.sessions.join(cheater.id, period.id), response_time=0.5)
    play(services, services.sessions.join(steady.id, period.id), response_time=5.0)
    play(services, services.sessions.join(slower.id, period.id), response_time=10.0, wrong=1)

    result = services.winners.finalize_period(period.id)

    assert result.fraud_cases == 1
    assert [(w.user_id, w.rank) for w in result.winners] == [(steady.id, 1), (slower.id, 2)]
    assert all(w.status == 'PENDING' for w in result.winners)
    assert all(w.payout_amount == 100.0 for w in result.winners)
    assert PeriodRepository().get(period.id).status == 'COMPLETED'

    rate = services.settings.earnings_conversion_rates['USD']
    winner = Winner.query.filter_by(user_id=steady.id).one()
    assert winner.conversion_rate == rate
    assert winner.rate_version == services.settings.earnings_rate_version
    assert _earnings(steady.id) == pytest.approx(100.0 * rate)
    assert _earnings(cheater.id) == 0

    flag = FraudFlag.query.one()
    assert flag.user_id == cheater.id
    assert flag.risk_level == 'HIGH'
    assert 'fast_and_accurate' in flag.reasons

    with pytest.raises(InvalidState):
        services.winners.finalize_period(period.id)
    assert Winner.query.count() == 2
    assert FraudFlag.query.count() == 1
    assert _earnings(steady.id) == pytest.approx(100.0 * rate)


def test_unqualified_entries_never_win(services, factory):
    period = factory.period(factory.mode(max_winners=5))
    unqualified, qualified = factory.user(), factory.user()
    factory.entry(unqualified, period, score=500, answered=2, qualified=False)
    factory.entry(qualified, period, score=10)
    result = services.winners.finalize_period(period.id)
    assert [w.user_id for w in result.winners] == [qualified.id]
    assert result.winners[0].rank == 1


def test_missing_conversion_rate_leaves_period_active(services, factory):
    period = factory.period(factory.mode(payout_currency='EUR'))
    factory.entry(factory.user(), period, score=10)
    with pytest.raises(ValidationError):
        services.winners.finalize_period(period.id)
    assert PeriodRepository().get(period.id).status == 'ACTIVE'
    assert Winner.query.count() == 0


def test_finalize_requires_active_period(services, factory):
    with pytest.raises(NotFound):
        services.winners.finalize_period(777)
    upcoming = factory.period(status='UPCOMING')
    with pytest.raises(InvalidState):
        services.winners.finalize_period(upcoming.id)


def test_finalize_and_activate_due_periods(services, factory):
    now = utcnow()
    ended = factory.period(start=now - timedelta(days=8), end=now - timedelta(minutes=5))
    running = factory.period()
    starting = factory.period(status='UPCOMING', start=now - timedelta(minutes=1))
    later = factory.period(status='UPCOMING', start=now + timedelta(days=1), end=now + timedelta(days=8))
    factory.entry(factory.user(), ended, score=20)

    results = services.winners.finalize_due_periods(now=now)
    assert [r.period_id for r in results] == [ended.id]
    assert len(results[0].winners) == 1
    assert PeriodRepository().get(running.id).status == 'ACTIVE'

    assert services.winners.activate_due_periods(now=now) == [starting.id]
    assert PeriodRepository().get(later.id).status == 'UPCOMING'
    assert services.winners.finalize_due_periods(now=now) == []


def test_winner_review_transitions(services, factory):
    period = factory.period(factory.mode(max_winners=3))
    alice, bob = factory.user(), factory.user()
    factory.entry(alice, period, score=30)
    factory.entry(bob, period, score=20)
    first, second = services.winners.finalize_period(period.id).winners

    with pytest.raises(InvalidState):
        services.winners.mark_winner_paid(first.id, 'wire-1')
    assert services.winners.approve_winner(first.id).status == 'APPROVED'
    with pytest.raises(InvalidState):
        services.winners.approve_winner(first.id)
    with pytest.raises(ValidationError):
        services.winners.mark_winner_paid(first.id, '')
    paid = services.winners.mark_winner_paid(first.id, 'wire-1')
    assert paid.status == 'PAID'
    assert paid.payment_reference == 'wire-1'
    assert paid.paid_at is not None
    with pytest.raises(InvalidState):
        services.winners.reject_winner(first.id, 'too late')

    assert _earnings(bob.id) > 0
    assert services.winners.reject_winner(second.id, 'duplicate account').status == 'REJECTED'
    assert _earnings(bob.id) == 0
    with pytest.raises(InvalidState):
        services.winners.approve_winner(second.id)
    with pytest.raises(NotFound):
        services.winners.approve_winner(9999)


def test_concurrent_finalization_yields_one_winner_set(file_app):
    services = get_services()
    factory = Factory(services)
    period = factory.period(factory.mode(max_winners=2))
    for score in (40, 30, 20):
        factory.entry(factory.user(), period, score=score)
    period_id = period.id

    outcomes = []
    outcome_lock = threading.Lock()

    def worker():
        with file_app.app_context():
            try:
                services.winners.finalize_period(period_id)
                outcome = 'finalized'
            except InvalidState:
                outcome = 'rejected'
            finally:
                db.session.remove()
            with outcome_lock:
                outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ['finalized', 'rejected', 'rejected', 'rejected']
    assert Winner.query.filter_by(period_id=period_id).count() == 2


def test_due_sweep_continues_past_failing_period(services, factory):
    now = utcnow()
    broken = factory.period(factory.mode(payout_currency='EUR'),
                            start=now - timedelta(days=8), end=now - timedelta(minutes=5))
    ready = factory.period(start=now - timedelta(days=8), end=now - timedelta(minutes=5))
    factory.entry(factory.user(), ready, score=20)

    results = services.winners.finalize_due_periods(now=now)

    assert [r.period_id for r in results] == [ready.id]
    assert len(results[0].winners) == 1
    assert PeriodRepository().get(broken.id).status == 'ACTIVE'
    assert PeriodRepository().get(ready.id).status == 'COMPLETED'
