import pytest

from conftest import Factory, TestConfig, play
from quizpot import create_app, db, get_services
from quizpot.models import Winner
from quizpot.repositories import PeriodRepository


class ExplodingAuditSink:
    def __init__(self):
        self.attempted = []

    def emit(self, action, **fields):
        self.attempted.append(action)
        raise RuntimeError('audit store unavailable')


@pytest.fixture()
def exploding_sink():
    return ExplodingAuditSink()


@pytest.fixture()
def audited_services(exploding_sink):
    application = create_app(TestConfig, integrations={'audit': exploding_sink})
    with application.app_context():
        db.create_all()
        yield get_services()
        db.session.remove()
        db.drop_all()


def test_failing_audit_sink_never_aborts_operations(audited_services, exploding_sink):
    services = audited_services
    factory = Factory(services)
    factory.questions(5)
    period = factory.period(factory.mode(questions=3, min_answers_to_qualify=3))
    user = factory.user()

    claim = services.rewards.claim_daily(user.id)
    assert claim.new_balance == services.settings.daily_claim_amount
    assert services.ledger.get_wallet(user.id).balance == claim.new_balance

    session = services.sessions.join(user.id, period.id, ip_address='10.0.0.1')
    results = play(services, session)
    assert results[-1].completed is True
    assert services.sessions.get_session(session.id).status == 'COMPLETED'

    result = services.winners.finalize_period(period.id)
    assert len(result.winners) == 1
    assert Winner.query.filter_by(period_id=period.id).count() == 1
    assert PeriodRepository().get(period.id).status == 'COMPLETED'

    assert {'daily_credits_claimed', 'game_joined', 'game_completed', 'period_finalized'} <= set(exploding_sink.attempted)
