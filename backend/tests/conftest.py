import os
import sys
import threading
from datetime import timedelta

import pytest

# Ensure the backend root (containing the `quizpot` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from quizpot import create_app, db, get_services
from quizpot.errors import QuizpotError
from quizpot.models import GameMode, GameSession, LeaderboardEntry, Period, Question, User, utcnow


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


def file_config(path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{path}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'timeout': 30}}

    return FileConfig


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database so worker threads share committed state."""
    application = create_app(file_config(tmp_path / 'quizpot.db'))
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def worker_apps(tmp_path):
    """Two separately wired apps on one database, each with its own locks, like two server processes."""
    config = file_config(tmp_path / 'shared.db')
    first, second = create_app(config), create_app(config)
    with first.app_context():
        db.create_all()
        yield first, second
        db.session.remove()
        db.drop_all()


def run_on_workers(apps, operation):
    """Call ``operation(services)`` once per app, each on its own thread.

    Returns the sorted outcomes: ``'ok'`` or the error code that was raised.
    """
    outcomes = []
    outcome_lock = threading.Lock()

    def worker(application):
        with application.app_context():
            try:
                operation(get_services())
                outcome = 'ok'
            except QuizpotError as exc:
                outcome = exc.code
            finally:
                db.session.remove()
            with outcome_lock:
                outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=(a,)) for a in apps]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return sorted(outcomes)


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def services(flask_app):
    return get_services()


class Factory:
    def __init__(self, services):
        self.services = services
        self._users = 0

    def user(self, username=None, balance=0, lifetime_earnings=0.0):
        self._users += 1
        user = User(username=username or f'player{self._users}', lifetime_earnings=lifetime_earnings)
        user.set_password('password')
        db.session.add(user)
        db.session.flush()
        self.services.ledger.ensure_wallet(user.id, commit=False)
        db.session.commit()
        if balance:
            self.services.ledger.adjust_balance(user.id, balance, 'ADJUSTMENT', 'Test funding')
        return user

    def mode(self, **overrides):
        fields = dict(
            mode_type='FREE',
            name='Free Weekly',
            questions=3,
            entry_fee=0,
            entry_fee_currency='CREDITS',
            payout=100.0,
            payout_currency='USD',
            min_answers_to_qualify=3,
            max_winners=10,
            language='de',
        )
        fields.update(overrides)
        mode = GameMode(**fields)
        db.session.add(mode)
        db.session.commit()
        return mode

    def period(self, mode=None, status='ACTIVE', start=None, end=None):
        now = utcnow()
        period = Period(
            mode_id=(mode or self.mode()).id,
            start_date=start or now - timedelta(hours=1),
            end_date=end or now + timedelta(days=1),
            status=status,
        )
        db.session.add(period)
        db.session.commit()
        return period

    def questions(self, count, language='de'):
        start = Question.query.count()
        created = []
        for i in range(start, start + count):
            options = [f'q{i}-right', f'q{i}-wrong-1', f'q{i}-wrong-2', f'q{i}-wrong-3']
            question = Question(language=language, text=f'Question {i}?', options=options, correct_answer=options[0])
            db.session.add(question)
            created.append(question)
        db.session.commit()
        return created

    def entry(self, user, period, score, average_response_time=5.0, completed_at=None,
              answered=None, qualified=True):
        """Completed session plus its leaderboard entry, bypassing play."""
        answered = period.mode.questions if answered is None else answered
        completed_at = completed_at or utcnow()
        session = GameSession(
            user_id=user.id,
            period_id=period.id,
            status='COMPLETED',
            total_questions=period.mode.questions,
            answered_questions=answered,
            correct_answers=answered,
            score=score,
            total_time_spent=average_response_time * answered,
            completed_at=completed_at,
        )
        db.session.add(session)
        db.session.flush()
        entry = LeaderboardEntry(
            user_id=user.id,
            period_id=period.id,
            session_id=session.id,
            score=score,
            answered_questions=answered,
            correct_answers=answered,
            is_qualified=qualified,
            average_response_time=average_response_time,
            completed_at=completed_at,
        )
        db.session.add(entry)
        db.session.commit()
        return entry


@pytest.fixture()
def factory(services):
    return Factory(services)


def correct_option(question_id):
    return db.session.get(Question, question_id).correct_answer


def wrong_option(client_question):
    right = correct_option(client_question['id'])
    return next(o for o in client_question['options'] if o != right)


def play(services, session, response_time=5.0, wrong=0, user_id=None):
    """Answer every question of ``session``; the first ``wrong`` answers are incorrect."""
    results = []
    payload = services.sessions.get_next_questions(session.id, batch_size=20, user_id=user_id)
    for index, question in enumerate(payload['questions']):
        option = wrong_option(question) if index < wrong else correct_option(question['id'])
        results.append(services.scoring.submit_answer(
            session.id, question['id'], option, response_time, user_id=user_id
        ))
    return results
