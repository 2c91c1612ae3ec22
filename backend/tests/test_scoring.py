from dataclasses import replace
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from conftest import Factory, correct_option, play, run_on_workers, wrong_option
from quizpot import get_services
from quizpot.errors import AlreadyAnswered, InvalidState, NotFound, SubmissionRateExceeded, ValidationError
from quizpot.models import Answer, LeaderboardEntry, utcnow
from quizpot.services.games import LeaderboardRanker, ScoringEngine, score_delta
from quizpot.settings import GameSettings


def _start(services, factory, questions=3):
    factory.questions(questions + 2)
    user = factory.user()
    period = factory.period(factory.mode(questions=questions, min_answers_to_qualify=questions))
    session = services.sessions.join(user.id, period.id)
    batch = services.sessions.get_next_questions(session.id, batch_size=questions)['questions']
    return user, session, batch


def test_score_curve():
    settings = GameSettings()
    assert score_delta(False, 0.1, settings) == 0
    assert score_delta(True, 0.0, settings) == settings.score_correct_points + settings.score_speed_bonus
    assert score_delta(True, 60.0, settings) == settings.score_correct_points
    times = [0.0, 1.0, 2.5, 5.0, 12.0, 24.9, 25.0, 40.0]
    points = [score_delta(True, t, settings) for t in times]
    assert points == sorted(points, reverse=True)


def test_correct_and_incorrect_answers(services, factory):
    user, session, batch = _start(services, factory)
    right = services.scoring.submit_answer(session.id, batch[0]['id'], correct_option(batch[0]['id']), 5.0)
    assert right.is_correct and right.points == score_delta(True, 5.0, services.settings)
    wrong = services.scoring.submit_answer(session.id, batch[1]['id'], wrong_option(batch[1]), 3.0)
    assert not wrong.is_correct and wrong.points == 0
    state = services.sessions.get_session(session.id)
    assert state.answered_questions == 2
    assert state.correct_answers == 1
    assert state.incorrect_answers == 1
    assert state.score == right.points
    assert state.total_time_spent == pytest.approx(8.0)


def test_duplicate_submission_is_rejected(services, factory):
    user, session, batch = _start(services, factory)
    question_id = batch[0]['id']
    services.scoring.submit_answer(session.id, question_id, correct_option(question_id), 4.0)
    with pytest.raises(AlreadyAnswered):
        services.scoring.submit_answer(session.id, question_id, correct_option(question_id), 1.0)
    state = services.sessions.get_session(session.id)
    assert state.answered_questions == 1
    assert state.score == score_delta(True, 4.0, services.settings)
    assert Answer.query.filter_by(session_id=session.id).count() == 1


def test_session_completes_on_last_distinct_answer(services, factory):
    user, session, batch = _start(services, factory, questions=10)
    results = []
    for question in batch:
        results.append(services.scoring.submit_answer(session.id, question['id'], correct_option(question['id']), 6.0))
    assert [r.completed for r in results] == [False] * 9 + [True]
    state = services.sessions.get_session(session.id)
    assert state.status == 'COMPLETED'
    assert state.completed_at is not None
    entry = LeaderboardEntry.query.filter_by(user_id=user.id, period_id=session.period_id).one()
    assert entry.rank == 1
    assert entry.is_qualified
    assert entry.score == state.score
    with pytest.raises(InvalidState):
        services.scoring.submit_answer(session.id, batch[0]['id'], correct_option(batch[0]['id']), 1.0)


def test_skip_and_timeout(services, factory):
    user, session, batch = _start(services, factory)
    skipped = services.scoring.submit_answer(session.id, batch[0]['id'], 'ignored', 3.0, is_skipped=True)
    assert skipped.is_skipped and skipped.points == 0
    assert skipped.correct_answer == correct_option(batch[0]['id'])
    timed_out = services.scoring.submit_answer(session.id, batch[1]['id'], None, 25.0, is_skipped=True)
    assert timed_out.is_skipped
    answer = Answer.query.filter_by(session_id=session.id, question_id=batch[0]['id']).one()
    assert answer.selected_option is None
    assert services.sessions.get_session(session.id).skipped_answers == 2


def test_invalid_submissions(services, factory):
    user, session, batch = _start(services, factory)
    with pytest.raises(ValidationError):
        services.scoring.submit_answer(session.id, batch[0]['id'], 'not-an-option', 2.0)
    with pytest.raises(ValidationError):
        services.scoring.submit_answer(session.id, batch[0]['id'], None, 2.0)
    with pytest.raises(ValidationError):
        services.scoring.submit_answer(session.id, batch[0]['id'], correct_option(batch[0]['id']), -1)
    with pytest.raises(NotFound):
        services.scoring.submit_answer(session.id, 99999, 'x', 2.0)
    assert services.sessions.get_session(session.id).answered_questions == 0


def test_paused_session_rejects_answers(services, factory):
    user, session, batch = _start(services, factory)
    services.sessions.pause(session.id)
    with pytest.raises(InvalidState):
        services.scoring.submit_answer(session.id, batch[0]['id'], correct_option(batch[0]['id']), 2.0)


def test_answered_questions_leave_the_batch(services, factory):
    user, session, batch = _start(services, factory)
    services.scoring.submit_answer(session.id, batch[0]['id'], correct_option(batch[0]['id']), 2.0)
    remaining = services.sessions.get_next_questions(session.id)['questions']
    assert [q['id'] for q in remaining] == [q['id'] for q in batch[1:]]


def test_play_helper_scores_full_run(services, factory):
    user, session, batch = _start(services, factory)
    results = play(services, session, response_time=10.0, wrong=1)
    assert results[-1].completed
    assert results[-1].score == 2 * score_delta(True, 10.0, services.settings)


def test_concurrent_duplicate_answers_score_once(file_app):
    services = get_services()
    user, session, batch = _start(services, Factory(services))
    session_id, question_id = session.id, batch[0]['id']
    option = correct_option(question_id)

    outcomes = run_on_workers(
        [file_app] * 4, lambda s: s.scoring.submit_answer(session_id, question_id, option, 4.0)
    )

    assert outcomes == ['already_answered'] * 3 + ['ok']
    assert Answer.query.filter_by(session_id=session_id).count() == 1
    state = services.sessions.get_session(session_id)
    assert state.answered_questions == 1
    assert state.correct_answers == 1
    assert state.score == score_delta(True, 4.0, services.settings)
    assert state.total_time_spent == pytest.approx(4.0)


def test_answer_rate_limit_per_session(services, factory):
    user, session, batch = _start(services, factory, questions=4)
    limited = ScoringEngine(replace(services.settings, answer_rate_limit_per_minute=2), services.locks,
                            services.sessions, services.leaderboard, services.audit)
    t0 = utcnow()
    for offset, question in zip((0, 10), batch):
        limited.submit_answer(session.id, question['id'], correct_option(question['id']), 3.0,
                              now=t0 + timedelta(seconds=offset))

    third = batch[2]['id']
    with pytest.raises(SubmissionRateExceeded) as excinfo:
        limited.submit_answer(session.id, third, correct_option(third), 3.0, now=t0 + timedelta(seconds=20))
    assert excinfo.value.status_code == 429
    assert services.sessions.get_session(session.id).answered_questions == 2

    # The first answer has left the one-minute window
    result = limited.submit_answer(session.id, third, correct_option(third), 3.0, now=t0 + timedelta(seconds=61))
    assert result.answered_questions == 3


class UnavailableRanker(LeaderboardRanker):
    def recalculate_ranks(self, period_id, commit=True):
        raise OperationalError('UPDATE leaderboard_entries', {}, Exception('database is locked'))


def test_rank_failure_after_commit_still_returns_the_answer(services, factory):
    user, session, batch = _start(services, factory)
    scoring = ScoringEngine(services.settings, services.locks, services.sessions,
                            UnavailableRanker(services.locks), services.audit)
    results = [scoring.submit_answer(session.id, q['id'], correct_option(q['id']), 5.0) for q in batch]

    assert results[-1].completed is True
    assert services.sessions.get_session(session.id).status == 'COMPLETED'
    entry = LeaderboardEntry.query.filter_by(session_id=session.id).one()
    assert entry.rank is None
    assert Answer.query.filter_by(session_id=session.id).count() == len(batch)
    # The next recalculation repairs the ranks
    services.leaderboard.recalculate_ranks(session.period_id)
    assert LeaderboardEntry.query.filter_by(session_id=session.id).one().rank == 1
