from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from quizpot import get_services
from quizpot.errors import ValidationError

games = Blueprint('games', __name__)


def _int_field(data, key):
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{key} must be an integer')
    return value


def _bool_field(data, key, default=False):
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f'{key} must be a boolean')
    return value


@games.route('/periods/<int:period_id>/join', methods=['POST'])
@login_required
def join_period(period_id):
    data = request.get_json(silent=True) or {}
    session = get_services().sessions.join(
        current_user.id,
        period_id,
        device_info=data.get('device_info'),
        ip_address=request.headers.get('X-Forwarded-For', request.remote_addr),
    )
    return jsonify({'session': session.to_dict()}), 201


@games.route('/sessions/active')
@login_required
def active_sessions():
    sessions = get_services().sessions.list_active_sessions(current_user.id)
    return jsonify({'sessions': [s.to_dict() for s in sessions]})


@games.route('/sessions/<int:session_id>')
@login_required
def session_detail(session_id):
    session = get_services().sessions.get_session(session_id, user_id=current_user.id)
    return jsonify({'session': session.to_dict()})


@games.route('/sessions/<int:session_id>/questions')
@login_required
def next_questions(session_id):
    batch_size = request.args.get('batch_size', type=int)
    payload = get_services().sessions.get_next_questions(session_id, batch_size=batch_size, user_id=current_user.id)
    return jsonify(payload)


@games.route('/sessions/<int:session_id>/answers', methods=['POST'])
@login_required
def submit_answer(session_id):
    data = request.get_json(silent=True) or {}
    result = get_services().scoring.submit_answer(
        session_id,
        _int_field(data, 'question_id'),
        data.get('selected_option'),
        data.get('response_time'),
        is_skipped=_bool_field(data, 'is_skipped'),
        user_id=current_user.id,
    )
    return jsonify(result.to_dict())


@games.route('/sessions/<int:session_id>/pause', methods=['POST'])
@login_required
def pause_session(session_id):
    session = get_services().sessions.pause(session_id, user_id=current_user.id)
    return jsonify({'session': session.to_dict()})


@games.route('/sessions/<int:session_id>/resume', methods=['POST'])
@login_required
def resume_session(session_id):
    session = get_services().sessions.resume(session_id, user_id=current_user.id)
    return jsonify({'session': session.to_dict()})


@games.route('/sessions/<int:session_id>/cancel', methods=['POST'])
@login_required
def cancel_session(session_id):
    session = get_services().sessions.cancel(session_id, user_id=current_user.id)
    return jsonify({'session': session.to_dict()})


@games.route('/stats')
@login_required
def player_stats():
    return jsonify({'stats': get_services().stats.user_stats(current_user.id).to_dict()})
