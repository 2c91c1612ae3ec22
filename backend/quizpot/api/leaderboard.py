from flask import Blueprint, jsonify, request
from flask_login import current_user

from quizpot import get_services

leaderboard = Blueprint('leaderboard', __name__)


def _viewer_id():
    return current_user.id if current_user.is_authenticated else None


@leaderboard.route('/periods/<int:period_id>')
def period_leaderboard(period_id):
    limit = request.args.get('limit', 100, type=int)
    return jsonify(get_services().leaderboard.get_leaderboard(period_id, user_id=_viewer_id(), limit=limit))


@leaderboard.route('/periods/<int:period_id>/stats')
def period_stats(period_id):
    return jsonify(get_services().leaderboard.period_stats(period_id))


@leaderboard.route('/periods/<int:period_id>/winners')
def period_winners(period_id):
    # Gate is re-evaluated on every request; lifetime earnings change at finalisation
    return jsonify(get_services().gate.get_winners(period_id, viewer_id=_viewer_id()))
