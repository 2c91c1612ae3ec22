from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from quizpot import get_services

wallet = Blueprint('wallet', __name__)


def _adjusted(result):
    return {'balance': result.new_balance, 'transaction': result.transaction.to_dict()}


@wallet.route('')
@login_required
def summary():
    return jsonify(get_services().rewards.wallet_summary(current_user.id))


@wallet.route('/transactions')
@login_required
def transactions():
    limit = request.args.get('limit', 50, type=int)
    offset = request.args.get('offset', 0, type=int)
    rows = get_services().ledger.list_transactions(current_user.id, limit=limit, offset=offset)
    return jsonify({'transactions': [t.to_dict() for t in rows]})


@wallet.route('/claim-daily', methods=['POST'])
@login_required
def claim_daily():
    return jsonify(_adjusted(get_services().rewards.claim_daily(current_user.id)))


@wallet.route('/claim-ad-reward', methods=['POST'])
@login_required
def claim_ad_reward():
    data = request.get_json(silent=True) or {}
    result = get_services().rewards.claim_ad_reward(current_user.id, data.get('ad_type') or '')
    return jsonify(_adjusted(result))


@wallet.route('/purchase', methods=['POST'])
@login_required
def purchase():
    data = request.get_json(silent=True) or {}
    result = get_services().rewards.purchase_credits(
        current_user.id, data.get('bundle') or '', data.get('payment_reference') or ''
    )
    return jsonify(_adjusted(result)), 201
