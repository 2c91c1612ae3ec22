from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from quizpot import db, get_services
from quizpot.models import User
from quizpot.repositories import UserRepository

auth = Blueprint('auth', __name__)
users = UserRepository()


@auth.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password')
    if not username or not password:
        return jsonify({'error': 'validation_error', 'message': 'Missing username or password'}), 400
    if users.by_username(username):
        return jsonify({'error': 'validation_error', 'message': 'Username already exists'}), 400

    user = User(username=username)
    user.set_password(password)
    users.add(user)
    get_services().ledger.ensure_wallet(user.id, commit=False)
    db.session.commit()
    login_user(user, remember=True)
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@auth.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = users.by_username(data.get('username') or '')
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({'success': True, 'user': user.to_dict()})
    return jsonify({'error': 'unauthorized', 'message': 'Invalid username or password'}), 401


@auth.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})


@auth.route('/me')
@login_required
def me():
    return jsonify({'user': users.get_fresh(current_user.id).to_dict()})
