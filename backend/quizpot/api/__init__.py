from flask import current_app, jsonify

from quizpot.errors import QuizpotError


def register_api(flask_app):
    from quizpot.api.auth import auth
    from quizpot.api.games import games
    from quizpot.api.leaderboard import leaderboard
    from quizpot.api.wallet import wallet

    flask_app.register_blueprint(auth, url_prefix='/api/auth')
    flask_app.register_blueprint(games, url_prefix='/api/games')
    flask_app.register_blueprint(wallet, url_prefix='/api/wallet')
    flask_app.register_blueprint(leaderboard, url_prefix='/api/leaderboard')

    @flask_app.errorhandler(QuizpotError)
    def handle_quizpot_error(exc):
        if exc.status_code >= 500:
            current_app.logger.error(f"[api-error] code={exc.code} message={exc.message}")
        return jsonify(exc.to_dict()), exc.status_code
