from flask import Flask, current_app, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8081",
    "http://127.0.0.1:8081",
]


def get_services():
    """Service container wired for the running app."""
    return current_app.extensions['quizpot']


def create_app(config_class=Config, integrations=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    from quizpot.settings import GameSettings
    from quizpot.services import build_services
    settings = GameSettings.from_mapping(flask_app.config)
    flask_app.extensions['quizpot'] = build_services(settings, **(integrations or {}))

    from quizpot.api import register_api
    register_api(flask_app)

    from quizpot.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'unauthorized', 'message': 'Login required'}), 401

    from quizpot.cli import register_commands
    register_commands(flask_app)

    flask_app.logger.info(f"[startup] rates_version={settings.earnings_rate_version} batch={settings.questions_per_batch}")
    return flask_app


