import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

ENGINE_KEY = 'quiz_engine'


def create_app(config_class=Config, timers=None):
    """Build the Flask app and its live session engine.

    ``timers`` replaces the background timer service (tests drive a manual
    one).
    """
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    origins = flask_app.config.get('CORS_ORIGINS', [])
    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    # Loaders register themselves on login_manager at import time
    from livequiz import auth  # noqa: F401

    from livequiz.main import main
    flask_app.register_blueprint(main)

    from livequiz.api.lobbies import lobbies
    flask_app.register_blueprint(lobbies, url_prefix='/api')

    flask_app.extensions[ENGINE_KEY] = _build_engine(flask_app, timers)

    from livequiz.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from livequiz.seed import seed_development_data
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            admin, lobby = seed_development_data()
            print(f'Database has been reset and seeded! admin={admin.email} lobby={lobby.lobby_id}')

    flask_app.cli.add_command(db_reset_command)

    return flask_app


def _build_engine(flask_app, timers):
    from livequiz.auth import AdminAuth
    from livequiz.services.sessions import ConnectionRegistry, QuestionScheduler, SessionStore
    from livequiz.services.sessions.gateway import SocketIOGateway
    from livequiz.services.sessions.repository import QuizRepository
    from livequiz.services.sessions.timers import BackgroundTimers

    repository = QuizRepository(flask_app)
    cfg = flask_app.config
    return QuestionScheduler(
        store=SessionStore(loader=repository.load_participants),
        registry=ConnectionRegistry(),
        gateway=SocketIOGateway(socketio),
        repository=repository,
        auth=AdminAuth(flask_app),
        timers=timers or BackgroundTimers(socketio),
        ready_grace_sec=float(cfg.get('READY_GRACE_SEC', 1.0)),
        advance_delay_sec=float(cfg.get('ADVANCE_DELAY_SEC', 3.0)),
        min_participants=int(cfg.get('MIN_PARTICIPANTS', 2)),
        logger=flask_app.logger,
    )
