from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def build_services(flask_app):
    """Wire the event bus, board state, match engine and fan-out hub together."""
    from dartlive.services import Services
    from dartlive.services.boards import BoardManager
    from dartlive.services.engine import MatchEngine
    from dartlive.services.event_bus import EventBus
    from dartlive.services.fanout import FanoutHub
    from dartlive.services.repository import SqlRepository

    cfg = flask_app.config
    bus = EventBus(logger=flask_app.logger)
    repository = SqlRepository(flask_app)
    boards = BoardManager(bus, repository=repository, logger=flask_app.logger)
    engine = MatchEngine(
        repository, bus,
        logger=flask_app.logger,
        default_start_score=int(cfg.get('DEFAULT_START_SCORE', 501)),
        checkout_limit=int(cfg.get('CHECKOUT_LIMIT', 170)),
    )
    hub = FanoutHub(
        bus, boards, engine,
        heartbeat_interval=float(cfg.get('HEARTBEAT_INTERVAL_SEC', 25)),
        logger=flask_app.logger,
        start_task=socketio.start_background_task,
    )
    return Services(bus=bus, repository=repository, boards=boards, engine=engine, hub=hub)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=origins)
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    services = build_services(flask_app)
    flask_app.extensions['dartlive'] = services

    from dartlive.main import main
    flask_app.register_blueprint(main)

    from dartlive.api.boards import boards as boards_bp
    flask_app.register_blueprint(boards_bp, url_prefix='/api/boards')

    from dartlive.api.matches import matches as matches_bp
    flask_app.register_blueprint(matches_bp, url_prefix='/api/matches')

    from dartlive.api.events import events as events_bp
    flask_app.register_blueprint(events_bp)

    from dartlive.services.errors import DartsError

    @flask_app.errorhandler(DartsError)
    def handle_darts_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    from dartlive.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    services.engine.start(load_on_boot=False)
    services.hub.start()
    load_on_boot = bool(flask_app.config.get('LOAD_MATCHES_ON_BOOT')) and not flask_app.config.get('TESTING')
    if load_on_boot:
        try:
            services.boards.load(services.repository.list_boards())
            services.engine.load_from_db_on_boot()
        except Exception as exc:
            # Fresh database without tables yet; `flask db upgrade` creates them
            flask_app.logger.warning(f"[boot] state not restored: {exc}")

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates all tables, then seeds boards from config."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
        _seed_boards(flask_app, services)
        print('Database has been reset and seeded!')

    @click.command('seed-boards')
    def seed_boards_command():
        """Upserts the BOARD_<n>_* boards from the environment."""
        count = _seed_boards(flask_app, services)
        print(f'Seeded {count} board(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_boards_command)

    return flask_app


def _seed_boards(flask_app, services):
    seeds = flask_app.config.get('BOARD_SEEDS') or []
    for seed in seeds:
        services.boards.upsert(seed['id'], seed['name'])
        if seed.get('serial_number') and seed.get('access_token'):
            services.boards.configure(seed['id'], seed['serial_number'], seed['access_token'])
    return len(seeds)
