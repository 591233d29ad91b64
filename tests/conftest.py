import os
import sys
import pytest

# Ensure the project root (containing the `dartlive` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from dartlive import create_app, db, socketio
from dartlive.services.fanout import QueueSubscriber


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:5173']
    DEFAULT_START_SCORE = 501
    CHECKOUT_LIMIT = 170
    HEARTBEAT_INTERVAL_SEC = 25
    LOAD_MATCHES_ON_BOOT = False
    BOARD_SEEDS = []


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import dartlive.models  # noqa: F401
        db.create_all()
        yield application
        application.extensions['dartlive'].shutdown()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def services(flask_app):
    return flask_app.extensions['dartlive']


@pytest.fixture()
def engine(services):
    return services.engine


@pytest.fixture()
def boards(services):
    return services.boards


@pytest.fixture()
def listener(services):
    """A hub subscriber that records every frame it is sent."""
    sub = QueueSubscriber()
    services.hub.connect(sub)
    sub.drain()
    yield sub
    services.hub.disconnect(sub)


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


def throw_darts(boards, board_id, *sectors):
    for sector in sectors:
        boards.apply_throw(board_id, {'sector': sector})
