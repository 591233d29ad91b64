import os


def _boards_from_env():
    """Collect BOARD_<n>_NAME / _SERIAL / _TOKEN triples into seed dicts."""
    count = min(int(os.environ.get('BOARD_COUNT', '8')), 8)
    seeds = []
    for i in range(1, count + 1):
        name = os.environ.get(f'BOARD_{i}_NAME')
        serial = os.environ.get(f'BOARD_{i}_SERIAL')
        token = os.environ.get(f'BOARD_{i}_TOKEN')
        if not (name or serial or token):
            continue
        seeds.append({
            'id': f'board-{i}',
            'name': name or f'Board {i}',
            'serial_number': serial,
            'access_token': token,
        })
    return seeds


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///dartlive.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Comma separated list of browser origins allowed to call the API
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',') if o.strip()]
    # Scoring defaults
    DEFAULT_START_SCORE = int(os.environ.get('DEFAULT_START_SCORE', '501'))
    CHECKOUT_LIMIT = int(os.environ.get('CHECKOUT_LIMIT', '170'))
    # Keep-alive ping for live subscribers (seconds)
    HEARTBEAT_INTERVAL_SEC = float(os.environ.get('HEARTBEAT_INTERVAL_SEC', '25'))
    # Rebuild in-memory match state from the database when the app starts
    LOAD_MATCHES_ON_BOOT = os.environ.get('LOAD_MATCHES_ON_BOOT', '1') == '1'
    BOARD_SEEDS = _boards_from_env()
