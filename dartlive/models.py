from dartlive import db
import json
import time
import uuid


def _new_id():
    return str(uuid.uuid4())


def _loads(raw, default):
    try:
        return json.loads(raw) if raw else default
    except ValueError:
        return default


class Board(db.Model):
    __tablename__ = 'board'
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    serial_number = db.Column(db.String(128), nullable=True)
    # Opaque reference to the device token; encryption lives outside this service
    access_token_ref = db.Column(db.String(512), nullable=True)
    created_at = db.Column(db.Float, default=time.time)
    updated_at = db.Column(db.Float, default=time.time, onupdate=time.time)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'serial_number': self.serial_number,
            'access_token_ref': self.access_token_ref,
            'updated_at': self.updated_at,
        }


class Match(db.Model):
    __tablename__ = 'match'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    board_id = db.Column(db.String(64), nullable=True, index=True)
    player_a = db.Column(db.String(64), nullable=False)
    player_b = db.Column(db.String(64), nullable=False)
    start_score = db.Column(db.Integer, nullable=False, default=501)
    status = db.Column(db.String(16), nullable=False, default='Idle')  # Idle, Running, Paused, Finished
    out_mode = db.Column(db.String(16), nullable=False, default='DOUBLE')
    legs_mode = db.Column(db.String(16), nullable=False, default='BEST_OF')
    legs_target = db.Column(db.Integer, nullable=False, default=3)
    legs_won_a = db.Column(db.Integer, nullable=False, default=0)
    legs_won_b = db.Column(db.Integer, nullable=False, default=0)
    highest_finish_a = db.Column(db.Integer, nullable=False, default=0)
    highest_finish_b = db.Column(db.Integer, nullable=False, default=0)
    winner = db.Column(db.String(1), nullable=True)
    created_at = db.Column(db.Float, default=time.time)
    updated_at = db.Column(db.Float, default=time.time)
    legs = db.relationship('Leg', back_populates='match', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'board_id': self.board_id,
            'player_a': self.player_a,
            'player_b': self.player_b,
            'start_score': self.start_score,
            'status': self.status,
            'out_mode': self.out_mode,
            'legs_mode': self.legs_mode,
            'legs_target': self.legs_target,
            'legs_won_a': self.legs_won_a or 0,
            'legs_won_b': self.legs_won_b or 0,
            'highest_finish_a': self.highest_finish_a or 0,
            'highest_finish_b': self.highest_finish_b or 0,
            'winner': self.winner,
            'updated_at': self.updated_at,
        }


class Leg(db.Model):
    __tablename__ = 'leg'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    match_id = db.Column(db.String(36), db.ForeignKey('match.id'), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default='InProgress')  # InProgress, Finished
    first_player = db.Column(db.String(1), nullable=False, default='A')
    winner = db.Column(db.String(1), nullable=True)
    # Leg runtime snapshot
    current_player = db.Column(db.String(1), nullable=False, default='A')
    darts_in_visit = db.Column(db.Integer, nullable=False, default=0)
    visit_attempt = db.Column(db.Boolean, nullable=False, default=False)
    visit_darts = db.Column(db.Text, nullable=True)  # JSON list of sector tokens
    visit_start_remaining = db.Column(db.Integer, nullable=True)
    visit_first_nine = db.Column(db.Integer, nullable=False, default=0)
    remaining_a = db.Column(db.Integer, nullable=False)
    remaining_b = db.Column(db.Integer, nullable=False)
    points_a = db.Column(db.Integer, nullable=False, default=0)
    points_b = db.Column(db.Integer, nullable=False, default=0)
    darts_a = db.Column(db.Integer, nullable=False, default=0)
    darts_b = db.Column(db.Integer, nullable=False, default=0)
    first_nine_points_a = db.Column(db.Integer, nullable=False, default=0)
    first_nine_points_b = db.Column(db.Integer, nullable=False, default=0)
    co_attempts_a = db.Column(db.Integer, nullable=False, default=0)
    co_attempts_b = db.Column(db.Integer, nullable=False, default=0)
    co_hits_a = db.Column(db.Integer, nullable=False, default=0)
    co_hits_b = db.Column(db.Integer, nullable=False, default=0)
    visits_a = db.Column(db.Integer, nullable=False, default=0)
    visits_b = db.Column(db.Integer, nullable=False, default=0)
    started_at = db.Column(db.Float, default=time.time)
    finished_at = db.Column(db.Float, nullable=True)
    updated_at = db.Column(db.Float, default=time.time)
    match = db.relationship('Match', back_populates='legs')

    def to_dict(self):
        data = {
            'id': self.id,
            'match_id': self.match_id,
            'number': self.number,
            'status': self.status,
            'first_player': self.first_player,
            'winner': self.winner,
            'current_player': self.current_player,
            'darts_in_visit': self.darts_in_visit or 0,
            'visit_attempt': bool(self.visit_attempt),
            'visit_darts': _loads(self.visit_darts, []),
            'visit_start_remaining': self.visit_start_remaining,
            'visit_first_nine': self.visit_first_nine or 0,
            'started_at': self.started_at,
            'finished_at': self.finished_at,
            'updated_at': self.updated_at,
        }
        for suffix in ('a', 'b'):
            for name in ('remaining', 'points', 'darts', 'first_nine_points',
                         'co_attempts', 'co_hits', 'visits'):
                key = f'{name}_{suffix}'
                data[key] = getattr(self, key)
        return data


class Visit(db.Model):
    __tablename__ = 'visit'
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.String(36), db.ForeignKey('match.id'), nullable=False, index=True)
    leg_id = db.Column(db.String(36), db.ForeignKey('leg.id'), nullable=False)
    leg_number = db.Column(db.Integer, nullable=False)
    player = db.Column(db.String(1), nullable=False)
    darts = db.Column(db.Text, nullable=False)  # JSON list of dart descriptions
    score_before = db.Column(db.Integer, nullable=False)
    score_after = db.Column(db.Integer, nullable=False)
    bust = db.Column(db.Boolean, nullable=False, default=False)
    checkout = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.Float, default=time.time)

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'leg_id': self.leg_id,
            'leg_number': self.leg_number,
            'player': self.player,
            'darts': _loads(self.darts, []),
            'score_before': self.score_before,
            'score_after': self.score_after,
            'bust': self.bust,
            'checkout': self.checkout,
            'created_at': self.created_at,
        }
