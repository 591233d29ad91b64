"""create board, match, leg and visit tables

Revision ID: 5c2d9e41b7a0
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2d9e41b7a0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'board' not in existing_tables:
        op.create_table(
            'board',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('name', sa.String(length=128), nullable=False),
            sa.Column('serial_number', sa.String(length=128), nullable=True),
            sa.Column('access_token_ref', sa.String(length=512), nullable=True),
            sa.Column('created_at', sa.Float(), nullable=True),
            sa.Column('updated_at', sa.Float(), nullable=True),
        )

    if 'match' not in existing_tables:
        op.create_table(
            'match',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('board_id', sa.String(length=64), nullable=True),
            sa.Column('player_a', sa.String(length=64), nullable=False),
            sa.Column('player_b', sa.String(length=64), nullable=False),
            sa.Column('start_score', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False),
            sa.Column('out_mode', sa.String(length=16), nullable=False),
            sa.Column('legs_mode', sa.String(length=16), nullable=False),
            sa.Column('legs_target', sa.Integer(), nullable=False),
            sa.Column('legs_won_a', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('legs_won_b', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('highest_finish_a', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('highest_finish_b', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('winner', sa.String(length=1), nullable=True),
            sa.Column('created_at', sa.Float(), nullable=True),
            sa.Column('updated_at', sa.Float(), nullable=True),
        )
        op.create_index('ix_match_board_id', 'match', ['board_id'])

    if 'leg' not in existing_tables:
        counters = []
        for suffix in ('a', 'b'):
            counters.append(sa.Column(f'remaining_{suffix}', sa.Integer(), nullable=False))
            for name in ('points', 'darts', 'first_nine_points', 'co_attempts', 'co_hits', 'visits'):
                counters.append(sa.Column(f'{name}_{suffix}', sa.Integer(), nullable=False, server_default='0'))
        op.create_table(
            'leg',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('match_id', sa.String(length=36), sa.ForeignKey('match.id'), nullable=False),
            sa.Column('number', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False),
            sa.Column('first_player', sa.String(length=1), nullable=False, server_default='A'),
            sa.Column('winner', sa.String(length=1), nullable=True),
            sa.Column('current_player', sa.String(length=1), nullable=False, server_default='A'),
            sa.Column('darts_in_visit', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('visit_attempt', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('visit_darts', sa.Text(), nullable=True),
            sa.Column('visit_start_remaining', sa.Integer(), nullable=True),
            sa.Column('visit_first_nine', sa.Integer(), nullable=False, server_default='0'),
            *counters,
            sa.Column('started_at', sa.Float(), nullable=True),
            sa.Column('finished_at', sa.Float(), nullable=True),
            sa.Column('updated_at', sa.Float(), nullable=True),
        )
        op.create_index('ix_leg_match_id', 'leg', ['match_id'])

    if 'visit' not in existing_tables:
        op.create_table(
            'visit',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('match_id', sa.String(length=36), sa.ForeignKey('match.id'), nullable=False),
            sa.Column('leg_id', sa.String(length=36), sa.ForeignKey('leg.id'), nullable=False),
            sa.Column('leg_number', sa.Integer(), nullable=False),
            sa.Column('player', sa.String(length=1), nullable=False),
            sa.Column('darts', sa.Text(), nullable=False),
            sa.Column('score_before', sa.Integer(), nullable=False),
            sa.Column('score_after', sa.Integer(), nullable=False),
            sa.Column('bust', sa.Boolean(), nullable=False),
            sa.Column('checkout', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.Float(), nullable=True),
        )
        op.create_index('ix_visit_match_id', 'visit', ['match_id'])


def downgrade():
    op.drop_index('ix_visit_match_id', table_name='visit')
    op.drop_table('visit')
    op.drop_index('ix_leg_match_id', table_name='leg')
    op.drop_table('leg')
    op.drop_index('ix_match_board_id', table_name='match')
    op.drop_table('match')
    op.drop_table('board')
