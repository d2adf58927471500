"""Initial schema

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create instruments table
    op.create_table(
        'instruments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('canonical_symbol', sa.String(length=20), nullable=False),
        sa.Column('asset_class', sa.String(length=10), nullable=False),
        sa.Column('vendor_symbol', sa.String(length=40), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('canonical_symbol')
    )
    op.create_index(op.f('ix_instruments_id'), 'instruments', ['id'], unique=False)

    # Create candles table
    op.create_table(
        'candles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instrument_id', sa.Integer(), nullable=False),
        sa.Column('timeframe', sa.String(length=5), nullable=False),
        sa.Column('datetime_utc', sa.DateTime(), nullable=False),
        sa.Column('open', sa.Float(), nullable=False),
        sa.Column('high', sa.Float(), nullable=False),
        sa.Column('low', sa.Float(), nullable=False),
        sa.Column('close', sa.Float(), nullable=False),
        sa.Column('volume', sa.Float(), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=False, server_default='twelvedata'),
        sa.ForeignKeyConstraint(['instrument_id'], ['instruments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('instrument_id', 'timeframe', 'datetime_utc', name='candles_unique_idx')
    )
    op.create_index(op.f('ix_candles_id'), 'candles', ['id'], unique=False)
    op.create_index(op.f('ix_candles_datetime_utc'), 'candles', ['datetime_utc'], unique=False)

    # Create indicators table
    op.create_table(
        'indicators',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instrument_id', sa.Integer(), nullable=False),
        sa.Column('timeframe', sa.String(length=5), nullable=False),
        sa.Column('datetime_utc', sa.DateTime(), nullable=False),
        sa.Column('ema9', sa.Float(), nullable=True),
        sa.Column('ema21', sa.Float(), nullable=True),
        sa.Column('ema55', sa.Float(), nullable=True),
        sa.Column('ema200', sa.Float(), nullable=True),
        sa.Column('bb_upper', sa.Float(), nullable=True),
        sa.Column('bb_middle', sa.Float(), nullable=True),
        sa.Column('bb_lower', sa.Float(), nullable=True),
        sa.Column('bb_width', sa.Float(), nullable=True),
        sa.Column('macd', sa.Float(), nullable=True),
        sa.Column('macd_signal', sa.Float(), nullable=True),
        sa.Column('macd_hist', sa.Float(), nullable=True),
        sa.Column('atr', sa.Float(), nullable=True),
        sa.Column('adx', sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(['instrument_id'], ['instruments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('instrument_id', 'timeframe', 'datetime_utc', name='indicators_unique_idx')
    )
    op.create_index(op.f('ix_indicators_id'), 'indicators', ['id'], unique=False)
    op.create_index(op.f('ix_indicators_datetime_utc'), 'indicators', ['datetime_utc'], unique=False)

    # Create scan_runs table
    op.create_table(
        'scan_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timeframe', sa.String(length=5), nullable=False),
        sa.Column('status', sa.String(length=40), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('credits_used_est', sa.Integer(), nullable=True),
        sa.Column('notes', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scan_runs_id'), 'scan_runs', ['id'], unique=False)
    op.create_index(op.f('ix_scan_runs_started_at'), 'scan_runs', ['started_at'], unique=False)

    # Create scan_progress table
    op.create_table(
        'scan_progress',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instrument_id', sa.Integer(), nullable=False),
        sa.Column('timeframe', sa.String(length=5), nullable=False),
        sa.Column('last_processed_bar_utc', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['instrument_id'], ['instruments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('instrument_id', 'timeframe', name='scan_progress_unique_idx')
    )
    op.create_index(op.f('ix_scan_progress_id'), 'scan_progress', ['id'], unique=False)

    # Create signals table
    op.create_table(
        'signals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instrument_id', sa.Integer(), nullable=False),
        sa.Column('timeframe', sa.String(length=5), nullable=False),
        sa.Column('strategy', sa.String(length=30), nullable=False),
        sa.Column('direction', sa.String(length=5), nullable=False),
        sa.Column('detected_at', sa.DateTime(), nullable=False),
        sa.Column('candle_datetime_utc', sa.DateTime(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('reason_json', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'), nullable=True),
        sa.Column('status', sa.String(length=10), nullable=False, server_default='NEW'),
        sa.ForeignKeyConstraint(['instrument_id'], ['instruments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'instrument_id', 'timeframe', 'strategy', 'direction', 'candle_datetime_utc',
            name='signals_unique_idx'
        )
    )
    op.create_index(op.f('ix_signals_id'), 'signals', ['id'], unique=False)
    op.create_index(op.f('ix_signals_instrument_id'), 'signals', ['instrument_id'], unique=False)
    op.create_index(op.f('ix_signals_detected_at'), 'signals', ['detected_at'], unique=False)
    op.create_index(op.f('ix_signals_status'), 'signals', ['status'], unique=False)

    # Create alert_events table
    op.create_table(
        'alert_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('signal_id', sa.Integer(), nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.Column('channel', sa.String(length=10), nullable=False, server_default='EMAIL'),
        sa.Column('recipient', sa.String(length=255), nullable=False),
        sa.Column('subject', sa.String(length=500), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['signal_id'], ['signals.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_alert_events_id'), 'alert_events', ['id'], unique=False)
    op.create_index(op.f('ix_alert_events_signal_id'), 'alert_events', ['signal_id'], unique=False)

    # Create settings table
    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('scan_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('alert_to_email', sa.String(length=255), nullable=True),
        sa.Column('smtp_from', sa.String(length=255), nullable=True),
        sa.Column('min_score_to_alert', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('max_symbols_per_burst', sa.Integer(), nullable=False, server_default='4'),
        sa.Column('burst_sleep_ms', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('alert_cooldown_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.PrimaryKeyConstraint('id')
    )

    # Create error_logs table
    op.create_table(
        'error_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timestamp_utc', sa.DateTime(), nullable=False),
        sa.Column('component', sa.String(), nullable=False),
        sa.Column('severity', sa.String(), nullable=False),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('exception_type', sa.String(), nullable=True),
        sa.Column('symbol', sa.String(), nullable=True),
        sa.Column('stack_trace', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_error_logs_id'), 'error_logs', ['id'], unique=False)
    op.create_index(op.f('ix_error_logs_timestamp_utc'), 'error_logs', ['timestamp_utc'], unique=False)
    op.create_index(op.f('ix_error_logs_symbol'), 'error_logs', ['symbol'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_error_logs_symbol'), table_name='error_logs')
    op.drop_index(op.f('ix_error_logs_timestamp_utc'), table_name='error_logs')
    op.drop_index(op.f('ix_error_logs_id'), table_name='error_logs')
    op.drop_table('error_logs')

    op.drop_table('settings')

    op.drop_index(op.f('ix_alert_events_signal_id'), table_name='alert_events')
    op.drop_index(op.f('ix_alert_events_id'), table_name='alert_events')
    op.drop_table('alert_events')

    op.drop_index(op.f('ix_signals_status'), table_name='signals')
    op.drop_index(op.f('ix_signals_detected_at'), table_name='signals')
    op.drop_index(op.f('ix_signals_instrument_id'), table_name='signals')
    op.drop_index(op.f('ix_signals_id'), table_name='signals')
    op.drop_table('signals')

    op.drop_index(op.f('ix_scan_progress_id'), table_name='scan_progress')
    op.drop_table('scan_progress')

    op.drop_index(op.f('ix_scan_runs_started_at'), table_name='scan_runs')
    op.drop_index(op.f('ix_scan_runs_id'), table_name='scan_runs')
    op.drop_table('scan_runs')

    op.drop_index(op.f('ix_indicators_datetime_utc'), table_name='indicators')
    op.drop_index(op.f('ix_indicators_id'), table_name='indicators')
    op.drop_table('indicators')

    op.drop_index(op.f('ix_candles_datetime_utc'), table_name='candles')
    op.drop_index(op.f('ix_candles_id'), table_name='candles')
    op.drop_table('candles')

    op.drop_index(op.f('ix_instruments_id'), table_name='instruments')
    op.drop_table('instruments')
