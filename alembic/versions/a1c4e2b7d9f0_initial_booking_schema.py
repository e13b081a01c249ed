"""initial booking schema

Revision ID: a1c4e2b7d9f0
Revises:
Create Date: 2026-10-19 14:02:11.482913

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1c4e2b7d9f0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    ]


def _owner_columns():
    return [
        sa.Column('unit_id', sa.Integer, sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=True),
        sa.Column('agent_id', sa.Integer, sa.ForeignKey('agents.id', ondelete='CASCADE'), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Units, agents and their links
    op.create_table(
        'units',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('address', sa.String(300), nullable=True),
        sa.Column('slot_step_minutes', sa.Integer, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps()
    )
    op.create_table(
        'agents',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps()
    )
    op.create_table(
        'agent_units',
        sa.Column('agent_id', sa.Integer, sa.ForeignKey('agents.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('unit_id', sa.Integer, sa.ForeignKey('units.id', ondelete='CASCADE'), primary_key=True),
    )

    # 2. Clients and catalog
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('email', sa.String(200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    for table in ('services', 'extra_services'):
        op.create_table(
            table,
            sa.Column('id', sa.Integer, primary_key=True),
            sa.Column('unit_id', sa.Integer, sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=False),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
            sa.Column('duration_minutes', sa.Integer, nullable=False, server_default='0'),
            sa.Column('is_active', sa.Boolean, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        )
        op.create_index(f'ix_{table}_unit_id', table, ['unit_id'])
        op.create_index(f'ix_{table}_is_active', table, ['is_active'])

    # 3. Weekly schedules
    op.create_table(
        'weekly_schedules',
        sa.Column('id', sa.Integer, primary_key=True),
        *_owner_columns(),
        sa.Column('weekday', sa.Integer, nullable=False),
        sa.Column('is_open', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('intervals', sa.JSON, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint('(unit_id IS NULL) <> (agent_id IS NULL)', name='ck_weekly_schedules_one_owner'),
        sa.CheckConstraint('weekday >= 0 AND weekday <= 6', name='ck_weekly_schedules_weekday'),
        sa.UniqueConstraint('unit_id', 'weekday', name='uq_weekly_schedules_unit_day'),
        sa.UniqueConstraint('agent_id', 'weekday', name='uq_weekly_schedules_agent_day'),
    )
    op.create_index('ix_weekly_schedules_unit_id', 'weekly_schedules', ['unit_id'])
    op.create_index('ix_weekly_schedules_agent_id', 'weekly_schedules', ['agent_id'])

    # 4. Calendar exceptions
    op.create_table(
        'calendar_exceptions',
        sa.Column('id', sa.Integer, primary_key=True),
        *_owner_columns(),
        sa.Column('date_start', sa.Date, nullable=False),
        sa.Column('date_end', sa.Date, nullable=False),
        sa.Column('time_start', sa.Time, nullable=True),
        sa.Column('time_end', sa.Time, nullable=True),
        sa.Column('category', sa.String(20), nullable=False, server_default='Other'),
        sa.Column('note', sa.Text, nullable=True),
        *_timestamps(),
        sa.CheckConstraint('(unit_id IS NULL) <> (agent_id IS NULL)', name='ck_calendar_exceptions_one_owner'),
        sa.CheckConstraint('date_end >= date_start', name='ck_calendar_exceptions_date_range'),
        sa.CheckConstraint('(time_start IS NULL) = (time_end IS NULL)', name='ck_calendar_exceptions_time_pair'),
    )
    op.create_index('ix_calendar_exceptions_unit_id', 'calendar_exceptions', ['unit_id'])
    op.create_index('ix_calendar_exceptions_agent_id', 'calendar_exceptions', ['agent_id'])
    op.create_index('ix_calendar_exceptions_date_start', 'calendar_exceptions', ['date_start'])
    op.create_index('ix_calendar_exceptions_date_end', 'calendar_exceptions', ['date_end'])

    # 5. Appointments
    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('agent_id', sa.Integer, sa.ForeignKey('agents.id'), nullable=False),
        sa.Column('unit_id', sa.Integer, sa.ForeignKey('units.id'), nullable=False),
        sa.Column('client_id', sa.Integer, sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('start_time', sa.Time, nullable=False),
        sa.Column('end_time', sa.Time, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='Approved'),
        sa.Column('total_value', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('rescheduled_from_id', sa.Integer, sa.ForeignKey('appointments.id'), nullable=True),
        *_timestamps(),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('end_time > start_time', name='ck_appointments_time_order'),
    )
    op.create_index('ix_appointments_agent_id', 'appointments', ['agent_id'])
    op.create_index('ix_appointments_unit_id', 'appointments', ['unit_id'])
    op.create_index('ix_appointments_client_id', 'appointments', ['client_id'])
    op.create_index('ix_appointments_date', 'appointments', ['date'])

    # Two blocking appointments of one agent may never overlap
    op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')
    op.execute(
        "ALTER TABLE appointments ADD CONSTRAINT appointments_no_overlap "
        "EXCLUDE USING gist ("
        "agent_id WITH =, "
        "tsrange(date + start_time, date + end_time, '[)') WITH &&"
        ") WHERE (status IN ('Approved', 'Completed'))"
    )

    op.create_table(
        'appointment_services',
        sa.Column('appointment_id', sa.Integer, sa.ForeignKey('appointments.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('service_id', sa.Integer, sa.ForeignKey('services.id'), primary_key=True),
        sa.Column('applied_price', sa.Numeric(10, 2), nullable=False),
    )
    op.create_table(
        'appointment_extra_services',
        sa.Column('appointment_id', sa.Integer, sa.ForeignKey('appointments.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('extra_service_id', sa.Integer, sa.ForeignKey('extra_services.id'), primary_key=True),
        sa.Column('applied_price', sa.Numeric(10, 2), nullable=False),
    )

    # 6. Scheduled reminders
    op.create_table(
        'scheduled_reminders',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('appointment_id', sa.Integer, sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', sa.String(8), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('fire_at', sa.DateTime, nullable=False),
        sa.Column('attempt_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('destination', sa.String(50), nullable=False),
        sa.Column('last_attempt_at', sa.DateTime, nullable=True),
        sa.Column('sent_at', sa.DateTime, nullable=True),
        sa.Column('last_error', sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('appointment_id', 'kind', name='uq_scheduled_reminders_appointment_kind'),
    )
    op.create_index('ix_scheduled_reminders_appointment_id', 'scheduled_reminders', ['appointment_id'])
    op.create_index('ix_scheduled_reminders_status', 'scheduled_reminders', ['status'])
    op.create_index('ix_scheduled_reminders_fire_at', 'scheduled_reminders', ['fire_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('scheduled_reminders')
    op.drop_table('appointment_extra_services')
    op.drop_table('appointment_services')
    op.drop_table('appointments')
    op.drop_table('calendar_exceptions')
    op.drop_table('weekly_schedules')
    op.drop_table('extra_services')
    op.drop_table('services')
    op.drop_table('clients')
    op.drop_table('agent_units')
    op.drop_table('agents')
    op.drop_table('units')
