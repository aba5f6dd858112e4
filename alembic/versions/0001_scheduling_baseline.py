"""Scheduling baseline - availability rules, appointments, history, slot locks.

Revision ID: 0001_scheduling_baseline
Revises:
Create Date: 2026-10-18

Creates:
- doctor_availability (weekly rules, exceptions, leave)
- appointments
- appointment_status_history
- appointment_slot_locks (per-slot booking serialization)
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_scheduling_baseline'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ==========================================================================
    # doctor_availability
    # ==========================================================================
    op.create_table(
        'doctor_availability',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=False),

        # Weekly window (Sunday=0)
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),

        # Slot configuration
        sa.Column('slot_duration_minutes', sa.Integer(), server_default=sa.text('30'), nullable=False),
        sa.Column('buffer_time_minutes', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('max_patients_per_slot', sa.Integer(), server_default=sa.text('1'), nullable=False),
        sa.Column('availability_type', sa.String(20), server_default=sa.text("'regular'"), nullable=False),

        # Validity
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),

        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('updated_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),

        sa.PrimaryKeyConstraint('id', name='pk_doctor_availability'),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='ck_doctor_availability_valid_day_of_week'),
        sa.CheckConstraint('start_time < end_time', name='ck_doctor_availability_valid_time_window'),
        sa.CheckConstraint('slot_duration_minutes > 0', name='ck_doctor_availability_positive_slot_duration'),
        sa.CheckConstraint('buffer_time_minutes >= 0', name='ck_doctor_availability_non_negative_buffer'),
        sa.CheckConstraint('max_patients_per_slot >= 1', name='ck_doctor_availability_positive_capacity'),
        sa.CheckConstraint(
            'effective_to IS NULL OR effective_from <= effective_to',
            name='ck_doctor_availability_valid_effective_range',
        ),
    )

    op.create_index(
        'idx_doctor_availability_key',
        'doctor_availability',
        ['doctor_id', 'day_of_week', 'start_time', 'end_time'],
    )
    op.create_index('idx_doctor_availability_tenant', 'doctor_availability', ['tenant_id', 'doctor_id'])

    # ==========================================================================
    # appointments
    # ==========================================================================
    op.create_table(
        'appointments',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('patient_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=False),

        # Scheduling
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('appointment_time', sa.Time(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('buffer_time_minutes', sa.Integer(), server_default=sa.text('0'), nullable=False),

        # Workflow
        sa.Column('status', sa.String(20), server_default=sa.text("'scheduled'"), nullable=False),
        sa.Column('appointment_type', sa.String(20), server_default=sa.text("'consultation'"), nullable=False),
        sa.Column('appointment_source', sa.String(20), server_default=sa.text("'manual'"), nullable=False),
        sa.Column('priority', sa.String(20), server_default=sa.text("'normal'"), nullable=False),

        sa.Column('chief_complaint', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),

        # Provenance
        sa.Column('source_rule_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('rescheduled_from_id', postgresql.UUID(as_uuid=True), nullable=True),

        # Cancellation
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),

        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),

        sa.PrimaryKeyConstraint('id', name='pk_appointments'),
        sa.ForeignKeyConstraint(
            ['source_rule_id'], ['doctor_availability.id'],
            name='fk_appointments_source_rule_id_doctor_availability',
            ondelete='SET NULL',
        ),
        sa.ForeignKeyConstraint(
            ['rescheduled_from_id'], ['appointments.id'],
            name='fk_appointments_rescheduled_from_id_appointments',
            ondelete='SET NULL',
        ),
        sa.CheckConstraint('duration_minutes > 0', name='ck_appointments_positive_duration'),
    )

    op.create_index(
        'idx_appointments_doctor_slot',
        'appointments',
        ['doctor_id', 'appointment_date', 'appointment_time'],
    )
    op.create_index('idx_appointments_tenant_status', 'appointments', ['tenant_id', 'status'])
    op.create_index('idx_appointments_tenant_date', 'appointments', ['tenant_id', 'appointment_date'])
    op.create_index('idx_appointments_patient', 'appointments', ['patient_id'])

    # ==========================================================================
    # appointment_status_history
    # ==========================================================================
    op.create_table(
        'appointment_status_history',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('old_status', sa.String(20), nullable=True),
        sa.Column('new_status', sa.String(20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('changed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_appointment_status_history'),
        sa.ForeignKeyConstraint(
            ['appointment_id'], ['appointments.id'],
            name='fk_appointment_status_history_appointment_id_appointments',
            ondelete='CASCADE',
        ),
    )

    op.create_index(
        'idx_appointment_history_appt',
        'appointment_status_history',
        ['appointment_id', 'changed_at'],
    )

    # ==========================================================================
    # appointment_slot_locks
    # ==========================================================================
    op.create_table(
        'appointment_slot_locks',
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('slot_date', sa.Date(), nullable=False),
        sa.Column('slot_time', sa.Time(), nullable=False),
        sa.Column('version', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.PrimaryKeyConstraint(
            'tenant_id', 'doctor_id', 'slot_date', 'slot_time',
            name='pk_appointment_slot_locks',
        ),
    )


def downgrade() -> None:
    op.drop_table('appointment_slot_locks')
    op.drop_index('idx_appointment_history_appt', table_name='appointment_status_history')
    op.drop_table('appointment_status_history')
    op.drop_index('idx_appointments_patient', table_name='appointments')
    op.drop_index('idx_appointments_tenant_date', table_name='appointments')
    op.drop_index('idx_appointments_tenant_status', table_name='appointments')
    op.drop_index('idx_appointments_doctor_slot', table_name='appointments')
    op.drop_table('appointments')
    op.drop_index('idx_doctor_availability_tenant', table_name='doctor_availability')
    op.drop_index('idx_doctor_availability_key', table_name='doctor_availability')
    op.drop_table('doctor_availability')
