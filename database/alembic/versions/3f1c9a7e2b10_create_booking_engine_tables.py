"""create booking engine tables

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f1c9a7e2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Shared trigger function for updated_at columns
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = CURRENT_TIMESTAMP;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    calendar_owner_role = postgresql.ENUM(
        'admin', 'member',
        name='calendar_owner_role',
        create_type=False
    )
    calendar_owner_role.create(op.get_bind(), checkfirst=True)

    booking_status = postgresql.ENUM(
        'pending', 'confirmed', 'completed', 'cancelled', 'no_show',
        name='booking_status',
        create_type=False
    )
    booking_status.create(op.get_bind(), checkfirst=True)

    # booking_calendars
    op.create_table(
        'booking_calendars',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(7), nullable=False, server_default='#6366f1'),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='America/Sao_Paulo'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('public_slug', sa.String(100), nullable=True),
        sa.Column('min_advance_hours', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('max_advance_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('max_bookings_per_slot', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.CheckConstraint('min_advance_hours >= 0', name='check_calendar_min_advance'),
        sa.CheckConstraint('max_advance_days >= 1', name='check_calendar_max_advance'),
        sa.CheckConstraint(
            'max_bookings_per_slot >= 1 AND max_bookings_per_slot <= 50',
            name='check_calendar_max_bookings_per_slot'
        ),
        sa.CheckConstraint(
            "public_slug IS NULL OR (public_slug ~ '^[a-z0-9-]+$' AND length(public_slug) >= 3)",
            name='check_calendar_public_slug_format'
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('public_slug', name='unique_calendar_public_slug'),
    )
    op.create_index('idx_booking_calendars_tenant_id', 'booking_calendars', ['tenant_id'])
    op.create_index(
        'idx_booking_calendars_tenant_active',
        'booking_calendars',
        ['tenant_id'],
        postgresql_where=sa.text('is_active = true')
    )

    # booking_calendar_owners
    op.create_table(
        'booking_calendar_owners',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('display_name', sa.String(200), nullable=True),
        sa.Column('role', postgresql.ENUM('admin', 'member', name='calendar_owner_role', create_type=False), nullable=False, server_default='member'),
        sa.Column('can_receive_bookings', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('weight', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.CheckConstraint('weight >= 1', name='check_owner_weight_positive'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['calendar_id'], ['booking_calendars.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('calendar_id', 'user_id', name='unique_calendar_owner'),
    )
    op.create_index('idx_booking_calendar_owners_calendar_id', 'booking_calendar_owners', ['calendar_id'])

    # booking_availability
    op.create_table(
        'booking_availability',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', sa.UUID(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.TIME(), nullable=False),
        sa.Column('end_time', sa.TIME(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='valid_availability_day_of_week'),
        sa.CheckConstraint('start_time < end_time', name='check_availability_start_before_end'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['calendar_id'], ['booking_calendars.id'], ondelete='CASCADE'),
    )
    op.create_index(
        'idx_booking_availability_calendar_day',
        'booking_availability',
        ['calendar_id', 'day_of_week']
    )

    # booking_service_types
    op.create_table(
        'booking_service_types',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('buffer_before_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('buffer_after_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_advance_hours', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_per_day', sa.Integer(), nullable=True),
        sa.Column('color', sa.String(7), nullable=False, server_default='#3b82f6'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.CheckConstraint('duration_minutes >= 5', name='check_service_type_duration_min'),
        sa.CheckConstraint(
            'buffer_before_minutes >= 0 AND buffer_after_minutes >= 0',
            name='check_service_type_buffers_non_negative'
        ),
        sa.CheckConstraint('max_per_day IS NULL OR max_per_day >= 1', name='check_service_type_max_per_day'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['calendar_id'], ['booking_calendars.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_booking_service_types_calendar_id', 'booking_service_types', ['calendar_id'])

    # booking_blocks
    op.create_table(
        'booking_blocks',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', sa.UUID(), nullable=False),
        sa.Column('start_datetime', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('end_datetime', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.CheckConstraint('end_datetime > start_datetime', name='check_block_end_after_start'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['calendar_id'], ['booking_calendars.id'], ondelete='CASCADE'),
    )
    op.create_index(
        'idx_booking_blocks_calendar_time',
        'booking_blocks',
        ['calendar_id', 'start_datetime', 'end_datetime']
    )

    # bookings
    op.create_table(
        'bookings',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tenant_id', sa.UUID(), nullable=False),
        sa.Column('calendar_id', sa.UUID(), nullable=False),
        sa.Column('service_type_id', sa.UUID(), nullable=False),
        sa.Column('assigned_to', sa.UUID(), nullable=False),
        sa.Column('lead_id', sa.UUID(), nullable=True),
        sa.Column('client_name', sa.String(200), nullable=True),
        sa.Column('client_phone', sa.String(30), nullable=True),
        sa.Column('client_email', sa.String(255), nullable=True),
        sa.Column('start_datetime', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('end_datetime', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', postgresql.ENUM('pending', 'confirmed', 'completed', 'cancelled', 'no_show', name='booking_status', create_type=False), nullable=False, server_default='confirmed'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.CheckConstraint('end_datetime > start_datetime', name='check_booking_end_after_start'),
        sa.CheckConstraint(
            "lead_id IS NOT NULL OR (client_name IS NOT NULL AND length(trim(client_name)) > 0)",
            name='check_booking_client_identity'
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['calendar_id'], ['booking_calendars.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_type_id'], ['booking_service_types.id'], ondelete='RESTRICT'),
    )
    op.create_index('idx_bookings_tenant_id', 'bookings', ['tenant_id'])
    op.create_index('idx_bookings_assigned_to', 'bookings', ['assigned_to'])
    op.create_index('idx_bookings_lead_id', 'bookings', ['lead_id'])
    op.create_index('idx_bookings_status', 'bookings', ['status'])
    op.create_index(
        'idx_bookings_calendar_time_active',
        'bookings',
        ['calendar_id', 'start_datetime', 'end_datetime'],
        postgresql_where=sa.text("status IN ('pending', 'confirmed')")
    )
    op.create_index('idx_bookings_calendar_created_at', 'bookings', ['calendar_id', 'created_at'])

    for table in ('booking_calendars', 'bookings'):
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade() -> None:
    for table in ('bookings', 'booking_calendars'):
        op.execute(f'DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}')

    op.drop_table('bookings')
    op.drop_table('booking_blocks')
    op.drop_table('booking_service_types')
    op.drop_table('booking_availability')
    op.drop_table('booking_calendar_owners')
    op.drop_table('booking_calendars')

    op.execute('DROP TYPE IF EXISTS booking_status')
    op.execute('DROP TYPE IF EXISTS calendar_owner_role')
    op.execute('DROP FUNCTION IF EXISTS update_updated_at_column()')
