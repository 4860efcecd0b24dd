"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_HOLD = sa.text("status IN ('pending', 'confirmed')")


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('phone_code', sa.String(length=8), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_superuser', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('role', sa.String(length=50), nullable=False, server_default='client'),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('statut', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('email', name='users_email_key'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=False)
    op.create_index('ix_users_role', 'users', ['role'], unique=False)

    op.create_table('operators',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        sa.Column('contact_phone', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('name', name='operators_name_key'),
    )
    op.create_index('ix_operators_name', 'operators', ['name'], unique=False)

    op.create_table('buses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('operator_id', sa.Integer(), nullable=True),
        sa.Column('registration_number', sa.String(length=64), nullable=False),
        sa.Column('bus_type', sa.String(length=64), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['operator_id'], ['operators.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('registration_number', name='buses_registration_number_key'),
    )
    op.create_index('ix_buses_registration_number', 'buses', ['registration_number'], unique=False)
    op.create_index('ix_buses_operator_id', 'buses', ['operator_id'], unique=False)

    op.create_table('trips',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('reference', sa.String(length=16), nullable=True),
        sa.Column('departure_city', sa.String(length=128), nullable=False),
        sa.Column('arrival_city', sa.String(length=128), nullable=False),
        sa.Column('departure_date', sa.Date(), nullable=False),
        sa.Column('departure_time', sa.Time(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('duration', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('bus_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['bus_id'], ['buses.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('reference', name='trips_reference_key'),
    )
    op.create_index('ix_trips_departure_city', 'trips', ['departure_city'], unique=False)
    op.create_index('ix_trips_arrival_city', 'trips', ['arrival_city'], unique=False)
    op.create_index('ix_trips_departure_date', 'trips', ['departure_date'], unique=False)
    op.create_index('ix_trips_status', 'trips', ['status'], unique=False)
    op.create_index('ix_trips_bus_id', 'trips', ['bus_id'], unique=False)

    op.create_table('reservations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('trip_id', sa.Integer(), nullable=False),
        sa.Column('seat_number', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ticket_url', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_reservations_code', 'reservations', ['code'], unique=True)
    op.create_index('ix_reservations_user_id', 'reservations', ['user_id'], unique=False)
    op.create_index('ix_reservations_trip_id', 'reservations', ['trip_id'], unique=False)
    op.create_index('ix_reservations_status', 'reservations', ['status'], unique=False)
    # one active hold per seat
    op.create_index(
        'uq_reservations_active_seat', 'reservations', ['trip_id', 'seat_number'], unique=True,
        postgresql_where=ACTIVE_HOLD, sqlite_where=ACTIVE_HOLD,
    )

    op.create_table('user_tokens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False, server_default='email_verification'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_user_tokens_user_id', 'user_tokens', ['user_id'], unique=False)
    op.create_index('ix_user_tokens_token_hash', 'user_tokens', ['token_hash'], unique=False)
    op.create_index('ix_user_tokens_user_type_created', 'user_tokens', ['user_id', 'type', 'created_at'], unique=False)

    op.create_table('contact_messages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('phone_code', sa.String(length=8), nullable=True),
        sa.Column('subject', sa.String(length=100), nullable=False),
        sa.Column('sub_subject', sa.String(length=100), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade():
    op.drop_table('contact_messages')
    op.drop_index('ix_user_tokens_user_type_created', table_name='user_tokens')
    op.drop_index('ix_user_tokens_token_hash', table_name='user_tokens')
    op.drop_index('ix_user_tokens_user_id', table_name='user_tokens')
    op.drop_table('user_tokens')
    op.drop_index('uq_reservations_active_seat', table_name='reservations')
    op.drop_index('ix_reservations_status', table_name='reservations')
    op.drop_index('ix_reservations_trip_id', table_name='reservations')
    op.drop_index('ix_reservations_user_id', table_name='reservations')
    op.drop_index('ix_reservations_code', table_name='reservations')
    op.drop_table('reservations')
    op.drop_index('ix_trips_bus_id', table_name='trips')
    op.drop_index('ix_trips_status', table_name='trips')
    op.drop_index('ix_trips_departure_date', table_name='trips')
    op.drop_index('ix_trips_arrival_city', table_name='trips')
    op.drop_index('ix_trips_departure_city', table_name='trips')
    op.drop_table('trips')
    op.drop_index('ix_buses_operator_id', table_name='buses')
    op.drop_index('ix_buses_registration_number', table_name='buses')
    op.drop_table('buses')
    op.drop_index('ix_operators_name', table_name='operators')
    op.drop_table('operators')
    op.drop_index('ix_users_role', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
