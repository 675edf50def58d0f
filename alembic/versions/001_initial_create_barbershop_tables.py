"""initial create barbershop tables

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'services',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'barbers',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('specialty', sa.String(length=120), nullable=False),
        sa.Column('experience', sa.String(length=120), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'clients',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=200), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    # Telefone identifica o cliente no agendamento
    op.create_index('ix_clients_phone', 'clients', ['phone'], unique=True)

    op.create_table(
        'appointments',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('client_id', sa.String(length=32), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('barber_id', sa.String(length=32), sa.ForeignKey('barbers.id'), nullable=False),
        sa.Column('service_id', sa.String(length=32), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('time', sa.String(length=5), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_appointments_date_time', 'appointments', ['date', 'time'])

    op.create_table(
        'ratings',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('appointment_id', sa.String(length=32), sa.ForeignKey('appointments.id'), nullable=False),
        sa.Column('barber_id', sa.String(length=32), sa.ForeignKey('barbers.id'), nullable=False),
        sa.Column('client_id', sa.String(length=32), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('appointment_id', name='uq_ratings_appointment'),
        sa.CheckConstraint('rating BETWEEN 1 AND 5', name='ck_ratings_range')
    )

    op.create_table(
        'loyalty_redemptions',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('client_id', sa.String(length=32), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('reward_code', sa.String(length=50), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_loyalty_redemptions_client_id', 'loyalty_redemptions', ['client_id'])

    op.create_table(
        'raffles',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('prize', sa.String(length=200), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('max_participants', sa.Integer(), nullable=False),
        sa.Column('participants', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('winner', sa.String(length=300), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('max_participants >= 1', name='ck_raffles_max_participants'),
        sa.CheckConstraint('end_date > start_date', name='ck_raffles_dates')
    )
    op.create_index('ix_raffles_start_date', 'raffles', ['start_date'])


def downgrade() -> None:
    op.drop_index('ix_raffles_start_date', table_name='raffles')
    op.drop_table('raffles')
    op.drop_index('ix_loyalty_redemptions_client_id', table_name='loyalty_redemptions')
    op.drop_table('loyalty_redemptions')
    op.drop_table('ratings')
    op.drop_index('ix_appointments_date_time', table_name='appointments')
    op.drop_table('appointments')
    op.drop_index('ix_clients_phone', table_name='clients')
    op.drop_table('clients')
    op.drop_table('barbers')
    op.drop_table('services')
