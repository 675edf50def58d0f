from uuid import uuid4
from datetime import datetime, timezone
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Numeric,
    DateTime,
    Date,
    JSON,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
)
from .database import Base


def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Service(Base):
    """
    Serviço oferecido pela barbearia (corte, barba, combo...).
    """
    __tablename__ = "services"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(120), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    duration = Column(Integer, nullable=False)  # minutos
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class Barber(Base):
    __tablename__ = "barbers"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(120), nullable=False)
    specialty = Column(String(120), nullable=False, default="")
    experience = Column(String(120), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=False, unique=True)
    email = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class Appointment(Base):
    """
    Agendamento. Status: agendado, concluido ou cancelado.
    """
    __tablename__ = "appointments"

    id = Column(String(32), primary_key=True, default=_new_id)
    client_id = Column(String(32), ForeignKey("clients.id"), nullable=False)
    barber_id = Column(String(32), ForeignKey("barbers.id"), nullable=False)
    service_id = Column(String(32), ForeignKey("services.id"), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)  # "HH:MM"
    status = Column(String(20), nullable=False, default="agendado")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class Rating(Base):
    __tablename__ = "ratings"
    __table_args__ = (
        UniqueConstraint("appointment_id", name="uq_ratings_appointment"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_ratings_range"),
    )

    id = Column(String(32), primary_key=True, default=_new_id)
    appointment_id = Column(String(32), ForeignKey("appointments.id"), nullable=False)
    barber_id = Column(String(32), ForeignKey("barbers.id"), nullable=False)
    client_id = Column(String(32), ForeignKey("clients.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class LoyaltyRedemption(Base):
    """
    Resgate de recompensa do programa de fidelidade.
    """
    __tablename__ = "loyalty_redemptions"

    id = Column(String(32), primary_key=True, default=_new_id)
    client_id = Column(String(32), ForeignKey("clients.id"), nullable=False)
    reward_code = Column(String(50), nullable=False)
    points = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class RaffleRecord(Base):
    """
    Linha da tabela de sorteios. `version` é o token de concorrência
    otimista usado no compare-and-swap.
    """
    __tablename__ = "raffles"
    __table_args__ = (
        CheckConstraint("max_participants >= 1", name="ck_raffles_max_participants"),
        CheckConstraint("end_date > start_date", name="ck_raffles_dates"),
    )

    id = Column(String(32), primary_key=True, default=_new_id)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    prize = Column(String(200), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    max_participants = Column(Integer, nullable=False)
    participants = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="ativo")
    winner = Column(String(300), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
