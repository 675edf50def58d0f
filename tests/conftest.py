"""Pytest configuration and fixtures."""

import random
from datetime import date, datetime, timedelta, timezone

import pytest

from barbershop.core.booking import BookingManager
from barbershop.core.raffle_engine import RaffleEngine
from barbershop.core.raffle_repository import InMemoryRaffleRepository
from barbershop.storage.database import create_session_factory


NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)

# Data "de hoje" da barbearia nos testes de agendamento (quarta-feira)
TODAY = date(2026, 4, 1)


class FakeClock:
    """Relógio controlado pelo teste."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def db_session_factory():
    """Banco SQLite em memória com todas as tabelas criadas."""
    return create_session_factory("sqlite://", create_tables=True)


@pytest.fixture
def memory_repository():
    return InMemoryRaffleRepository()


@pytest.fixture
def engine(memory_repository, rng, clock):
    return RaffleEngine(memory_repository, rng=rng, clock=clock)


@pytest.fixture
def open_raffle(engine):
    """Sorteio ativo que começou ontem e termina em uma semana."""
    return engine.create(
        title="Sorteio de Junho",
        prize="Corte grátis",
        start_date=NOW - timedelta(days=1),
        end_date=NOW + timedelta(days=7),
        max_participants=3,
        description="Participe!",
    )


@pytest.fixture
def booking(db_session_factory):
    return BookingManager(db_session_factory, today=lambda: TODAY)


@pytest.fixture
def shop(booking):
    """Serviço e barbeiro cadastrados."""
    service = booking.create_service("Corte", "45.00", 30)
    barber = booking.create_barber("carlos silva", "Degradê", "10 anos")
    return service, barber
