"""Testes do programa de fidelidade."""

from datetime import date
from decimal import Decimal

import pytest

from barbershop.core.errors import InsufficientPointsError, NotFoundError
from barbershop.core.loyalty import LoyaltyManager, next_tier_progress, points_for, tier_for
from barbershop.domain.loyalty_program import REWARDS, Tier, get_reward


@pytest.mark.parametrize(
    "total, points",
    [(0, 0), (9.99, 0), (10, 1), (Decimal("135.00"), 13), (4999, 499), (-50, 0)],
)
def test_points_are_floor_of_spend_over_ten(total, points):
    assert points_for(total) == points


@pytest.mark.parametrize(
    "points, tier",
    [
        (0, Tier.BRONZE),
        (99, Tier.BRONZE),
        (100, Tier.SILVER),
        (199, Tier.SILVER),
        (200, Tier.GOLD),
        (499, Tier.GOLD),
        (500, Tier.PLATINUM),
        (1200, Tier.PLATINUM),
    ],
)
def test_tier_thresholds(points, tier):
    assert tier_for(points) == tier


def test_next_tier_progress():
    assert next_tier_progress(50) == 50.0
    assert next_tier_progress(150) == 75.0
    assert next_tier_progress(250) == 50.0
    assert next_tier_progress(800) == 100.0


def test_reward_catalog():
    assert [r.cost for r in REWARDS] == [50, 150, 300, 500]
    assert get_reward("corte-gratis").cost == 150
    assert get_reward("inexistente") is None


@pytest.fixture
def loyalty(db_session_factory):
    return LoyaltyManager(db_session_factory)


@pytest.fixture
def big_spender(booking):
    """Cliente com dois atendimentos de R$ 250 concluídos (50 pontos)."""
    service = booking.create_service("Dia de noivo", "250.00", 120)
    barber = booking.create_barber("Rafa", "Noivos", "")
    for day in (date(2026, 5, 2), date(2026, 5, 9)):
        appointment = booking.book(service.id, barber.id, day, "10:00", "Pedro", "41999990000")
        booking.update_status(appointment.id, "concluido")
    # Agendado e cancelado não contam pontos
    booking.book(service.id, barber.id, date(2026, 5, 16), "10:00", "Pedro", "41999990000")
    cancelled = booking.book(service.id, barber.id, date(2026, 5, 23), "10:00", "Pedro", "41999990000")
    booking.update_status(cancelled.id, "cancelado")
    return booking.list_clients()[0]


def test_status_counts_only_completed_appointments(loyalty, big_spender):
    status = loyalty.get_status(big_spender.id)

    assert status.total_spent == Decimal("500.00")
    assert status.points == 50
    assert status.tier == Tier.BRONZE
    assert status.available_points == 50
    assert status.benefits


def test_new_client_has_zero_points(loyalty, booking):
    client = booking.register_client("Ana", "41988887777")
    status = loyalty.get_status(client.id)

    assert status.points == 0
    assert status.tier == Tier.BRONZE
    assert status.next_tier_progress == 0.0


def test_redeem_deducts_from_balance(loyalty, big_spender):
    redemption = loyalty.redeem(big_spender.id, "desconto-20")

    assert redemption.points == 50
    status = loyalty.get_status(big_spender.id)
    assert status.redeemed_points == 50
    assert status.available_points == 0
    # O nível continua sendo calculado sobre os pontos ganhos
    assert status.points == 50
    assert [r.reward_code for r in loyalty.redemptions(big_spender.id)] == ["desconto-20"]


def test_redeem_without_enough_points(loyalty, big_spender):
    loyalty.redeem(big_spender.id, "desconto-20")
    with pytest.raises(InsufficientPointsError):
        loyalty.redeem(big_spender.id, "desconto-20")
    assert len(loyalty.redemptions(big_spender.id)) == 1


def test_redeem_unknown_reward_or_client(loyalty, big_spender):
    with pytest.raises(NotFoundError):
        loyalty.redeem(big_spender.id, "viagem-paris")
    with pytest.raises(NotFoundError):
        loyalty.redeem("nao-existe", "desconto-20")
    with pytest.raises(NotFoundError):
        loyalty.get_status("nao-existe")
