"""Testes da API HTTP com TestClient."""

import random
from datetime import date, timedelta
from smtplib import SMTPException

import pytest
from fastapi.testclient import TestClient

from barbershop.api.http import create_app, hash_phone
from barbershop.config import AppConfig
from barbershop.core.raffle_repository import InMemoryRaffleRepository

from .conftest import NOW

ADMIN = {"X-API-KEY": "segredo"}


class RecordingNotifications:
    def __init__(self):
        self.winners = []
        self.reminders = []

    def send_raffle_winner(self, to_email, winner_name, raffle_title, prize):
        self.winners.append((to_email, winner_name, raffle_title, prize))

    def send_appointment_reminder(self, to_email, client_name, day, time):
        self.reminders.append((to_email, client_name, day, time))


@pytest.fixture
def notifications():
    return RecordingNotifications()


@pytest.fixture
def client(db_session_factory, clock, notifications):
    app = create_app(
        config=AppConfig(database_url="sqlite://", admin_api_key="segredo"),
        db_session_factory=db_session_factory,
        rng=random.Random(1),
        clock=clock,
        notifications=notifications,
    )
    return TestClient(app)


def _raffle_payload(**overrides):
    payload = {
        "title": "Sorteio de Junho",
        "description": "Um corte grátis",
        "prize": "Corte grátis",
        "start_date": (NOW - timedelta(days=1)).isoformat(),
        "end_date": (NOW + timedelta(days=7)).isoformat(),
        "max_participants": 2,
    }
    payload.update(overrides)
    return payload


def _create_raffle(client, **overrides):
    response = client.post("/raffles", json=_raffle_payload(**overrides), headers=ADMIN)
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "ok"
    assert "X-Request-ID" in response.headers


def test_admin_routes_require_api_key(client):
    assert client.post("/raffles", json=_raffle_payload()).status_code == 401
    assert client.post("/raffles", json=_raffle_payload(), headers={"X-API-KEY": "errada"}).status_code == 401
    assert client.get("/reports/summary").status_code == 401


def test_raffle_lifecycle(client, notifications):
    raffle = _create_raffle(client)
    assert raffle["status"] == "ativo"
    assert raffle["participant_count"] == 0

    client.post("/clients", json={"name": "Ana", "phone": "41999380969", "email": "ana@x.com"})

    response = client.post(f"/raffles/{raffle['id']}/participants", json={"name": "Ana", "phone": "41999380969"})
    assert response.status_code == 201
    body = response.json()
    assert body["ok"] is True
    assert body["raffle"]["participants"] == ["Ana-41999380969"]

    response = client.post(f"/raffles/{raffle['id']}/draw", headers=ADMIN)
    assert response.status_code == 200
    body = response.json()
    assert body["winner"] == "Ana-41999380969"
    assert body["winner_name"] == "Ana"
    assert body["notified"] is True
    assert body["raffle"]["status"] == "sorteado"
    assert notifications.winners == [("ana@x.com", "Ana", "Sorteio de Junho", "Corte grátis")]

    response = client.post(f"/raffles/{raffle['id']}/draw", headers=ADMIN)
    assert response.status_code == 409
    assert response.json()["code"] == "ja_sorteado"


def test_participation_rejections_have_distinct_codes(client, clock):
    raffle = _create_raffle(client, max_participants=1)
    url = f"/raffles/{raffle['id']}/participants"

    assert client.post(url, json={"name": "Ana", "phone": "111"}).status_code == 201

    response = client.post(url, json={"name": "Bob", "phone": "222"})
    assert response.status_code == 409
    assert response.json()["code"] == "sorteio_lotado"
    assert response.json()["detail"]

    other = _create_raffle(client, title="Outro")
    other_url = f"/raffles/{other['id']}/participants"
    client.post(other_url, json={"name": "Ana", "phone": "111"})
    assert client.post(other_url, json={"name": "Ana", "phone": "111"}).json()["code"] == "ja_participando"

    clock.advance(days=10)
    assert client.post(other_url, json={"name": "Cid", "phone": "333"}).json()["code"] == "inscricoes_encerradas"
    assert client.get(f"/raffles/{other['id']}").json()["current_status"] == "encerrado"


def test_draw_without_participants(client):
    raffle = _create_raffle(client)
    response = client.post(f"/raffles/{raffle['id']}/draw", headers=ADMIN)

    assert response.status_code == 409
    assert response.json()["code"] == "sem_participantes"
    assert client.get(f"/raffles/{raffle['id']}").json()["status"] == "ativo"


def test_invalid_raffle_and_unknown_id(client):
    response = client.post(
        "/raffles",
        json=_raffle_payload(start_date="2024-01-10T00:00:00", end_date="2024-01-05T00:00:00"),
        headers=ADMIN,
    )
    assert response.status_code == 422
    assert response.json()["code"] == "dados_invalidos"

    response = client.get("/raffles/nao-existe")
    assert response.status_code == 404
    assert response.json()["code"] == "nao_encontrado"


def test_update_list_and_delete_raffle(client):
    first = _create_raffle(client, title="Primeiro", start_date=(NOW - timedelta(days=3)).isoformat())
    second = _create_raffle(client, title="Segundo")

    response = client.patch(f"/raffles/{first['id']}", json={"max_participants": 50}, headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["max_participants"] == 50

    assert [r["id"] for r in client.get("/raffles").json()] == [second["id"], first["id"]]
    assert len(client.get("/raffles/open").json()) == 2

    assert client.delete(f"/raffles/{first['id']}", headers=ADMIN).status_code == 204
    assert [r["id"] for r in client.get("/raffles?refresh=true").json()] == [second["id"]]


def test_booking_flow_and_loyalty(client):
    service = client.post("/services", json={"name": "Combo", "price": "500.00", "duration": 60}, headers=ADMIN).json()
    barber = client.post("/barbers", json={"name": "Carlos"}, headers=ADMIN).json()

    response = client.post(
        "/appointments",
        json={
            "service_id": service["id"],
            "barber_id": barber["id"],
            "date": "2026-06-20",
            "time": "10:00",
            "client_name": "Lucas",
            "client_phone": "41988887777",
        },
    )
    assert response.status_code == 201
    appointment = response.json()

    response = client.patch(f"/appointments/{appointment['id']}/status", json={"status": "concluido"}, headers=ADMIN)
    assert response.json()["status"] == "concluido"

    response = client.post(f"/appointments/{appointment['id']}/rating", json={"rating": 5})
    assert response.status_code == 201
    assert client.get(f"/barbers/{barber['id']}/rating").json()["average"] == 5.0

    loyalty = client.get(f"/clients/{appointment['client_id']}/loyalty").json()
    assert loyalty["points"] == 50
    assert loyalty["tier"] == "bronze"
    assert len(loyalty["rewards"]) == 4

    response = client.post(f"/clients/{appointment['client_id']}/loyalty/redeem", json={"reward_code": "desconto-20"})
    assert response.status_code == 201
    response = client.post(f"/clients/{appointment['client_id']}/loyalty/redeem", json={"reward_code": "desconto-20"})
    assert response.status_code == 409
    assert response.json()["code"] == "pontos_insuficientes"

    summary = client.get("/reports/summary", headers=ADMIN).json()
    assert summary["total_revenue"] == 500.0


def test_invalid_slot_returns_422(client):
    service = client.post("/services", json={"name": "Corte", "price": "40", "duration": 30}, headers=ADMIN).json()
    barber = client.post("/barbers", json={"name": "Carlos"}, headers=ADMIN).json()

    response = client.post(
        "/appointments",
        json={
            "service_id": service["id"],
            "barber_id": barber["id"],
            "date": "2026-06-20",
            "time": "22:00",
            "client_name": "Lucas",
            "client_phone": "41988887777",
        },
    )
    assert response.status_code == 422
    assert response.json()["code"] == "dados_invalidos"


def test_memory_backend_is_used_when_configured(db_session_factory, clock):
    repository = InMemoryRaffleRepository()
    app = create_app(
        config=AppConfig(database_url="sqlite://", raffle_backend="memory"),
        db_session_factory=db_session_factory,
        raffle_repository=repository,
        clock=clock,
    )
    client = TestClient(app)

    # Sem ADMIN_API_KEY em dev, rotas administrativas ficam abertas
    raffle = _create_raffle(client)
    assert repository.get(raffle["id"]) is not None


def test_hash_phone():
    assert hash_phone("(41) 99938-0969") == "4199****0969"
    assert hash_phone("123") == "****"


def _booking_client(db_session_factory, clock, notifications):
    app = create_app(
        config=AppConfig(database_url="sqlite://", reminder_hours=24),
        db_session_factory=db_session_factory,
        clock=clock,
        notifications=notifications,
    )
    client = TestClient(app)
    service = client.post("/services", json={"name": "Corte", "price": "40", "duration": 30}).json()
    barber = client.post("/barbers", json={"name": "Carlos"}).json()
    return client, service, barber


def _book(client, service, barber, day, name, phone, email=None, time="08:00"):
    response = client.post(
        "/appointments",
        json={
            "service_id": service["id"],
            "barber_id": barber["id"],
            "date": day.isoformat(),
            "time": time,
            "client_name": name,
            "client_phone": phone,
            "client_email": email,
        },
    )
    assert response.status_code == 201
    return response.json()


def test_reminders_for_upcoming_appointments(db_session_factory, clock, notifications):
    # Relógio em 15/06/2026 12:00; 16/06 às 08:00 está a 20h
    client, service, barber = _booking_client(db_session_factory, clock, notifications)
    tomorrow = date(2026, 6, 16)
    _book(client, service, barber, tomorrow, "Lucas", "41988887777", "lucas@x.com")
    _book(client, service, barber, date(2026, 6, 26), "Lucas", "41988887777")

    response = client.post("/notifications/reminders")

    assert response.json() == {"due": 1, "sent": 1, "failed": 0}
    assert notifications.reminders == [("lucas@x.com", "Lucas", tomorrow, "08:00")]

    # Um dia depois o mesmo agendamento já passou
    clock.advance(days=1)
    assert client.post("/notifications/reminders").json()["due"] == 0


class FlakyNotifications(RecordingNotifications):
    def __init__(self, failing_email):
        super().__init__()
        self.failing_email = failing_email

    def send_appointment_reminder(self, to_email, client_name, day, time):
        if to_email == self.failing_email:
            raise SMTPException("caixa indisponível")
        super().send_appointment_reminder(to_email, client_name, day, time)


def test_reminder_failure_does_not_stop_batch(db_session_factory, clock):
    notifications = FlakyNotifications("ana@x.com")
    client, service, barber = _booking_client(db_session_factory, clock, notifications)
    day = date(2026, 6, 16)
    _book(client, service, barber, day, "Ana", "41999380969", "ana@x.com", time="08:00")
    _book(client, service, barber, day, "Lucas", "41988887777", "lucas@x.com", time="09:00")

    response = client.post("/notifications/reminders")

    assert response.status_code == 200
    assert response.json() == {"due": 2, "sent": 1, "failed": 1}
    assert notifications.reminders == [("lucas@x.com", "Lucas", day, "09:00")]


def test_booking_uses_app_clock_for_today(db_session_factory, clock, notifications):
    client, service, barber = _booking_client(db_session_factory, clock, notifications)
    payload = {
        "service_id": service["id"],
        "barber_id": barber["id"],
        "time": "10:00",
        "client_name": "Lucas",
        "client_phone": "41988887777",
    }

    # 13/06/2026 já passou para o relógio do teste; 21/06/2026 é domingo
    for day in ("2026-06-13", "2026-06-21"):
        response = client.post("/appointments", json={**payload, "date": day})
        assert response.status_code == 422
        assert response.json()["code"] == "dados_invalidos"

    assert client.post("/appointments", json={**payload, "date": "2026-06-15"}).status_code == 201


def test_draw_keeps_hyphenated_winner_name(client):
    raffle = _create_raffle(client)
    client.post(f"/raffles/{raffle['id']}/participants", json={"name": "Ana-Maria", "phone": "111"})

    body = client.post(f"/raffles/{raffle['id']}/draw", headers=ADMIN).json()

    assert body["winner"] == "Ana-Maria-111"
    assert body["winner_name"] == "Ana-Maria"
    assert body["notified"] is False


def test_draw_uses_registered_client_name(client):
    client.post("/clients", json={"name": "joão pedro", "phone": "(41) 99938-0969"})
    raffle = _create_raffle(client)
    client.post(f"/raffles/{raffle['id']}/participants", json={"name": "JP", "phone": "41 99938-0969"})

    body = client.post(f"/raffles/{raffle['id']}/draw", headers=ADMIN).json()

    assert body["winner_name"] == "João Pedro"
