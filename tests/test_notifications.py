"""Testes de lembretes e do envio de e-mails."""

from datetime import date, datetime
from types import SimpleNamespace

import pytest

from barbershop.config import AppConfig
from barbershop.infra.notification_service import NotificationService, appointment_start, due_reminders


def _appointment(day, time, status="agendado"):
    return SimpleNamespace(date=day, time=time, status=status)


def test_appointment_start():
    assert appointment_start(date(2026, 6, 20), "09:30") == datetime(2026, 6, 20, 9, 30)


def test_due_reminders_window():
    now = datetime(2026, 6, 19, 10, 0)
    soon = _appointment(date(2026, 6, 20), "09:30")
    exactly = _appointment(date(2026, 6, 20), "10:00")
    later = _appointment(date(2026, 6, 20), "10:30")
    past = _appointment(date(2026, 6, 19), "09:00")
    cancelled = _appointment(date(2026, 6, 19), "15:00", status="cancelado")

    due = due_reminders([soon, exactly, later, past, cancelled], now, reminder_hours=24)

    assert due == [soon, exactly]


def test_dev_log_mode_only_logs(caplog):
    service = NotificationService(AppConfig())
    with caplog.at_level("INFO"):
        service.send_appointment_reminder("ana@x.com", "Ana", date(2026, 6, 20), "09:30")

    assert "E-mail (FAKE)" in caplog.text
    assert "20/06/2026" in caplog.text


def test_empty_recipient_rejected():
    service = NotificationService(AppConfig())
    with pytest.raises(ValueError):
        service.send_raffle_winner("  ", "Ana", "Sorteio", "Corte")


def test_smtp_port_465_falls_back_to_starttls(monkeypatch):
    config = AppConfig(smtp_host="smtp.exemplo.com", smtp_port=465, smtp_user="u", smtp_password="p")
    service = NotificationService(config)
    calls = []

    def failing_ssl(msg, ctx):
        calls.append("ssl")
        raise ConnectionError("recusado")

    def starttls(msg, ctx, port):
        calls.append(("starttls", port))

    monkeypatch.setattr(service, "_send_ssl", failing_ssl)
    monkeypatch.setattr(service, "_send_starttls", starttls)

    service.send_raffle_winner("ana@x.com", "Ana", "Sorteio de Junho", "Corte grátis")

    assert calls == ["ssl", ("starttls", 587)]
