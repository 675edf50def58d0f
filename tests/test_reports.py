"""Testes dos relatórios de faturamento."""

from datetime import date
from decimal import Decimal

from barbershop.core.reports import ReportService


def test_summary_aggregates_completed_appointments(booking, db_session_factory):
    corte = booking.create_service("Corte", "40.00", 30)
    barba = booking.create_service("Barba", "25.00", 20)
    carlos = booking.create_barber("Carlos")
    bruno = booking.create_barber("Bruno")

    done = [
        (corte, carlos, date(2026, 4, 10), "10:00"),
        (corte, carlos, date(2026, 5, 5), "10:00"),
        (barba, bruno, date(2026, 5, 4), "11:00"),
    ]
    for service, barber, day, time in done:
        appointment = booking.book(service.id, barber.id, day, time, "Lucas", "41988887777")
        booking.update_status(appointment.id, "concluido")
    booking.book(barba.id, carlos.id, date(2026, 5, 20), "15:00", "Ana", "41977776666")

    summary = ReportService(db_session_factory).summary()

    assert summary["total_revenue"] == Decimal("105.00")
    assert summary["completed_appointments"] == 3
    assert summary["status_counts"] == {"concluido": 3, "agendado": 1}
    assert summary["revenue_by_month"] == {"2026-04": Decimal("40.00"), "2026-05": Decimal("65.00")}
    assert list(summary["revenue_by_month"]) == ["2026-04", "2026-05"]

    top_barber = summary["barbers"][0]
    assert top_barber["name"] == "Carlos"
    assert top_barber["appointments"] == 2
    assert top_barber["revenue"] == Decimal("80.00")
    assert [s["name"] for s in summary["services"]] == ["Corte", "Barba"]


def test_summary_of_empty_shop(db_session_factory):
    summary = ReportService(db_session_factory).summary()

    assert summary["total_revenue"] == Decimal("0")
    assert summary["completed_appointments"] == 0
    assert summary["status_counts"] == {}
    assert summary["barbers"] == []
