"""
Relatórios simples de faturamento e movimento da barbearia.
"""
import logging
from collections import Counter, OrderedDict
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple
from sqlalchemy.orm import sessionmaker
from ..storage.database import session_scope
from ..storage.models import Appointment
from ..storage.repository import AppointmentRepository, CatalogRepository

logger = logging.getLogger(__name__)


def revenue_by_month(completed: Iterable[Tuple[Appointment, Decimal]]) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = {}
    for appointment, price in completed:
        month = appointment.date.strftime("%Y-%m")
        totals[month] = totals.get(month, Decimal("0")) + price
    return OrderedDict(sorted(totals.items()))


def summarize(
    appointments: List[Appointment],
    completed: List[Tuple[Appointment, Decimal]],
    barber_names: Dict[str, str],
    service_names: Dict[str, str],
) -> Dict[str, Any]:
    """
    Agrega os atendimentos concluídos por mês, barbeiro e serviço.
    """
    by_barber: Dict[str, Dict[str, Any]] = {
        barber_id: {"barber_id": barber_id, "name": name, "appointments": 0, "revenue": Decimal("0")}
        for barber_id, name in barber_names.items()
    }
    by_service: Dict[str, Dict[str, Any]] = {
        service_id: {"service_id": service_id, "name": name, "appointments": 0, "revenue": Decimal("0")}
        for service_id, name in service_names.items()
    }

    total = Decimal("0")
    for appointment, price in completed:
        total += price
        for bucket, key in ((by_barber, appointment.barber_id), (by_service, appointment.service_id)):
            entry = bucket.get(key)
            if entry is None:
                continue
            entry["appointments"] += 1
            entry["revenue"] += price

    return {
        "total_revenue": total,
        "completed_appointments": len(completed),
        "status_counts": dict(Counter(a.status for a in appointments)),
        "revenue_by_month": revenue_by_month(completed),
        "barbers": sorted(by_barber.values(), key=lambda e: e["revenue"], reverse=True),
        "services": sorted(by_service.values(), key=lambda e: e["appointments"], reverse=True),
    }


class ReportService:

    def __init__(self, db_session_factory: sessionmaker) -> None:
        self._db_session_factory = db_session_factory

    def summary(self) -> Dict[str, Any]:
        with session_scope(self._db_session_factory) as db:
            appointments_repo = AppointmentRepository(db)
            catalog = CatalogRepository(db)
            result = summarize(
                appointments=appointments_repo.list_appointments(),
                completed=appointments_repo.completed_with_prices(),
                barber_names={b.id: b.name for b in catalog.list_barbers()},
                service_names={s.id: s.name for s in catalog.list_services()},
            )
        logger.debug(
            f"Relatório gerado: completed={result['completed_appointments']}, "
            f"total_revenue={result['total_revenue']}"
        )
        return result
