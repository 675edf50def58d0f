import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.orm import sessionmaker
from .errors import NotFoundError, ValidationError
from .normalizers import normalize_email, normalize_name, normalize_phone
from ..domain.shop_info import APPOINTMENT_STATUSES, SUNDAY, TIME_SLOTS
from ..storage.database import session_scope
from ..storage.models import Appointment, Barber, Client, Rating, Service
from ..storage.repository import AppointmentRepository, CatalogRepository, ClientRepository, RatingRepository

logger = logging.getLogger(__name__)


def _require_text(value: Optional[str], message: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(message)
    return value.strip()


def _validate_price(price: Any) -> Decimal:
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        raise ValidationError("Preço inválido.")
    if value < 0:
        raise ValidationError("O preço não pode ser negativo.")
    return value


def _validate_duration(duration: Any) -> int:
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise ValidationError("A duração deve ser um número inteiro de minutos maior que zero.")
    return duration


class BookingManager:
    """
    Cadastro de serviços, barbeiros e clientes, agendamentos e avaliações.

    Cada operação abre sua própria sessão de banco. `today` devolve a data
    local da barbearia (injetável nos testes).
    """

    def __init__(self, db_session_factory: sessionmaker, today: Optional[Callable[[], date]] = None) -> None:
        self._db_session_factory = db_session_factory
        self._today = today or date.today

    # --- Serviços ---

    def create_service(self, name: str, price: Any, duration: int) -> Service:
        name = _require_text(name, "O nome do serviço é obrigatório.")
        with session_scope(self._db_session_factory) as db:
            service = CatalogRepository(db).create_service(name, _validate_price(price), _validate_duration(duration))
        logger.info(f"Serviço cadastrado: id={service.id}, name={service.name}")
        return service

    def list_services(self) -> List[Service]:
        with session_scope(self._db_session_factory) as db:
            return CatalogRepository(db).list_services()

    def update_service(self, service_id: str, **changes: Any) -> Service:
        clean: Dict[str, Any] = {}
        if "name" in changes:
            clean["name"] = _require_text(changes["name"], "O nome do serviço é obrigatório.")
        if "price" in changes:
            clean["price"] = _validate_price(changes["price"])
        if "duration" in changes:
            clean["duration"] = _validate_duration(changes["duration"])
        with session_scope(self._db_session_factory) as db:
            repo = CatalogRepository(db)
            service = repo.get_service(service_id)
            if service is None:
                raise NotFoundError(f"Serviço {service_id} não encontrado.")
            return repo.update_service(service, clean)

    def delete_service(self, service_id: str) -> None:
        with session_scope(self._db_session_factory) as db:
            repo = CatalogRepository(db)
            service = repo.get_service(service_id)
            if service is None:
                raise NotFoundError(f"Serviço {service_id} não encontrado.")
            repo.delete_service(service)
        logger.info(f"Serviço removido: id={service_id}")

    # --- Barbeiros ---

    def create_barber(self, name: str, specialty: str = "", experience: str = "") -> Barber:
        name = _require_text(name, "O nome do barbeiro é obrigatório.")
        with session_scope(self._db_session_factory) as db:
            barber = CatalogRepository(db).create_barber(
                normalize_name(name),
                (specialty or "").strip(),
                (experience or "").strip(),
            )
        logger.info(f"Barbeiro cadastrado: id={barber.id}, name={barber.name}")
        return barber

    def list_barbers(self) -> List[Barber]:
        with session_scope(self._db_session_factory) as db:
            return CatalogRepository(db).list_barbers()

    def update_barber(self, barber_id: str, **changes: Any) -> Barber:
        clean: Dict[str, Any] = {}
        if "name" in changes:
            clean["name"] = normalize_name(_require_text(changes["name"], "O nome do barbeiro é obrigatório."))
        for name in ("specialty", "experience"):
            if name in changes:
                clean[name] = (changes[name] or "").strip()
        with session_scope(self._db_session_factory) as db:
            repo = CatalogRepository(db)
            barber = repo.get_barber(barber_id)
            if barber is None:
                raise NotFoundError(f"Barbeiro {barber_id} não encontrado.")
            return repo.update_barber(barber, clean)

    def delete_barber(self, barber_id: str) -> None:
        with session_scope(self._db_session_factory) as db:
            repo = CatalogRepository(db)
            barber = repo.get_barber(barber_id)
            if barber is None:
                raise NotFoundError(f"Barbeiro {barber_id} não encontrado.")
            repo.delete_barber(barber)
        logger.info(f"Barbeiro removido: id={barber_id}")

    # --- Clientes ---

    def register_client(self, name: str, phone: str, email: Optional[str] = None) -> Client:
        name = _require_text(name, "O nome do cliente é obrigatório.")
        parsed_phone = normalize_phone(phone or "")
        if not parsed_phone:
            raise ValidationError("Telefone inválido. Informe DDD e número (ex: 41999999999).")
        if email and not normalize_email(email):
            raise ValidationError("E-mail inválido.")
        with session_scope(self._db_session_factory) as db:
            client = ClientRepository(db).create_client(normalize_name(name), parsed_phone, normalize_email(email))
        logger.info(f"Cliente cadastrado: id={client.id}")
        return client

    def list_clients(self) -> List[Client]:
        with session_scope(self._db_session_factory) as db:
            return ClientRepository(db).list_clients()

    def get_client(self, client_id: str) -> Client:
        with session_scope(self._db_session_factory) as db:
            client = ClientRepository(db).get(client_id)
            if client is None:
                raise NotFoundError(f"Cliente {client_id} não encontrado.")
            return client

    def update_client(self, client_id: str, **changes: Any) -> Client:
        clean: Dict[str, Any] = {}
        if "name" in changes:
            clean["name"] = normalize_name(_require_text(changes["name"], "O nome do cliente é obrigatório."))
        if "phone" in changes:
            clean["phone"] = normalize_phone(changes["phone"] or "")
            if not clean["phone"]:
                raise ValidationError("Telefone inválido. Informe DDD e número (ex: 41999999999).")
        if "email" in changes:
            if changes["email"] and not normalize_email(changes["email"]):
                raise ValidationError("E-mail inválido.")
            clean["email"] = normalize_email(changes["email"])
        with session_scope(self._db_session_factory) as db:
            repo = ClientRepository(db)
            client = repo.get(client_id)
            if client is None:
                raise NotFoundError(f"Cliente {client_id} não encontrado.")
            return repo.update_client(client, clean)

    def delete_client(self, client_id: str) -> None:
        with session_scope(self._db_session_factory) as db:
            repo = ClientRepository(db)
            client = repo.get(client_id)
            if client is None:
                raise NotFoundError(f"Cliente {client_id} não encontrado.")
            repo.delete_client(client)
        logger.info(f"Cliente removido: id={client_id}")

    # --- Agendamentos ---

    def book(
        self,
        service_id: str,
        barber_id: str,
        day: date,
        time: str,
        client_name: str,
        client_phone: str,
        client_email: Optional[str] = None,
    ) -> Appointment:
        """
        Cria um agendamento. O cliente é localizado pelo telefone
        e cadastrado na hora se ainda não existir.
        """
        if day < self._today():
            raise ValidationError("Não é possível agendar em uma data que já passou.")
        if day.weekday() == SUNDAY:
            raise ValidationError("A barbearia não abre aos domingos.")
        if time not in TIME_SLOTS:
            raise ValidationError(f"Horário {time} indisponível. Escolha entre {TIME_SLOTS[0]} e {TIME_SLOTS[-1]}.")
        client_name = _require_text(client_name, "O nome do cliente é obrigatório.")
        parsed_phone = normalize_phone(client_phone or "")
        if not parsed_phone:
            raise ValidationError("Telefone inválido. Informe DDD e número (ex: 41999999999).")

        with session_scope(self._db_session_factory) as db:
            catalog = CatalogRepository(db)
            if catalog.get_service(service_id) is None:
                raise NotFoundError(f"Serviço {service_id} não encontrado.")
            if catalog.get_barber(barber_id) is None:
                raise NotFoundError(f"Barbeiro {barber_id} não encontrado.")

            clients = ClientRepository(db)
            client = clients.find_by_phone(parsed_phone)
            if client is None:
                client = clients.create_client(
                    normalize_name(client_name),
                    parsed_phone,
                    normalize_email(client_email),
                )
                logger.info(f"Cliente criado durante agendamento: client_id={client.id}")

            appointment = AppointmentRepository(db).create_appointment(
                client_id=client.id,
                barber_id=barber_id,
                service_id=service_id,
                day=day,
                time=time,
            )
        logger.info(
            f"Agendamento criado: id={appointment.id}, client_id={appointment.client_id}, "
            f"barber_id={barber_id}, date={day}, time={time}"
        )
        return appointment

    def list_appointments(self, client_id: Optional[str] = None) -> List[Appointment]:
        with session_scope(self._db_session_factory) as db:
            return AppointmentRepository(db).list_appointments(client_id=client_id)

    def update_status(self, appointment_id: str, status: str) -> Appointment:
        if status not in APPOINTMENT_STATUSES:
            raise ValidationError(f"Status inválido: {status}. Use {', '.join(APPOINTMENT_STATUSES)}.")
        with session_scope(self._db_session_factory) as db:
            repo = AppointmentRepository(db)
            appointment = repo.get(appointment_id)
            if appointment is None:
                raise NotFoundError(f"Agendamento {appointment_id} não encontrado.")
            previous = appointment.status
            repo.update_status(appointment, status)
        logger.info(f"Status do agendamento alterado: id={appointment_id}, de={previous}, para={status}")
        return appointment

    def delete_appointment(self, appointment_id: str) -> None:
        with session_scope(self._db_session_factory) as db:
            repo = AppointmentRepository(db)
            appointment = repo.get(appointment_id)
            if appointment is None:
                raise NotFoundError(f"Agendamento {appointment_id} não encontrado.")
            repo.delete_appointment(appointment)
        logger.info(f"Agendamento removido: id={appointment_id}")

    # --- Avaliações ---

    def rate(self, appointment_id: str, rating: int, comment: str = "") -> Rating:
        """
        Avalia um atendimento concluído (1 a 5 estrelas, uma vez só).
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("A avaliação deve ser de 1 a 5 estrelas.")
        with session_scope(self._db_session_factory) as db:
            appointment = AppointmentRepository(db).get(appointment_id)
            if appointment is None:
                raise NotFoundError(f"Agendamento {appointment_id} não encontrado.")
            if appointment.status != "concluido":
                raise ValidationError("Só é possível avaliar atendimentos concluídos.")
            ratings = RatingRepository(db)
            if ratings.find_by_appointment(appointment_id) is not None:
                raise ValidationError("Este atendimento já foi avaliado.")
            entity = ratings.create_rating(appointment, rating, (comment or "").strip())
        logger.info(f"Avaliação registrada: appointment_id={appointment_id}, rating={rating}")
        return entity

    def barber_rating(self, barber_id: str) -> Dict[str, Any]:
        with session_scope(self._db_session_factory) as db:
            if CatalogRepository(db).get_barber(barber_id) is None:
                raise NotFoundError(f"Barbeiro {barber_id} não encontrado.")
            average, count = RatingRepository(db).barber_stats(barber_id)
        return {"barber_id": barber_id, "average": round(average, 2), "count": count}

    def find_client_by_participant_key(self, key: str) -> Optional[Client]:
        """
        Localiza o cliente de uma chave "nome-telefone" de sorteio.
        O telefone pode conter hífens, então testa cada ponto de corte.
        """
        parts = key.split("-")
        with session_scope(self._db_session_factory) as db:
            clients = ClientRepository(db)
            for i in range(1, len(parts)):
                phone = normalize_phone("-".join(parts[i:]))
                if not phone:
                    continue
                client = clients.find_by_phone(phone)
                if client is not None:
                    return client
        return None
