import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from .models import Appointment, Barber, Client, LoyaltyRedemption, Rating, Service
from ..core.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)


class _BaseRepository:
    """
    Base com o tratamento de commit comum a todos os repositórios.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def _commit(self, action: str, integrity_message: str, **fields: Any) -> None:
        details = ", ".join(f"{k}={v}" for k, v in fields.items())
        try:
            self._db.commit()
        except IntegrityError as e:
            logger.error(
                f"Erro de integridade ao {action}: {details}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            self._db.rollback()
            raise ValidationError(integrity_message) from e
        except SQLAlchemyError as e:
            logger.error(
                f"Erro de banco de dados ao {action}: {details}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            self._db.rollback()
            raise PersistenceError() from e

    def _query(self, stmt, action: str):
        try:
            return self._db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Erro de banco de dados ao {action}: error={type(e).__name__}: {e}", exc_info=True)
            self._db.rollback()
            raise PersistenceError() from e

    def _apply(self, entity: Any, changes: Dict[str, Any]) -> None:
        for name, value in changes.items():
            setattr(entity, name, value)


class CatalogRepository(_BaseRepository):
    """
    Serviços e barbeiros.
    """

    def create_service(self, name: str, price: Decimal, duration: int) -> Service:
        service = Service(name=name, price=price, duration=duration)
        self._db.add(service)
        self._commit("criar serviço", "Serviço inválido.", name=name)
        self._db.refresh(service)
        logger.debug(f"Serviço criado: id={service.id}, name={name}, price={price}")
        return service

    def get_service(self, service_id: str) -> Optional[Service]:
        return self._db.get(Service, service_id)

    def list_services(self) -> List[Service]:
        return list(self._query(select(Service).order_by(Service.name), "listar serviços").scalars())

    def update_service(self, service: Service, changes: Dict[str, Any]) -> Service:
        self._apply(service, changes)
        self._commit("atualizar serviço", "Serviço inválido.", service_id=service.id)
        return service

    def delete_service(self, service: Service) -> None:
        self._db.delete(service)
        self._commit(
            "remover serviço",
            "Serviço possui agendamentos e não pode ser removido.",
            service_id=service.id,
        )

    def create_barber(self, name: str, specialty: str = "", experience: str = "") -> Barber:
        barber = Barber(name=name, specialty=specialty, experience=experience)
        self._db.add(barber)
        self._commit("criar barbeiro", "Barbeiro inválido.", name=name)
        self._db.refresh(barber)
        logger.debug(f"Barbeiro criado: id={barber.id}, name={name}")
        return barber

    def get_barber(self, barber_id: str) -> Optional[Barber]:
        return self._db.get(Barber, barber_id)

    def list_barbers(self) -> List[Barber]:
        return list(self._query(select(Barber).order_by(Barber.name), "listar barbeiros").scalars())

    def update_barber(self, barber: Barber, changes: Dict[str, Any]) -> Barber:
        self._apply(barber, changes)
        self._commit("atualizar barbeiro", "Barbeiro inválido.", barber_id=barber.id)
        return barber

    def delete_barber(self, barber: Barber) -> None:
        self._db.delete(barber)
        self._commit(
            "remover barbeiro",
            "Barbeiro possui agendamentos e não pode ser removido.",
            barber_id=barber.id,
        )


class ClientRepository(_BaseRepository):

    def create_client(self, name: str, phone: str, email: Optional[str] = None) -> Client:
        client = Client(name=name, phone=phone, email=email)
        self._db.add(client)
        self._commit("criar cliente", "Já existe um cliente com este telefone.", phone=phone)
        self._db.refresh(client)

        # ASSERT: garantir que o cliente foi persistido com ID
        assert client.id is not None, (
            "Client persisted without id! "
            "This indicates a persistence error."
        )
        logger.debug(f"Cliente criado: id={client.id}")
        return client

    def get(self, client_id: str) -> Optional[Client]:
        return self._db.get(Client, client_id)

    def find_by_phone(self, phone: str) -> Optional[Client]:
        stmt = select(Client).where(Client.phone == phone)
        return self._query(stmt, "buscar cliente por telefone").scalars().first()

    def list_clients(self) -> List[Client]:
        return list(self._query(select(Client).order_by(Client.name), "listar clientes").scalars())

    def update_client(self, client: Client, changes: Dict[str, Any]) -> Client:
        self._apply(client, changes)
        self._commit("atualizar cliente", "Já existe um cliente com este telefone.", client_id=client.id)
        return client

    def delete_client(self, client: Client) -> None:
        self._db.delete(client)
        self._commit(
            "remover cliente",
            "Cliente possui agendamentos e não pode ser removido.",
            client_id=client.id,
        )


class AppointmentRepository(_BaseRepository):

    def create_appointment(
        self,
        client_id: str,
        barber_id: str,
        service_id: str,
        day: date,
        time: str,
        status: str = "agendado",
    ) -> Appointment:
        appointment = Appointment(
            client_id=client_id,
            barber_id=barber_id,
            service_id=service_id,
            date=day,
            time=time,
            status=status,
        )
        self._db.add(appointment)
        self._commit("criar agendamento", "Agendamento inválido.", client_id=client_id, date=day, time=time)
        self._db.refresh(appointment)
        logger.debug(f"Agendamento criado: id={appointment.id}, date={day}, time={time}")
        return appointment

    def get(self, appointment_id: str) -> Optional[Appointment]:
        return self._db.get(Appointment, appointment_id)

    def list_appointments(self, client_id: Optional[str] = None) -> List[Appointment]:
        stmt = select(Appointment)
        if client_id:
            stmt = stmt.where(Appointment.client_id == client_id)
        stmt = stmt.order_by(Appointment.date, Appointment.time)
        return list(self._query(stmt, "listar agendamentos").scalars())

    def update_status(self, appointment: Appointment, status: str) -> Appointment:
        appointment.status = status
        self._commit("atualizar agendamento", "Status inválido.", appointment_id=appointment.id)
        return appointment

    def delete_appointment(self, appointment: Appointment) -> None:
        self._db.delete(appointment)
        self._commit("remover agendamento", "Agendamento não pode ser removido.", appointment_id=appointment.id)

    def completed_with_prices(self, client_id: Optional[str] = None) -> List[Tuple[Appointment, Decimal]]:
        """
        Agendamentos concluídos com o preço do serviço correspondente.
        """
        stmt = (
            select(Appointment, Service.price)
            .join(Service, Service.id == Appointment.service_id)
            .where(Appointment.status == "concluido")
        )
        if client_id:
            stmt = stmt.where(Appointment.client_id == client_id)
        rows = self._query(stmt, "listar agendamentos concluídos").all()
        return [(appointment, Decimal(price)) for appointment, price in rows]


class RatingRepository(_BaseRepository):

    def create_rating(
        self,
        appointment: Appointment,
        rating: int,
        comment: str = "",
    ) -> Rating:
        entity = Rating(
            appointment_id=appointment.id,
            barber_id=appointment.barber_id,
            client_id=appointment.client_id,
            rating=rating,
            comment=comment,
        )
        self._db.add(entity)
        self._commit("registrar avaliação", "Este atendimento já foi avaliado.", appointment_id=appointment.id)
        self._db.refresh(entity)
        return entity

    def find_by_appointment(self, appointment_id: str) -> Optional[Rating]:
        stmt = select(Rating).where(Rating.appointment_id == appointment_id)
        return self._query(stmt, "buscar avaliação").scalars().first()

    def barber_stats(self, barber_id: str) -> Tuple[float, int]:
        stmt = select(func.avg(Rating.rating), func.count(Rating.id)).where(Rating.barber_id == barber_id)
        average, count = self._query(stmt, "calcular média de avaliações").one()
        return float(average or 0), int(count or 0)


class RedemptionRepository(_BaseRepository):

    def create_redemption(self, client_id: str, reward_code: str, points: int) -> LoyaltyRedemption:
        redemption = LoyaltyRedemption(client_id=client_id, reward_code=reward_code, points=points)
        self._db.add(redemption)
        self._commit("registrar resgate", "Resgate inválido.", client_id=client_id, reward=reward_code)
        self._db.refresh(redemption)
        return redemption

    def total_redeemed(self, client_id: str) -> int:
        stmt = select(func.coalesce(func.sum(LoyaltyRedemption.points), 0)).where(
            LoyaltyRedemption.client_id == client_id
        )
        return int(self._query(stmt, "somar resgates").scalar_one())

    def list_for_client(self, client_id: str) -> List[LoyaltyRedemption]:
        stmt = (
            select(LoyaltyRedemption)
            .where(LoyaltyRedemption.client_id == client_id)
            .order_by(LoyaltyRedemption.created_at)
        )
        return list(self._query(stmt, "listar resgates").scalars())
