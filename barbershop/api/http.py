import logging
import random
import time
from smtplib import SMTPException
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel, ConfigDict
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker
from ..config import AppConfig
from ..core.booking import BookingManager
from ..core.errors import (
    BarbershopError,
    ConcurrentUpdateError,
    DrawRejected,
    InsufficientPointsError,
    NotFoundError,
    ParticipationRejected,
    PersistenceError,
    ValidationError,
)
from ..core.loyalty import LoyaltyManager
from ..core.raffle_engine import RaffleEngine
from ..core.raffle_repository import InMemoryRaffleRepository, RaffleRepository, StaleRaffleError
from ..core.raffle_state import Raffle
from ..core.reports import ReportService
from ..domain.loyalty_program import REWARDS
from ..infra.notification_service import NotificationService, due_reminders
from ..storage.database import create_session_factory
from ..storage.raffle_repository import SqlAlchemyRaffleRepository

logger = logging.getLogger(__name__)


# --- Sorteios ---

class RaffleCreateRequest(BaseModel):
    title: str
    description: Optional[str] = ""
    prize: str
    start_date: datetime
    end_date: datetime
    max_participants: int


class RaffleUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    prize: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_participants: Optional[int] = None


class RaffleResponse(BaseModel):
    id: str
    title: str
    description: str
    prize: str
    start_date: datetime
    end_date: datetime
    max_participants: int
    participants: List[str]
    participant_count: int
    status: str
    current_status: str
    winner: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ParticipationRequest(BaseModel):
    name: str
    phone: str


class ParticipationResponse(BaseModel):
    ok: bool
    message: str
    raffle: RaffleResponse


class DrawResponse(BaseModel):
    winner: str
    winner_name: str
    notified: bool
    raffle: RaffleResponse


# --- Cadastros e agendamentos ---

class ServiceRequest(BaseModel):
    name: str
    price: Decimal
    duration: int


class ServiceUpdateRequest(BaseModel):
    name: Optional[str] = None
    price: Optional[Decimal] = None
    duration: Optional[int] = None


class ServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    price: float
    duration: int


class BarberRequest(BaseModel):
    name: str
    specialty: str = ""
    experience: str = ""


class BarberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    specialty: str
    experience: str


class BarberUpdateRequest(BaseModel):
    name: Optional[str] = None
    specialty: Optional[str] = None
    experience: Optional[str] = None


class ClientRequest(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None


class ClientUpdateRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class ClientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    phone: str
    email: Optional[str] = None


class AppointmentRequest(BaseModel):
    service_id: str
    barber_id: str
    date: date
    time: str
    client_name: str
    client_phone: str
    client_email: Optional[str] = None


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    client_id: str
    barber_id: str
    service_id: str
    date: date
    time: str
    status: str


class StatusUpdateRequest(BaseModel):
    status: str


class RatingRequest(BaseModel):
    rating: int
    comment: str = ""


class RatingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    appointment_id: str
    barber_id: str
    rating: int
    comment: str


class BarberRatingResponse(BaseModel):
    barber_id: str
    average: float
    count: int


# --- Fidelidade ---

class RewardResponse(BaseModel):
    code: str
    name: str
    cost: int
    description: str


class LoyaltyResponse(BaseModel):
    client_id: str
    total_spent: float
    points: int
    redeemed_points: int
    available_points: int
    tier: str
    next_tier_progress: float
    benefits: List[str]
    rewards: List[RewardResponse]


class RedeemRequest(BaseModel):
    reward_code: str


class RedemptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    client_id: str
    reward_code: str
    points: int


class ReminderResponse(BaseModel):
    due: int
    sent: int
    failed: int = 0


ERROR_STATUS = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (ParticipationRejected, 409),
    (DrawRejected, 409),
    (ConcurrentUpdateError, 409),
    (StaleRaffleError, 409),
    (InsufficientPointsError, 409),
    (PersistenceError, 503),
)


def status_for(error: BarbershopError) -> int:
    for error_class, status_code in ERROR_STATUS:
        if isinstance(error, error_class):
            return status_code
    return 400


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware que gera request_id único para cada requisição
    e adiciona aos logs e headers de resposta.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = uuid4().hex[:16]
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Request processado: request_id={request_id}, "
            f"method={request.method}, path={request.url.path}, "
            f"status={response.status_code}, duration_ms={duration_ms:.2f}"
        )
        return response


def require_api_key(config: AppConfig, x_api_key: Optional[str]) -> None:
    """
    Valida API key das rotas administrativas baseado no ambiente.

    Em produção (ENV=prod), sempre exige API key.
    Em desenvolvimento (ENV=dev), só exige se ADMIN_API_KEY estiver configurada.
    """
    expected_key = config.admin_api_key or ""

    if config.env == "prod":
        if not x_api_key or x_api_key != expected_key:
            logger.warning("Tentativa de acesso não autorizado em PRODUÇÃO")
            raise HTTPException(status_code=401, detail="Invalid API key")
    elif expected_key.strip():
        if x_api_key != expected_key:
            logger.warning("Tentativa de acesso não autorizado em DEV")
            raise HTTPException(status_code=401, detail="Invalid API key")
    else:
        logger.debug("ADMIN_API_KEY não configurada, aceitando requisição sem autenticação (modo desenvolvimento)")


def hash_phone(phone: str) -> str:
    """
    Retorna versão mascarada do telefone para logs (primeiros 4 e últimos 4 dígitos).
    """
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) <= 8:
        return "****"
    return f"{digits[:4]}****{digits[-4:]}"


def _plain(value: Any) -> Any:
    """Converte Decimal em float dentro de dicts/listas para serializar em JSON."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def build_raffle_repository(config: AppConfig, db_session_factory: sessionmaker) -> RaffleRepository:
    if config.raffle_backend == "memory":
        logger.info("Sorteios usando armazenamento em memória (RAFFLE_BACKEND=memory)")
        return InMemoryRaffleRepository()
    logger.info("Sorteios usando banco de dados (RAFFLE_BACKEND=sql)")
    return SqlAlchemyRaffleRepository(db_session_factory)


def create_app(
    config: Optional[AppConfig] = None,
    db_session_factory: Optional[sessionmaker] = None,
    raffle_repository: Optional[RaffleRepository] = None,
    rng: Optional[random.Random] = None,
    clock: Optional[Callable[[], datetime]] = None,
    notifications: Optional[NotificationService] = None,
) -> FastAPI:
    """
    Cria a aplicação FastAPI e injeta dependências principais
    (config, banco, motor de sorteios, fidelidade, agendamentos).
    """
    config = config or AppConfig.load_from_env()
    if db_session_factory is None:
        # Em produção, não criar tabelas automaticamente (usar Alembic)
        db_session_factory = create_session_factory(config.database_url, create_tables=config.env == "dev")

    if rng is None and config.raffle_draw_seed is not None:
        rng = random.Random(config.raffle_draw_seed)

    raffles = RaffleEngine(
        repository=raffle_repository or build_raffle_repository(config, db_session_factory),
        rng=rng,
        clock=clock,
        max_conflict_retries=config.raffle_max_conflict_retries,
    )
    raffles.refresh()

    def shop_now() -> datetime:
        # Horário local da barbearia (sem fuso), o mesmo dos agendamentos
        return (clock or datetime.now)().replace(tzinfo=None)

    booking = BookingManager(db_session_factory, today=lambda: shop_now().date())
    loyalty = LoyaltyManager(db_session_factory)
    reports = ReportService(db_session_factory)
    notifications = notifications or NotificationService(config)

    db_type = "sqlite" if "sqlite" in config.database_url else "postgres" if "postgres" in config.database_url else "unknown"
    logger.info(
        f"Aplicação inicializada: env={config.env}, database_type={db_type}, "
        f"raffle_backend={config.raffle_backend}, raffles={len(raffles.list_raffles())}"
    )

    app = FastAPI(
        title="Barbearia API",
        version="0.1.0",
        description="Agendamentos, fidelidade e sorteios da barbearia.",
    )
    app.add_middleware(RequestIDMiddleware)

    def admin_only(x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY")) -> None:
        require_api_key(config, x_api_key)

    admin = [Depends(admin_only)]

    @app.exception_handler(BarbershopError)
    async def handle_business_error(request: Request, exc: BarbershopError) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        status_code = status_for(exc)
        log = logger.error if status_code >= 500 else logger.info
        log(
            f"Operação recusada: request_id={request_id}, path={request.url.path}, "
            f"status={status_code}, code={exc.code}"
        )
        return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})

    def raffle_out(raffle: Raffle) -> RaffleResponse:
        return RaffleResponse(
            id=raffle.id,
            title=raffle.title,
            description=raffle.description,
            prize=raffle.prize,
            start_date=raffle.start_date,
            end_date=raffle.end_date,
            max_participants=raffle.max_participants,
            participants=list(raffle.participants),
            participant_count=len(raffle.participants),
            status=raffle.status.value,
            current_status=raffle.current_status(raffles.now()).value,
            winner=raffle.winner,
            created_at=raffle.created_at,
            updated_at=raffle.updated_at,
        )

    @app.get("/health")
    def health_check():
        """
        Endpoint de health check para monitoramento e Docker healthchecks.
        """
        db_ok = True
        try:
            db = db_session_factory()
            try:
                db.execute(text("SELECT 1"))
            finally:
                db.close()
        except Exception as e:
            logger.warning(f"Database health check falhou: {e}")
            db_ok = False

        return {
            "status": "healthy" if db_ok else "degraded",
            "database": "ok" if db_ok else "error",
            "raffle_backend": config.raffle_backend,
        }

    # --- Sorteios ---

    @app.get("/raffles", response_model=List[RaffleResponse])
    def list_raffles(refresh: bool = False) -> List[RaffleResponse]:
        items = raffles.refresh() if refresh else raffles.list_raffles()
        return [raffle_out(r) for r in items]

    @app.get("/raffles/open", response_model=List[RaffleResponse])
    def list_open_raffles() -> List[RaffleResponse]:
        return [raffle_out(r) for r in raffles.open_raffles()]

    @app.get("/raffles/{raffle_id}", response_model=RaffleResponse)
    def get_raffle(raffle_id: str) -> RaffleResponse:
        return raffle_out(raffles.get(raffle_id))

    @app.post("/raffles", response_model=RaffleResponse, status_code=201, dependencies=admin)
    def create_raffle(payload: RaffleCreateRequest) -> RaffleResponse:
        raffle = raffles.create(
            title=payload.title,
            prize=payload.prize,
            start_date=payload.start_date,
            end_date=payload.end_date,
            max_participants=payload.max_participants,
            description=payload.description,
        )
        return raffle_out(raffle)

    @app.patch("/raffles/{raffle_id}", response_model=RaffleResponse, dependencies=admin)
    def update_raffle(raffle_id: str, payload: RaffleUpdateRequest) -> RaffleResponse:
        changes = payload.model_dump(exclude_unset=True)
        return raffle_out(raffles.update(raffle_id, **changes))

    @app.delete("/raffles/{raffle_id}", status_code=204, dependencies=admin)
    def delete_raffle(raffle_id: str) -> None:
        raffles.delete(raffle_id)

    @app.post("/raffles/{raffle_id}/participants", response_model=ParticipationResponse, status_code=201)
    def participate(raffle_id: str, payload: ParticipationRequest, request: Request) -> ParticipationResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.info(
            f"Pedido de participação: request_id={request_id}, raffle_id={raffle_id}, "
            f"phone={hash_phone(payload.phone)}"
        )
        raffles.participate(raffle_id, payload.name, payload.phone)
        return ParticipationResponse(
            ok=True,
            message="Participação confirmada! Boa sorte!",
            raffle=raffle_out(raffles.get(raffle_id)),
        )

    @app.post("/raffles/{raffle_id}/draw", response_model=DrawResponse, dependencies=admin)
    def draw_winner(raffle_id: str, request: Request) -> DrawResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        winner = raffles.draw_winner(raffle_id)
        raffle = raffles.get(raffle_id)

        # Avisar o ganhador por e-mail quando ele for cliente cadastrado
        notified = False
        client = booking.find_client_by_participant_key(winner)
        winner_name = client.name if client is not None else winner.rsplit("-", 1)[0]
        if client is not None and client.email:
            try:
                notifications.send_raffle_winner(client.email, client.name, raffle.title, raffle.prize)
                notified = True
            except (SMTPException, OSError, ValueError) as e:
                logger.error(
                    f"Falha ao avisar ganhador: request_id={request_id}, raffle_id={raffle_id}, "
                    f"error={type(e).__name__}: {e}",
                    exc_info=True,
                )

        return DrawResponse(
            winner=winner,
            winner_name=winner_name,
            notified=notified,
            raffle=raffle_out(raffle),
        )

    # --- Serviços e barbeiros ---

    @app.get("/services", response_model=List[ServiceResponse])
    def list_services():
        return booking.list_services()

    @app.post("/services", response_model=ServiceResponse, status_code=201, dependencies=admin)
    def create_service(payload: ServiceRequest):
        return booking.create_service(payload.name, payload.price, payload.duration)

    @app.patch("/services/{service_id}", response_model=ServiceResponse, dependencies=admin)
    def update_service(service_id: str, payload: ServiceUpdateRequest):
        return booking.update_service(service_id, **payload.model_dump(exclude_unset=True))

    @app.delete("/services/{service_id}", status_code=204, dependencies=admin)
    def delete_service(service_id: str) -> None:
        booking.delete_service(service_id)

    @app.get("/barbers", response_model=List[BarberResponse])
    def list_barbers():
        return booking.list_barbers()

    @app.post("/barbers", response_model=BarberResponse, status_code=201, dependencies=admin)
    def create_barber(payload: BarberRequest):
        return booking.create_barber(payload.name, payload.specialty, payload.experience)

    @app.patch("/barbers/{barber_id}", response_model=BarberResponse, dependencies=admin)
    def update_barber(barber_id: str, payload: BarberUpdateRequest):
        return booking.update_barber(barber_id, **payload.model_dump(exclude_unset=True))

    @app.delete("/barbers/{barber_id}", status_code=204, dependencies=admin)
    def delete_barber(barber_id: str) -> None:
        booking.delete_barber(barber_id)

    @app.get("/barbers/{barber_id}/rating", response_model=BarberRatingResponse)
    def barber_rating(barber_id: str):
        return booking.barber_rating(barber_id)

    # --- Clientes ---

    @app.get("/clients", response_model=List[ClientResponse], dependencies=admin)
    def list_clients():
        return booking.list_clients()

    @app.post("/clients", response_model=ClientResponse, status_code=201)
    def register_client(payload: ClientRequest):
        return booking.register_client(payload.name, payload.phone, payload.email)

    @app.get("/clients/{client_id}", response_model=ClientResponse, dependencies=admin)
    def get_client(client_id: str):
        return booking.get_client(client_id)

    @app.patch("/clients/{client_id}", response_model=ClientResponse, dependencies=admin)
    def update_client(client_id: str, payload: ClientUpdateRequest):
        return booking.update_client(client_id, **payload.model_dump(exclude_unset=True))

    @app.delete("/clients/{client_id}", status_code=204, dependencies=admin)
    def delete_client(client_id: str) -> None:
        booking.delete_client(client_id)

    # --- Agendamentos ---

    @app.get("/appointments", response_model=List[AppointmentResponse], dependencies=admin)
    def list_appointments(client_id: Optional[str] = None):
        return booking.list_appointments(client_id=client_id)

    @app.post("/appointments", response_model=AppointmentResponse, status_code=201)
    def book_appointment(payload: AppointmentRequest):
        return booking.book(
            service_id=payload.service_id,
            barber_id=payload.barber_id,
            day=payload.date,
            time=payload.time,
            client_name=payload.client_name,
            client_phone=payload.client_phone,
            client_email=payload.client_email,
        )

    @app.patch("/appointments/{appointment_id}/status", response_model=AppointmentResponse, dependencies=admin)
    def update_appointment_status(appointment_id: str, payload: StatusUpdateRequest):
        return booking.update_status(appointment_id, payload.status)

    @app.delete("/appointments/{appointment_id}", status_code=204, dependencies=admin)
    def delete_appointment(appointment_id: str) -> None:
        booking.delete_appointment(appointment_id)

    @app.post("/appointments/{appointment_id}/rating", response_model=RatingResponse, status_code=201)
    def rate_appointment(appointment_id: str, payload: RatingRequest):
        return booking.rate(appointment_id, payload.rating, payload.comment)

    # --- Fidelidade ---

    @app.get("/clients/{client_id}/loyalty", response_model=LoyaltyResponse)
    def loyalty_status(client_id: str) -> LoyaltyResponse:
        status = loyalty.get_status(client_id)
        return LoyaltyResponse(
            client_id=status.client_id,
            total_spent=float(status.total_spent),
            points=status.points,
            redeemed_points=status.redeemed_points,
            available_points=status.available_points,
            tier=status.tier.value,
            next_tier_progress=round(status.next_tier_progress, 2),
            benefits=status.benefits,
            rewards=[RewardResponse(**asdict(reward)) for reward in REWARDS],
        )

    @app.post("/clients/{client_id}/loyalty/redeem", response_model=RedemptionResponse, status_code=201)
    def redeem_reward(client_id: str, payload: RedeemRequest):
        return loyalty.redeem(client_id, payload.reward_code)

    @app.get("/clients/{client_id}/loyalty/redemptions", response_model=List[RedemptionResponse])
    def list_redemptions(client_id: str):
        return loyalty.redemptions(client_id)

    # --- Relatórios e notificações ---

    @app.get("/reports/summary", dependencies=admin)
    def report_summary() -> Dict[str, Any]:
        return _plain(reports.summary())

    @app.post("/notifications/reminders", response_model=ReminderResponse, dependencies=admin)
    def send_reminders(request: Request) -> ReminderResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        due = due_reminders(booking.list_appointments(), shop_now(), config.reminder_hours)
        clients = {c.id: c for c in booking.list_clients()}
        sent = failed = 0
        for appointment in due:
            client = clients.get(appointment.client_id)
            if client is None or not client.email:
                continue
            try:
                notifications.send_appointment_reminder(client.email, client.name, appointment.date, appointment.time)
                sent += 1
            except (SMTPException, OSError, ValueError) as e:
                failed += 1
                logger.error(
                    f"Falha ao enviar lembrete: request_id={request_id}, appointment_id={appointment.id}, "
                    f"error={type(e).__name__}: {e}",
                    exc_info=True,
                )
        logger.info(f"Lembretes processados: due={len(due)}, sent={sent}, failed={failed}")
        return ReminderResponse(due=len(due), sent=sent, failed=failed)

    return app
