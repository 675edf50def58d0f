import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from .database import session_scope
from .models import RaffleRecord, _utcnow
from ..core.errors import NotFoundError, PersistenceError
from ..core.raffle_repository import RaffleRepository, StaleRaffleError
from ..core.raffle_state import Raffle, RaffleStatus, as_utc

logger = logging.getLogger(__name__)


def _to_domain(record: RaffleRecord) -> Raffle:
    return Raffle(
        id=record.id,
        title=record.title,
        description=record.description or "",
        prize=record.prize,
        start_date=as_utc(record.start_date),
        end_date=as_utc(record.end_date),
        max_participants=record.max_participants,
        participants=list(record.participants or []),
        status=RaffleStatus(record.status),
        winner=record.winner,
        version=record.version,
        created_at=as_utc(record.created_at) if record.created_at else None,
        updated_at=as_utc(record.updated_at) if record.updated_at else None,
    )


def _to_columns(changes: Dict[str, Any]) -> Dict[str, Any]:
    values = dict(changes)
    if "status" in values:
        values["status"] = RaffleStatus(values["status"]).value
    if "participants" in values:
        values["participants"] = list(values["participants"])
    return values


class SqlAlchemyRaffleRepository(RaffleRepository):
    """
    Repositório de sorteios sobre a tabela `raffles`.

    O compare-and-swap é um único UPDATE condicionado à versão; o
    rowcount diz se a escrita venceu.
    """

    def __init__(self, db_session_factory: sessionmaker) -> None:
        self._db_session_factory = db_session_factory

    def _fail(self, db: Session, action: str, error: SQLAlchemyError, **fields: Any) -> PersistenceError:
        details = ", ".join(f"{k}={v}" for k, v in fields.items())
        logger.error(
            f"Erro de banco de dados ao {action} sorteio: {details}, "
            f"error={type(error).__name__}: {error}",
            exc_info=True,
        )
        db.rollback()
        return PersistenceError()

    def list_all(self) -> List[Raffle]:
        with session_scope(self._db_session_factory) as db:
            try:
                records = db.execute(
                    select(RaffleRecord).order_by(RaffleRecord.start_date.desc())
                ).scalars().all()
            except SQLAlchemyError as e:
                raise self._fail(db, "listar", e) from e
            return [_to_domain(r) for r in records]

    def get(self, raffle_id: str) -> Optional[Raffle]:
        with session_scope(self._db_session_factory) as db:
            try:
                record = db.get(RaffleRecord, raffle_id)
            except SQLAlchemyError as e:
                raise self._fail(db, "buscar", e, raffle_id=raffle_id) from e
            return _to_domain(record) if record else None

    def insert(self, raffle: Raffle) -> Raffle:
        with session_scope(self._db_session_factory) as db:
            try:
                record = RaffleRecord(
                    title=raffle.title,
                    description=raffle.description,
                    prize=raffle.prize,
                    start_date=raffle.start_date,
                    end_date=raffle.end_date,
                    max_participants=raffle.max_participants,
                    participants=list(raffle.participants),
                    status=raffle.status.value,
                    winner=raffle.winner,
                    version=1,
                )
                if raffle.id:
                    record.id = raffle.id
                db.add(record)
                db.commit()
                db.refresh(record)
            except SQLAlchemyError as e:
                raise self._fail(db, "inserir", e, title=raffle.title) from e

            # ASSERT: garantir que o sorteio foi persistido com ID
            assert record.id is not None, "Raffle persisted without id!"
            logger.debug(f"Sorteio persistido: id={record.id}")
            return _to_domain(record)

    def update(
        self,
        raffle_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Raffle:
        with session_scope(self._db_session_factory) as db:
            try:
                stmt = update(RaffleRecord).where(RaffleRecord.id == raffle_id)
                if expected_version is not None:
                    stmt = stmt.where(RaffleRecord.version == expected_version)
                stmt = stmt.values(
                    **_to_columns(changes),
                    version=RaffleRecord.version + 1,
                    updated_at=_utcnow(),
                )
                result = db.execute(stmt.execution_options(synchronize_session=False))
                if result.rowcount == 0:
                    db.rollback()
                    if db.get(RaffleRecord, raffle_id) is None:
                        raise NotFoundError(f"Sorteio {raffle_id} não encontrado.")
                    logger.debug(
                        f"CAS falhou: raffle_id={raffle_id}, expected_version={expected_version}"
                    )
                    raise StaleRaffleError()
                db.commit()
                record = db.get(RaffleRecord, raffle_id, populate_existing=True)
            except SQLAlchemyError as e:
                raise self._fail(db, "atualizar", e, raffle_id=raffle_id) from e
            return _to_domain(record)

    def delete(self, raffle_id: str) -> bool:
        with session_scope(self._db_session_factory) as db:
            try:
                result = db.execute(delete(RaffleRecord).where(RaffleRecord.id == raffle_id))
                db.commit()
            except SQLAlchemyError as e:
                raise self._fail(db, "remover", e, raffle_id=raffle_id) from e
            return result.rowcount > 0
