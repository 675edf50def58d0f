import logging
import random
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from .errors import (
    AlreadyDrawnError,
    AlreadyParticipatingError,
    CapacityExceededError,
    ConcurrentUpdateError,
    NoParticipantsError,
    NotFoundError,
    ParticipationRejected,
    RaffleNotActiveError,
    RaffleNotDrawableError,
    RaffleNotStartedError,
    ValidationError,
    WindowClosedError,
)
from .raffle_repository import RaffleRepository, StaleRaffleError
from .raffle_state import MUTABLE_FIELDS, Raffle, RaffleStatus, as_utc, participant_key, utcnow

logger = logging.getLogger(__name__)


def validate_raffle_fields(
    title: str,
    prize: str,
    start_date: datetime,
    end_date: datetime,
    max_participants: int,
) -> None:
    """
    Regras comuns a criação e edição de sorteios.
    Levanta ValidationError na primeira regra violada.
    """
    if not title or not str(title).strip():
        raise ValidationError("O título do sorteio é obrigatório.")
    if not prize or not str(prize).strip():
        raise ValidationError("O prêmio do sorteio é obrigatório.")
    if not isinstance(start_date, datetime) or not isinstance(end_date, datetime):
        raise ValidationError("Datas de início e fim são obrigatórias.")
    if as_utc(end_date) <= as_utc(start_date):
        raise ValidationError("A data de término deve ser posterior à data de início.")
    # bool é subclasse de int, mas não é um limite válido
    if isinstance(max_participants, bool) or not isinstance(max_participants, int):
        raise ValidationError("O número máximo de participantes deve ser um inteiro.")
    if max_participants < 1:
        raise ValidationError("O número máximo de participantes deve ser pelo menos 1.")


def check_admission(raffle: Raffle, key: str, now: datetime) -> None:
    """
    Decide se `key` pode entrar no sorteio no instante `now`.
    A ordem das verificações define qual motivo é reportado.
    """
    if raffle.status != RaffleStatus.ACTIVE:
        raise RaffleNotActiveError()
    if raffle.is_full():
        raise CapacityExceededError()
    if now > as_utc(raffle.end_date):
        raise WindowClosedError()
    if now < as_utc(raffle.start_date):
        raise RaffleNotStartedError()
    if key in raffle.participants:
        raise AlreadyParticipatingError()


class RaffleEngine:
    """
    Regras de negócio dos sorteios.

    - Valida criação e edição
    - Controla a admissão de participantes (capacidade, prazo, duplicidade)
    - Sorteia o ganhador com gerador aleatório injetável
    - Mantém uma lista em cache, atualizada apenas depois que o
      repositório confirma a escrita

    Escritas concorrentes são resolvidas com compare-and-swap na versão
    do registro: se outra operação gravou antes, a decisão é refeita
    sobre o estado novo.
    """

    def __init__(
        self,
        repository: RaffleRepository,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_conflict_retries: int = 3,
    ) -> None:
        self._repository = repository
        self._rng = rng or random.Random()
        self._clock = clock or utcnow
        self._max_conflict_retries = max_conflict_retries
        self._raffles: Dict[str, Raffle] = {}

    def now(self) -> datetime:
        return as_utc(self._clock())

    def _cache(self, raffle: Raffle) -> Raffle:
        self._raffles[raffle.id] = raffle
        return raffle.copy()

    def refresh(self) -> List[Raffle]:
        """
        Recarrega a lista de sorteios do repositório.
        Em caso de falha, o cache anterior é mantido.
        """
        raffles = self._repository.list_all()
        self._raffles = {r.id: r for r in raffles}
        logger.debug(f"Cache de sorteios recarregado: total={len(raffles)}")
        return self.list_raffles()

    def list_raffles(self) -> List[Raffle]:
        """Sorteios em cache, do início mais recente para o mais antigo."""
        ordered = sorted(
            self._raffles.values(),
            key=lambda r: as_utc(r.start_date),
            reverse=True,
        )
        return [r.copy() for r in ordered]

    def get(self, raffle_id: str) -> Raffle:
        raffle = self._raffles.get(raffle_id)
        if raffle is None:
            raffle = self._repository.get(raffle_id)
            if raffle is None:
                raise NotFoundError(f"Sorteio {raffle_id} não encontrado.")
            self._raffles[raffle.id] = raffle
        return raffle.copy()

    def open_raffles(self, now: Optional[datetime] = None) -> List[Raffle]:
        """
        Sorteios que aceitam participação agora: ativos, já iniciados,
        dentro do prazo e com vagas.
        """
        now = as_utc(now) if now is not None else self.now()
        return [
            r for r in self.list_raffles()
            if r.status == RaffleStatus.ACTIVE
            and as_utc(r.start_date) <= now <= as_utc(r.end_date)
            and not r.is_full()
        ]

    def create(
        self,
        title: str,
        prize: str,
        start_date: datetime,
        end_date: datetime,
        max_participants: int,
        description: Optional[str] = "",
    ) -> Raffle:
        validate_raffle_fields(title, prize, start_date, end_date, max_participants)
        raffle = Raffle(
            title=title.strip(),
            prize=prize.strip(),
            description=(description or "").strip(),
            start_date=as_utc(start_date),
            end_date=as_utc(end_date),
            max_participants=max_participants,
        )
        stored = self._repository.insert(raffle)
        logger.info(
            f"Sorteio criado: id={stored.id}, title={stored.title}, "
            f"max_participants={stored.max_participants}"
        )
        return self._cache(stored)

    def update(self, raffle_id: str, **changes: Any) -> Raffle:
        """
        Edita campos mutáveis e revalida o registro resultante
        com as mesmas regras da criação.
        """
        unknown = sorted(set(changes) - set(MUTABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Campos não editáveis: {', '.join(unknown)}.")

        for attempt in range(self._max_conflict_retries + 1):
            current = self._repository.get(raffle_id)
            if current is None:
                raise NotFoundError(f"Sorteio {raffle_id} não encontrado.")

            merged = current.copy(**changes)
            if merged.description is None:
                merged.description = ""
            validate_raffle_fields(
                merged.title,
                merged.prize,
                merged.start_date,
                merged.end_date,
                merged.max_participants,
            )
            if merged.max_participants < len(current.participants):
                raise ValidationError(
                    f"O sorteio já tem {len(current.participants)} participantes; "
                    f"o limite não pode ser menor que isso."
                )

            clean = dict(changes)
            for name in ("start_date", "end_date"):
                if name in clean:
                    clean[name] = as_utc(clean[name])
            for name in ("title", "prize", "description"):
                if name in clean:
                    clean[name] = (clean[name] or "").strip()
            try:
                stored = self._repository.update(raffle_id, clean, expected_version=current.version)
            except StaleRaffleError:
                logger.info(f"Conflito ao editar sorteio, reavaliando: id={raffle_id}, attempt={attempt}")
                continue
            logger.info(f"Sorteio atualizado: id={raffle_id}, fields={sorted(clean)}")
            return self._cache(stored)

        raise ConcurrentUpdateError()

    def delete(self, raffle_id: str) -> None:
        if not self._repository.delete(raffle_id):
            raise NotFoundError(f"Sorteio {raffle_id} não encontrado.")
        self._raffles.pop(raffle_id, None)
        logger.info(f"Sorteio removido: id={raffle_id}")

    def participate(self, raffle_id: str, name: str, phone: str) -> bool:
        """
        Inscreve (nome, telefone) no sorteio.

        Retorna True quando a participação é gravada. Cada motivo de
        recusa levanta uma exceção própria (ver core.errors).
        """
        if not name or not name.strip() or not phone or not phone.strip():
            raise ValidationError("Nome e telefone são obrigatórios para participar.")
        key = participant_key(name, phone)

        for attempt in range(self._max_conflict_retries + 1):
            raffle = self._repository.get(raffle_id)
            if raffle is None:
                raise NotFoundError(f"Sorteio {raffle_id} não encontrado.")

            try:
                check_admission(raffle, key, self.now())
            except ParticipationRejected as e:
                logger.info(
                    f"Participação recusada: raffle_id={raffle_id}, reason={e.code}"
                )
                raise

            try:
                stored = self._repository.update(
                    raffle_id,
                    {"participants": raffle.participants + [key]},
                    expected_version=raffle.version,
                )
            except StaleRaffleError:
                logger.info(
                    f"Conflito na participação, reavaliando: raffle_id={raffle_id}, attempt={attempt}"
                )
                continue

            logger.info(
                f"Participação registrada: raffle_id={raffle_id}, "
                f"participants={len(stored.participants)}/{stored.max_participants}"
            )
            self._cache(stored)
            return True

        raise ConcurrentUpdateError()

    def draw_winner(self, raffle_id: str) -> str:
        """
        Sorteia um participante com probabilidade uniforme e encerra o sorteio.
        """
        for attempt in range(self._max_conflict_retries + 1):
            raffle = self._repository.get(raffle_id)
            if raffle is None:
                raise NotFoundError(f"Sorteio {raffle_id} não encontrado.")
            if raffle.status == RaffleStatus.DRAWN:
                raise AlreadyDrawnError()
            if raffle.status != RaffleStatus.ACTIVE:
                raise RaffleNotDrawableError()
            if not raffle.participants:
                raise NoParticipantsError()

            index = int(self._rng.random() * len(raffle.participants))
            winner = raffle.participants[index]

            try:
                stored = self._repository.update(
                    raffle_id,
                    {"winner": winner, "status": RaffleStatus.DRAWN},
                    expected_version=raffle.version,
                )
            except StaleRaffleError:
                logger.info(f"Conflito no sorteio, reavaliando: raffle_id={raffle_id}, attempt={attempt}")
                continue

            logger.info(
                f"Ganhador sorteado: raffle_id={raffle_id}, "
                f"index={index}, total={len(raffle.participants)}"
            )
            self._cache(stored)
            return winner

        raise ConcurrentUpdateError()
