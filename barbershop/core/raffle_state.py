from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import List, Optional


class RaffleStatus(str, Enum):
    """
    Estados de um sorteio. Os valores são os rótulos gravados no banco.
    """
    ACTIVE = "ativo"
    CLOSED = "encerrado"
    DRAWN = "sorteado"


# Campos que o administrador pode editar depois da criação
MUTABLE_FIELDS = (
    "title",
    "description",
    "prize",
    "start_date",
    "end_date",
    "max_participants",
)


def as_utc(value: datetime) -> datetime:
    """
    Garante datetime com fuso UTC. Datas sem fuso (ex: lidas do SQLite)
    são tratadas como UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def participant_key(name: str, phone: str) -> str:
    """
    Identidade de deduplicação do participante: "nome-telefone".
    """
    return f"{name.strip()}-{phone.strip()}"


@dataclass
class Raffle:
    """
    Sorteio com prazo e limite de participantes.
    """
    title: str
    prize: str
    start_date: datetime
    end_date: datetime
    max_participants: int
    description: str = ""
    participants: List[str] = field(default_factory=list)
    status: RaffleStatus = RaffleStatus.ACTIVE
    winner: Optional[str] = None
    id: Optional[str] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def current_status(self, now: Optional[datetime] = None) -> RaffleStatus:
        """
        Status visto na leitura: um sorteio ativo cujo prazo passou
        aparece como encerrado, mas isso nunca é gravado.
        """
        now = as_utc(now) if now is not None else utcnow()
        if self.status == RaffleStatus.ACTIVE and now > as_utc(self.end_date):
            return RaffleStatus.CLOSED
        return self.status

    def is_full(self) -> bool:
        return len(self.participants) >= self.max_participants

    def copy(self, **changes) -> "Raffle":
        changes.setdefault("participants", list(self.participants))
        return replace(self, **changes)
