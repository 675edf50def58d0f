import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from uuid import uuid4
from .errors import NotFoundError, BarbershopError
from .raffle_state import Raffle, utcnow

logger = logging.getLogger(__name__)


class StaleRaffleError(BarbershopError):
    """
    A versão gravada mudou entre a leitura e a escrita (compare-and-swap falhou).
    """
    code = "versao_desatualizada"
    default_message = "O sorteio foi alterado por outra operação."


class RaffleRepository(ABC):
    """
    Contrato de persistência de sorteios usado pelo RaffleEngine.

    `update` com `expected_version` é a operação atômica de
    compare-and-swap: só grava se a versão ainda for a esperada.
    """

    @abstractmethod
    def list_all(self) -> List[Raffle]:
        ...

    @abstractmethod
    def get(self, raffle_id: str) -> Optional[Raffle]:
        ...

    @abstractmethod
    def insert(self, raffle: Raffle) -> Raffle:
        ...

    @abstractmethod
    def update(
        self,
        raffle_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Raffle:
        ...

    @abstractmethod
    def delete(self, raffle_id: str) -> bool:
        ...


class InMemoryRaffleRepository(RaffleRepository):
    """
    Repositório simples em memória.
    Usado nos testes e quando RAFFLE_BACKEND=memory.
    """

    def __init__(self) -> None:
        self._raffles: Dict[str, Raffle] = {}
        self._lock = threading.Lock()

    def list_all(self) -> List[Raffle]:
        with self._lock:
            return [r.copy() for r in self._raffles.values()]

    def get(self, raffle_id: str) -> Optional[Raffle]:
        with self._lock:
            raffle = self._raffles.get(raffle_id)
            return raffle.copy() if raffle else None

    def insert(self, raffle: Raffle) -> Raffle:
        now = utcnow()
        stored = raffle.copy(
            id=raffle.id or uuid4().hex,
            version=1,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._raffles[stored.id] = stored
        logger.debug(f"Sorteio inserido em memória: id={stored.id}")
        return stored.copy()

    def update(
        self,
        raffle_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Raffle:
        with self._lock:
            current = self._raffles.get(raffle_id)
            if current is None:
                raise NotFoundError(f"Sorteio {raffle_id} não encontrado.")
            if expected_version is not None and current.version != expected_version:
                logger.debug(
                    f"CAS falhou em memória: id={raffle_id}, "
                    f"expected={expected_version}, actual={current.version}"
                )
                raise StaleRaffleError()
            if "participants" in changes:
                changes = {**changes, "participants": list(changes["participants"])}
            updated = current.copy(
                **changes,
                version=current.version + 1,
                updated_at=utcnow(),
            )
            self._raffles[raffle_id] = updated
            return updated.copy()

    def delete(self, raffle_id: str) -> bool:
        with self._lock:
            return self._raffles.pop(raffle_id, None) is not None
