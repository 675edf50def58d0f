import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Union
from sqlalchemy.orm import sessionmaker
from .errors import InsufficientPointsError, NotFoundError
from ..domain.loyalty_program import (
    NEXT_TIER_THRESHOLD,
    POINTS_PER_CURRENCY_UNIT,
    TIER_BENEFITS,
    TIER_THRESHOLDS,
    Tier,
    get_reward,
)
from ..storage.database import session_scope
from ..storage.models import LoyaltyRedemption
from ..storage.repository import AppointmentRepository, ClientRepository, RedemptionRepository

logger = logging.getLogger(__name__)

Amount = Union[int, float, Decimal]


def points_for(total_spent: Amount) -> int:
    """1 ponto a cada R$ 10 gastos, arredondando para baixo."""
    if total_spent <= 0:
        return 0
    return int(math.floor(Decimal(str(total_spent)) / POINTS_PER_CURRENCY_UNIT))


def tier_for(points: int) -> Tier:
    for tier, threshold in TIER_THRESHOLDS:
        if points >= threshold:
            return tier
    return Tier.BRONZE


def next_tier_progress(points: int) -> float:
    """
    Percentual (0-100) do caminho até o próximo nível.
    Platina já é o topo, então sempre 100.
    """
    tier = tier_for(points)
    if tier == Tier.PLATINUM:
        return 100.0
    return min(points / NEXT_TIER_THRESHOLD[tier] * 100, 100.0)


@dataclass
class LoyaltyStatus:
    client_id: str
    total_spent: Decimal
    points: int
    redeemed_points: int
    tier: Tier
    next_tier_progress: float
    benefits: List[str] = field(default_factory=list)

    @property
    def available_points(self) -> int:
        return max(self.points - self.redeemed_points, 0)


class LoyaltyManager:
    """
    Programa de fidelidade.

    Os pontos ganhos vêm dos atendimentos concluídos; os resgates ficam
    registrados em `loyalty_redemptions` e são descontados do saldo.
    O nível é sempre calculado sobre os pontos ganhos.
    """

    def __init__(self, db_session_factory: sessionmaker) -> None:
        self._db_session_factory = db_session_factory

    def _status(self, db, client_id: str) -> LoyaltyStatus:
        if ClientRepository(db).get(client_id) is None:
            raise NotFoundError(f"Cliente {client_id} não encontrado.")

        completed = AppointmentRepository(db).completed_with_prices(client_id=client_id)
        total_spent = sum((price for _, price in completed), Decimal("0"))
        points = points_for(total_spent)
        tier = tier_for(points)
        return LoyaltyStatus(
            client_id=client_id,
            total_spent=total_spent,
            points=points,
            redeemed_points=RedemptionRepository(db).total_redeemed(client_id),
            tier=tier,
            next_tier_progress=next_tier_progress(points),
            benefits=list(TIER_BENEFITS[tier]),
        )

    def get_status(self, client_id: str) -> LoyaltyStatus:
        with session_scope(self._db_session_factory) as db:
            return self._status(db, client_id)

    def redeem(self, client_id: str, reward_code: str) -> LoyaltyRedemption:
        reward = get_reward(reward_code)
        if reward is None:
            raise NotFoundError(f"Recompensa '{reward_code}' não existe.")

        with session_scope(self._db_session_factory) as db:
            status = self._status(db, client_id)
            if status.available_points < reward.cost:
                logger.info(
                    f"Resgate recusado por saldo: client_id={client_id}, "
                    f"reward={reward.code}, available={status.available_points}, cost={reward.cost}"
                )
                raise InsufficientPointsError(
                    f"Pontos insuficientes: você tem {status.available_points} e "
                    f"'{reward.name}' custa {reward.cost}."
                )
            redemption = RedemptionRepository(db).create_redemption(client_id, reward.code, reward.cost)
            logger.info(
                f"Recompensa resgatada: client_id={client_id}, reward={reward.code}, "
                f"points={reward.cost}"
            )
            return redemption

    def redemptions(self, client_id: str) -> List[LoyaltyRedemption]:
        with session_scope(self._db_session_factory) as db:
            if ClientRepository(db).get(client_id) is None:
                raise NotFoundError(f"Cliente {client_id} não encontrado.")
            return RedemptionRepository(db).list_for_client(client_id)
