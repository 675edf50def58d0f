"""
Dados fixos do programa de fidelidade: níveis, benefícios e recompensas.

Regra de pontos: 1 ponto a cada R$ 10 gastos em atendimentos concluídos.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class Tier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


POINTS_PER_CURRENCY_UNIT = 10  # R$ gastos por ponto

# Pontos mínimos de cada nível, do maior para o menor
TIER_THRESHOLDS = (
    (Tier.PLATINUM, 500),
    (Tier.GOLD, 200),
    (Tier.SILVER, 100),
    (Tier.BRONZE, 0),
)

# Pontos necessários para sair do nível atual
NEXT_TIER_THRESHOLD: Dict[Tier, int] = {
    Tier.BRONZE: 100,
    Tier.SILVER: 200,
    Tier.GOLD: 500,
}

TIER_BENEFITS: Dict[Tier, List[str]] = {
    Tier.BRONZE: ["5% desconto em cortes", "Lembrete de agendamento"],
    Tier.SILVER: ["10% desconto em cortes", "Prioridade no agendamento", "Brinde no aniversário"],
    Tier.GOLD: ["15% desconto em cortes", "Atendimento VIP", "Corte grátis a cada 10"],
    Tier.PLATINUM: ["20% desconto em cortes", "Atendimento exclusivo", "Serviços premium"],
}


@dataclass(frozen=True)
class Reward:
    """Recompensa resgatável com pontos."""
    code: str
    name: str
    cost: int
    description: str


REWARDS: List[Reward] = [
    Reward("desconto-20", "Desconto de 20%", 50, "20% de desconto no próximo corte"),
    Reward("corte-gratis", "Corte grátis", 150, "Um corte de cabelo sem custo"),
    Reward("combo-premium", "Combo premium", 300, "Corte, barba e tratamento capilar"),
    Reward("upgrade-vip", "Upgrade VIP", 500, "Atendimento VIP por um mês"),
]


def get_reward(code: str) -> Optional[Reward]:
    for reward in REWARDS:
        if reward.code == code:
            return reward
    return None
