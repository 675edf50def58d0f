from dataclasses import dataclass
import os
import logging
from typing import Optional
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppConfig:
    """
    Parâmetros da barbearia lidos do ambiente. Imutável depois de carregado;
    nos testes, instancie direto com os valores desejados.
    """
    database_url: str = "sqlite:///./barbearia.db"
    env: str = "dev"  # "dev" ou "prod"
    admin_api_key: str = ""
    raffle_backend: str = "sql"  # "sql" ou "memory"
    raffle_max_conflict_retries: int = 3  # tentativas extras quando outra escrita vence a corrida
    raffle_draw_seed: Optional[int] = None  # semente fixa só para demonstração/testes
    reminder_hours: int = 24  # antecedência dos lembretes de agendamento
    smtp_host: str = "dev-log"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "contato@barbearia.com.br"

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Lê .env (se existir) e as variáveis de ambiente.
        ENV=prod sem ADMIN_API_KEY levanta RuntimeError.
        """
        load_dotenv()

        database_url = os.getenv("DATABASE_URL", "sqlite:///./barbearia.db")
        admin_api_key = os.getenv("ADMIN_API_KEY", "")

        env = os.getenv("ENV", "dev").lower()
        if env not in ("dev", "prod"):
            logger.warning(f"ENV desconhecido: env={env}, assumindo dev")
            env = "dev"

        # Em produção, ADMIN_API_KEY é obrigatório
        if env == "prod":
            if not admin_api_key or not admin_api_key.strip():
                raise RuntimeError(
                    "ENV=prod requer ADMIN_API_KEY definida. "
                    "Configure ADMIN_API_KEY no ambiente de produção."
                )
            logger.info("Modo PRODUÇÃO: ADMIN_API_KEY validada")
        elif not admin_api_key.strip():
            logger.warning(
                "⚠️  MODO DEV: ADMIN_API_KEY não configurada. "
                "Rotas administrativas aceitarão requisições sem autenticação."
            )

        raffle_backend = os.getenv("RAFFLE_BACKEND", "sql").lower()
        if raffle_backend not in ("sql", "memory"):
            logger.warning(f"RAFFLE_BACKEND inválido '{raffle_backend}', usando 'sql'")
            raffle_backend = "sql"

        seed_raw = os.getenv("RAFFLE_DRAW_SEED", "").strip()
        raffle_draw_seed = int(seed_raw) if seed_raw else None

        return cls(
            database_url=database_url,
            env=env,
            admin_api_key=admin_api_key,
            raffle_backend=raffle_backend,
            raffle_max_conflict_retries=int(os.getenv("RAFFLE_MAX_CONFLICT_RETRIES", "3")),
            raffle_draw_seed=raffle_draw_seed,
            reminder_hours=int(os.getenv("REMINDER_HOURS", "24")),
            smtp_host=os.getenv("SMTP_HOST", "dev-log"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            smtp_from=os.getenv("SMTP_FROM", "contato@barbearia.com.br"),
        )
