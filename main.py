import logging
import os
from logging.handlers import RotatingFileHandler

import uvicorn

from barbershop.api.http import create_app

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(log_dir: str = "logs", level: str = "INFO") -> str:
    """
    Configura o logger raiz: console + arquivo com rotação
    (10MB por arquivo, 5 backups). Retorna o caminho do arquivo.
    """
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "barbearia.log")
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)

    to_console = logging.StreamHandler()
    to_console.setFormatter(formatter)

    to_file = RotatingFileHandler(
        log_path,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    to_file.setFormatter(formatter)

    root.addHandler(to_console)
    root.addHandler(to_file)
    return log_path


log_path = configure_logging(os.getenv("LOG_DIR", "logs"), os.getenv("LOG_LEVEL", "INFO").upper())
logging.info(f"Barbearia API subindo: log_file={log_path}")

app = create_app()

if __name__ == "__main__":
    # Em produção o processo é gerenciado de fora (systemd, docker, etc.)
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level="info",
    )
