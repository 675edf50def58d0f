import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def _is_sqlite_memory(database_url: str) -> bool:
    return database_url == "sqlite://" or (database_url.startswith("sqlite") and ":memory:" in database_url)


def build_engine(database_url: str) -> Engine:
    """
    Engine para a URL informada.

    PostgreSQL: pool com pool_pre_ping, para descartar conexões que o
    servidor derrubou. SQLite em memória: uma única conexão compartilhada
    (StaticPool), senão cada sessão abriria um banco vazio.
    """
    options: Dict[str, Any] = {"echo": False}

    if "postgres" in database_url.lower():
        options.update(pool_pre_ping=True, pool_size=5, max_overflow=10)
        kind = "postgres"
    elif _is_sqlite_memory(database_url):
        options.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)
        kind = "sqlite-memoria"
    elif database_url.startswith("sqlite"):
        options.update(connect_args={"check_same_thread": False})
        kind = "sqlite"
    else:
        kind = "outro"

    engine = create_engine(database_url, **options)
    logger.info(f"Engine de banco criado: tipo={kind}")
    return engine


def create_session_factory(database_url: str, create_tables: bool = False) -> sessionmaker:
    """
    Factory de sessões da aplicação.

    `create_tables=True` cria o schema direto pelos modelos; serve para
    desenvolvimento e testes. Em produção o schema vem das revisões em
    alembic/versions.
    """
    engine = build_engine(database_url)

    if create_tables:
        # Registra as tabelas no metadata antes do create_all
        from . import models  # noqa: F401
        Base.metadata.create_all(bind=engine)
        logger.info(f"Tabelas criadas pelos modelos: total={len(Base.metadata.tables)}")

    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Abre uma sessão e garante o fechamento ao final.
    Commit e rollback ficam a cargo dos repositórios.
    """
    db_session: Session = session_factory()
    try:
        yield db_session
    finally:
        db_session.close()
