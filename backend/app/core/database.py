"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Definisce engine, session factory e dependency injection per FastAPI.

Su PostgreSQL i lock di riga sono ottenuti con SELECT ... FOR UPDATE e
lock_timeout impostato per connessione. SQLite ignora FOR UPDATE: ogni
transazione viene aperta con BEGIN IMMEDIATE, che serializza gli scrittori.
"""

import logging
from typing import Any, AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.core.config import settings

# Logger per questo modulo
logger = logging.getLogger(__name__)


def _configure_sqlite_locking(engine: AsyncEngine) -> None:
    """
    Disattiva la gestione implicita delle transazioni di pysqlite
    e apre ogni transazione con BEGIN IMMEDIATE.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for_url(database_url: str, **overrides: Any) -> AsyncEngine:
    """
    Crea un AsyncEngine configurato per il dialetto indicato.

    Args:
        database_url: URL async (postgresql+asyncpg://... o sqlite+aiosqlite://...)
        overrides: argomenti extra per create_async_engine

    Returns:
        AsyncEngine: engine pronto all'uso
    """
    options: dict[str, Any] = {"echo": settings.debug}

    if database_url.startswith("sqlite"):
        in_memory = database_url.rstrip("/").endswith(":memory:") or database_url.endswith("://")
        options["connect_args"] = {"timeout": 30}
        if in_memory:
            # Un'unica connessione condivisa, altrimenti ogni sessione vedrebbe un DB vuoto
            options["poolclass"] = StaticPool
    else:
        options.update(
            pool_pre_ping=True,   # Verifica connessione prima di usarla
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
        if database_url.startswith("postgresql+asyncpg"):
            options["connect_args"] = {
                "server_settings": {"lock_timeout": str(settings.db_lock_timeout_ms)},
            }

    options.update(overrides)
    engine = create_async_engine(database_url, **options)

    if database_url.startswith("sqlite"):
        _configure_sqlite_locking(engine)

    return engine


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory con le opzioni usate in tutta l'applicazione."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ------------------------------------------------------------
# Engine e Session Factory applicativi
# ------------------------------------------------------------
engine: AsyncEngine = create_engine_for_url(settings.database_url)

AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection per FastAPI.

    Crea una sessione database per ogni richiesta e la chiude
    automaticamente al termine.

    Yields:
        AsyncSession: Sessione database async
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """
    Inizializza la connessione al database.

    Esegue un test di connessione per verificare
    che il database sia raggiungibile.
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def close_db() -> None:
    """
    Chiude le connessioni al database.

    Da chiamare durante lo shutdown dell'applicazione.
    """
    await engine.dispose()
    logger.info("Connessioni database chiuse")
