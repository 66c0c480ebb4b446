"""
Gestione transazioni e retry su contesa
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

- atomic(): commit se il blocco termina senza errori, rollback altrimenti
- retry_on_contention: ripete l'intera operazione di servizio in caso di
  deadlock / lock timeout / serialization failure (o LockSetChangedError),
  ripartendo da una lettura consistente
"""

import asyncio
import functools
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import LockSetChangedError, StoreContentionError

logger = logging.getLogger(__name__)

# SQLSTATE PostgreSQL ritentabili
TRANSIENT_SQLSTATES = frozenset({
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available (lock_timeout)
})

_SQLITE_TRANSIENT_MESSAGES = ("database is locked", "database table is locked")


def is_transient_error(exc: DBAPIError) -> bool:
    """True se l'errore del driver indica una contesa che ha senso ritentare."""
    if exc.connection_invalidated:
        return True

    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True

    message = str(orig).lower()
    return any(m in message for m in _SQLITE_TRANSIENT_MESSAGES)


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Esegue il blocco come un'unica transazione.

    Usage:
        async with atomic(db):
            ...  # letture con lock + scritture
    """
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise


def retry_on_contention(func):
    """
    Decoratore per metodi di servizio con firma (self, db, ...).

    Il metodo decorato deve essere idempotente rispetto a un nuovo tentativo:
    tutte le letture avvengono dentro la stessa transazione delle scritture.
    """

    @functools.wraps(func)
    async def wrapper(self, db: AsyncSession, *args, **kwargs):
        max_attempts = settings.transaction_max_retries
        for attempt in range(1, max_attempts + 1):
            try:
                return await func(self, db, *args, **kwargs)
            except (DBAPIError, LockSetChangedError) as exc:
                await db.rollback()
                if isinstance(exc, DBAPIError) and not is_transient_error(exc):
                    raise
                if attempt == max_attempts:
                    logger.error(
                        "%s: contesa non risolta dopo %d tentativi",
                        func.__qualname__,
                        attempt,
                    )
                    raise StoreContentionError(
                        extra={"operation": func.__name__, "attempts": attempt}
                    ) from exc
                logger.warning(
                    "%s: contesa sul database (tentativo %d/%d), nuovo tentativo",
                    func.__qualname__,
                    attempt,
                    max_attempts,
                )
                await asyncio.sleep(settings.transaction_retry_backoff_ms * attempt / 1000)

    return wrapper
