"""
Pytest configuration and fixtures for the ledger services.

I test dei service girano su un database SQLite reale (aiosqlite):
in memoria per gli scenari unitari, su file temporaneo per quelli
concorrenti. Le variabili d'ambiente vanno impostate prima di
importare i moduli app.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("SEED_SEQUENCES_ON_STARTUP", "false")
os.environ.setdefault("TRANSACTION_RETRY_BACKOFF_MS", "0")
os.environ.setdefault("DEFAULT_CURRENCY", "USD")

from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from app.core.database import create_engine_for_url, create_session_factory
from app.models import Base
from app.services.application_service import ApplicationService
from app.services.invoice_service import InvoiceService
from app.services.payment_service import PaymentService
from app.services.sequence_service import SequenceService
from tests.factories import invoice_data, payment_data


# ============================================================
# Database
# ============================================================


async def build_engine(database_url: str) -> AsyncEngine:
    """Crea engine e schema, con le sequenze predefinite."""
    engine = create_engine_for_url(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with create_session_factory(engine)() as session:
        await SequenceService().initialize_sequences(session)
    return engine


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Database SQLite in memoria, nuovo per ogni test."""
    engine = await build_engine("sqlite+aiosqlite://")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def file_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Database SQLite su file, per test con sessioni concorrenti."""
    engine = await build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Sessione sul database in memoria."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db():
    """Crea un mock di AsyncSession."""
    db = AsyncMock(spec=AsyncSession)
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    return db


# ============================================================
# Services
# ============================================================


@pytest.fixture
def sequence_service():
    return SequenceService()


@pytest.fixture
def invoice_service():
    return InvoiceService()


@pytest.fixture
def payment_service():
    return PaymentService()


@pytest.fixture
def application_service():
    return ApplicationService()


# ============================================================
# Factory documenti
# ============================================================


@pytest.fixture
def open_invoice(db_session, invoice_service):
    """Factory: crea e approva una fattura (stato OPEN)."""

    async def _create(**overrides):
        invoice = await invoice_service.create_invoice(db_session, invoice_data(**overrides))
        return await invoice_service.approve(db_session, invoice.ledger, invoice.id)

    return _create


@pytest.fixture
def confirmed_payment(db_session, payment_service):
    """Factory: crea un pagamento confermato."""

    async def _create(**overrides):
        return await payment_service.create_payment(db_session, payment_data(**overrides))

    return _create
