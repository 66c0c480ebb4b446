"""
Test per atomic() e retry_on_contention.

Usano un mock di AsyncSession: gli errori del driver sono simulati
con sqlalchemy.exc.OperationalError.
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.config import settings
from app.core.exceptions import LockSetChangedError, NotFoundError, StoreContentionError
from app.core.transactions import atomic, is_transient_error, retry_on_contention


class _PgError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def locked_error() -> OperationalError:
    return OperationalError("UPDATE sequences ...", {}, Exception("database is locked"))


def lock_set_changed() -> LockSetChangedError:
    return LockSetChangedError("Nuovo pagamento sulla fattura 1", extra={"payment_ids": [2]})


class FakeService:
    """Service di prova con un metodo decorato che fallisce N volte."""

    def __init__(self, failures) -> None:
        self.failures = list(failures)
        self.calls = 0

    @retry_on_contention
    async def operation(self, db, value):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return value * 2


# ============================================================
# Tests for is_transient_error
# ============================================================


class TestIsTransientError:
    """Tests for driver error classification."""

    def test_sqlite_locked(self):
        """Test 'database is locked' ritentabile."""
        assert is_transient_error(locked_error())

    @pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03"])
    def test_postgres_sqlstates(self, sqlstate):
        """Test SQLSTATE di serializzazione, deadlock, lock timeout."""
        error = OperationalError("SELECT ...", {}, _PgError(sqlstate))
        assert is_transient_error(error)

    def test_constraint_violation_not_transient(self):
        """Test violazione di vincolo non ritentabile."""
        error = IntegrityError("INSERT ...", {}, _PgError("23505"))
        assert not is_transient_error(error)


# ============================================================
# Tests for retry_on_contention
# ============================================================


class TestRetryOnContention:
    """Tests for the retry decorator."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, mock_db):
        """Test nessun errore: un solo tentativo."""
        service = FakeService([])
        assert await service.operation(mock_db, 21) == 42
        assert service.calls == 1
        mock_db.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, mock_db):
        """Test contesa transitoria risolta al secondo tentativo."""
        service = FakeService([locked_error()])
        assert await service.operation(mock_db, 5) == 10
        assert service.calls == 2
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lock_set_changed_retried(self, mock_db):
        """Test insieme dei lock cambiato: operazione ripetuta da capo."""
        service = FakeService([lock_set_changed()])
        assert await service.operation(mock_db, 4) == 8
        assert service.calls == 2
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lock_set_changed_gives_up(self, mock_db):
        """Test insieme dei lock sempre diverso: StoreContentionError generico."""
        attempts = settings.transaction_max_retries
        service = FakeService([lock_set_changed() for _ in range(attempts)])

        with pytest.raises(StoreContentionError) as exc_info:
            await service.operation(mock_db, 1)

        assert service.calls == attempts
        assert exc_info.value.error_code == "STORE_CONTENTION"
        assert isinstance(exc_info.value.__cause__, LockSetChangedError)

    @pytest.mark.asyncio
    async def test_gives_up_with_store_contention(self, mock_db):
        """Test contesa persistente: StoreContentionError dopo max tentativi."""
        attempts = settings.transaction_max_retries
        service = FakeService([locked_error() for _ in range(attempts)])

        with pytest.raises(StoreContentionError) as exc_info:
            await service.operation(mock_db, 1)

        assert service.calls == attempts
        assert exc_info.value.status_code == 503
        assert exc_info.value.extra["attempts"] == attempts

    @pytest.mark.asyncio
    async def test_non_transient_error_propagates(self, mock_db):
        """Test errore non transitorio rilanciato subito."""
        error = IntegrityError("INSERT ...", {}, _PgError("23505"))
        service = FakeService([error])

        with pytest.raises(IntegrityError):
            await service.operation(mock_db, 1)
        assert service.calls == 1

    @pytest.mark.asyncio
    async def test_application_errors_not_retried(self, mock_db):
        """Test errori applicativi non ritentati."""
        service = FakeService([NotFoundError("Fattura 1 non trovata")])

        with pytest.raises(NotFoundError):
            await service.operation(mock_db, 1)
        assert service.calls == 1

    @pytest.mark.asyncio
    async def test_backoff_between_attempts(self, mock_db):
        """Test attesa lineare tra i tentativi."""
        service = FakeService([locked_error(), locked_error()])

        with patch("app.core.transactions.asyncio.sleep", new=AsyncMock()) as sleep:
            await service.operation(mock_db, 1)

        assert sleep.await_count == 2


# ============================================================
# Tests for atomic
# ============================================================


class TestAtomic:
    """Tests for the transaction context manager."""

    @pytest.mark.asyncio
    async def test_commit_on_success(self, mock_db):
        """Test commit a fine blocco."""
        async with atomic(mock_db):
            pass
        mock_db.commit.assert_awaited_once()
        mock_db.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, mock_db):
        """Test rollback e rilancio in caso di errore."""
        with pytest.raises(NotFoundError):
            async with atomic(mock_db):
                raise NotFoundError("Pagamento 7 non trovato")
        mock_db.commit.assert_not_called()
        mock_db.rollback.assert_awaited_once()
