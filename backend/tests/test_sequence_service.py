"""
Test per SequenceService.

Allocazione atomica, ciclo, esaurimento, formattazione numeri documento
e allocazioni concorrenti su database condiviso.
"""

import asyncio

import pytest

from app.core.database import create_session_factory
from app.core.exceptions import (
    BusinessValidationError,
    DuplicateError,
    SequenceExhaustedError,
    SequenceNotFoundError,
)
from app.services.sequence_service import (
    WELL_KNOWN_SEQUENCES,
    SequenceService,
    format_document_number,
)


# ============================================================
# Tests for format_document_number
# ============================================================


class TestFormatDocumentNumber:
    """Tests for the pure document number formatter."""

    @pytest.mark.parametrize(
        "document_type, value, expected",
        [
            ("AR_INVOICE", 1, "INV00000001"),
            ("AP_INVOICE", 42, "APINV00000042"),
            ("AR_RECEIPT", 12345678, "RCPT12345678"),
            ("AP_PAYMENT", 7, "PAY00000007"),
        ],
    )
    def test_templates(self, document_type, value, expected):
        """Test prefisso e zero-padding per tipo documento."""
        assert format_document_number(document_type, value) == expected

    def test_value_wider_than_padding(self):
        """Test valore con più cifre del padding: nessun troncamento."""
        assert format_document_number("AR_INVOICE", 123456789) == "INV123456789"

    def test_unknown_document_type(self):
        """Test tipo documento sconosciuto."""
        with pytest.raises(BusinessValidationError):
            format_document_number("CREDIT_NOTE", 1)

    def test_non_positive_value(self):
        """Test valore non positivo."""
        with pytest.raises(BusinessValidationError):
            format_document_number("AR_INVOICE", 0)


# ============================================================
# Tests for allocation
# ============================================================


class TestSequenceAllocation:
    """Tests for sequence allocation on a single session."""

    @pytest.mark.asyncio
    async def test_well_known_sequences_initialized(self, db_session, sequence_service):
        """Test sequenze predefinite create e mai usate."""
        sequences = await sequence_service.get_stats(db_session)
        names = {s.name for s in sequences}
        assert set(WELL_KNOWN_SEQUENCES) <= names
        for sequence in sequences:
            assert sequence.current_value == 0
            assert sequence.next_value == 1

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, db_session, sequence_service):
        """Test seconda inizializzazione senza effetti."""
        assert await sequence_service.initialize_sequences(db_session) == []

    @pytest.mark.asyncio
    async def test_first_allocation_returns_min_value(self, db_session, sequence_service):
        """Test prima allocazione = min_value."""
        assert await sequence_service.allocate(db_session, "AR_INVOICE_ID_SEQ") == 1

    @pytest.mark.asyncio
    async def test_allocations_are_consecutive(self, db_session, sequence_service):
        """Test allocazioni successive consecutive e senza duplicati."""
        values = [
            await sequence_service.allocate(db_session, "AP_PAYMENT_ID_SEQ")
            for _ in range(5)
        ]
        assert values == [1, 2, 3, 4, 5]
        assert await sequence_service.current_value(db_session, "AP_PAYMENT_ID_SEQ") == 5

    @pytest.mark.asyncio
    async def test_sequences_are_independent(self, db_session, sequence_service):
        """Test contatori diversi non si influenzano."""
        await sequence_service.allocate(db_session, "AR_INVOICE_ID_SEQ")
        await sequence_service.allocate(db_session, "AR_INVOICE_ID_SEQ")
        assert await sequence_service.allocate(db_session, "AP_INVOICE_ID_SEQ") == 1

    @pytest.mark.asyncio
    async def test_rollback_does_not_consume_value(self, db_session, sequence_service):
        """Test valore allocato in una transazione abortita non consumato."""
        await sequence_service.next_value(db_session, "AR_RECEIPT_ID_SEQ")
        await db_session.rollback()
        assert await sequence_service.allocate(db_session, "AR_RECEIPT_ID_SEQ") == 1

    @pytest.mark.asyncio
    async def test_unknown_sequence(self, db_session, sequence_service):
        """Test sequenza inesistente."""
        with pytest.raises(SequenceNotFoundError):
            await sequence_service.allocate(db_session, "MISSING_SEQ")

    @pytest.mark.asyncio
    async def test_custom_increment(self, db_session, sequence_service):
        """Test sequenza con passo 10."""
        await sequence_service.create_sequence(
            db_session, "STEP_SEQ", min_value=100, increment_by=10
        )
        assert await sequence_service.allocate(db_session, "STEP_SEQ") == 100
        assert await sequence_service.allocate(db_session, "STEP_SEQ") == 110

    @pytest.mark.asyncio
    async def test_exhausted_sequence(self, db_session, sequence_service):
        """Test sequenza non ciclica oltre max_value."""
        await sequence_service.create_sequence(db_session, "SMALL_SEQ", max_value=2)
        assert await sequence_service.allocate(db_session, "SMALL_SEQ") == 1
        assert await sequence_service.allocate(db_session, "SMALL_SEQ") == 2
        with pytest.raises(SequenceExhaustedError):
            await sequence_service.allocate(db_session, "SMALL_SEQ")
        assert await sequence_service.current_value(db_session, "SMALL_SEQ") == 2

    @pytest.mark.asyncio
    async def test_cycle_wraps_to_min_value(self, db_session, sequence_service):
        """Test sequenza ciclica: oltre max_value riparte da min_value."""
        await sequence_service.create_sequence(
            db_session, "CYCLE_SEQ", min_value=1, max_value=3, cycle=True
        )
        values = [await sequence_service.allocate(db_session, "CYCLE_SEQ") for _ in range(5)]
        assert values == [1, 2, 3, 1, 2]

    @pytest.mark.asyncio
    async def test_create_duplicate_sequence(self, db_session, sequence_service):
        """Test creazione di una sequenza già esistente."""
        with pytest.raises(DuplicateError):
            await sequence_service.create_sequence(db_session, "AR_INVOICE_ID_SEQ")

    @pytest.mark.asyncio
    async def test_create_sequence_invalid_range(self, db_session, sequence_service):
        """Test max_value non maggiore di min_value."""
        with pytest.raises(BusinessValidationError):
            await sequence_service.create_sequence(db_session, "BAD_SEQ", min_value=5, max_value=5)

    @pytest.mark.asyncio
    async def test_reset(self, db_session, sequence_service):
        """Test reimpostazione del valore corrente."""
        await sequence_service.reset(db_session, "AR_INVOICE_ID_SEQ", 1000)
        assert await sequence_service.allocate(db_session, "AR_INVOICE_ID_SEQ") == 1001

    @pytest.mark.asyncio
    async def test_reset_out_of_range(self, db_session, sequence_service):
        """Test reimpostazione fuori intervallo."""
        with pytest.raises(BusinessValidationError):
            await sequence_service.reset(db_session, "AR_INVOICE_ID_SEQ", -5)

    @pytest.mark.asyncio
    async def test_get_stats_prefix(self, db_session, sequence_service):
        """Test filtro per prefisso."""
        sequences = await sequence_service.get_stats(db_session, prefix="AP_")
        assert sequences
        assert all(s.name.startswith("AP_") for s in sequences)


# ============================================================
# Tests for concurrent allocation
# ============================================================


class TestConcurrentAllocation:
    """Concurrent allocations on a shared file database."""

    @pytest.mark.asyncio
    async def test_concurrent_allocations_distinct_and_consecutive(self, file_engine):
        """Test N allocazioni concorrenti: N interi distinti e consecutivi."""
        factory = create_session_factory(file_engine)
        service = SequenceService()
        n = 20

        async def worker() -> int:
            async with factory() as session:
                return await service.allocate(session, "AR_INVOICE_ID_SEQ")

        values = await asyncio.gather(*(worker() for _ in range(n)))

        assert sorted(values) == list(range(1, n + 1))
        async with factory() as session:
            assert await service.current_value(session, "AR_INVOICE_ID_SEQ") == n
