"""
Test per PaymentService.

Dopo un'operazione fallita gli oggetti della sessione sono scaduti:
i test usano gli ID salvati prima e rileggono dai service.
"""

from decimal import Decimal

import pytest

from app.core.exceptions import (
    BusinessValidationError,
    DuplicateNumberError,
    InvalidTransitionError,
    NotFoundError,
    OverApplicationError,
    PaymentNotApplicableError,
)
from app.models.enums import ApplicationStatus, InvoiceStatus, Ledger, PaymentStatus
from app.schemas.payment import PaymentApplicationLine, PaymentUpdate
from tests.factories import payment_data

AR = Ledger.AR
AP = Ledger.AP


# ============================================================
# Tests for creation
# ============================================================


class TestCreatePayment:
    """Tests for payment registration."""

    @pytest.mark.asyncio
    async def test_create_confirmed_receipt(self, db_session, payment_service):
        """Test incasso confermato con numero RCPT."""
        payment = await payment_service.create_payment(db_session, payment_data())

        assert payment.id == 1
        assert payment.number == "RCPT00000001"
        assert payment.status == PaymentStatus.CONFIRMED
        assert payment.amount_applied == Decimal("0.00")
        assert payment.unapplied_amount == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_create_draft_ap_payment(self, db_session, payment_service):
        """Test pagamento fornitore in bozza con numero PAY."""
        payment = await payment_service.create_payment(
            db_session, payment_data(ledger=AP, confirm=False)
        )
        assert payment.number == "PAY00000001"
        assert payment.status == PaymentStatus.DRAFT

    @pytest.mark.asyncio
    async def test_ar_then_ap_share_id_values(self, db_session, payment_service):
        """Test incasso AR e pagamento AP con lo stesso ID in registri distinti."""
        receipt = await payment_service.create_payment(db_session, payment_data())
        disbursement = await payment_service.create_payment(
            db_session, payment_data(ledger=AP, total_amount=Decimal("250.00"))
        )

        assert (receipt.id, disbursement.id) == (1, 1)
        assert (receipt.number, disbursement.number) == ("RCPT00000001", "PAY00000001")

        ar_read = await payment_service.get_by_id(db_session, AR, 1)
        ap_read = await payment_service.get_by_id(db_session, AP, 1)
        assert ar_read.total_amount == Decimal("1000.00")
        assert ap_read.total_amount == Decimal("250.00")
        assert (await payment_service.get_balance(db_session, AP, 1)).ledger == AP

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"total_amount": Decimal("0")},
            {"total_amount": Decimal("-5.00")},
            {"exchange_rate": Decimal("-1")},
            {"currency": "us1"},
            {"party_id": 0},
        ],
    )
    async def test_invalid_data(self, db_session, payment_service, overrides):
        """Test dati non validi."""
        with pytest.raises(BusinessValidationError):
            await payment_service.create_payment(db_session, payment_data(**overrides))

    @pytest.mark.asyncio
    async def test_duplicate_number(self, db_session, payment_service):
        """Test numero duplicato nel registro."""
        await payment_service.create_payment(db_session, payment_data(number="CHK-100"))
        with pytest.raises(DuplicateNumberError):
            await payment_service.create_payment(db_session, payment_data(number="CHK-100"))

        payments = await payment_service.get_all(db_session)
        assert payments.total == 1

    @pytest.mark.asyncio
    async def test_inline_applications(self, db_session, open_invoice, payment_service, invoice_service):
        """Test applicazioni contestuali alla registrazione."""
        first = await open_invoice(subtotal=Decimal("300.00"))
        second = await open_invoice(subtotal=Decimal("500.00"))

        payment = await payment_service.create_payment(
            db_session,
            payment_data(
                total_amount=Decimal("1000.00"),
                applications=[
                    PaymentApplicationLine(invoice_id=first.id, amount=Decimal("300.00")),
                    PaymentApplicationLine(invoice_id=second.id, amount=Decimal("200.00")),
                ],
            ),
        )

        assert payment.amount_applied == Decimal("500.00")
        assert payment.unapplied_amount == Decimal("500.00")
        assert (await invoice_service.get_balance(db_session, AR, first.id)).status == InvoiceStatus.PAID
        assert (await invoice_service.get_balance(db_session, AR, second.id)).due == Decimal("300.00")

    @pytest.mark.asyncio
    async def test_inline_applications_require_confirm(self, db_session, open_invoice, payment_service):
        """Test applicazioni contestuali su pagamento non confermato."""
        invoice = await open_invoice()
        with pytest.raises(BusinessValidationError):
            await payment_service.create_payment(
                db_session,
                payment_data(
                    confirm=False,
                    applications=[PaymentApplicationLine(invoice_id=invoice.id, amount=Decimal("1.00"))],
                ),
            )

    @pytest.mark.asyncio
    async def test_inline_application_other_ledger_not_found(
        self, db_session, open_invoice, payment_service
    ):
        """Test applicazione contestuale su fattura di un altro registro."""
        invoice_id = (await open_invoice(ledger=AP)).id

        with pytest.raises(NotFoundError):
            await payment_service.create_payment(
                db_session,
                payment_data(
                    applications=[PaymentApplicationLine(invoice_id=invoice_id, amount=Decimal("1.00"))],
                ),
            )

        assert (await payment_service.get_all(db_session)).total == 0

    @pytest.mark.asyncio
    async def test_failed_inline_application_rolls_back_payment(
        self, db_session, open_invoice, payment_service, invoice_service
    ):
        """Test applicazione contestuale rifiutata: nessun pagamento registrato."""
        invoice_id = (await open_invoice(subtotal=Decimal("100.00"))).id

        with pytest.raises(OverApplicationError):
            await payment_service.create_payment(
                db_session,
                payment_data(
                    applications=[
                        PaymentApplicationLine(invoice_id=invoice_id, amount=Decimal("150.00"))
                    ],
                ),
            )

        payments = await payment_service.get_all(db_session)
        assert payments.total == 0
        assert (await invoice_service.get_balance(db_session, AR, invoice_id)).due == Decimal("100.00")


# ============================================================
# Tests for state transitions
# ============================================================


class TestPaymentTransitions:
    """Tests for the payment state machine."""

    @pytest.mark.asyncio
    async def test_confirm_then_clear(self, db_session, confirmed_payment, payment_service):
        """Test DRAFT → CONFIRMED → CLEARED."""
        payment = await confirmed_payment(confirm=False)
        payment = await payment_service.confirm(db_session, AR, payment.id)
        assert payment.status == PaymentStatus.CONFIRMED
        payment = await payment_service.clear(db_session, AR, payment.id)
        assert payment.status == PaymentStatus.CLEARED

    @pytest.mark.asyncio
    async def test_clear_draft_rejected(self, db_session, confirmed_payment, payment_service):
        """Test compensazione di un pagamento in bozza."""
        payment_id = (await confirmed_payment(confirm=False)).id
        with pytest.raises(InvalidTransitionError):
            await payment_service.clear(db_session, AR, payment_id)

        stored = await payment_service.get_by_id(db_session, AR, payment_id)
        assert stored.status == PaymentStatus.DRAFT

    @pytest.mark.asyncio
    async def test_confirm_other_ledger_not_found(self, db_session, confirmed_payment, payment_service):
        """Test conferma con registro sbagliato."""
        payment = await confirmed_payment(confirm=False)
        with pytest.raises(NotFoundError):
            await payment_service.confirm(db_session, AP, payment.id)

    @pytest.mark.asyncio
    async def test_cancel_without_applications(self, db_session, confirmed_payment, payment_service):
        """Test annullamento di pagamento senza applicazioni."""
        payment = await confirmed_payment()
        payment = await payment_service.cancel(db_session, AR, payment.id)
        assert payment.status == PaymentStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_with_active_applications(
        self, db_session, open_invoice, confirmed_payment, payment_service, application_service
    ):
        """Test annullamento bloccato da applicazioni attive."""
        invoice = await open_invoice()
        payment_id = (await confirmed_payment()).id
        await application_service.apply(db_session, AR, payment_id, invoice.id, Decimal("10.00"))

        with pytest.raises(InvalidTransitionError):
            await payment_service.cancel(db_session, AR, payment_id)

        stored = await payment_service.get_by_id(db_session, AR, payment_id)
        assert stored.status == PaymentStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_cancel_cleared_rejected(self, db_session, confirmed_payment, payment_service):
        """Test pagamento compensato non annullabile."""
        payment = await confirmed_payment()
        await payment_service.clear(db_session, AR, payment.id)
        with pytest.raises(InvalidTransitionError):
            await payment_service.cancel(db_session, AR, payment.id)

    @pytest.mark.asyncio
    async def test_reverse_releases_applications(
        self,
        db_session,
        open_invoice,
        confirmed_payment,
        payment_service,
        invoice_service,
        application_service,
    ):
        """Test storno pagamento: applicazioni stornate, fatture riaperte."""
        first = await open_invoice(subtotal=Decimal("600.00"))
        second = await open_invoice(subtotal=Decimal("400.00"))
        payment = await confirmed_payment()
        await application_service.auto_apply(db_session, AR, payment.id)
        assert (await invoice_service.get_balance(db_session, AR, first.id)).status == InvoiceStatus.PAID

        payment = await payment_service.reverse(db_session, AR, payment.id)

        assert payment.status == PaymentStatus.REVERSED
        assert payment.amount_applied == Decimal("0.00")
        assert payment.unapplied_amount == Decimal("1000.00")
        for invoice in (first, second):
            balance = await invoice_service.get_balance(db_session, AR, invoice.id)
            assert balance.status == InvoiceStatus.OPEN
            assert balance.paid == Decimal("0.00")
        history = await application_service.list_for_payment(db_session, AR, payment.id)
        assert {a.status for a in history} == {ApplicationStatus.REVERSED}
        assert await application_service.find_discrepancies(db_session) == []

    @pytest.mark.asyncio
    async def test_reversed_payment_not_applicable(
        self, db_session, open_invoice, confirmed_payment, payment_service, application_service
    ):
        """Test pagamento stornato non più applicabile né stornabile."""
        invoice_id = (await open_invoice()).id
        payment_id = (await confirmed_payment()).id
        await payment_service.reverse(db_session, AR, payment_id)

        with pytest.raises(InvalidTransitionError):
            await payment_service.reverse(db_session, AR, payment_id)
        with pytest.raises(PaymentNotApplicableError):
            await application_service.apply(db_session, AR, payment_id, invoice_id, Decimal("1.00"))


# ============================================================
# Tests for update and reads
# ============================================================


class TestPaymentUpdateAndReads:
    """Tests for payment updates and queries."""

    @pytest.mark.asyncio
    async def test_update_draft(self, db_session, confirmed_payment, payment_service):
        """Test modifica importo in bozza."""
        payment = await confirmed_payment(confirm=False)
        payment = await payment_service.update(
            db_session, AR, payment.id, PaymentUpdate(total_amount=Decimal("750.00"))
        )
        assert payment.total_amount == Decimal("750.00")
        assert payment.unapplied_amount == Decimal("750.00")

    @pytest.mark.asyncio
    async def test_update_confirmed_reference_only(self, db_session, confirmed_payment, payment_service):
        """Test pagamento confermato: solo note e riferimento."""
        payment_id = (await confirmed_payment()).id
        payment = await payment_service.update(
            db_session, AR, payment_id, PaymentUpdate(reference="BONIFICO-778")
        )
        assert payment.reference == "BONIFICO-778"

        with pytest.raises(InvalidTransitionError):
            await payment_service.update(
                db_session, AR, payment_id, PaymentUpdate(total_amount=Decimal("1.00"))
            )

        stored = await payment_service.get_by_id(db_session, AR, payment_id)
        assert stored.total_amount == Decimal("1000.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field", ["payment_date", "currency", "exchange_rate", "total_amount"]
    )
    async def test_update_null_required_field(
        self, db_session, confirmed_payment, payment_service, field
    ):
        """Test null esplicito su campo obbligatorio: rifiutato."""
        payment_id = (await confirmed_payment(confirm=False)).id

        with pytest.raises(BusinessValidationError) as exc_info:
            await payment_service.update(db_session, AR, payment_id, PaymentUpdate(**{field: None}))

        assert exc_info.value.extra == {"fields": [field]}
        stored = await payment_service.get_by_id(db_session, AR, payment_id)
        assert stored.status == PaymentStatus.DRAFT
        assert stored.total_amount == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_update_null_optional_field(self, db_session, confirmed_payment, payment_service):
        """Test null esplicito su campo facoltativo: azzerato."""
        payment = await confirmed_payment(confirm=False)
        payment = await payment_service.update(
            db_session, AR, payment.id, PaymentUpdate(reference="TMP-1")
        )
        payment = await payment_service.update(
            db_session, AR, payment.id, PaymentUpdate(reference=None)
        )
        assert payment.reference is None

    @pytest.mark.asyncio
    async def test_get_by_number(self, db_session, confirmed_payment, payment_service):
        """Test ricerca per numero."""
        created = await confirmed_payment()
        payment = await payment_service.get_by_number(db_session, AR, created.number)
        assert payment.id == created.id
        with pytest.raises(NotFoundError):
            await payment_service.get_by_number(db_session, AR, "RCPT99999999")

    @pytest.mark.asyncio
    async def test_get_all_unapplied_only(
        self, db_session, open_invoice, confirmed_payment, payment_service, application_service
    ):
        """Test filtro pagamenti con parte non applicata."""
        invoice = await open_invoice()
        fully_applied = await confirmed_payment()
        await confirmed_payment(total_amount=Decimal("50.00"))
        await application_service.apply(
            db_session, AR, fully_applied.id, invoice.id, Decimal("1000.00")
        )

        result = await payment_service.get_all(db_session, unapplied_only=True)

        assert result.total == 1
        assert result.items[0].total_amount == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_get_balance(self, db_session, open_invoice, confirmed_payment, payment_service, application_service):
        """Test saldo {total, applied, unapplied}."""
        invoice = await open_invoice()
        payment = await confirmed_payment()
        await application_service.apply(db_session, AR, payment.id, invoice.id, Decimal("120.50"))

        balance = await payment_service.get_balance(db_session, AR, payment.id)
        assert balance.ledger == AR
        assert balance.total == Decimal("1000.00")
        assert balance.applied == Decimal("120.50")
        assert balance.unapplied == Decimal("879.50")
