"""
Service Layer per Pagamenti e Incassi
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Ciclo di vita di incassi clienti (AR) e pagamenti fornitori (AP):
DRAFT → CONFIRMED → CLEARED, con annullamento (CANCELLED) e storno (REVERSED).
Per il registro AP: APPROVED = CONFIRMED, PROCESSED = CLEARED, VOID = REVERSED.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    DuplicateNumberError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.money import ZERO, normalize_currency, to_money, to_rate
from app.core.transactions import atomic, retry_on_contention
from app.models import Payment
from app.models.enums import Ledger, PaymentStatus
from app.schemas.payment import (
    PaymentBalance,
    PaymentCreate,
    PaymentList,
    PaymentRead,
    PaymentUpdate,
)
from app.services.application_service import ApplicationService
from app.services.sequence_service import (
    PAYMENT_DOCUMENT_TYPES,
    PAYMENT_ID_SEQUENCES,
    SequenceService,
    format_document_number,
)
from app.services.transitions import PAYMENT_EDITABLE_STATUSES, next_payment_status

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Campi modificabili dopo la conferma
_ALWAYS_EDITABLE = frozenset({"notes", "reference"})

# Colonne NOT NULL modificabili con update()
_REQUIRED_FIELDS = frozenset({"payment_date", "currency", "exchange_rate", "total_amount"})


def _positive(value, field_name: str):
    amount = to_money(value, field_name)
    if amount <= ZERO:
        raise ValidationError(f"Il campo {field_name} deve essere maggiore di zero")
    return amount


class PaymentService:
    """
    Service per la gestione di incassi e pagamenti.

    Implementa:
    - Registrazione con ID e numero da sequenza del registro
    - Applicazioni contestuali alla registrazione
    - Conferma, compensazione, annullamento, storno
    - Saldo pagamento
    """

    def __init__(self) -> None:
        self.sequences = SequenceService()
        self.applications = ApplicationService()

    @retry_on_contention
    async def create_payment(
        self,
        db: AsyncSession,
        data: PaymentCreate,
    ) -> Payment:
        """
        Registra un incasso/pagamento.

        Steps:
        1. Valida soggetto, importo, valuta e cambio
        2. Alloca l'ID da AR_RECEIPT_ID_SEQ / AP_PAYMENT_ID_SEQ
        3. Crea il documento DRAFT (CONFIRMED se confirm=True)
        4. Registra le applicazioni contestuali nella stessa transazione

        Args:
            db: Sessione database
            data: Dati del pagamento

        Returns:
            Payment: Il pagamento creato

        Raises:
            ValidationError: Dati non validi o applicazioni senza conferma
            DuplicateNumberError: Numero già usato nel registro
            SequenceOutOfSyncError: ID già presente nel registro
            Errori dell'ApplicationService per le applicazioni contestuali
        """
        if data.party_id < 1:
            raise ValidationError("party_id deve essere un ID valido")
        total_amount = _positive(data.total_amount, "total_amount")
        currency = normalize_currency(data.currency or settings.default_currency)
        exchange_rate = to_rate(data.exchange_rate)
        if data.applications and not data.confirm:
            raise ValidationError(
                "Le applicazioni contestuali richiedono la conferma del pagamento (confirm=True)"
            )

        async with atomic(db):
            if data.number is not None:
                await self._ensure_number_free(db, data.ledger, data.number)

            payment_id = await self.sequences.next_id(
                db, Payment, data.ledger, PAYMENT_ID_SEQUENCES[data.ledger]
            )
            number = data.number or format_document_number(
                PAYMENT_DOCUMENT_TYPES[data.ledger], payment_id
            )

            payment = Payment(
                id=payment_id,
                ledger=data.ledger,
                number=number,
                party_id=data.party_id,
                payment_date=data.payment_date,
                currency=currency,
                exchange_rate=exchange_rate,
                total_amount=total_amount,
                amount_applied=ZERO,
                unapplied_amount=total_amount,
                payment_method=data.payment_method,
                reference=data.reference,
                notes=data.notes,
                status=PaymentStatus.CONFIRMED if data.confirm else PaymentStatus.DRAFT,
            )
            db.add(payment)
            try:
                await db.flush()
            except IntegrityError:
                raise DuplicateNumberError(
                    f"Numero pagamento {number} già presente nel registro {data.ledger.value}",
                    extra={"ledger": data.ledger.value, "number": number},
                ) from None

            for line in data.applications:
                invoice = await self.applications.lock_invoice(db, data.ledger, line.invoice_id)
                await self.applications.apply_locked(
                    db, payment, invoice, line.amount, data.payment_date
                )

        logger.info(
            "Pagamento %s registrato (id=%d, registro=%s, importo=%s %s, stato=%s)",
            payment.number,
            payment.id,
            payment.ledger.value,
            payment.total_amount,
            payment.currency,
            payment.status.value,
        )
        return payment

    async def _ensure_number_free(self, db: AsyncSession, ledger: Ledger, number: str) -> None:
        stmt = select(Payment.id).where(Payment.ledger == ledger, Payment.number == number)
        result = await db.execute(stmt)
        if result.scalar_one_or_none() is not None:
            raise DuplicateNumberError(
                f"Numero pagamento {number} già presente nel registro {ledger.value}",
                extra={"ledger": ledger.value, "number": number},
            )

    # ------------------------------------------------------------
    # Transizioni di stato
    # ------------------------------------------------------------
    async def _transition(
        self,
        db: AsyncSession,
        ledger: Ledger,
        payment_id: int,
        action: str,
    ) -> Payment:
        async with atomic(db):
            payment = await self.applications.lock_payment(db, ledger, payment_id)
            payment.status = next_payment_status(payment.status, action)
        logger.info("Pagamento %s: %s → %s", payment.number, action, payment.status.value)
        return payment

    @retry_on_contention
    async def confirm(self, db: AsyncSession, ledger: Ledger, payment_id: int) -> Payment:
        """Conferma il pagamento: DRAFT → CONFIRMED (AP: APPROVED)."""
        return await self._transition(db, ledger, payment_id, "confirm")

    @retry_on_contention
    async def clear(self, db: AsyncSession, ledger: Ledger, payment_id: int) -> Payment:
        """Segna il pagamento come compensato: CONFIRMED → CLEARED (AP: PROCESSED)."""
        return await self._transition(db, ledger, payment_id, "clear")

    @retry_on_contention
    async def cancel(self, db: AsyncSession, ledger: Ledger, payment_id: int) -> Payment:
        """
        Annulla il pagamento: DRAFT/CONFIRMED → CANCELLED.

        Raises:
            InvalidTransitionError: Stato non annullabile o applicazioni attive
        """
        async with atomic(db):
            payment = await self.applications.lock_payment(db, ledger, payment_id)
            new_status = next_payment_status(payment.status, "cancel")
            active = await self.applications.active_for_payment(db, ledger, payment_id)
            if active:
                raise InvalidTransitionError(
                    f"Pagamento {payment.number}: {len(active)} applicazioni attive, "
                    f"usare lo storno",
                    extra={"active_applications": [a.id for a in active], "action": "cancel"},
                )
            payment.status = new_status

        logger.info("Pagamento %s annullato", payment.number)
        return payment

    @retry_on_contention
    async def reverse(self, db: AsyncSession, ledger: Ledger, payment_id: int) -> Payment:
        """
        Storna il pagamento: CONFIRMED/CLEARED → REVERSED (AP: VOID).

        Tutte le applicazioni ACTIVE vengono stornate nella stessa
        transazione e le fatture recuperano il residuo (PAID → OPEN).

        Raises:
            NotFoundError: Pagamento inesistente
            InvalidTransitionError: Stato non stornabile
        """
        async with atomic(db):
            payment = await self.applications.lock_payment(db, ledger, payment_id)
            new_status = next_payment_status(payment.status, "reverse")

            active = await self.applications.active_for_payment(db, ledger, payment_id, lock=True)
            for application in sorted(active, key=lambda a: a.invoice_id):
                invoice = await self.applications.lock_invoice(db, ledger, application.invoice_id)
                self.applications.release_locked(application, payment, invoice, "reverse")

            payment.status = new_status

        logger.info(
            "Pagamento %s stornato (%d applicazioni stornate)",
            payment.number,
            len(active),
        )
        return payment

    # ------------------------------------------------------------
    # Modifica
    # ------------------------------------------------------------
    @retry_on_contention
    async def update(
        self,
        db: AsyncSession,
        ledger: Ledger,
        payment_id: int,
        data: PaymentUpdate,
    ) -> Payment:
        """
        Aggiorna un pagamento.

        In bozza tutti i campi; dopo la conferma solo note e riferimento.
        I campi obbligatori non possono essere azzerati con null.

        Raises:
            InvalidTransitionError: Campi non modificabili nello stato corrente
            ValidationError: Dati non validi
        """
        changes = data.model_dump(exclude_unset=True)
        nulled = sorted(f for f in _REQUIRED_FIELDS if f in changes and changes[f] is None)
        if nulled:
            raise ValidationError(
                f"Campi obbligatori non annullabili: {', '.join(nulled)}",
                extra={"fields": nulled},
            )

        async with atomic(db):
            payment = await self.applications.lock_payment(db, ledger, payment_id)

            if payment.status not in PAYMENT_EDITABLE_STATUSES:
                locked_fields = sorted(set(changes) - _ALWAYS_EDITABLE)
                if locked_fields:
                    raise InvalidTransitionError(
                        f"Pagamento {payment.number} in stato {payment.status.value}: "
                        f"modificabili solo note e riferimento",
                        extra={"fields": locked_fields},
                    )

            if "currency" in changes:
                changes["currency"] = normalize_currency(changes["currency"])
            if "exchange_rate" in changes:
                changes["exchange_rate"] = to_rate(changes["exchange_rate"])
            if "total_amount" in changes:
                changes["total_amount"] = _positive(changes["total_amount"], "total_amount")

            for field, value in changes.items():
                setattr(payment, field, value)
            payment.unapplied_amount = payment.total_amount - payment.amount_applied

        logger.info("Pagamento %s aggiornato: %s", payment.number, ", ".join(sorted(changes)))
        return payment

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------
    async def get_by_id(self, db: AsyncSession, ledger: Ledger, payment_id: int) -> Payment:
        """
        Recupera un pagamento per registro e ID.

        Raises:
            NotFoundError: Pagamento inesistente
        """
        payment = await db.get(
            Payment, {"ledger": ledger, "id": payment_id}, populate_existing=True
        )
        if payment is None:
            raise NotFoundError(f"Pagamento {ledger.value} {payment_id} non trovato")
        return payment

    async def get_by_number(self, db: AsyncSession, ledger: Ledger, number: str) -> Payment:
        """Recupera un pagamento per numero nel registro indicato."""
        stmt = (
            select(Payment)
            .where(Payment.ledger == ledger, Payment.number == number)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundError(f"Pagamento {number} non trovato nel registro {ledger.value}")
        return payment

    async def get_all(
        self,
        db: AsyncSession,
        ledger: Optional[Ledger] = None,
        party_id: Optional[int] = None,
        status_filter: Optional[PaymentStatus] = None,
        unapplied_only: bool = False,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> PaymentList:
        """
        Recupera la lista paginata dei pagamenti con filtri.

        Args:
            unapplied_only: Solo pagamenti con parte non applicata
        """
        conditions = []

        if ledger:
            conditions.append(Payment.ledger == ledger)
        if party_id:
            conditions.append(Payment.party_id == party_id)
        if status_filter:
            conditions.append(Payment.status == status_filter)
        if unapplied_only:
            conditions.append(Payment.unapplied_amount > 0)
        if from_date:
            conditions.append(Payment.payment_date >= from_date)
        if to_date:
            conditions.append(Payment.payment_date <= to_date)

        count_stmt = select(func.count(Payment.id))
        stmt = select(Payment)
        if conditions:
            count_stmt = count_stmt.where(and_(*conditions))
            stmt = stmt.where(and_(*conditions))

        count_result = await db.execute(count_stmt)
        total = count_result.scalar()

        stmt = stmt.order_by(Payment.payment_date.desc(), Payment.id.desc())
        stmt = stmt.offset((page - 1) * per_page).limit(per_page)
        result = await db.execute(stmt)
        payments = result.scalars().all()

        total_pages = (total + per_page - 1) // per_page if total > 0 else 1

        return PaymentList(
            items=[PaymentRead.model_validate(payment) for payment in payments],
            total=total,
            page=page,
            per_page=per_page,
            total_pages=total_pages,
        )

    async def get_balance(
        self,
        db: AsyncSession,
        ledger: Ledger,
        payment_id: int,
    ) -> PaymentBalance:
        """Saldo del pagamento: {total, applied, unapplied}."""
        payment = await self.get_by_id(db, ledger, payment_id)
        return PaymentBalance(
            ledger=payment.ledger,
            payment_id=payment.id,
            status=payment.status,
            total=payment.total_amount,
            applied=payment.amount_applied,
            unapplied=payment.unapplied_amount,
        )
