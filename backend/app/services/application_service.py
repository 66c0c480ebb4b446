"""
Service Layer per le Applicazioni pagamento → fattura
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Unico punto che modifica amount_paid / amount_due delle fatture e
amount_applied / unapplied_amount dei pagamenti. Ogni operazione
legge le testate con SELECT ... FOR UPDATE (prima il pagamento, poi la
fattura) e scrive applicazione e saldi nella stessa transazione.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ApplicationNotActiveError,
    DuplicateApplicationError,
    InvoiceNotOpenError,
    NotFoundError,
    OverApplicationError,
    PaymentNotApplicableError,
    ValidationError,
)
from app.core.money import ZERO, to_money
from app.core.transactions import atomic, retry_on_contention
from app.models import Invoice, Payment, PaymentApplication
from app.models.enums import ApplicationStatus, InvoiceStatus, Ledger
from app.schemas.application import AutoApplyResult, ApplicationRead, BalanceDiscrepancy
from app.services.sequence_service import APPLICATION_ID_SEQUENCES, SequenceService
from app.services.transitions import (
    APPLICABLE_PAYMENT_STATUSES,
    next_application_status,
    next_invoice_status,
)

# Logger per questo modulo
logger = logging.getLogger(__name__)


class ApplicationService:
    """
    Service per l'applicazione dei pagamenti alle fatture.

    Implementa:
    - Applicazione singola con validazione completa
    - Storno di un'applicazione (ripristino dei saldi)
    - Applicazione automatica per scadenza (fatture più vecchie prima)
    - Verifica di coerenza tra saldi e applicazioni ACTIVE

    I metodi *_locked lavorano dentro la transazione del chiamante,
    su righe già bloccate, e non eseguono commit.
    """

    def __init__(self) -> None:
        self.sequences = SequenceService()

    # ------------------------------------------------------------
    # Lock delle testate
    # ------------------------------------------------------------
    async def lock_payment(self, db: AsyncSession, ledger: Ledger, payment_id: int) -> Payment:
        """
        Legge il pagamento del registro con lock di riga.

        Raises:
            NotFoundError: Pagamento inesistente
        """
        stmt = (
            select(Payment)
            .where(Payment.ledger == ledger, Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundError(f"Pagamento {ledger.value} {payment_id} non trovato")
        return payment

    async def lock_invoice(self, db: AsyncSession, ledger: Ledger, invoice_id: int) -> Invoice:
        """
        Legge la fattura del registro con lock di riga.

        Raises:
            NotFoundError: Fattura inesistente
        """
        stmt = (
            select(Invoice)
            .where(Invoice.ledger == ledger, Invoice.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundError(f"Fattura {ledger.value} {invoice_id} non trovata")
        return invoice

    async def _active_application(
        self,
        db: AsyncSession,
        ledger: Ledger,
        payment_id: int,
        invoice_id: int,
    ) -> Optional[PaymentApplication]:
        stmt = select(PaymentApplication).where(
            PaymentApplication.ledger == ledger,
            PaymentApplication.payment_id == payment_id,
            PaymentApplication.invoice_id == invoice_id,
            PaymentApplication.status == ApplicationStatus.ACTIVE,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def active_for_invoice(
        self,
        db: AsyncSession,
        ledger: Ledger,
        invoice_id: int,
        lock: bool = False,
    ) -> List[PaymentApplication]:
        """Applicazioni ACTIVE della fattura, in ordine di ID."""
        stmt = (
            select(PaymentApplication)
            .where(
                PaymentApplication.ledger == ledger,
                PaymentApplication.invoice_id == invoice_id,
                PaymentApplication.status == ApplicationStatus.ACTIVE,
            )
            .order_by(PaymentApplication.id)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def active_for_payment(
        self,
        db: AsyncSession,
        ledger: Ledger,
        payment_id: int,
        lock: bool = False,
    ) -> List[PaymentApplication]:
        """Applicazioni ACTIVE del pagamento, in ordine di ID."""
        stmt = (
            select(PaymentApplication)
            .where(
                PaymentApplication.ledger == ledger,
                PaymentApplication.payment_id == payment_id,
                PaymentApplication.status == ApplicationStatus.ACTIVE,
            )
            .order_by(PaymentApplication.id)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------
    # Validazioni
    # ------------------------------------------------------------
    @staticmethod
    def _check_payment_applicable(payment: Payment) -> None:
        if payment.status not in APPLICABLE_PAYMENT_STATUSES:
            raise PaymentNotApplicableError(
                f"Il pagamento {payment.number} è in stato {payment.status.value} "
                f"e non può essere applicato",
                extra={"payment_id": payment.id, "status": payment.status.value},
            )

    @staticmethod
    def _check_compatible(payment: Payment, invoice: Invoice) -> None:
        mismatches = {
            field: (getattr(payment, field), getattr(invoice, field))
            for field in ("ledger", "party_id", "currency")
            if getattr(payment, field) != getattr(invoice, field)
        }
        if mismatches:
            raise PaymentNotApplicableError(
                f"Il pagamento {payment.number} non è compatibile con la fattura "
                f"{invoice.number} ({', '.join(sorted(mismatches))} diversi)",
                extra={"mismatch": sorted(mismatches)},
            )

    # ------------------------------------------------------------
    # Applicazione
    # ------------------------------------------------------------
    async def apply_locked(
        self,
        db: AsyncSession,
        payment: Payment,
        invoice: Invoice,
        amount: Decimal,
        applied_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> PaymentApplication:
        """
        Applica un importo su testate già bloccate, senza commit.

        Steps:
        1. Valida importo, stato pagamento, compatibilità, stato fattura
        2. Verifica che la coppia non abbia già un'applicazione ACTIVE
        3. Verifica che l'importo non superi residuo fattura e non applicato
        4. Inserisce l'applicazione ACTIVE
        5. Aggiorna i saldi di fattura (PAID se residuo zero) e pagamento

        Raises:
            ValidationError: Importo non positivo
            PaymentNotApplicableError: Stato o dati del pagamento non compatibili
            InvoiceNotOpenError: Fattura non aperta
            DuplicateApplicationError: Coppia già applicata
            OverApplicationError: Importo oltre i residui
            SequenceOutOfSyncError: ID applicazione già presente
        """
        amount = to_money(amount, "amount")
        if amount <= ZERO:
            raise ValidationError("L'importo da applicare deve essere maggiore di zero")

        self._check_payment_applicable(payment)
        self._check_compatible(payment, invoice)

        if invoice.status != InvoiceStatus.OPEN:
            raise InvoiceNotOpenError(
                f"La fattura {invoice.number} è in stato {invoice.status.value}",
                extra={"invoice_id": invoice.id, "status": invoice.status.value},
            )

        existing = await self._active_application(db, payment.ledger, payment.id, invoice.id)
        if existing is not None:
            raise DuplicateApplicationError(
                f"Il pagamento {payment.number} è già applicato alla fattura "
                f"{invoice.number}: stornare l'applicazione {existing.id} prima di riapplicare",
                extra={"application_id": existing.id},
            )

        if amount > invoice.amount_due:
            raise OverApplicationError(
                f"Importo {amount} superiore al residuo della fattura {invoice.number} "
                f"({invoice.amount_due})",
                extra={"amount": str(amount), "amount_due": str(invoice.amount_due)},
            )
        if amount > payment.unapplied_amount:
            raise OverApplicationError(
                f"Importo {amount} superiore alla parte non applicata del pagamento "
                f"{payment.number} ({payment.unapplied_amount})",
                extra={"amount": str(amount), "unapplied_amount": str(payment.unapplied_amount)},
            )

        application_id = await self.sequences.next_id(
            db, PaymentApplication, payment.ledger, APPLICATION_ID_SEQUENCES[payment.ledger]
        )
        application = PaymentApplication(
            id=application_id,
            ledger=payment.ledger,
            payment_id=payment.id,
            invoice_id=invoice.id,
            applied_amount=amount,
            applied_date=applied_date or date.today(),
            status=ApplicationStatus.ACTIVE,
            notes=notes,
        )
        db.add(application)

        invoice.amount_paid = invoice.amount_paid + amount
        invoice.amount_due = invoice.total_amount - invoice.amount_paid
        if invoice.amount_due == ZERO:
            invoice.status = next_invoice_status(invoice.status, "settle")

        payment.amount_applied = payment.amount_applied + amount
        payment.unapplied_amount = payment.total_amount - payment.amount_applied

        try:
            await db.flush()
        except IntegrityError:
            raise DuplicateApplicationError(
                f"Il pagamento {payment.number} è già applicato alla fattura {invoice.number}"
            ) from None

        logger.info(
            "Applicazione %d: %s %s → fattura %s (residuo %s, non applicato %s)",
            application.id,
            payment.number,
            amount,
            invoice.number,
            invoice.amount_due,
            payment.unapplied_amount,
        )
        return application

    @retry_on_contention
    async def apply(
        self,
        db: AsyncSession,
        ledger: Ledger,
        payment_id: int,
        invoice_id: int,
        amount: Decimal,
        applied_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> PaymentApplication:
        """
        Applica un importo di un pagamento a una fattura dello stesso registro.

        Args:
            db: Sessione database
            ledger: Registro di pagamento e fattura
            payment_id: ID pagamento/incasso
            invoice_id: ID fattura
            amount: Importo da applicare
            applied_date: Data applicazione (default oggi)
            notes: Note

        Returns:
            PaymentApplication: L'applicazione creata

        Raises:
            NotFoundError: Pagamento o fattura inesistenti
            Vedi apply_locked per le violazioni di regole
        """
        async with atomic(db):
            payment = await self.lock_payment(db, ledger, payment_id)
            invoice = await self.lock_invoice(db, ledger, invoice_id)
            return await self.apply_locked(db, payment, invoice, amount, applied_date, notes)

    # ------------------------------------------------------------
    # Storno
    # ------------------------------------------------------------
    def release_locked(
        self,
        application: PaymentApplication,
        payment: Payment,
        invoice: Invoice,
        action: str = "reverse",
    ) -> None:
        """
        Rilascia un'applicazione ACTIVE ripristinando i saldi.

        action "reverse" → REVERSED, "void" → VOID (annullamento fattura).
        Una fattura PAID torna OPEN.
        """
        if application.status != ApplicationStatus.ACTIVE:
            raise ApplicationNotActiveError(
                f"L'applicazione {application.id} è in stato {application.status.value}",
                extra={"application_id": application.id, "status": application.status.value},
            )

        amount = application.applied_amount
        application.status = next_application_status(application.status, action)
        application.reversed_at = datetime.now(timezone.utc)

        invoice.amount_paid = invoice.amount_paid - amount
        invoice.amount_due = invoice.total_amount - invoice.amount_paid
        if invoice.status == InvoiceStatus.PAID:
            invoice.status = next_invoice_status(invoice.status, "reopen")

        payment.amount_applied = payment.amount_applied - amount
        payment.unapplied_amount = payment.total_amount - payment.amount_applied

        logger.info(
            "Applicazione %d %s: %s ripristinati su fattura %s e pagamento %s",
            application.id,
            application.status.value,
            amount,
            invoice.number,
            payment.number,
        )

    @retry_on_contention
    async def reverse(
        self,
        db: AsyncSession,
        ledger: Ledger,
        application_id: int,
    ) -> PaymentApplication:
        """
        Storna un'applicazione ACTIVE.

        Decrementa i saldi di fattura e pagamento dell'importo applicato;
        se la fattura era PAID torna OPEN.

        Raises:
            NotFoundError: Applicazione inesistente
            ApplicationNotActiveError: Applicazione già stornata o annullata
        """
        async with atomic(db):
            stmt = (
                select(PaymentApplication)
                .where(
                    PaymentApplication.ledger == ledger,
                    PaymentApplication.id == application_id,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            result = await db.execute(stmt)
            application = result.scalar_one_or_none()
            if application is None:
                raise NotFoundError(f"Applicazione {application_id} non trovata")
            if application.status != ApplicationStatus.ACTIVE:
                raise ApplicationNotActiveError(
                    f"L'applicazione {application_id} è in stato {application.status.value}",
                    extra={"application_id": application_id, "status": application.status.value},
                )

            payment = await self.lock_payment(db, ledger, application.payment_id)
            invoice = await self.lock_invoice(db, ledger, application.invoice_id)
            self.release_locked(application, payment, invoice, "reverse")

        return application

    # ------------------------------------------------------------
    # Applicazione automatica
    # ------------------------------------------------------------
    @retry_on_contention
    async def auto_apply(
        self,
        db: AsyncSession,
        ledger: Ledger,
        payment_id: int,
        invoice_ids: Optional[Iterable[int]] = None,
        applied_date: Optional[date] = None,
    ) -> AutoApplyResult:
        """
        Applica il pagamento alle fatture aperte del soggetto.

        Ordine: scadenza crescente, poi data emissione, poi ID.
        Si ferma quando il pagamento è esaurito; il resto rimane non applicato.
        Le fatture che hanno già un'applicazione ACTIVE di questo pagamento
        vengono saltate.

        Args:
            db: Sessione database
            ledger: Registro del pagamento
            payment_id: ID pagamento/incasso
            invoice_ids: Limita le fatture candidate
            applied_date: Data applicazione (default oggi)

        Returns:
            AutoApplyResult: Applicazioni create e residuo del pagamento
        """
        async with atomic(db):
            payment = await self.lock_payment(db, ledger, payment_id)
            self._check_payment_applicable(payment)

            stmt = (
                select(Invoice)
                .where(
                    Invoice.ledger == payment.ledger,
                    Invoice.party_id == payment.party_id,
                    Invoice.currency == payment.currency,
                    Invoice.status == InvoiceStatus.OPEN,
                    Invoice.amount_due > 0,
                )
                .order_by(Invoice.due_date, Invoice.issue_date, Invoice.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if invoice_ids is not None:
                stmt = stmt.where(Invoice.id.in_(list(invoice_ids)))
            result = await db.execute(stmt)
            invoices = result.scalars().all()

            created: List[PaymentApplication] = []
            for invoice in invoices:
                if payment.unapplied_amount <= ZERO:
                    break
                if await self._active_application(db, ledger, payment.id, invoice.id) is not None:
                    logger.debug(
                        "Auto-applicazione: fattura %s già coperta da %s",
                        invoice.number,
                        payment.number,
                    )
                    continue
                amount = min(invoice.amount_due, payment.unapplied_amount)
                created.append(
                    await self.apply_locked(db, payment, invoice, amount, applied_date)
                )

        total_applied = sum((a.applied_amount for a in created), ZERO)
        logger.info(
            "Auto-applicazione %s: %d fatture, applicati %s, non applicato %s",
            payment.number,
            len(created),
            total_applied,
            payment.unapplied_amount,
        )
        return AutoApplyResult(
            ledger=payment.ledger,
            payment_id=payment.id,
            applications=[ApplicationRead.model_validate(a) for a in created],
            total_applied=total_applied,
            unapplied_amount=payment.unapplied_amount,
        )

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------
    async def get_by_id(
        self,
        db: AsyncSession,
        ledger: Ledger,
        application_id: int,
    ) -> PaymentApplication:
        """
        Recupera un'applicazione per registro e ID.

        Raises:
            NotFoundError: Applicazione inesistente
        """
        application = await db.get(
            PaymentApplication,
            {"ledger": ledger, "id": application_id},
            populate_existing=True,
        )
        if application is None:
            raise NotFoundError(f"Applicazione {ledger.value} {application_id} non trovata")
        return application

    async def list_for_payment(
        self,
        db: AsyncSession,
        ledger: Ledger,
        payment_id: int,
        status: Optional[ApplicationStatus] = None,
    ) -> List[PaymentApplication]:
        """Tutte le applicazioni di un pagamento (eventualmente filtrate per stato)."""
        stmt = (
            select(PaymentApplication)
            .where(
                PaymentApplication.ledger == ledger,
                PaymentApplication.payment_id == payment_id,
            )
            .order_by(PaymentApplication.id)
        )
        if status is not None:
            stmt = stmt.where(PaymentApplication.status == status)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_for_invoice(
        self,
        db: AsyncSession,
        ledger: Ledger,
        invoice_id: int,
        status: Optional[ApplicationStatus] = None,
    ) -> List[PaymentApplication]:
        """Tutte le applicazioni ricevute da una fattura."""
        stmt = (
            select(PaymentApplication)
            .where(
                PaymentApplication.ledger == ledger,
                PaymentApplication.invoice_id == invoice_id,
            )
            .order_by(PaymentApplication.id)
        )
        if status is not None:
            stmt = stmt.where(PaymentApplication.status == status)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def find_discrepancies(self, db: AsyncSession) -> List[BalanceDiscrepancy]:
        """
        Confronta i saldi registrati con la somma delle applicazioni ACTIVE.

        Returns:
            List[BalanceDiscrepancy]: Documenti incoerenti (vuota se tutto torna)
        """
        discrepancies: List[BalanceDiscrepancy] = []

        checks = (
            ("invoice", Invoice, Invoice.amount_paid, PaymentApplication.invoice_id),
            ("payment", Payment, Payment.amount_applied, PaymentApplication.payment_id),
        )
        for entity, model, recorded_column, link_column in checks:
            active_sums = (
                select(
                    PaymentApplication.ledger.label("ledger"),
                    link_column.label("document_id"),
                    func.sum(PaymentApplication.applied_amount).label("applied"),
                )
                .where(PaymentApplication.status == ApplicationStatus.ACTIVE)
                .group_by(PaymentApplication.ledger, link_column)
                .subquery()
            )
            stmt = (
                select(model.id, model.ledger, model.number, recorded_column, active_sums.c.applied)
                .outerjoin(
                    active_sums,
                    and_(
                        active_sums.c.ledger == model.ledger,
                        active_sums.c.document_id == model.id,
                    ),
                )
                .order_by(model.ledger, model.id)
            )
            result = await db.execute(stmt)
            for doc_id, ledger, number, recorded, applied in result.all():
                recorded = to_money(recorded)
                computed = to_money(applied if applied is not None else ZERO)
                if recorded != computed:
                    discrepancies.append(BalanceDiscrepancy(
                        entity=entity,
                        id=doc_id,
                        ledger=ledger,
                        number=number,
                        recorded=recorded,
                        computed=computed,
                    ))

        if discrepancies:
            logger.error("Trovate %d incoerenze tra saldi e applicazioni", len(discrepancies))
        return discrepancies

    async def sum_active(self, db: AsyncSession, ledger: Ledger, **filters: int) -> Decimal:
        """Somma delle applicazioni ACTIVE del registro filtrate per payment_id e/o invoice_id."""
        stmt = select(func.coalesce(func.sum(PaymentApplication.applied_amount), 0)).where(
            PaymentApplication.ledger == ledger,
            PaymentApplication.status == ApplicationStatus.ACTIVE,
            *[getattr(PaymentApplication, k) == v for k, v in filters.items()],
        )
        result = await db.execute(stmt)
        return to_money(result.scalar_one())
