"""
Service Layer per le Fatture
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Definisce la logica di business per il ciclo di vita delle fatture
dei registri clienti (AR) e fornitori (AP): creazione con ID da sequenza,
approvazione, rifiuto, annullamento (cancel/void), modifica e saldi.

I saldi (amount_paid / amount_due) sono scritti solo dall'ApplicationService.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    DuplicateNumberError,
    InvalidTransitionError,
    LockSetChangedError,
    NotFoundError,
    ValidationError,
)
from app.core.money import ZERO, normalize_currency, to_money, to_rate
from app.core.transactions import atomic, retry_on_contention
from app.models import Invoice, InvoiceLine
from app.models.enums import ApprovalStatus, InvoiceStatus, Ledger
from app.schemas.invoice import (
    InvoiceBalance,
    InvoiceCreate,
    InvoiceLineCreate,
    InvoiceList,
    InvoiceRead,
    InvoiceUpdate,
)
from app.services.application_service import ApplicationService
from app.services.sequence_service import (
    INVOICE_DOCUMENT_TYPES,
    INVOICE_ID_SEQUENCES,
    INVOICE_LINE_ID_SEQUENCES,
    SequenceService,
    format_document_number,
)
from app.services.transitions import INVOICE_EDITABLE_STATUSES, next_invoice_status

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Colonne NOT NULL modificabili con update()
_REQUIRED_FIELDS = frozenset({
    "issue_date",
    "due_date",
    "currency",
    "exchange_rate",
    "subtotal",
    "tax_amount",
})


def _validate_dates(issue_date: date, due_date: date) -> None:
    if due_date < issue_date:
        raise ValidationError(
            f"La data di scadenza ({due_date}) non può precedere la data fattura ({issue_date})"
        )


def _non_negative(value, field_name: str) -> Decimal:
    amount = to_money(value, field_name)
    if amount < ZERO:
        raise ValidationError(f"Il campo {field_name} non può essere negativo")
    return amount


def _totals_from_lines(lines: List[InvoiceLineCreate]) -> tuple[Decimal, Decimal]:
    """Imponibile e imposta come somma delle righe."""
    subtotal = ZERO
    tax_amount = ZERO
    for index, line in enumerate(lines, start=1):
        if line.quantity is None or line.quantity <= 0:
            raise ValidationError(f"Riga {index}: la quantità deve essere maggiore di zero")
        unit_price = Decimal(str(line.unit_price))
        if unit_price < 0:
            raise ValidationError(f"Riga {index}: il prezzo unitario non può essere negativo")
        subtotal += to_money(line.quantity * unit_price)
        tax_amount += _non_negative(line.tax_amount, f"tax_amount (riga {index})")
    return subtotal, tax_amount


class InvoiceService:
    """
    Service per la gestione delle operazioni sulle fatture.

    Fornisce metodi asincroni per interagire con il database
    in modo centralizzato, senza dipendenze da FastAPI.

    Implementa:
    - Creazione con ID e numero da sequenza del registro
    - Macchina a stati DRAFT → OPEN → PAID, CANCELLED, VOID
    - Approvazione / rifiuto
    - Modifica (completa in bozza, solo note altrimenti)
    - Saldo fattura
    """

    def __init__(self) -> None:
        self.sequences = SequenceService()
        self.applications = ApplicationService()

    @retry_on_contention
    async def create_invoice(
        self,
        db: AsyncSession,
        data: InvoiceCreate,
    ) -> Invoice:
        """
        Crea una fattura in stato DRAFT.

        Steps:
        1. Valida soggetto, date, valuta, cambio e importi
        2. Calcola imponibile e imposta (dalle righe se presenti)
        3. Alloca l'ID dalla sequenza {LEDGER}_INVOICE_ID_SEQ
        4. Usa il numero fornito o lo genera dall'ID
        5. Crea testata e righe nella stessa transazione

        Args:
            db: Sessione database
            data: Dati della fattura

        Returns:
            Invoice: La fattura creata

        Raises:
            ValidationError: Dati non validi
            DuplicateNumberError: Numero già usato nel registro
            SequenceNotFoundError / SequenceExhaustedError: Sequenze non configurate
            SequenceOutOfSyncError: ID già presente nel registro
        """
        if data.party_id < 1:
            raise ValidationError("party_id deve essere un ID valido")
        _validate_dates(data.issue_date, data.due_date)
        currency = normalize_currency(data.currency or settings.default_currency)
        exchange_rate = to_rate(data.exchange_rate)

        if data.lines:
            subtotal, tax_amount = _totals_from_lines(data.lines)
        else:
            if data.subtotal is None:
                raise ValidationError("Imponibile obbligatorio per fatture senza righe")
            subtotal = _non_negative(data.subtotal, "subtotal")
            tax_amount = _non_negative(data.tax_amount, "tax_amount")
        total_amount = subtotal + tax_amount

        async with atomic(db):
            if data.number is not None:
                await self._ensure_number_free(db, data.ledger, data.number)

            invoice_id = await self.sequences.next_id(
                db, Invoice, data.ledger, INVOICE_ID_SEQUENCES[data.ledger]
            )
            number = data.number or format_document_number(
                INVOICE_DOCUMENT_TYPES[data.ledger], invoice_id
            )

            lines = []
            for line_number, line in enumerate(data.lines, start=1):
                line_id = await self.sequences.next_id(
                    db, InvoiceLine, data.ledger, INVOICE_LINE_ID_SEQUENCES[data.ledger]
                )
                lines.append(InvoiceLine(
                    id=line_id,
                    ledger=data.ledger,
                    line_number=line_number,
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    tax_amount=to_money(line.tax_amount),
                ))

            invoice = Invoice(
                id=invoice_id,
                ledger=data.ledger,
                number=number,
                party_id=data.party_id,
                bill_site_id=data.bill_site_id,
                issue_date=data.issue_date,
                due_date=data.due_date,
                currency=currency,
                exchange_rate=exchange_rate,
                subtotal=subtotal,
                tax_amount=tax_amount,
                total_amount=total_amount,
                amount_paid=ZERO,
                amount_due=total_amount,
                approval_status=ApprovalStatus.PENDING,
                status=InvoiceStatus.DRAFT,
                notes=data.notes,
                lines=lines,
            )
            db.add(invoice)
            try:
                await db.flush()
            except IntegrityError:
                raise DuplicateNumberError(
                    f"Numero fattura {number} già presente nel registro {data.ledger.value}",
                    extra={"ledger": data.ledger.value, "number": number},
                ) from None

        logger.info(
            "Fattura %s creata (id=%d, registro=%s, totale=%s %s)",
            invoice.number,
            invoice.id,
            invoice.ledger.value,
            invoice.total_amount,
            invoice.currency,
        )
        return invoice

    async def _ensure_number_free(self, db: AsyncSession, ledger: Ledger, number: str) -> None:
        stmt = select(Invoice.id).where(Invoice.ledger == ledger, Invoice.number == number)
        result = await db.execute(stmt)
        if result.scalar_one_or_none() is not None:
            raise DuplicateNumberError(
                f"Numero fattura {number} già presente nel registro {ledger.value}",
                extra={"ledger": ledger.value, "number": number},
            )

    # ------------------------------------------------------------
    # Transizioni di stato
    # ------------------------------------------------------------
    @retry_on_contention
    async def approve(self, db: AsyncSession, ledger: Ledger, invoice_id: int) -> Invoice:
        """
        Approva la fattura: DRAFT → OPEN.

        Una fattura a totale zero non ha nulla da incassare e passa
        direttamente a PAID.

        Raises:
            NotFoundError: Fattura inesistente
            InvalidTransitionError: Fattura non in bozza
        """
        async with atomic(db):
            invoice = await self.applications.lock_invoice(db, ledger, invoice_id)
            invoice.status = next_invoice_status(invoice.status, "approve")
            invoice.approval_status = ApprovalStatus.APPROVED
            if invoice.amount_due == ZERO:
                invoice.status = next_invoice_status(invoice.status, "settle")

        logger.info("Fattura %s approvata (stato %s)", invoice.number, invoice.status.value)
        return invoice

    @retry_on_contention
    async def reject(self, db: AsyncSession, ledger: Ledger, invoice_id: int) -> Invoice:
        """
        Rifiuta la fattura: resta DRAFT con approval_status REJECTED.

        Può essere corretta e approvata in seguito.
        """
        async with atomic(db):
            invoice = await self.applications.lock_invoice(db, ledger, invoice_id)
            if invoice.status != InvoiceStatus.DRAFT:
                raise InvalidTransitionError(
                    f"Fattura {invoice.number}: rifiuto consentito solo in bozza "
                    f"(stato {invoice.status.value})",
                    extra={"from_status": invoice.status.value, "action": "reject"},
                )
            invoice.approval_status = ApprovalStatus.REJECTED

        logger.info("Fattura %s rifiutata", invoice.number)
        return invoice

    @retry_on_contention
    async def cancel(self, db: AsyncSession, ledger: Ledger, invoice_id: int) -> Invoice:
        """
        Annulla la fattura: DRAFT/OPEN → CANCELLED.

        Consentito solo se nessun importo è stato applicato.

        Raises:
            InvalidTransitionError: Stato non annullabile o pagamenti applicati
        """
        async with atomic(db):
            invoice = await self.applications.lock_invoice(db, ledger, invoice_id)
            new_status = next_invoice_status(invoice.status, "cancel")
            if invoice.amount_paid > ZERO:
                raise InvalidTransitionError(
                    f"Fattura {invoice.number}: impossibile annullare con "
                    f"{invoice.amount_paid} già applicati",
                    extra={"amount_paid": str(invoice.amount_paid), "action": "cancel"},
                )
            invoice.status = new_status

        logger.info("Fattura %s annullata", invoice.number)
        return invoice

    @retry_on_contention
    async def void(
        self,
        db: AsyncSession,
        ledger: Ledger,
        invoice_id: int,
        reverse_applications: bool = False,
    ) -> Invoice:
        """
        Invalida la fattura: OPEN/PAID → VOID.

        Con applicazioni ACTIVE serve reverse_applications=True: ognuna
        passa a VOID e i pagamenti recuperano la parte applicata, tutto
        nella stessa transazione.

        I pagamenti vengono bloccati prima della fattura, come in apply().
        Se dopo il lock della fattura compare un'applicazione di un pagamento
        non ancora bloccato, l'operazione riparte da capo (LockSetChangedError).

        Args:
            db: Sessione database
            ledger: Registro della fattura
            invoice_id: ID fattura
            reverse_applications: Annulla anche le applicazioni attive

        Raises:
            NotFoundError: Fattura inesistente
            InvalidTransitionError: Stato non invalidabile o applicazioni attive
        """
        async with atomic(db):
            pending = await self.applications.active_for_invoice(db, ledger, invoice_id)
            payments = {}
            for payment_id in sorted({a.payment_id for a in pending}):
                payments[payment_id] = await self.applications.lock_payment(db, ledger, payment_id)

            invoice = await self.applications.lock_invoice(db, ledger, invoice_id)
            new_status = next_invoice_status(invoice.status, "void")

            active = await self.applications.active_for_invoice(db, ledger, invoice_id, lock=True)
            if active and not reverse_applications:
                raise InvalidTransitionError(
                    f"Fattura {invoice.number}: {len(active)} applicazioni attive, "
                    f"stornarle prima di invalidare",
                    extra={"active_applications": [a.id for a in active], "action": "void"},
                )

            unlocked = sorted({a.payment_id for a in active} - set(payments))
            if unlocked:
                logger.warning(
                    "Fattura %s: nuove applicazioni dai pagamenti %s durante l'invalidazione",
                    invoice.number,
                    unlocked,
                )
                raise LockSetChangedError(
                    f"Fattura {invoice.number}: applicazioni modificate durante l'invalidazione",
                    extra={"invoice_id": invoice_id, "payment_ids": unlocked},
                )

            for application in active:
                self.applications.release_locked(
                    application, payments[application.payment_id], invoice, "void"
                )

            invoice.status = new_status

        logger.info(
            "Fattura %s invalidata (%d applicazioni annullate)",
            invoice.number,
            len(active),
        )
        return invoice

    # ------------------------------------------------------------
    # Modifica
    # ------------------------------------------------------------
    @retry_on_contention
    async def update(
        self,
        db: AsyncSession,
        ledger: Ledger,
        invoice_id: int,
        data: InvoiceUpdate,
    ) -> Invoice:
        """
        Aggiorna una fattura.

        In bozza sono modificabili date, importi, valuta, cambio, sede e note
        (il totale viene ricalcolato). Negli altri stati solo le note.
        I campi obbligatori non possono essere azzerati con null.

        Raises:
            NotFoundError: Fattura inesistente
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
            invoice = await self.applications.lock_invoice(db, ledger, invoice_id)

            if invoice.status not in INVOICE_EDITABLE_STATUSES:
                locked_fields = sorted(set(changes) - {"notes"})
                if locked_fields:
                    raise InvalidTransitionError(
                        f"Fattura {invoice.number} in stato {invoice.status.value}: "
                        f"modificabili solo le note",
                        extra={"fields": locked_fields},
                    )

            if invoice.lines and ({"subtotal", "tax_amount"} & set(changes)):
                raise ValidationError(
                    "Imponibile e imposta sono calcolati dalle righe e non modificabili"
                )

            if "currency" in changes:
                changes["currency"] = normalize_currency(changes["currency"])
            if "exchange_rate" in changes:
                changes["exchange_rate"] = to_rate(changes["exchange_rate"])
            for field in ("subtotal", "tax_amount"):
                if field in changes:
                    changes[field] = _non_negative(changes[field], field)

            for field, value in changes.items():
                setattr(invoice, field, value)

            _validate_dates(invoice.issue_date, invoice.due_date)
            if invoice.status == InvoiceStatus.DRAFT:
                invoice.total_amount = invoice.subtotal + invoice.tax_amount
                invoice.amount_due = invoice.total_amount - invoice.amount_paid

        logger.info("Fattura %s aggiornata: %s", invoice.number, ", ".join(sorted(changes)))
        return invoice

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------
    async def get_by_id(self, db: AsyncSession, ledger: Ledger, invoice_id: int) -> Invoice:
        """
        Recupera una fattura per registro e ID con le righe caricate.

        Raises:
            NotFoundError: Fattura inesistente
        """
        stmt = (
            select(Invoice)
            .where(Invoice.ledger == ledger, Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundError(f"Fattura {ledger.value} {invoice_id} non trovata")
        return invoice

    async def get_by_number(self, db: AsyncSession, ledger: Ledger, number: str) -> Invoice:
        """
        Recupera una fattura per numero nel registro indicato.

        Raises:
            NotFoundError: Fattura inesistente
        """
        stmt = (
            select(Invoice)
            .where(Invoice.ledger == ledger, Invoice.number == number)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundError(f"Fattura {number} non trovata nel registro {ledger.value}")
        return invoice

    async def get_all(
        self,
        db: AsyncSession,
        ledger: Optional[Ledger] = None,
        party_id: Optional[int] = None,
        status_filter: Optional[InvoiceStatus] = None,
        overdue_only: bool = False,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> InvoiceList:
        """
        Recupera la lista paginata delle fatture con filtri.

        Args:
            db: Sessione database
            ledger: Filtro per registro
            party_id: Filtro per cliente/fornitore
            status_filter: Filtro per stato
            overdue_only: Solo fatture aperte, scadute e con residuo
            from_date: Filtro data emissione inizio
            to_date: Filtro data emissione fine
            page: Numero pagina
            per_page: Elementi per pagina

        Returns:
            InvoiceList: Lista paginata delle fatture
        """
        conditions = []

        if ledger:
            conditions.append(Invoice.ledger == ledger)
        if party_id:
            conditions.append(Invoice.party_id == party_id)
        if status_filter:
            conditions.append(Invoice.status == status_filter)
        if from_date:
            conditions.append(Invoice.issue_date >= from_date)
        if to_date:
            conditions.append(Invoice.issue_date <= to_date)
        if overdue_only:
            conditions.append(Invoice.status == InvoiceStatus.OPEN)
            conditions.append(Invoice.due_date < date.today())
            conditions.append(Invoice.amount_due > 0)

        count_stmt = select(func.count(Invoice.id))
        stmt = select(Invoice)
        if conditions:
            count_stmt = count_stmt.where(and_(*conditions))
            stmt = stmt.where(and_(*conditions))

        count_result = await db.execute(count_stmt)
        total = count_result.scalar()

        stmt = stmt.order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        stmt = stmt.offset((page - 1) * per_page).limit(per_page)
        result = await db.execute(stmt)
        invoices = result.scalars().all()

        total_pages = (total + per_page - 1) // per_page if total > 0 else 1

        return InvoiceList(
            items=[InvoiceRead.model_validate(invoice) for invoice in invoices],
            total=total,
            page=page,
            per_page=per_page,
            total_pages=total_pages,
        )

    async def get_balance(
        self,
        db: AsyncSession,
        ledger: Ledger,
        invoice_id: int,
    ) -> InvoiceBalance:
        """Saldo della fattura: {total, paid, due}."""
        invoice = await self.get_by_id(db, ledger, invoice_id)
        return InvoiceBalance(
            ledger=invoice.ledger,
            invoice_id=invoice.id,
            status=invoice.status,
            total=invoice.total_amount,
            paid=invoice.amount_paid,
            due=invoice.amount_due,
        )

    async def get_open_for_party(
        self,
        db: AsyncSession,
        ledger: Ledger,
        party_id: int,
        currency: Optional[str] = None,
    ) -> List[Invoice]:
        """Fatture aperte del soggetto, in ordine di scadenza (candidate all'applicazione)."""
        stmt = (
            select(Invoice)
            .where(
                Invoice.ledger == ledger,
                Invoice.party_id == party_id,
                Invoice.status == InvoiceStatus.OPEN,
            )
            .order_by(Invoice.due_date, Invoice.issue_date, Invoice.id)
        )
        if currency:
            stmt = stmt.where(Invoice.currency == normalize_currency(currency))
        result = await db.execute(stmt)
        return list(result.scalars().all())
