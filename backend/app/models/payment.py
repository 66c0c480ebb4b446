"""
Modelli SQLAlchemy per Pagamenti e Applicazioni
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Contiene:
- Payment: Incasso cliente (AR) o pagamento fornitore (AP)
- PaymentApplication: Quota di un pagamento applicata a una fattura
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKeyConstraint,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.enums import ApplicationStatus, Ledger, PaymentMethod, PaymentStatus
from app.models.mixins import TimestampMixin


class Payment(Base, TimestampMixin):
    """
    Modello per incassi (AR) e pagamenti (AP).

    amount_applied e unapplied_amount sono scritti solo dal motore
    applicazioni, nella stessa transazione che crea o storna l'applicazione.
    Chiave primaria (ledger, id): ogni registro ha la propria numerazione.

    Attributes:
        id: ID assegnato da AR_RECEIPT_ID_SEQ / AP_PAYMENT_ID_SEQ
        ledger: Registro (AR/AP)
        number: Numero documento leggibile, univoco nel registro
        party_id: Cliente o fornitore
        payment_date: Data del pagamento
        currency: Valuta ISO 4217
        exchange_rate: Cambio verso la valuta funzionale
        total_amount: Importo del pagamento
        amount_applied: Somma delle applicazioni ACTIVE
        unapplied_amount: total_amount - amount_applied
        payment_method: Metodo di pagamento
        reference: Riferimento esterno (CRO, numero assegno, ...)
        status: DRAFT / CONFIRMED / CLEARED / CANCELLED / REVERSED
    """

    __tablename__ = "payments"

    # ------------------------------------------------------------
    # Colonne Identificazione
    # ------------------------------------------------------------
    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
        doc="ID assegnato dalla sequenza del registro",
    )

    ledger: Mapped[Ledger] = mapped_column(
        SAEnum(Ledger, name="ledger", native_enum=False, length=2),
        primary_key=True,
        doc="Registro: AR (incassi) o AP (pagamenti), parte della chiave",
    )

    number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        doc="Numero documento (es. RCPT00000001, PAY00000001)",
    )

    party_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="ID cliente/fornitore",
    )

    payment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data del pagamento",
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        doc="Valuta (ISO 4217)",
    )

    exchange_rate: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False,
        default=Decimal("1"),
        doc="Cambio verso la valuta funzionale",
    )

    # ------------------------------------------------------------
    # Colonne Importi
    # ------------------------------------------------------------
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        doc="Importo totale del pagamento",
    )

    amount_applied: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Somma delle applicazioni ACTIVE",
    )

    unapplied_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        doc="Parte non ancora applicata",
    )

    # ------------------------------------------------------------
    # Colonne Dettaglio
    # ------------------------------------------------------------
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SAEnum(PaymentMethod, name="payment_method", native_enum=False, length=20),
        nullable=True,
        doc="Metodo di pagamento",
    )

    reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Riferimento esterno",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Note",
    )

    status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, name="payment_status", native_enum=False, length=20),
        nullable=False,
        default=PaymentStatus.DRAFT,
        doc="Stato ciclo di vita",
    )

    __table_args__ = (
        UniqueConstraint("ledger", "number", name="uq_payments_ledger_number"),
        Index("ix_payments_party", "ledger", "party_id"),
        Index("ix_payments_status", "ledger", "status"),
        CheckConstraint("total_amount > 0", name="ck_payments_total_positive"),
        CheckConstraint("amount_applied >= 0", name="ck_payments_applied_positive"),
        CheckConstraint("amount_applied <= total_amount", name="ck_payments_not_overapplied"),
        CheckConstraint("unapplied_amount >= 0", name="ck_payments_unapplied_positive"),
        CheckConstraint("exchange_rate > 0", name="ck_payments_exchange_rate_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, ledger={self.ledger}, number={self.number}, "
            f"status={self.status}, unapplied={self.unapplied_amount})>"
        )


class PaymentApplication(Base, TimestampMixin):
    """
    Applicazione di una quota di pagamento a una fattura.

    Le righe non vengono mai eliminate: lo storno imposta status REVERSED
    (o VOID quando la fattura viene annullata) e reversed_at.
    Pagamento e fattura appartengono allo stesso registro dell'applicazione.
    Al massimo una riga ACTIVE per coppia (payment_id, invoice_id).
    """

    __tablename__ = "payment_applications"

    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
        doc="ID assegnato da AR_RECEIPT_APPLICATION_ID_SEQ / AP_PAYMENT_APPLICATION_ID_SEQ",
    )

    ledger: Mapped[Ledger] = mapped_column(
        SAEnum(Ledger, name="ledger", native_enum=False, length=2),
        primary_key=True,
        doc="Registro di pagamento e fattura, parte della chiave",
    )

    payment_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="Pagamento applicato",
    )

    invoice_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="Fattura che riceve l'applicazione",
    )

    applied_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        doc="Importo applicato",
    )

    applied_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data contabile dell'applicazione",
    )

    status: Mapped[ApplicationStatus] = mapped_column(
        SAEnum(ApplicationStatus, name="application_status", native_enum=False, length=20),
        nullable=False,
        default=ApplicationStatus.ACTIVE,
        doc="ACTIVE / REVERSED / VOID",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Note",
    )

    reversed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Data/ora dello storno",
    )

    __table_args__ = (
        ForeignKeyConstraint(
            ["ledger", "payment_id"],
            ["payments.ledger", "payments.id"],
            ondelete="RESTRICT",
            name="fk_payment_applications_payment",
        ),
        ForeignKeyConstraint(
            ["ledger", "invoice_id"],
            ["invoices.ledger", "invoices.id"],
            ondelete="RESTRICT",
            name="fk_payment_applications_invoice",
        ),
        Index("ix_payment_applications_payment", "ledger", "payment_id"),
        Index("ix_payment_applications_invoice", "ledger", "invoice_id"),
        Index(
            "uq_payment_applications_active_pair",
            "ledger",
            "payment_id",
            "invoice_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        CheckConstraint("applied_amount > 0", name="ck_payment_applications_amount_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentApplication(id={self.id}, ledger={self.ledger}, payment={self.payment_id}, "
            f"invoice={self.invoice_id}, amount={self.applied_amount}, status={self.status})>"
        )
