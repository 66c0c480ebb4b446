"""
Modelli SQLAlchemy per le Fatture
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Contiene:
- Invoice: Testata fattura (AR clienti / AP fornitori)
- InvoiceLine: Righe della fattura
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    Enum as SAEnum,
    ForeignKeyConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.enums import ApprovalStatus, InvoiceStatus, Ledger
from app.models.mixins import TimestampMixin


class Invoice(Base, TimestampMixin):
    """
    Modello per le fatture.

    La stessa struttura serve il registro clienti (AR) e fornitori (AP).
    L'ID è assegnato dalla sequenza {LEDGER}_INVOICE_ID_SEQ, non dal database:
    ogni registro ha la propria numerazione e la chiave primaria è (ledger, id).

    Attributes:
        id: ID assegnato dalla sequenza del registro
        ledger: Registro (AR/AP)
        number: Numero documento leggibile, univoco nel registro
        party_id: Cliente o fornitore (anagrafica esterna)
        bill_site_id: Sede di fatturazione (opzionale)
        issue_date: Data emissione
        due_date: Data scadenza
        currency: Valuta ISO 4217
        exchange_rate: Cambio verso la valuta funzionale
        subtotal: Imponibile
        tax_amount: Imposta
        total_amount: Totale (subtotal + tax_amount)
        amount_paid: Somma delle applicazioni ACTIVE
        amount_due: total_amount - amount_paid
        approval_status: PENDING / APPROVED / REJECTED
        status: DRAFT / OPEN / PAID / CANCELLED / VOID
        notes: Note (modificabili anche su documenti chiusi)

    Relationships:
        lines: Righe della fattura
    """

    __tablename__ = "invoices"

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
        doc="Registro: AR (clienti) o AP (fornitori), parte della chiave",
    )

    number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        doc="Numero fattura leggibile (es. INV00000001)",
    )

    party_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="ID cliente/fornitore (validato a monte)",
    )

    bill_site_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        doc="ID sede di fatturazione",
    )

    issue_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data emissione fattura",
    )

    due_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Data scadenza pagamento",
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
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        doc="Imponibile",
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Importo imposta",
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        doc="Totale fattura (subtotal + tax_amount)",
    )

    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Somma delle applicazioni ACTIVE (scritto solo dal motore applicazioni)",
    )

    amount_due: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        doc="Residuo da incassare/pagare (total_amount - amount_paid)",
    )

    # ------------------------------------------------------------
    # Colonne Stato
    # ------------------------------------------------------------
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        SAEnum(ApprovalStatus, name="approval_status", native_enum=False, length=20),
        nullable=False,
        default=ApprovalStatus.PENDING,
        doc="Esito approvazione",
    )

    status: Mapped[InvoiceStatus] = mapped_column(
        SAEnum(InvoiceStatus, name="invoice_status", native_enum=False, length=20),
        nullable=False,
        default=InvoiceStatus.DRAFT,
        doc="Stato ciclo di vita",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Note (unico campo modificabile su fatture chiuse)",
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    lines: Mapped[List["InvoiceLine"]] = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLine.line_number",
        doc="Righe della fattura",
    )

    # ------------------------------------------------------------
    # Properties Calcolate
    # ------------------------------------------------------------
    @property
    def is_overdue(self) -> bool:
        """True se la fattura è aperta, scaduta e con residuo."""
        return (
            self.status == InvoiceStatus.OPEN
            and self.amount_due > 0
            and date.today() > self.due_date
        )

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        UniqueConstraint("ledger", "number", name="uq_invoices_ledger_number"),
        Index("ix_invoices_party", "ledger", "party_id"),
        Index("ix_invoices_status_due_date", "ledger", "status", "due_date"),
        CheckConstraint("subtotal >= 0", name="ck_invoices_subtotal_positive"),
        CheckConstraint("tax_amount >= 0", name="ck_invoices_tax_amount_positive"),
        CheckConstraint("total_amount >= 0", name="ck_invoices_total_positive"),
        CheckConstraint("amount_paid >= 0", name="ck_invoices_amount_paid_positive"),
        CheckConstraint("amount_paid <= total_amount", name="ck_invoices_not_overpaid"),
        CheckConstraint("amount_due >= 0", name="ck_invoices_amount_due_positive"),
        CheckConstraint("exchange_rate > 0", name="ck_invoices_exchange_rate_positive"),
        CheckConstraint("due_date >= issue_date", name="ck_invoices_due_after_issue"),
    )

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, ledger={self.ledger}, number={self.number}, "
            f"status={self.status}, due={self.amount_due})>"
        )


class InvoiceLine(Base, TimestampMixin):
    """
    Modello per le righe della fattura.

    Se presenti alla creazione, imponibile e imposta della testata
    vengono calcolati come somma delle righe.

    Attributes:
        id: ID assegnato dalla sequenza {LEDGER}_INVOICE_LINE_ID_SEQ
        ledger: Registro della fattura padre
        invoice_id: Fattura padre
        line_number: Progressivo riga nella fattura
        description: Descrizione
        quantity: Quantità
        unit_price: Prezzo unitario
        tax_amount: Imposta della riga
    """

    __tablename__ = "invoice_lines"

    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
        doc="ID assegnato dalla sequenza righe",
    )

    ledger: Mapped[Ledger] = mapped_column(
        SAEnum(Ledger, name="ledger", native_enum=False, length=2),
        primary_key=True,
        doc="Registro della fattura padre",
    )

    invoice_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="Fattura padre",
    )

    line_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Numero progressivo riga",
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        doc="Descrizione della riga",
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(15, 4),
        nullable=False,
        default=Decimal("1"),
        doc="Quantità",
    )

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(15, 4),
        nullable=False,
        doc="Prezzo unitario",
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Imposta della riga",
    )

    invoice: Mapped["Invoice"] = relationship(
        "Invoice",
        back_populates="lines",
        doc="Fattura padre",
    )

    @property
    def line_amount(self) -> Decimal:
        """Imponibile riga (quantity * unit_price), arrotondato a 2 decimali."""
        from app.core.money import to_money
        return to_money(self.quantity * self.unit_price)

    __table_args__ = (
        ForeignKeyConstraint(
            ["ledger", "invoice_id"],
            ["invoices.ledger", "invoices.id"],
            ondelete="CASCADE",
            name="fk_invoice_lines_invoice",
        ),
        UniqueConstraint("ledger", "invoice_id", "line_number", name="uq_invoice_lines_number"),
        CheckConstraint("quantity > 0", name="ck_invoice_lines_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_lines_unit_price_positive"),
        CheckConstraint("tax_amount >= 0", name="ck_invoice_lines_tax_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<InvoiceLine(id={self.id}, ledger={self.ledger}, "
            f"invoice={self.invoice_id}, n={self.line_number})>"
        )
