"""
Schemas Pydantic per le Fatture
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Contiene:
- Schemas per InvoiceLine
- Schemas per Invoice (creazione, modifica, lettura, lista)
- Schema saldo fattura

Gli schemi verificano solo la forma dei dati: le regole sugli importi
(non negativi, scadenza dopo emissione, cambio positivo) sono applicate
dal service layer.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from app.models.enums import ApprovalStatus, InvoiceStatus, Ledger


# -------------------------------------------------------------------
# Schemas per InvoiceLine
# -------------------------------------------------------------------

class InvoiceLineCreate(BaseModel):
    """Schema per la creazione di una riga fattura."""

    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Descrizione della riga",
    )
    quantity: Decimal = Field(
        default=Decimal("1"),
        description="Quantità",
    )
    unit_price: Decimal = Field(
        ...,
        description="Prezzo unitario",
    )
    tax_amount: Decimal = Field(
        default=Decimal("0"),
        description="Imposta della riga",
    )


class InvoiceLineRead(BaseModel):
    """Schema per la lettura di una riga fattura."""

    id: int = Field(..., description="ID della riga")
    invoice_id: int = Field(..., description="ID della fattura")
    line_number: int = Field(..., description="Numero progressivo riga")
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_amount: Decimal

    @computed_field
    @property
    def line_amount(self) -> Decimal:
        """Imponibile riga (quantity * unit_price)."""
        return (self.quantity * self.unit_price).quantize(Decimal("0.01"))

    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------------------------
# Schemas per Invoice
# -------------------------------------------------------------------

class InvoiceCreate(BaseModel):
    """
    Schema per la creazione di una fattura.

    Se vengono fornite righe, imponibile e imposta sono calcolati da esse
    e i campi subtotal/tax_amount vengono ignorati.
    Se number è omesso viene generato dalla sequenza del registro.
    """

    ledger: Ledger = Field(..., description="Registro: AR (clienti) o AP (fornitori)")
    number: Optional[str] = Field(
        None,
        min_length=1,
        max_length=30,
        description="Numero fattura (generato se omesso)",
    )
    party_id: int = Field(..., description="ID cliente/fornitore")
    bill_site_id: Optional[int] = Field(None, description="ID sede di fatturazione")
    issue_date: date = Field(..., description="Data emissione")
    due_date: date = Field(..., description="Data scadenza")
    currency: Optional[str] = Field(
        None,
        min_length=3,
        max_length=3,
        description="Valuta ISO 4217 (default da configurazione)",
    )
    exchange_rate: Decimal = Field(default=Decimal("1"), description="Cambio")
    subtotal: Optional[Decimal] = Field(None, description="Imponibile (se senza righe)")
    tax_amount: Decimal = Field(default=Decimal("0"), description="Imposta (se senza righe)")
    lines: list[InvoiceLineCreate] = Field(
        default_factory=list,
        description="Righe della fattura",
    )
    notes: Optional[str] = Field(None, description="Note")


class InvoiceUpdate(BaseModel):
    """
    Schema per l'aggiornamento di una fattura.

    Tutti i campi sono opzionali. Su fatture non in bozza
    è ammessa solo la modifica delle note.
    """

    bill_site_id: Optional[int] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    exchange_rate: Optional[Decimal] = None
    subtotal: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    notes: Optional[str] = None


class InvoiceRead(BaseModel):
    """Schema per la lettura di una fattura."""

    id: int
    ledger: Ledger
    number: str
    party_id: int
    bill_site_id: Optional[int] = None
    issue_date: date
    due_date: date
    currency: str
    exchange_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    approval_status: ApprovalStatus
    status: InvoiceStatus
    notes: Optional[str] = None
    is_overdue: bool = Field(..., description="Aperta, scaduta e con residuo")
    lines: list[InvoiceLineRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceList(BaseModel):
    """Schema per la lista paginata delle fatture."""

    items: list[InvoiceRead] = Field(
        default_factory=list,
        description="Lista delle fatture",
    )
    total: int = Field(..., description="Numero totale di fatture")
    page: int = Field(..., description="Pagina corrente")
    per_page: int = Field(..., description="Elementi per pagina")
    total_pages: int = Field(..., description="Numero totale di pagine")


class InvoiceBalance(BaseModel):
    """Saldo della fattura: totale, pagato, residuo."""

    ledger: Ledger
    invoice_id: int
    status: InvoiceStatus
    total: Decimal
    paid: Decimal
    due: Decimal
