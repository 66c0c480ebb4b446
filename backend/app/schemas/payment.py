"""
Schemas Pydantic per Pagamenti e Incassi
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Contiene:
- Schemas per Payment (creazione, modifica, lettura, lista)
- Applicazioni contestuali alla creazione
- Schema saldo pagamento
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import Ledger, PaymentMethod, PaymentStatus


class PaymentApplicationLine(BaseModel):
    """Applicazione da registrare insieme al pagamento."""

    invoice_id: int = Field(..., description="ID fattura")
    amount: Decimal = Field(..., description="Importo da applicare")


class PaymentCreate(BaseModel):
    """
    Schema per la registrazione di un incasso (AR) o pagamento (AP).

    Con confirm=True il documento nasce CONFIRMED e le eventuali
    applicazioni vengono registrate nella stessa transazione.
    """

    ledger: Ledger = Field(..., description="Registro: AR (incasso) o AP (pagamento)")
    number: Optional[str] = Field(
        None,
        min_length=1,
        max_length=30,
        description="Numero documento (generato se omesso)",
    )
    party_id: int = Field(..., description="ID cliente/fornitore")
    payment_date: date = Field(..., description="Data pagamento")
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    exchange_rate: Decimal = Field(default=Decimal("1"))
    total_amount: Decimal = Field(..., description="Importo")
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    confirm: bool = Field(False, description="Conferma immediata")
    applications: list[PaymentApplicationLine] = Field(
        default_factory=list,
        description="Applicazioni contestuali (richiede confirm=True)",
    )


class PaymentUpdate(BaseModel):
    """
    Schema per l'aggiornamento di un pagamento.

    Su pagamenti non in bozza sono modificabili solo note e riferimento.
    """

    payment_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    exchange_rate: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PaymentRead(BaseModel):
    """Schema per la lettura di un pagamento."""

    id: int
    ledger: Ledger
    number: str
    party_id: int
    payment_date: date
    currency: str
    exchange_rate: Decimal
    total_amount: Decimal
    amount_applied: Decimal
    unapplied_amount: Decimal
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    status: PaymentStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentList(BaseModel):
    """Schema per la lista paginata dei pagamenti."""

    items: list[PaymentRead] = Field(default_factory=list)
    total: int
    page: int
    per_page: int
    total_pages: int


class PaymentBalance(BaseModel):
    """Saldo del pagamento: totale, applicato, non applicato."""

    ledger: Ledger
    payment_id: int
    status: PaymentStatus
    total: Decimal
    applied: Decimal
    unapplied: Decimal
