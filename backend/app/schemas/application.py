"""
Schemas Pydantic per le Applicazioni pagamento → fattura
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import ApplicationStatus, Ledger


class ApplicationCreate(BaseModel):
    """Richiesta di applicazione di un importo a una fattura dello stesso registro."""

    ledger: Ledger = Field(..., description="Registro di pagamento e fattura")
    payment_id: int = Field(..., description="ID pagamento/incasso")
    invoice_id: int = Field(..., description="ID fattura")
    amount: Decimal = Field(..., description="Importo da applicare")
    applied_date: Optional[date] = Field(None, description="Data applicazione (default oggi)")
    notes: Optional[str] = None


class ApplicationRead(BaseModel):
    """Schema per la lettura di un'applicazione."""

    id: int
    ledger: Ledger
    payment_id: int
    invoice_id: int
    applied_amount: Decimal
    applied_date: date
    status: ApplicationStatus
    notes: Optional[str] = None
    reversed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AutoApplyRequest(BaseModel):
    """
    Applicazione automatica di un pagamento alle fatture aperte
    del soggetto, dalla scadenza più vecchia.
    """

    ledger: Ledger
    payment_id: int
    invoice_ids: Optional[list[int]] = Field(
        None,
        description="Limita le fatture candidate (default: tutte le aperte)",
    )
    applied_date: Optional[date] = None


class AutoApplyResult(BaseModel):
    """Esito dell'applicazione automatica."""

    ledger: Ledger
    payment_id: int
    applications: list[ApplicationRead] = Field(default_factory=list)
    total_applied: Decimal
    unapplied_amount: Decimal


class BalanceDiscrepancy(BaseModel):
    """Documento il cui saldo registrato non coincide con la somma delle applicazioni ACTIVE."""

    entity: str = Field(..., description="invoice | payment")
    id: int
    ledger: Ledger
    number: str
    recorded: Decimal = Field(..., description="amount_paid / amount_applied registrato")
    computed: Decimal = Field(..., description="Somma delle applicazioni ACTIVE")
