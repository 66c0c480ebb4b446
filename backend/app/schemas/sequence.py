"""
Schemas Pydantic per le Sequenze
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SequenceCreate(BaseModel):
    """Definizione di una nuova sequenza."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=50,
        pattern=r"^[A-Z0-9_]+$",
        description="Nome sequenza (maiuscolo, es. AR_INVOICE_ID_SEQ)",
    )
    min_value: int = Field(1, description="Primo valore assegnato")
    increment_by: int = Field(1, description="Passo di incremento")
    max_value: Optional[int] = Field(None, description="Valore massimo (default da configurazione)")
    cycle: bool = Field(False, description="Riparte da min_value superato max_value")


class SequenceRead(BaseModel):
    """Stato corrente di una sequenza."""

    name: str
    current_value: int
    increment_by: int
    min_value: int
    max_value: int
    cycle: bool
    next_value: int
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SequenceAllocation(BaseModel):
    """Valore allocato da una sequenza."""

    name: str
    value: int


class SequenceReset(BaseModel):
    """Nuovo valore corrente (la prossima allocazione restituirà value + increment_by)."""

    value: int


class DocumentNumberRead(BaseModel):
    """Numero documento formattato."""

    document_type: str
    value: int
    number: str
