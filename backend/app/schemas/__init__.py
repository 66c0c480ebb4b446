"""
Schemas Pydantic per il progetto Ledger Manager

Questo modulo contiene tutti gli schemi Pydantic utilizzati per la validazione
e serializzazione delle risposte API.
"""

# Import degli schemi per renderli disponibili tramite import diretto
# es: from app.schemas import InvoiceRead, PaymentRead, etc.

from app.schemas.sequence import (
    DocumentNumberRead,
    SequenceAllocation,
    SequenceCreate,
    SequenceRead,
    SequenceReset,
)
from app.schemas.invoice import (
    InvoiceBalance,
    InvoiceCreate,
    InvoiceLineCreate,
    InvoiceLineRead,
    InvoiceList,
    InvoiceRead,
    InvoiceUpdate,
)
from app.schemas.payment import (
    PaymentApplicationLine,
    PaymentBalance,
    PaymentCreate,
    PaymentList,
    PaymentRead,
    PaymentUpdate,
)
from app.schemas.application import (
    ApplicationCreate,
    ApplicationRead,
    AutoApplyRequest,
    AutoApplyResult,
    BalanceDiscrepancy,
)

__all__ = [
    # Sequence
    "DocumentNumberRead",
    "SequenceAllocation",
    "SequenceCreate",
    "SequenceRead",
    "SequenceReset",
    # Invoice
    "InvoiceBalance",
    "InvoiceCreate",
    "InvoiceLineCreate",
    "InvoiceLineRead",
    "InvoiceList",
    "InvoiceRead",
    "InvoiceUpdate",
    # Payment
    "PaymentApplicationLine",
    "PaymentBalance",
    "PaymentCreate",
    "PaymentList",
    "PaymentRead",
    "PaymentUpdate",
    # Application
    "ApplicationCreate",
    "ApplicationRead",
    "AutoApplyRequest",
    "AutoApplyResult",
    "BalanceDiscrepancy",
]
