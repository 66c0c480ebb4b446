"""
Modelli Database SQLAlchemy
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Import centralizzato di tutti i modelli per Alembic e usage generico.

Modelli:
- Sequence: Contatori nominati per gli ID documento
- Invoice: Fatture (AR clienti / AP fornitori)
- InvoiceLine: Righe fattura
- Payment: Incassi (AR) e pagamenti (AP)
- PaymentApplication: Applicazioni pagamento → fattura
"""

# SQLAlchemy 2.0 Base declarativa
# Importato qui per essere disponibile per tutti i modelli
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


# Import modelli implementati
from app.models.enums import (
    ApplicationStatus,
    ApprovalStatus,
    InvoiceStatus,
    Ledger,
    PaymentMethod,
    PaymentStatus,
)
from app.models.sequence import Sequence
from app.models.invoice import Invoice, InvoiceLine
from app.models.payment import Payment, PaymentApplication

# Esportazione di tutti i modelli per Alembic
__all__ = [
    "Base",
    "Sequence",
    "Invoice",
    "InvoiceLine",
    "Payment",
    "PaymentApplication",
    "Ledger",
    "InvoiceStatus",
    "ApprovalStatus",
    "PaymentStatus",
    "ApplicationStatus",
    "PaymentMethod",
]
