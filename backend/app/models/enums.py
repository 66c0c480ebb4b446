"""
Enum di dominio per registri e documenti
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Gli stati sono varianti chiuse: i valori ammessi sono solo quelli elencati
e i passaggi consentiti sono definiti in app.services.transitions.
"""

from enum import Enum


class Ledger(str, Enum):
    """Registro di appartenenza del documento."""
    AR = "AR"  # Clienti: fatture attive e incassi
    AP = "AP"  # Fornitori: fatture passive e pagamenti


class InvoiceStatus(str, Enum):
    """Stato del ciclo di vita della fattura."""
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    VOID = "VOID"


class ApprovalStatus(str, Enum):
    """Esito dell'approvazione della fattura."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PaymentStatus(str, Enum):
    """
    Stato del pagamento/incasso.

    Per il registro AP: APPROVED = CONFIRMED, PROCESSED = CLEARED, VOID = REVERSED.
    """
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    CLEARED = "CLEARED"
    CANCELLED = "CANCELLED"
    REVERSED = "REVERSED"


class ApplicationStatus(str, Enum):
    """Stato del legame pagamento → fattura."""
    ACTIVE = "ACTIVE"
    REVERSED = "REVERSED"
    VOID = "VOID"


class PaymentMethod(str, Enum):
    """Metodi di pagamento supportati."""
    CASH = "CASH"
    CHECK = "CHECK"
    BANK_TRANSFER = "BANK_TRANSFER"
    CARD = "CARD"
    OTHER = "OTHER"
