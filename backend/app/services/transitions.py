"""
Macchine a stati dei documenti
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Ogni tabella associa (stato corrente, azione) → stato successivo.
Le coppie non elencate sono transizioni non ammesse.
"""

from typing import Dict, Tuple

from app.core.exceptions import InvalidTransitionError
from app.models.enums import ApplicationStatus, InvoiceStatus, PaymentStatus

# ------------------------------------------------------------
# Fatture
# ------------------------------------------------------------
INVOICE_TRANSITIONS: Dict[Tuple[InvoiceStatus, str], InvoiceStatus] = {
    (InvoiceStatus.DRAFT, "approve"): InvoiceStatus.OPEN,
    (InvoiceStatus.DRAFT, "cancel"): InvoiceStatus.CANCELLED,
    (InvoiceStatus.OPEN, "cancel"): InvoiceStatus.CANCELLED,
    (InvoiceStatus.OPEN, "settle"): InvoiceStatus.PAID,
    (InvoiceStatus.PAID, "reopen"): InvoiceStatus.OPEN,
    (InvoiceStatus.OPEN, "void"): InvoiceStatus.VOID,
    (InvoiceStatus.PAID, "void"): InvoiceStatus.VOID,
}

# ------------------------------------------------------------
# Pagamenti / Incassi
# ------------------------------------------------------------
PAYMENT_TRANSITIONS: Dict[Tuple[PaymentStatus, str], PaymentStatus] = {
    (PaymentStatus.DRAFT, "confirm"): PaymentStatus.CONFIRMED,
    (PaymentStatus.CONFIRMED, "clear"): PaymentStatus.CLEARED,
    (PaymentStatus.DRAFT, "cancel"): PaymentStatus.CANCELLED,
    (PaymentStatus.CONFIRMED, "cancel"): PaymentStatus.CANCELLED,
    (PaymentStatus.CONFIRMED, "reverse"): PaymentStatus.REVERSED,
    (PaymentStatus.CLEARED, "reverse"): PaymentStatus.REVERSED,
}

# ------------------------------------------------------------
# Applicazioni
# ------------------------------------------------------------
APPLICATION_TRANSITIONS: Dict[Tuple[ApplicationStatus, str], ApplicationStatus] = {
    (ApplicationStatus.ACTIVE, "reverse"): ApplicationStatus.REVERSED,
    (ApplicationStatus.ACTIVE, "void"): ApplicationStatus.VOID,
}

# Stati che possono ricevere/fornire applicazioni
APPLICABLE_PAYMENT_STATUSES = frozenset({PaymentStatus.CONFIRMED, PaymentStatus.CLEARED})

# Stati in cui tutti i campi sono modificabili (altrimenti solo note)
INVOICE_EDITABLE_STATUSES = frozenset({InvoiceStatus.DRAFT})
PAYMENT_EDITABLE_STATUSES = frozenset({PaymentStatus.DRAFT})


def _next_state(table: dict, entity: str, current, action: str):
    try:
        return table[(current, action)]
    except KeyError:
        raise InvalidTransitionError(
            f"{entity}: azione '{action}' non consentita dallo stato {current.value}",
            extra={"entity": entity, "from_status": current.value, "action": action},
        ) from None


def next_invoice_status(current: InvoiceStatus, action: str) -> InvoiceStatus:
    """
    Stato successivo della fattura per l'azione richiesta.

    Raises:
        InvalidTransitionError: Se la transizione non è prevista
    """
    return _next_state(INVOICE_TRANSITIONS, "Fattura", current, action)


def next_payment_status(current: PaymentStatus, action: str) -> PaymentStatus:
    """
    Stato successivo del pagamento per l'azione richiesta.

    Raises:
        InvalidTransitionError: Se la transizione non è prevista
    """
    return _next_state(PAYMENT_TRANSITIONS, "Pagamento", current, action)


def next_application_status(current: ApplicationStatus, action: str) -> ApplicationStatus:
    """Stato successivo dell'applicazione per l'azione richiesta."""
    return _next_state(APPLICATION_TRANSITIONS, "Applicazione", current, action)
