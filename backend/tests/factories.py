"""
Factory dei dati di input per i test.
"""

from datetime import date, timedelta
from decimal import Decimal

from app.models.enums import Ledger
from app.schemas.invoice import InvoiceCreate
from app.schemas.payment import PaymentCreate

TODAY = date(2026, 1, 15)
PARTY_ID = 1001


def invoice_data(**overrides) -> InvoiceCreate:
    """Dati fattura AR di default (1000.00, scadenza a 30 giorni)."""
    values = {
        "ledger": Ledger.AR,
        "party_id": PARTY_ID,
        "issue_date": TODAY,
        "due_date": TODAY + timedelta(days=30),
        "currency": "USD",
        "subtotal": Decimal("1000.00"),
        "tax_amount": Decimal("0.00"),
    }
    values.update(overrides)
    return InvoiceCreate(**values)


def payment_data(**overrides) -> PaymentCreate:
    """Dati incasso AR di default (1000.00, confermato)."""
    values = {
        "ledger": Ledger.AR,
        "party_id": PARTY_ID,
        "payment_date": TODAY,
        "currency": "USD",
        "total_amount": Decimal("1000.00"),
        "confirm": True,
    }
    values.update(overrides)
    return PaymentCreate(**values)
