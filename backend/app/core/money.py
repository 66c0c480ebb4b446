"""
Utility per importi monetari
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Tutti gli importi sono Decimal a 2 decimali, arrotondati half-up.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from app.core.exceptions import BusinessValidationError

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")
RATE_PLACES = Decimal("0.000001")


def to_money(value, field_name: str = "importo") -> Decimal:
    """
    Converte un valore in Decimal arrotondato a 2 decimali.

    Raises:
        BusinessValidationError: valore non numerico o non finito
    """
    if value is None:
        raise BusinessValidationError(f"Il campo {field_name} è obbligatorio")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise BusinessValidationError(f"Il campo {field_name} non è un numero valido")
    if not amount.is_finite():
        raise BusinessValidationError(f"Il campo {field_name} non è un numero valido")
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_rate(value, field_name: str = "exchange_rate") -> Decimal:
    """
    Valida un tasso di cambio (positivo, 6 decimali).

    Raises:
        BusinessValidationError: valore non numerico o non positivo
    """
    if value is None:
        raise BusinessValidationError(f"Il campo {field_name} è obbligatorio")
    try:
        rate = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise BusinessValidationError(f"Il campo {field_name} non è un numero valido")
    if not rate.is_finite() or rate <= 0:
        raise BusinessValidationError(f"Il campo {field_name} deve essere maggiore di zero")
    return rate.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def normalize_currency(value: str) -> str:
    """
    Normalizza un codice valuta ISO 4217 (3 lettere, maiuscolo).

    Raises:
        BusinessValidationError: codice non valido
    """
    code = (value or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise BusinessValidationError(f"Codice valuta non valido: {value!r}")
    return code
