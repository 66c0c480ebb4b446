"""
Eccezioni Custom per l'applicazione.
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Definisce eccezioni specifiche del dominio per una gestione
centralizzata degli errori.

NOTA: BusinessValidationError è volutamente distinta da pydantic.ValidationError.
- pydantic.ValidationError: errori di formato/tipo nei dati di input (gestiti da FastAPI → 422)
- BusinessValidationError: violazioni delle regole di business logic (gestiti dal nostro handler → 422)

Gerarchia:
    AppException
    ├── NotFoundError (404)
    ├── DuplicateError (409)
    │   ├── DuplicateNumberError
    │   └── DuplicateApplicationError
    ├── BusinessValidationError (422)
    │   └── OverApplicationError
    ├── ConflictError (409)
    │   ├── InvalidTransitionError
    │   ├── InvoiceNotOpenError
    │   ├── PaymentNotApplicableError
    │   └── ApplicationNotActiveError
    ├── SequenceError (500, errore di configurazione)
    │   ├── SequenceNotFoundError
    │   └── SequenceExhaustedError
    └── StoreContentionError (503, contesa non risolta dopo i retry)
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "DuplicateError",
    "DuplicateNumberError",
    "DuplicateApplicationError",
    "BusinessValidationError",
    "ValidationError",       # alias di BusinessValidationError
    "OverApplicationError",
    "ConflictError",
    "InvalidTransitionError",
    "InvoiceNotOpenError",
    "PaymentNotApplicableError",
    "ApplicationNotActiveError",
    "SequenceError",
    "SequenceNotFoundError",
    "SequenceExhaustedError",
    "StoreContentionError",
]


class AppException(Exception):
    """
    Base exception per l'applicazione.

    Tutte le eccezioni custom ereditano da questa classe base.

    Attributes:
        status_code: HTTP status code da restituire al client
        error_code: Identificativo univoco dell'errore per il frontend
        detail: Messaggio di errore leggibile per l'utente
        extra: Dizionario con dati aggiuntivi per il frontend
    """

    # Default values - overridden in subclasses
    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Inizializza l'eccezione.

        Args:
            detail: Messaggio di errore dettagliato
            error_code: Identificativo univoco (default: quello di classe)
            extra: Dati aggiuntivi da passare al frontend (default: None)
        """
        self.detail = detail
        # Use provided error_code or fall back to class-level default
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class NotFoundError(AppException):
    """
    Eccezione sollevata quando una risorsa non viene trovata.

    Utilizzata quando un'entità cercata non esiste nel database.
    """

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Risorsa non trovata",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class DuplicateError(AppException):
    """
    Eccezione sollevata quando si tenta di creare una risorsa duplicata.

    Utilizzata per violazioni di vincoli unique.
    """

    status_code: int = 409
    error_code: str = "DUPLICATE_RESOURCE"

    def __init__(
        self,
        detail: str = "Risorsa già esistente",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class DuplicateNumberError(DuplicateError):
    """Numero documento fornito dal chiamante già in uso nello stesso registro."""

    error_code: str = "DUPLICATE_NUMBER"


class DuplicateApplicationError(DuplicateError):
    """
    Esiste già un'applicazione ACTIVE per la stessa coppia (pagamento, fattura).

    Il chiamante deve stornare l'applicazione esistente e crearne una nuova,
    altrimenti le somme derivate conterebbero due volte lo stesso legame.
    """

    error_code: str = "DUPLICATE_APPLICATION"


class BusinessValidationError(ValueError, AppException):
    """
    Eccezione sollevata per violazioni delle regole di business logic.

    Eredita da ValueError per essere catturata dai validatori Pydantic.

    NON confondere con pydantic.ValidationError che gestisce
    la validazione dello schema/formato dei dati in input.

    Esempi di utilizzo:
        - "La data di scadenza non può precedere la data fattura"
        - "L'importo applicato deve essere maggiore di zero"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "Validazione dati fallita",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Chiama AppException.__init__ direttamente per evitare ValueError
        AppException.__init__(self, detail, error_code, extra)


# Alias per compatibilità
ValidationError = BusinessValidationError


class OverApplicationError(BusinessValidationError):
    """
    L'importo da applicare supera il residuo della fattura
    o la parte non applicata del pagamento.
    """

    error_code: str = "OVER_APPLICATION"


class ConflictError(AppException):
    """
    Eccezione sollevata per conflitti di stato.

    Utilizzata quando un'operazione non può essere eseguita
    a causa dello stato corrente della risorsa.
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"

    def __init__(
        self,
        detail: str = "Conflitto di stato",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class InvalidTransitionError(ConflictError):
    """Transizione non prevista dalla macchina a stati del documento."""

    error_code: str = "INVALID_TRANSITION"


class InvoiceNotOpenError(ConflictError):
    """La fattura non è in stato OPEN e non può ricevere applicazioni."""

    error_code: str = "INVOICE_NOT_OPEN"


class PaymentNotApplicableError(ConflictError):
    """
    Il pagamento non può essere applicato alla fattura.

    Stato non confermato/annullato, oppure registro, soggetto o valuta
    diversi da quelli della fattura.
    """

    error_code: str = "PAYMENT_NOT_APPLICABLE"


class ApplicationNotActiveError(ConflictError):
    """L'applicazione è già stata stornata o annullata."""

    error_code: str = "APPLICATION_NOT_ACTIVE"


class SequenceError(AppException):
    """
    Errore di configurazione delle sequenze.

    Non va ritentato: richiede l'intervento di un operatore.
    """

    status_code: int = 500
    error_code: str = "SEQUENCE_ERROR"


class SequenceNotFoundError(SequenceError):
    """Sequenza non definita."""

    error_code: str = "SEQUENCE_NOT_FOUND"


class SequenceExhaustedError(SequenceError):
    """Sequenza non ciclica arrivata al valore massimo."""

    error_code: str = "SEQUENCE_EXHAUSTED"


class SequenceOutOfSyncError(SequenceError):
    """
    Il valore allocato dalla sequenza è già usato come ID nel registro.

    Succede dopo un reset all'indietro o un caricamento dati esterno:
    la sequenza va riallineata al massimo ID presente.
    """

    error_code: str = "SEQUENCE_OUT_OF_SYNC"


class StoreContentionError(AppException):
    """
    Contesa sul database (deadlock, lock timeout, serialization failure)
    non risolta entro il numero massimo di tentativi.
    """

    status_code: int = 503
    error_code: str = "STORE_CONTENTION"

    def __init__(
        self,
        detail: str = "Database momentaneamente occupato, riprovare",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class LockSetChangedError(StoreContentionError):
    """
    L'insieme delle righe da bloccare è cambiato tra la lettura iniziale
    e la rilettura con lock.

    retry_on_contention ripete l'operazione da capo, così i lock vengono
    sempre acquisiti nell'ordine pagamenti → fattura.
    """

    error_code: str = "LOCK_SET_CHANGED"
