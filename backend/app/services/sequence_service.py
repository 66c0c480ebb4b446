"""
Service Layer per le Sequenze
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Assegna identificativi documento monotoni a partire da contatori nominati.
Ogni allocazione è un singolo UPDATE ... RETURNING sulla riga della
sequenza: il lock di riga serializza le allocazioni concorrenti e
l'incremento diventa definitivo solo al commit della transazione chiamante.

Il prossimo numero non viene mai ricavato da MAX(id) + 1.
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    BusinessValidationError,
    DuplicateError,
    SequenceExhaustedError,
    SequenceNotFoundError,
    SequenceOutOfSyncError,
)
from app.core.transactions import atomic, retry_on_contention
from app.models import Sequence
from app.models.enums import Ledger

# Logger per questo modulo
logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# Sequenze Predefinite
# ------------------------------------------------------------
INVOICE_ID_SEQUENCES: Dict[Ledger, str] = {
    Ledger.AR: "AR_INVOICE_ID_SEQ",
    Ledger.AP: "AP_INVOICE_ID_SEQ",
}

INVOICE_LINE_ID_SEQUENCES: Dict[Ledger, str] = {
    Ledger.AR: "AR_INVOICE_LINE_ID_SEQ",
    Ledger.AP: "AP_INVOICE_LINE_ID_SEQ",
}

PAYMENT_ID_SEQUENCES: Dict[Ledger, str] = {
    Ledger.AR: "AR_RECEIPT_ID_SEQ",
    Ledger.AP: "AP_PAYMENT_ID_SEQ",
}

APPLICATION_ID_SEQUENCES: Dict[Ledger, str] = {
    Ledger.AR: "AR_RECEIPT_APPLICATION_ID_SEQ",
    Ledger.AP: "AP_PAYMENT_APPLICATION_ID_SEQ",
}

WELL_KNOWN_SEQUENCES = tuple(
    name
    for table in (
        INVOICE_ID_SEQUENCES,
        INVOICE_LINE_ID_SEQUENCES,
        PAYMENT_ID_SEQUENCES,
        APPLICATION_ID_SEQUENCES,
    )
    for name in table.values()
)

# Modelli di numerazione per tipo documento
DOCUMENT_NUMBER_TEMPLATES: Dict[str, str] = {
    "AR_INVOICE": "INV{:08d}",
    "AP_INVOICE": "APINV{:08d}",
    "AR_RECEIPT": "RCPT{:08d}",
    "AP_PAYMENT": "PAY{:08d}",
}

INVOICE_DOCUMENT_TYPES: Dict[Ledger, str] = {
    Ledger.AR: "AR_INVOICE",
    Ledger.AP: "AP_INVOICE",
}

PAYMENT_DOCUMENT_TYPES: Dict[Ledger, str] = {
    Ledger.AR: "AR_RECEIPT",
    Ledger.AP: "AP_PAYMENT",
}


def format_document_number(document_type: str, value: int) -> str:
    """
    Formatta il numero documento leggibile a partire dal valore allocato.

    Funzione pura: non accede al database.

    Args:
        document_type: Tipo documento (AR_INVOICE, AP_INVOICE, AR_RECEIPT, AP_PAYMENT)
        value: Valore restituito dalla sequenza

    Returns:
        str: Numero con prefisso e zero-padding (es. INV00000042)

    Raises:
        BusinessValidationError: Tipo documento sconosciuto o valore non positivo
    """
    template = DOCUMENT_NUMBER_TEMPLATES.get(document_type)
    if template is None:
        raise BusinessValidationError(
            f"Tipo documento sconosciuto: {document_type}",
            extra={"allowed": sorted(DOCUMENT_NUMBER_TEMPLATES)},
        )
    if value < 1:
        raise BusinessValidationError(
            f"Il valore da formattare deve essere positivo (ricevuto {value})"
        )
    return template.format(value)


class SequenceService:
    """
    Service per l'allocazione dei valori di sequenza.

    next_value() lavora dentro la transazione del chiamante e non fa commit:
    è il mattone usato dai servizi documento. allocate() è la variante
    autonoma, con transazione propria.
    """

    async def next_value(self, db: AsyncSession, name: str) -> int:
        """
        Incrementa la sequenza e restituisce il nuovo valore.

        Con cycle attivo, oltre max_value si riparte da min_value.
        Non esegue commit: se la transazione del chiamante fallisce
        il valore non viene consumato.

        Args:
            db: Sessione database (in transazione)
            name: Nome della sequenza

        Returns:
            int: Valore allocato

        Raises:
            SequenceNotFoundError: Sequenza non definita
            SequenceExhaustedError: Sequenza non ciclica oltre max_value
        """
        incremented = Sequence.current_value + Sequence.increment_by
        stmt = (
            update(Sequence)
            .where(Sequence.name == name)
            .where(or_(Sequence.cycle.is_(True), incremented <= Sequence.max_value))
            .values(
                current_value=case(
                    (
                        and_(Sequence.cycle.is_(True), incremented > Sequence.max_value),
                        Sequence.min_value,
                    ),
                    else_=incremented,
                ),
                updated_at=func.now(),
            )
            .returning(Sequence.current_value)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        value = result.scalar_one_or_none()

        if value is None:
            sequence = await self._get_sequence(db, name)
            raise SequenceExhaustedError(
                f"Sequenza {name} esaurita (max_value={sequence.max_value})",
                extra={"sequence": name, "max_value": sequence.max_value},
            )

        logger.debug("Sequenza %s: allocato valore %d", name, value)
        return value

    async def next_id(self, db: AsyncSession, model, ledger: Ledger, name: str) -> int:
        """
        Alloca l'ID di un nuovo documento del registro e verifica che sia libero.

        Args:
            db: Sessione database (in transazione)
            model: Modello con chiave primaria (ledger, id)
            ledger: Registro del documento
            name: Sequenza degli ID del registro

        Raises:
            SequenceOutOfSyncError: ID già presente (sequenza rimasta indietro)
        """
        value = await self.next_value(db, name)
        stmt = select(model.id).where(model.ledger == ledger, model.id == value)
        result = await db.execute(stmt)
        if result.scalar_one_or_none() is not None:
            logger.error(
                "Sequenza %s: ID %d già usato in %s (%s)",
                name,
                value,
                model.__tablename__,
                ledger.value,
            )
            raise SequenceOutOfSyncError(
                f"La sequenza {name} ha assegnato l'ID {value}, già presente in "
                f"{model.__tablename__} per il registro {ledger.value}: riallineare la sequenza",
                extra={"sequence": name, "ledger": ledger.value, "id": value},
            )
        return value

    @retry_on_contention
    async def allocate(self, db: AsyncSession, name: str) -> int:
        """
        Alloca un valore in una transazione dedicata.

        Raises:
            SequenceNotFoundError: Sequenza non definita
            SequenceExhaustedError: Sequenza esaurita
        """
        async with atomic(db):
            return await self.next_value(db, name)

    async def current_value(self, db: AsyncSession, name: str) -> int:
        """Ultimo valore assegnato dalla sequenza, senza incrementarla."""
        sequence = await self._get_sequence(db, name)
        return sequence.current_value

    async def get_by_name(self, db: AsyncSession, name: str) -> Sequence:
        """
        Recupera la definizione della sequenza.

        Raises:
            SequenceNotFoundError: Sequenza non definita
        """
        return await self._get_sequence(db, name)

    async def get_stats(self, db: AsyncSession, prefix: Optional[str] = None) -> List[Sequence]:
        """
        Elenca le sequenze con il loro stato corrente.

        Args:
            db: Sessione database
            prefix: Filtra per prefisso del nome (es. "AR_")

        Returns:
            List[Sequence]: Sequenze ordinate per nome
        """
        stmt = select(Sequence).order_by(Sequence.name)
        if prefix:
            stmt = stmt.where(Sequence.name.startswith(prefix))
        stmt = stmt.execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @retry_on_contention
    async def create_sequence(
        self,
        db: AsyncSession,
        name: str,
        min_value: int = 1,
        increment_by: int = 1,
        max_value: Optional[int] = None,
        cycle: bool = False,
    ) -> Sequence:
        """
        Crea una nuova sequenza mai utilizzata.

        Raises:
            BusinessValidationError: Parametri incoerenti
            DuplicateError: Nome già esistente
        """
        max_value = max_value if max_value is not None else settings.sequence_default_max_value
        if increment_by < 1:
            raise BusinessValidationError("increment_by deve essere almeno 1")
        if max_value <= min_value:
            raise BusinessValidationError("max_value deve essere maggiore di min_value")

        async with atomic(db):
            existing = await db.get(Sequence, name)
            if existing is not None:
                raise DuplicateError(f"Sequenza {name} già esistente")

            sequence = Sequence(
                name=name,
                current_value=min_value - increment_by,
                increment_by=increment_by,
                min_value=min_value,
                max_value=max_value,
                cycle=cycle,
            )
            db.add(sequence)
            try:
                await db.flush()
            except IntegrityError:
                raise DuplicateError(f"Sequenza {name} già esistente") from None

        logger.info("Sequenza %s creata (min=%d, max=%d, cycle=%s)", name, min_value, max_value, cycle)
        return sequence

    @retry_on_contention
    async def reset(self, db: AsyncSession, name: str, value: int) -> Sequence:
        """
        Riporta la sequenza a un valore dato (operazione di manutenzione).

        La prossima allocazione restituirà value + increment_by.

        Raises:
            SequenceNotFoundError: Sequenza non definita
            BusinessValidationError: Valore fuori dall'intervallo della sequenza
        """
        async with atomic(db):
            stmt = (
                select(Sequence)
                .where(Sequence.name == name)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            result = await db.execute(stmt)
            sequence = result.scalar_one_or_none()
            if sequence is None:
                raise SequenceNotFoundError(f"Sequenza {name} non trovata")

            lowest = sequence.min_value - sequence.increment_by
            if value < lowest or value > sequence.max_value:
                raise BusinessValidationError(
                    f"Valore {value} fuori intervallo per {name} "
                    f"({lowest} - {sequence.max_value})"
                )
            sequence.current_value = value

        logger.warning("Sequenza %s reimpostata a %d", name, value)
        return sequence

    async def initialize_sequences(
        self,
        db: AsyncSession,
        names: Iterable[str] = WELL_KNOWN_SEQUENCES,
    ) -> List[str]:
        """
        Crea le sequenze mancanti. Idempotente.

        Returns:
            List[str]: Nomi delle sequenze create in questa chiamata
        """
        names = list(names)
        result = await db.execute(select(Sequence.name).where(Sequence.name.in_(names)))
        existing = set(result.scalars().all())
        missing = [name for name in names if name not in existing]
        if not missing:
            return []

        for name in missing:
            db.add(Sequence(
                name=name,
                current_value=0,
                increment_by=1,
                min_value=1,
                max_value=settings.sequence_default_max_value,
                cycle=False,
            ))
        try:
            await db.commit()
        except IntegrityError:
            # Un altro processo le ha create nel frattempo
            await db.rollback()
            logger.info("Sequenze già inizializzate da un altro processo")
            return []

        logger.info("Sequenze inizializzate: %s", ", ".join(missing))
        return missing

    async def _get_sequence(self, db: AsyncSession, name: str) -> Sequence:
        stmt = (
            select(Sequence)
            .where(Sequence.name == name)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        sequence = result.scalar_one_or_none()
        if sequence is None:
            raise SequenceNotFoundError(f"Sequenza {name} non trovata")
        return sequence
