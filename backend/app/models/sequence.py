"""
Modello SQLAlchemy per le Sequenze
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Contatori nominati, durevoli e monotoni usati per gli ID dei documenti.
Indipendenti dall'auto-increment del database.
"""

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin


class Sequence(Base, TimestampMixin):
    """
    Modello per le sequenze.

    Una riga per contatore, creata all'inizializzazione del sistema,
    aggiornata ad ogni allocazione e mai eliminata.

    Attributes:
        name: Nome della sequenza (es. AR_INVOICE_ID_SEQ)
        current_value: Ultimo valore assegnato
        increment_by: Passo di incremento
        min_value: Primo valore assegnabile (e valore di ripartenza se cycle)
        max_value: Valore massimo assegnabile
        cycle: Se True, superato max_value si riparte da min_value
    """

    __tablename__ = "sequences"

    name: Mapped[str] = mapped_column(
        String(50),
        primary_key=True,
        doc="Nome univoco della sequenza",
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="Ultimo valore assegnato (min_value - increment_by se mai usata)",
    )

    increment_by: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Passo di incremento",
    )

    min_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=1,
        doc="Valore minimo",
    )

    max_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="Valore massimo",
    )

    cycle: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Riparte da min_value superato max_value",
    )

    # ------------------------------------------------------------
    # Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        CheckConstraint("increment_by > 0", name="ck_sequences_increment_positive"),
        CheckConstraint("max_value > min_value", name="ck_sequences_range"),
    )

    @property
    def next_value(self) -> int:
        """Valore che verrebbe assegnato dalla prossima allocazione (senza wrap)."""
        return self.current_value + self.increment_by

    def __repr__(self) -> str:
        return f"<Sequence(name={self.name}, current_value={self.current_value})>"
