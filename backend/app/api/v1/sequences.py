"""
Router FastAPI per le Sequenze
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Endpoint di consultazione e manutenzione dei contatori documento.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.sequence import (
    DocumentNumberRead,
    SequenceAllocation,
    SequenceCreate,
    SequenceRead,
    SequenceReset,
)
from app.services.sequence_service import SequenceService, format_document_number

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanza del service
sequence_service = SequenceService()

# Router con prefix e tag
router = APIRouter(
    prefix="/sequences",
    tags=["Sequenze"],
)


@router.get(
    "/",
    name="sequenze_lista",
    summary="Lista sequenze",
    description="Elenca le sequenze con valore corrente e prossimo valore.",
    response_model=list[SequenceRead],
    status_code=status.HTTP_200_OK,
)
async def list_sequences(
    prefix: Optional[str] = Query(None, description="Prefisso nome (es. AR_)"),
    db: AsyncSession = Depends(get_db),
) -> list[SequenceRead]:
    sequences = await sequence_service.get_stats(db, prefix=prefix)
    return [SequenceRead.model_validate(s) for s in sequences]


@router.post(
    "/",
    name="sequenze_crea",
    summary="Crea sequenza",
    response_model=SequenceRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_sequence(
    data: SequenceCreate,
    db: AsyncSession = Depends(get_db),
) -> SequenceRead:
    sequence = await sequence_service.create_sequence(
        db,
        name=data.name,
        min_value=data.min_value,
        increment_by=data.increment_by,
        max_value=data.max_value,
        cycle=data.cycle,
    )
    return SequenceRead.model_validate(sequence)


@router.post(
    "/initialize",
    name="sequenze_inizializza",
    summary="Crea le sequenze predefinite mancanti",
    status_code=status.HTTP_200_OK,
)
async def initialize_sequences(db: AsyncSession = Depends(get_db)) -> dict[str, list[str]]:
    created = await sequence_service.initialize_sequences(db)
    return {"created": created}


@router.get(
    "/document-number",
    name="sequenze_formatta_numero",
    summary="Formatta un numero documento",
    description="Applica il modello di numerazione del tipo documento, senza allocare.",
    response_model=DocumentNumberRead,
)
async def format_number(
    document_type: str = Query(..., description="AR_INVOICE, AP_INVOICE, AR_RECEIPT, AP_PAYMENT"),
    value: int = Query(..., description="Valore di sequenza"),
) -> DocumentNumberRead:
    return DocumentNumberRead(
        document_type=document_type,
        value=value,
        number=format_document_number(document_type, value),
    )


@router.get(
    "/{name}",
    name="sequenze_dettaglio",
    summary="Dettaglio sequenza",
    response_model=SequenceRead,
)
async def get_sequence(
    name: str = Path(..., description="Nome sequenza"),
    db: AsyncSession = Depends(get_db),
) -> SequenceRead:
    sequence = await sequence_service.get_by_name(db, name)
    return SequenceRead.model_validate(sequence)


@router.post(
    "/{name}/next",
    name="sequenze_alloca",
    summary="Alloca il prossimo valore",
    response_model=SequenceAllocation,
)
async def allocate_sequence(
    name: str = Path(..., description="Nome sequenza"),
    db: AsyncSession = Depends(get_db),
) -> SequenceAllocation:
    value = await sequence_service.allocate(db, name)
    return SequenceAllocation(name=name, value=value)


@router.put(
    "/{name}/reset",
    name="sequenze_reimposta",
    summary="Reimposta il valore corrente",
    description="Operazione di manutenzione: la prossima allocazione restituirà value + increment_by.",
    response_model=SequenceRead,
)
async def reset_sequence(
    data: SequenceReset,
    name: str = Path(..., description="Nome sequenza"),
    db: AsyncSession = Depends(get_db),
) -> SequenceRead:
    sequence = await sequence_service.reset(db, name, data.value)
    return SequenceRead.model_validate(sequence)
