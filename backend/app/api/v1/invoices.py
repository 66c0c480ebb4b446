"""
Router FastAPI per le Fatture
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Definisce gli endpoint API per il ciclo di vita delle fatture
dei registri clienti (AR) e fornitori (AP).
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.enums import ApplicationStatus, InvoiceStatus, Ledger
from app.schemas.application import ApplicationRead
from app.schemas.invoice import (
    InvoiceBalance,
    InvoiceCreate,
    InvoiceList,
    InvoiceRead,
    InvoiceUpdate,
)
from app.services.application_service import ApplicationService
from app.services.invoice_service import InvoiceService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanze dei service
invoice_service = InvoiceService()
application_service = ApplicationService()

# Router con prefix e tag
router = APIRouter(
    prefix="/invoices",
    tags=["Fatture"],
)


# -------------------------------------------------------------------
# Lista e creazione
# -------------------------------------------------------------------

@router.get(
    "/",
    name="fatture_lista",
    summary="Lista fatture",
    description="Recupera la lista paginata delle fatture con eventuali filtri.",
    response_model=InvoiceList,
    status_code=status.HTTP_200_OK,
)
async def get_invoices(
    ledger: Optional[Ledger] = Query(None, description="Registro AR/AP"),
    party_id: Optional[int] = Query(None, description="Filtro per cliente/fornitore"),
    status_filter: Optional[InvoiceStatus] = Query(None, description="Filtro per stato"),
    overdue_only: bool = Query(False, description="Solo fatture scadute con residuo"),
    from_date: Optional[date] = Query(None, description="Data emissione da (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, description="Data emissione a (YYYY-MM-DD)"),
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(10, ge=1, le=100, description="Elementi per pagina"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceList:
    return await invoice_service.get_all(
        db=db,
        ledger=ledger,
        party_id=party_id,
        status_filter=status_filter,
        overdue_only=overdue_only,
        from_date=from_date,
        to_date=to_date,
        page=page,
        per_page=per_page,
    )


@router.post(
    "/",
    name="fatture_crea",
    summary="Crea fattura",
    description="Crea una fattura in bozza con ID e numero dalla sequenza del registro.",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice(
    data: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.create_invoice(db, data)
    return InvoiceRead.model_validate(invoice)


@router.get(
    "/open",
    name="fatture_aperte",
    summary="Fatture aperte del soggetto",
    description="Fatture OPEN del cliente/fornitore in ordine di scadenza.",
    response_model=list[InvoiceRead],
)
async def get_open_invoices(
    ledger: Ledger = Query(..., description="Registro AR/AP"),
    party_id: int = Query(..., description="ID cliente/fornitore"),
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    db: AsyncSession = Depends(get_db),
) -> list[InvoiceRead]:
    invoices = await invoice_service.get_open_for_party(db, ledger, party_id, currency)
    return [InvoiceRead.model_validate(i) for i in invoices]


@router.get(
    "/by-number/{ledger}/{number}",
    name="fatture_per_numero",
    summary="Fattura per numero",
    response_model=InvoiceRead,
)
async def get_invoice_by_number(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    number: str = Path(..., description="Numero fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.get_by_number(db, ledger, number)
    return InvoiceRead.model_validate(invoice)


# -------------------------------------------------------------------
# Dettaglio e modifica
# -------------------------------------------------------------------

@router.get(
    "/{ledger}/{invoice_id}",
    name="fatture_dettaglio",
    summary="Dettaglio fattura",
    response_model=InvoiceRead,
)
async def get_invoice(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    invoice_id: int = Path(..., description="ID fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.get_by_id(db, ledger, invoice_id)
    return InvoiceRead.model_validate(invoice)


@router.patch(
    "/{ledger}/{invoice_id}",
    name="fatture_aggiorna",
    summary="Aggiorna fattura",
    description="In bozza modifica date e importi; negli altri stati solo le note.",
    response_model=InvoiceRead,
)
async def update_invoice(
    data: InvoiceUpdate,
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    invoice_id: int = Path(..., description="ID fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.update(db, ledger, invoice_id, data)
    return InvoiceRead.model_validate(invoice)


@router.get(
    "/{ledger}/{invoice_id}/balance",
    name="fatture_saldo",
    summary="Saldo fattura",
    response_model=InvoiceBalance,
)
async def get_invoice_balance(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    invoice_id: int = Path(..., description="ID fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceBalance:
    return await invoice_service.get_balance(db, ledger, invoice_id)


@router.get(
    "/{ledger}/{invoice_id}/applications",
    name="fatture_applicazioni",
    summary="Applicazioni ricevute",
    response_model=list[ApplicationRead],
)
async def get_invoice_applications(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    invoice_id: int = Path(..., description="ID fattura"),
    status_filter: Optional[ApplicationStatus] = Query(None, description="Filtro per stato"),
    db: AsyncSession = Depends(get_db),
) -> list[ApplicationRead]:
    await invoice_service.get_by_id(db, ledger, invoice_id)
    applications = await application_service.list_for_invoice(
        db, ledger, invoice_id, status_filter
    )
    return [ApplicationRead.model_validate(a) for a in applications]


# -------------------------------------------------------------------
# Transizioni di stato
# -------------------------------------------------------------------

@router.post(
    "/{ledger}/{invoice_id}/approve",
    name="fatture_approva",
    summary="Approva fattura (DRAFT → OPEN)",
    response_model=InvoiceRead,
)
async def approve_invoice(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    invoice_id: int = Path(..., description="ID fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.approve(db, ledger, invoice_id)
    return InvoiceRead.model_validate(invoice)


@router.post(
    "/{ledger}/{invoice_id}/reject",
    name="fatture_rifiuta",
    summary="Rifiuta fattura (resta in bozza)",
    response_model=InvoiceRead,
)
async def reject_invoice(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    invoice_id: int = Path(..., description="ID fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.reject(db, ledger, invoice_id)
    return InvoiceRead.model_validate(invoice)


@router.post(
    "/{ledger}/{invoice_id}/cancel",
    name="fatture_annulla",
    summary="Annulla fattura (DRAFT/OPEN → CANCELLED)",
    response_model=InvoiceRead,
)
async def cancel_invoice(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    invoice_id: int = Path(..., description="ID fattura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.cancel(db, ledger, invoice_id)
    return InvoiceRead.model_validate(invoice)


@router.post(
    "/{ledger}/{invoice_id}/void",
    name="fatture_invalida",
    summary="Invalida fattura (OPEN/PAID → VOID)",
    description="Con reverse_applications=true annulla anche le applicazioni attive.",
    response_model=InvoiceRead,
)
async def void_invoice(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    invoice_id: int = Path(..., description="ID fattura"),
    reverse_applications: bool = Query(False, description="Annulla le applicazioni attive"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.void(db, ledger, invoice_id, reverse_applications)
    return InvoiceRead.model_validate(invoice)
