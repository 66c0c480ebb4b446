"""
Router FastAPI per Pagamenti e Incassi
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.enums import ApplicationStatus, Ledger, PaymentStatus
from app.schemas.application import ApplicationRead
from app.schemas.payment import (
    PaymentBalance,
    PaymentCreate,
    PaymentList,
    PaymentRead,
    PaymentUpdate,
)
from app.services.application_service import ApplicationService
from app.services.payment_service import PaymentService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanze dei service
payment_service = PaymentService()
application_service = ApplicationService()

# Router con prefix e tag
router = APIRouter(
    prefix="/payments",
    tags=["Pagamenti"],
)


@router.get(
    "/",
    name="pagamenti_lista",
    summary="Lista pagamenti",
    description="Recupera la lista paginata di incassi e pagamenti con eventuali filtri.",
    response_model=PaymentList,
)
async def get_payments(
    ledger: Optional[Ledger] = Query(None, description="Registro AR/AP"),
    party_id: Optional[int] = Query(None, description="Filtro per cliente/fornitore"),
    status_filter: Optional[PaymentStatus] = Query(None, description="Filtro per stato"),
    unapplied_only: bool = Query(False, description="Solo con parte non applicata"),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> PaymentList:
    return await payment_service.get_all(
        db=db,
        ledger=ledger,
        party_id=party_id,
        status_filter=status_filter,
        unapplied_only=unapplied_only,
        from_date=from_date,
        to_date=to_date,
        page=page,
        per_page=per_page,
    )


@router.post(
    "/",
    name="pagamenti_crea",
    summary="Registra pagamento",
    description=(
        "Registra un incasso (AR) o pagamento (AP). Con confirm=true può "
        "includere applicazioni alle fatture, registrate nella stessa transazione."
    ),
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment(
    data: PaymentCreate,
    db: AsyncSession = Depends(get_db),
) -> PaymentRead:
    payment = await payment_service.create_payment(db, data)
    return PaymentRead.model_validate(payment)


@router.get(
    "/by-number/{ledger}/{number}",
    name="pagamenti_per_numero",
    summary="Pagamento per numero",
    response_model=PaymentRead,
)
async def get_payment_by_number(
    ledger: Ledger = Path(...),
    number: str = Path(...),
    db: AsyncSession = Depends(get_db),
) -> PaymentRead:
    payment = await payment_service.get_by_number(db, ledger, number)
    return PaymentRead.model_validate(payment)


@router.get(
    "/{ledger}/{payment_id}",
    name="pagamenti_dettaglio",
    summary="Dettaglio pagamento",
    response_model=PaymentRead,
)
async def get_payment(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    payment_id: int = Path(..., description="ID pagamento"),
    db: AsyncSession = Depends(get_db),
) -> PaymentRead:
    payment = await payment_service.get_by_id(db, ledger, payment_id)
    return PaymentRead.model_validate(payment)


@router.patch(
    "/{ledger}/{payment_id}",
    name="pagamenti_aggiorna",
    summary="Aggiorna pagamento",
    response_model=PaymentRead,
)
async def update_payment(
    data: PaymentUpdate,
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    payment_id: int = Path(..., description="ID pagamento"),
    db: AsyncSession = Depends(get_db),
) -> PaymentRead:
    payment = await payment_service.update(db, ledger, payment_id, data)
    return PaymentRead.model_validate(payment)


@router.get(
    "/{ledger}/{payment_id}/balance",
    name="pagamenti_saldo",
    summary="Saldo pagamento",
    response_model=PaymentBalance,
)
async def get_payment_balance(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    payment_id: int = Path(..., description="ID pagamento"),
    db: AsyncSession = Depends(get_db),
) -> PaymentBalance:
    return await payment_service.get_balance(db, ledger, payment_id)


@router.get(
    "/{ledger}/{payment_id}/applications",
    name="pagamenti_applicazioni",
    summary="Applicazioni del pagamento",
    response_model=list[ApplicationRead],
)
async def get_payment_applications(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    payment_id: int = Path(..., description="ID pagamento"),
    status_filter: Optional[ApplicationStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> list[ApplicationRead]:
    await payment_service.get_by_id(db, ledger, payment_id)
    applications = await application_service.list_for_payment(
        db, ledger, payment_id, status_filter
    )
    return [ApplicationRead.model_validate(a) for a in applications]


# -------------------------------------------------------------------
# Transizioni di stato
# -------------------------------------------------------------------

@router.post(
    "/{ledger}/{payment_id}/confirm",
    name="pagamenti_conferma",
    summary="Conferma (DRAFT → CONFIRMED, AP: APPROVED)",
    response_model=PaymentRead,
)
async def confirm_payment(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    payment_id: int = Path(...),
    db: AsyncSession = Depends(get_db),
) -> PaymentRead:
    payment = await payment_service.confirm(db, ledger, payment_id)
    return PaymentRead.model_validate(payment)


@router.post(
    "/{ledger}/{payment_id}/clear",
    name="pagamenti_compensa",
    summary="Compensato (CONFIRMED → CLEARED, AP: PROCESSED)",
    response_model=PaymentRead,
)
async def clear_payment(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    payment_id: int = Path(...),
    db: AsyncSession = Depends(get_db),
) -> PaymentRead:
    payment = await payment_service.clear(db, ledger, payment_id)
    return PaymentRead.model_validate(payment)


@router.post(
    "/{ledger}/{payment_id}/cancel",
    name="pagamenti_annulla",
    summary="Annulla (DRAFT/CONFIRMED → CANCELLED)",
    response_model=PaymentRead,
)
async def cancel_payment(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    payment_id: int = Path(...),
    db: AsyncSession = Depends(get_db),
) -> PaymentRead:
    payment = await payment_service.cancel(db, ledger, payment_id)
    return PaymentRead.model_validate(payment)


@router.post(
    "/{ledger}/{payment_id}/reverse",
    name="pagamenti_storna",
    summary="Storna (CONFIRMED/CLEARED → REVERSED, AP: VOID)",
    description="Storna anche tutte le applicazioni attive del pagamento.",
    response_model=PaymentRead,
)
async def reverse_payment(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    payment_id: int = Path(...),
    db: AsyncSession = Depends(get_db),
) -> PaymentRead:
    payment = await payment_service.reverse(db, ledger, payment_id)
    return PaymentRead.model_validate(payment)
