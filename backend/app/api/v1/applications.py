"""
Router FastAPI per le Applicazioni pagamento → fattura
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)
"""

import logging

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.enums import Ledger
from app.schemas.application import (
    ApplicationCreate,
    ApplicationRead,
    AutoApplyRequest,
    AutoApplyResult,
    BalanceDiscrepancy,
)
from app.services.application_service import ApplicationService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Istanza del service
application_service = ApplicationService()

# Router con prefix e tag
router = APIRouter(
    prefix="/applications",
    tags=["Applicazioni"],
)


@router.post(
    "/",
    name="applicazioni_crea",
    summary="Applica pagamento a fattura",
    description=(
        "Applica un importo del pagamento alla fattura. Fallisce se l'importo "
        "supera il residuo della fattura o la parte non applicata del pagamento."
    ),
    response_model=ApplicationRead,
    status_code=status.HTTP_201_CREATED,
)
async def apply_payment(
    data: ApplicationCreate,
    db: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    application = await application_service.apply(
        db,
        ledger=data.ledger,
        payment_id=data.payment_id,
        invoice_id=data.invoice_id,
        amount=data.amount,
        applied_date=data.applied_date,
        notes=data.notes,
    )
    return ApplicationRead.model_validate(application)


@router.post(
    "/auto-apply",
    name="applicazioni_automatiche",
    summary="Applicazione automatica per scadenza",
    description="Applica il pagamento alle fatture aperte del soggetto, dalla scadenza più vecchia.",
    response_model=AutoApplyResult,
)
async def auto_apply(
    data: AutoApplyRequest,
    db: AsyncSession = Depends(get_db),
) -> AutoApplyResult:
    return await application_service.auto_apply(
        db,
        ledger=data.ledger,
        payment_id=data.payment_id,
        invoice_ids=data.invoice_ids,
        applied_date=data.applied_date,
    )


@router.get(
    "/discrepancies",
    name="applicazioni_incoerenze",
    summary="Verifica saldi",
    description="Documenti il cui saldo non coincide con la somma delle applicazioni attive.",
    response_model=list[BalanceDiscrepancy],
)
async def get_discrepancies(db: AsyncSession = Depends(get_db)) -> list[BalanceDiscrepancy]:
    return await application_service.find_discrepancies(db)


@router.get(
    "/{ledger}/{application_id}",
    name="applicazioni_dettaglio",
    summary="Dettaglio applicazione",
    response_model=ApplicationRead,
)
async def get_application(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    application_id: int = Path(..., description="ID applicazione"),
    db: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    application = await application_service.get_by_id(db, ledger, application_id)
    return ApplicationRead.model_validate(application)


@router.post(
    "/{ledger}/{application_id}/reverse",
    name="applicazioni_storna",
    summary="Storna applicazione",
    description="Ripristina i saldi di fattura e pagamento; una fattura PAID torna OPEN.",
    response_model=ApplicationRead,
)
async def reverse_application(
    ledger: Ledger = Path(..., description="Registro AR/AP"),
    application_id: int = Path(..., description="ID applicazione"),
    db: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    application = await application_service.reverse(db, ledger, application_id)
    return ApplicationRead.model_validate(application)
