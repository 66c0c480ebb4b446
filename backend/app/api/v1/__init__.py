"""
API v1 Routes
Progetto: Ledger Manager (Contabilità Clienti/Fornitori)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from app.api.v1 import applications, invoices, payments, sequences

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Includi i router dei moduli
api_v1_router.include_router(sequences.router)
api_v1_router.include_router(invoices.router)
api_v1_router.include_router(payments.router)
api_v1_router.include_router(applications.router)

# Esportazione
__all__ = ["api_v1_router"]
