"""API v1 routes aggregation"""

from fastapi import APIRouter

from .auth.router import router as auth_router
from .ebooks.router import router as ebooks_router
from .orders.router import router as orders_router
from .payments.router import router as payments_router
from .affiliates.router import router as affiliates_router
from .visits.router import router as visits_router

# Create v1 router
api_router = APIRouter()

# Include all routers
api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])
api_router.include_router(ebooks_router, prefix="/ebooks", tags=["Ebooks"])
api_router.include_router(orders_router, prefix="/orders", tags=["Orders"])
api_router.include_router(payments_router, prefix="/payments", tags=["Payments"])
api_router.include_router(affiliates_router, prefix="/affiliates", tags=["Affiliates"])
api_router.include_router(visits_router, prefix="/visits", tags=["Visits"])

# Export router
router = api_router
