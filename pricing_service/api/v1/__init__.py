"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import price_recalculation

api_router = APIRouter()

api_router.include_router(
    price_recalculation.router,
    prefix="/price-recalculation",
    tags=["price-recalculation"]
)
