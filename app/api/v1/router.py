"""API v1 router aggregator."""

from fastapi import APIRouter

from app.api.v1 import health, meli

api_router = APIRouter()

# Health check
api_router.include_router(health.router, prefix="/health", tags=["health"])

# MercadoLibre
api_router.include_router(meli.router, prefix="/meli", tags=["meli"])
