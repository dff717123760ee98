"""API route aggregation.

All routers registered here get mounted in main.py. Routes live at the
root (no version prefix) to keep the demo's public paths:
GET /products, POST /product, POST /publish, GET /health.
"""

from fastapi import APIRouter

from relaycache.api.health import router as health_router
from relaycache.api.products import router as products_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(products_router, tags=["products", "publish"])
