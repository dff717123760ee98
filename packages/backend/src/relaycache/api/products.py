"""Product and publish API routes.

Learn: Routes handle HTTP concerns (status codes, error responses),
the catalog service handles the cache/store/bus protocol. Each service
error type maps to exactly one status code:
ValidationError → 400, StorageError → 500, BusError → 500 (publish only).
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from relaycache.api.dependencies import get_catalog
from relaycache.errors import BusError, StorageError, ValidationError
from relaycache.schemas.catalog import (
    ProductCreate,
    ProductCreated,
    ProductRead,
    PublishRequest,
    PublishResult,
)
from relaycache.services.catalog_service import CatalogService

logger = structlog.get_logger()
router = APIRouter()


@router.get("/products", response_model=list[ProductRead])
async def list_products(svc: CatalogService = Depends(get_catalog)):
    """All products, served from the cache when it holds a snapshot."""
    try:
        return await svc.list_products()
    except StorageError as e:
        logger.error("products.fetch_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch products from database")


@router.post("/product", response_model=ProductCreated, status_code=201)
async def create_product(body: ProductCreate, svc: CatalogService = Depends(get_catalog)):
    """Add a product, invalidate the cached list and broadcast the change."""
    try:
        product_id = await svc.create_product(name=body.name, description=body.description)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.error("products.insert_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to add product to database")

    return ProductCreated(
        message="Product added successfully and cache invalidated",
        productId=product_id,
    )


@router.post("/publish", response_model=PublishResult)
async def publish_message(body: PublishRequest, svc: CatalogService = Depends(get_catalog)):
    """Publish a raw message on a custom topic."""
    try:
        await svc.publish_message(channel=body.channel, message=body.message)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BusError as e:
        logger.error("publish.failed", channel=body.channel, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to publish message")

    return PublishResult(message="Message published successfully")
