"""Pydantic schemas for products, change events and custom publishes.

Learn: Pydantic v2 models validate request/response data. Separate
"Create" schemas (input) from "Read" schemas (output) for clean APIs.

Required fields on the input schemas are declared Optional on purpose:
the catalog service decides what "missing" means (None or blank) and
answers 400, the same contract the original HTTP API exposes.
"""

from typing import Literal, Optional

from pydantic import BaseModel

NEW_ENTITY = "NEW_ENTITY"


# ─── Products ───────────────────────────────────────────

class ProductCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ProductRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class ProductCreated(BaseModel):
    message: str
    productId: int


# ─── Change events ──────────────────────────────────────

class ChangeEvent(BaseModel):
    """Published on the updates topic after every successful insert."""
    kind: Literal["NEW_ENTITY"] = NEW_ENTITY
    entity: ProductRead

    model_config = {"frozen": True}


# ─── Custom publish ─────────────────────────────────────

class PublishRequest(BaseModel):
    channel: Optional[str] = None
    message: Optional[str] = None


class PublishResult(BaseModel):
    message: str
