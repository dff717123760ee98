"""Shared FastAPI dependencies.

Learn: Routes get collaborators from the Services container stored on
app.state, so tests can build an app around in-memory backends.
"""

from fastapi import Request

from relaycache.container import Services
from relaycache.services.catalog_service import CatalogService


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.services.catalog
