"""Product store — the authoritative record store.

Learn: Two operations only: insert one product and scan all of them.
Every SQLAlchemy failure is translated into StorageError so callers
never depend on driver exceptions. A blank name is rejected here as
well as in the service, because the store must never persist an
invalid row regardless of who calls it.
"""

from typing import Optional

import structlog
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from relaycache.db.engine import build_session_factory
from relaycache.db.models import Base, Product
from relaycache.errors import StorageError

logger = structlog.get_logger()


class ProductStore:
    """Insert and full-scan access to the products table."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._sessions = build_session_factory(engine)

    async def connect(self) -> None:
        """Create the products table if it doesn't exist yet."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to initialize record store: {e}") from e
        logger.info("store.ready", url=self.engine.url.render_as_string(hide_password=True))

    async def close(self) -> None:
        await self.engine.dispose()

    async def ping(self) -> None:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e

    async def insert(self, name: str, description: Optional[str] = None) -> int:
        """Persist a product and return its newly assigned id."""
        if not name or not name.strip():
            raise StorageError("Product name is required")

        product = Product(name=name, description=description)
        try:
            async with self._sessions() as session:
                session.add(product)
                await session.flush()  # get the auto-generated id
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to add product to database: {e}") from e

        logger.info("store.product_inserted", product_id=product.id)
        return product.id

    async def scan_all(self) -> list[dict]:
        """Every product, ordered by id."""
        try:
            async with self._sessions() as session:
                result = await session.execute(select(Product).order_by(Product.id))
                products = result.scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to fetch products from database: {e}") from e
        return [p.to_dict() for p in products]
