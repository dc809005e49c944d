"""Read access to the product catalog, with a Redis read-through cache."""

from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from beartype import beartype

from ..core.cache import Cache
from ..core.database import Database
from ..core.logging_utils import get_logger
from ..models.product import Category, PricingCriterion, Product
from .base import record_to_dict

logger = get_logger(__name__)


@runtime_checkable
class CatalogRepository(Protocol):
    """Products and categories as maintained by the back office."""

    async def get_product(self, product_id: UUID) -> Product | None: ...

    async def get_category(self, category_id: UUID) -> Category | None: ...


class PostgresCatalogRepository:
    """asyncpg implementation of :class:`CatalogRepository`."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @beartype
    async def get_product(self, product_id: UUID) -> Product | None:
        row = await self._db.fetchrow("SELECT * FROM products WHERE id = $1", product_id)
        if row is None:
            return None
        criteria = await self._db.fetch(
            """
            SELECT name, kind, operator, required FROM pricing_criteria
            WHERE product_id = $1
            ORDER BY position
            """,
            product_id,
        )
        data = record_to_dict(row)
        return Product(
            id=data["id"],
            name=data["name"],
            product_type=data["product_type"],
            pricing_mode=data["pricing_mode"],
            category_id=data.get("category_id"),
            criteria=[PricingCriterion(**record_to_dict(c)) for c in criteria],
            requires_beneficiaries=data.get("requires_beneficiaries", False),
            max_beneficiaries=data.get("max_beneficiaries", 0),
            default_deductible=data.get("default_deductible") or 0,
            default_cap=data.get("default_cap"),
        )

    @beartype
    async def get_category(self, category_id: UUID) -> Category | None:
        row = await self._db.fetchrow(
            "SELECT id, name, code FROM categories WHERE id = $1", category_id
        )
        return Category(**record_to_dict(row)) if row else None


class CachedCatalogRepository:
    """Read-through cache in front of another catalog repository.

    Cache failures are logged and fall through to the wrapped repository so a
    Redis outage slows pricing down without breaking it.
    """

    def __init__(self, inner: CatalogRepository, cache: Cache, ttl_seconds: int = 300) -> None:
        self._inner = inner
        self._cache = cache
        self._ttl = ttl_seconds

    async def _cached(self, key: str) -> dict[str, Any] | None:
        try:
            return await self._cache.get(key)
        except Exception as e:  # noqa: BLE001
            logger.warning("Catalog cache read failed for %s: %s", key, e)
            return None

    async def _store(self, key: str, value: dict[str, Any]) -> None:
        try:
            await self._cache.set(key, value, self._ttl)
        except Exception as e:  # noqa: BLE001
            logger.warning("Catalog cache write failed for %s: %s", key, e)

    @beartype
    async def get_product(self, product_id: UUID) -> Product | None:
        key = f"catalog:product:{product_id}"
        cached = await self._cached(key)
        if cached is not None:
            return Product.model_validate(cached)

        product = await self._inner.get_product(product_id)
        if product is not None:
            await self._store(key, product.model_dump(mode="json"))
        return product

    @beartype
    async def get_category(self, category_id: UUID) -> Category | None:
        key = f"catalog:category:{category_id}"
        cached = await self._cached(key)
        if cached is not None:
            return Category.model_validate(cached)

        category = await self._inner.get_category(category_id)
        if category is not None:
            await self._store(key, category.model_dump(mode="json"))
        return category
