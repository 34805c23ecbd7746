"""Product service for catalog CRUD and search operations."""

import logging
import math
from typing import Any
from uuid import UUID

from supabase import Client

from src.core.supabase import get_supabase_client
from src.models.product import Product, ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)

# Catalog sort keys accepted by list_products: (column, descending)
SORT_OPTIONS: dict[str, tuple[str, bool]] = {
    "price-low": ("price", False),
    "price-high": ("price", True),
    "name": ("name", False),
}
DEFAULT_SORT = ("created_at", True)


class ProductService:
    """Sneaker catalog backed by the Supabase `products` table.

    Reads are public; create, update and delete are only routed for admins.
    """

    def __init__(self, supabase_client: Client | None = None):
        self._supabase_client = supabase_client

    @property
    def supabase(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    async def create_product(self, data: ProductCreate) -> Product:
        """Insert a catalog entry and return the stored row.

        Raises:
            Exception: If Supabase returns no row.
        """
        try:
            result = self.supabase.table("products").insert(dict(data)).execute()

            if not result.data:
                raise Exception("Failed to create product")

            product = result.data[0]
            logger.info("Created product %s", product["id"])
            return product

        except Exception as e:
            logger.error("Failed to create product: %s", e)
            raise

    async def get_product(self, product_id: UUID | str) -> Product | None:
        """Fetch one product, or None when the id is unknown."""
        result = (
            self.supabase.table("products")
            .select("*")
            .eq("id", str(product_id))
            .execute()
        )

        if result.data:
            return result.data[0]
        return None

    async def update_product(self, product_id: UUID | str, data: ProductUpdate) -> Product | None:
        """Apply a partial update; None values leave the column untouched.

        Returns:
            Product or None if the product does not exist.
        """
        update_data = {k: v for k, v in data.items() if v is not None}

        if not update_data:
            return await self.get_product(product_id)

        result = (
            self.supabase.table("products")
            .update(update_data)
            .eq("id", str(product_id))
            .execute()
        )

        if not result.data:
            return None

        logger.info("Updated product %s", product_id)
        return result.data[0]

    async def delete_product(self, product_id: UUID | str) -> bool:
        """Remove a product. Returns False when nothing was deleted."""
        result = (
            self.supabase.table("products")
            .delete()
            .eq("id", str(product_id))
            .execute()
        )

        if not result.data:
            return False

        logger.info("Deleted product %s", product_id)
        return True

    async def list_products(
        self,
        page: int = 1,
        limit: int = 8,
        brand: str | None = None,
        sort: str | None = None,
    ) -> dict[str, Any]:
        """List products with brand filter, sorting and page-based pagination.

        Args:
            page: 1-based page number.
            limit: Page size.
            brand: Brand filter; "all" or None disables it.
            sort: One of "price-low", "price-high", "name"; anything else
                sorts newest first.

        Returns:
            dict: ``products`` plus ``pagination`` (current, total_pages, total).
        """
        column, descending = SORT_OPTIONS.get(sort or "", DEFAULT_SORT)
        start = (page - 1) * limit

        query = self.supabase.table("products").select("*", count="exact")
        if brand and brand != "all":
            query = query.eq("brand", brand)

        result = query.order(column, desc=descending).range(start, start + limit - 1).execute()

        products = result.data or []
        total = result.count if result.count is not None else len(products)

        return {
            "products": products,
            "pagination": {
                "current": page,
                "total_pages": math.ceil(total / limit) if limit else 0,
                "total": total,
            },
        }

    async def search_products(self, query: str, limit: int = 50) -> list[Product]:
        """Case-insensitive search over name, brand and description.

        Args:
            query: Search term.
            limit: Maximum number of results.

        Returns:
            list[Product]: Matching products, name order.
        """
        # PostgREST or-filter syntax reserves commas and parentheses
        term = "".join(ch for ch in query.strip() if ch not in ",()")
        pattern = f"%{term}%"

        result = (
            self.supabase.table("products")
            .select("*")
            .or_(f"name.ilike.{pattern},brand.ilike.{pattern},description.ilike.{pattern}")
            .order("name")
            .limit(limit)
            .execute()
        )

        return result.data or []


def get_product_service() -> ProductService:
    """FastAPI dependency returning a catalog service on the shared client."""
    return ProductService()
