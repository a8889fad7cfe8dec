"""Expense categories available to an organization, in a stable order."""

from __future__ import annotations

import logging
import re
from typing import Optional, Protocol, Sequence

from expense_ocr.pipeline.models.dto import Category
from expense_ocr.pipeline.processors.category_suggestor import (
    DEFAULT_CATEGORY_KEYWORDS,
    default_keywords,
)
from expense_ocr.services.database import DatabaseManager

logger = logging.getLogger(__name__)

# Categories belong to the expense backend; this service only reads them.
LIST_CATEGORIES_SQL = """
SELECT id::text AS id, name, description, keywords
FROM categories
WHERE organization_id = $1 AND is_active
ORDER BY created_at, name
"""


class CategoryStore(Protocol):
    async def list_categories(self, organization_id: str) -> list[Category]: ...


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def builtin_categories() -> list[Category]:
    return [
        Category(id=_slug(name), name=name, keywords=keywords)
        for name, keywords in DEFAULT_CATEGORY_KEYWORDS.items()
    ]


class StaticCategoryStore:
    """Same category list for every organization; built-in defaults unless given."""

    def __init__(self, categories: Optional[Sequence[Category]] = None):
        self._categories = list(categories) if categories is not None else builtin_categories()

    async def list_categories(self, organization_id: str) -> list[Category]:
        return list(self._categories)


class PostgresCategoryStore:
    """
    Reads the organization's categories ordered by creation time then name.

    A category without its own keywords gets the built-in keywords of the
    default category with the same name.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def list_categories(self, organization_id: str) -> list[Category]:
        pool = await self.db.get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(LIST_CATEGORIES_SQL, organization_id)

        categories = []
        for row in rows:
            keywords = tuple(k for k in (row["keywords"] or ()) if k) or default_keywords(row["name"])
            categories.append(
                Category(
                    id=row["id"],
                    name=row["name"],
                    keywords=keywords,
                    description=row["description"],
                )
            )
        logger.info(
            f"Loaded {len(categories)} categories",
            extra={"organization_id": organization_id},
        )
        return categories
