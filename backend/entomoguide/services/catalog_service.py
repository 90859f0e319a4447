"""
EntomoGuide Backend: Catalog Service
=====================================

What:  Category and insect CRUD.
How:   Async SQLAlchemy on a caller-provided session. Updates go through an
       explicit allow-list of columns; request keys are never turned into
       column names directly.
Who:   routes/catalog.py.

Deleting an insect:
    The database cascades its image rows. The stored files are collected
    first and discarded after the commit (best effort, same as detach).
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from entomoguide.exceptions import ConflictError, NotFoundError, ValidationError
from entomoguide.models.catalog import Category, Insect
from entomoguide.services.file_service import FileService

logger = logging.getLogger(__name__)

INSECT_FIELDS = frozenset(
    {"common_name", "scientific_name", "category_id", "description", "habitat", "behavior"}
)
CATEGORY_FIELDS = frozenset({"name", "description"})


def _allowed_values(fields: Mapping[str, Any], allowed: frozenset) -> Dict[str, Any]:
    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(
            "Some fields cannot be updated.",
            context={"fields": sorted(unknown)},
        )
    if not fields:
        raise ValidationError("No data to update.")
    return dict(fields)


class CatalogService:
    def __init__(self, storage: FileService):
        self.storage = storage

    # ══════════════════════════════════════════════════════════════════════
    # Categories
    # ══════════════════════════════════════════════════════════════════════

    async def list_categories(self, db: AsyncSession) -> List[Category]:
        result = await db.execute(select(Category).order_by(Category.name))
        return list(result.scalars().all())

    async def create_category(
        self, db: AsyncSession, name: str, description: Optional[str] = None
    ) -> Category:
        category = Category(name=name, description=description)
        db.add(category)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"Category '{name}' already exists.")
        logger.info("Category %s created", category.id)
        return category

    async def update_category(
        self, db: AsyncSession, category_id: int, fields: Mapping[str, Any]
    ) -> Category:
        values = _allowed_values(fields, CATEGORY_FIELDS)
        category = await db.get(Category, category_id)
        if category is None:
            raise NotFoundError("category", category_id)

        for key, value in values.items():
            setattr(category, key, value)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"Category '{values.get('name')}' already exists.")
        return category

    async def delete_category(self, db: AsyncSession, category_id: int) -> None:
        """Insects of the category keep existing with no category."""
        result = await db.execute(delete(Category).where(Category.id == category_id))
        if result.rowcount == 0:
            raise NotFoundError("category", category_id)
        await db.commit()
        logger.info("Category %s deleted", category_id)

    # ══════════════════════════════════════════════════════════════════════
    # Insects
    # ══════════════════════════════════════════════════════════════════════

    async def list_insects(
        self,
        db: AsyncSession,
        name_contains: Optional[str] = None,
        category_id: Optional[int] = None,
    ) -> List[Insect]:
        """Insects with their images eagerly loaded, ordered by id."""
        stmt = select(Insect).order_by(Insect.id)
        if name_contains:
            stmt = stmt.where(Insect.common_name.ilike(f"%{name_contains}%"))
        if category_id is not None:
            stmt = stmt.where(Insect.category_id == category_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_insect(self, db: AsyncSession, insect_id: int) -> Insect:
        insect = await db.get(Insect, insect_id)
        if insect is None:
            raise NotFoundError("insect", insect_id)
        return insect

    async def _check_category(self, db: AsyncSession, category_id: Optional[int]) -> None:
        if category_id is not None and await db.get(Category, category_id) is None:
            raise ValidationError(
                f"Category {category_id} does not exist.",
                field="id_categoria",
            )

    async def create_insect(self, db: AsyncSession, fields: Mapping[str, Any]) -> Insect:
        values = _allowed_values(fields, INSECT_FIELDS)
        if not values.get("common_name"):
            raise ValidationError("The common name is required.", field="nome_comum")
        await self._check_category(db, values.get("category_id"))

        insect = Insect(**values)
        db.add(insect)
        await db.commit()
        await db.refresh(insect, attribute_names=["images"])
        logger.info("Insect %s created", insect.id)
        return insect

    async def update_insect(
        self, db: AsyncSession, insect_id: int, fields: Mapping[str, Any]
    ) -> Insect:
        """
        Raises:
            ValidationError: empty payload, unknown field, or a null common name
            NotFoundError:   no such insect
        """
        values = _allowed_values(fields, INSECT_FIELDS)
        if "common_name" in values and not values["common_name"]:
            raise ValidationError("The common name cannot be empty.", field="nome_comum")

        insect = await self.get_insect(db, insect_id)
        if "category_id" in values:
            await self._check_category(db, values["category_id"])

        for key, value in values.items():
            setattr(insect, key, value)
        await db.commit()
        logger.info("Insect %s updated: %s", insect_id, sorted(values))
        return insect

    async def delete_insect(self, db: AsyncSession, insect_id: int) -> None:
        insect = await self.get_insect(db, insect_id)
        locators = [image.image_url for image in insect.images]

        await db.execute(delete(Insect).where(Insect.id == insect_id))
        await db.commit()
        logger.info("Insect %s deleted with %d image(s)", insect_id, len(locators))

        for locator in locators:
            await self.storage.discard(locator)
