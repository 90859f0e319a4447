"""
EntomoGuide Backend: Catalog Route Handlers
============================================

What:  Categories and insects.
How:   Reads are public; every write requires an administrator token.
Who:   The guide's list/detail screens (reads) and the admin panel (writes).
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from entomoguide.database import get_db_session
from entomoguide.deps import get_catalog, require_admin
from entomoguide.schemas.catalog import (
    CategoryCreate,
    CategoryResponse,
    InsectCreate,
    InsectResponse,
    InsectUpdate,
)
from entomoguide.schemas.common import ErrorResponse, MessageResponse
from entomoguide.services.catalog_service import CatalogService
from entomoguide.services.security import Claim

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Catalog"])


# ── Categories ────────────────────────────────────────────────────────────


@router.get("/categorias", response_model=List[CategoryResponse], summary="List categories")
async def list_categories(
    db: AsyncSession = Depends(get_db_session),
    catalog: CatalogService = Depends(get_catalog),
) -> List[CategoryResponse]:
    return [CategoryResponse.model_validate(c) for c in await catalog.list_categories(db)]


@router.post(
    "/categorias",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Name already used", "model": ErrorResponse}},
    summary="Create a category",
)
async def create_category(
    body: CategoryCreate,
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    catalog: CatalogService = Depends(get_catalog),
) -> CategoryResponse:
    category = await catalog.create_category(db, body.name, body.description)
    return CategoryResponse.model_validate(category)


@router.put("/categorias/{category_id}", response_model=CategoryResponse, summary="Update a category")
async def update_category(
    category_id: int,
    body: CategoryCreate,
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    catalog: CatalogService = Depends(get_catalog),
) -> CategoryResponse:
    category = await catalog.update_category(
        db, category_id, {"name": body.name, "description": body.description}
    )
    return CategoryResponse.model_validate(category)


@router.delete("/categorias/{category_id}", response_model=MessageResponse, summary="Delete a category")
async def delete_category(
    category_id: int,
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    catalog: CatalogService = Depends(get_catalog),
) -> MessageResponse:
    await catalog.delete_category(db, category_id)
    return MessageResponse(message=f"Category {category_id} deleted.")


# ── Insects ───────────────────────────────────────────────────────────────


@router.get(
    "/insetos",
    response_model=List[InsectResponse],
    summary="List insects with their image locators",
)
async def list_insects(
    nome_comum: Optional[str] = Query(default=None, description="Common name contains"),
    id_categoria: Optional[int] = Query(default=None, description="Only this category"),
    db: AsyncSession = Depends(get_db_session),
    catalog: CatalogService = Depends(get_catalog),
) -> List[InsectResponse]:
    insects = await catalog.list_insects(db, name_contains=nome_comum, category_id=id_categoria)
    return [InsectResponse.model_validate(i) for i in insects]


@router.get("/insetos/{insect_id}", response_model=InsectResponse, summary="Read one insect")
async def get_insect(
    insect_id: int,
    db: AsyncSession = Depends(get_db_session),
    catalog: CatalogService = Depends(get_catalog),
) -> InsectResponse:
    return InsectResponse.model_validate(await catalog.get_insect(db, insect_id))


@router.post(
    "/insetos",
    response_model=InsectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an insect",
)
async def create_insect(
    body: InsectCreate,
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    catalog: CatalogService = Depends(get_catalog),
) -> InsectResponse:
    insect = await catalog.create_insect(db, body.model_dump())
    return InsectResponse.model_validate(insect)


@router.put(
    "/insetos/{insect_id}",
    response_model=InsectResponse,
    responses={400: {"description": "Empty body or field not updatable", "model": ErrorResponse}},
    summary="Update selected fields of an insect",
)
async def update_insect(
    insect_id: int,
    body: InsectUpdate,
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    catalog: CatalogService = Depends(get_catalog),
) -> InsectResponse:
    insect = await catalog.update_insect(db, insect_id, body.model_dump(exclude_unset=True))
    return InsectResponse.model_validate(insect)


@router.delete("/insetos/{insect_id}", response_model=MessageResponse, summary="Delete an insect and its images")
async def delete_insect(
    insect_id: int,
    claim: Claim = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    catalog: CatalogService = Depends(get_catalog),
) -> MessageResponse:
    await catalog.delete_insect(db, insect_id)
    return MessageResponse(message=f"Insect {insect_id} deleted.")
