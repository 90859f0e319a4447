"""
EntomoGuide Backend: Catalog Request/Response Schemas
======================================================

What:  Pydantic models for categories, insects and insect images.
How:   Same alias convention as schemas/account.py (`nome_comum`,
       `id_categoria`, `url_imagem`, ...).

Update payloads:
    InsectUpdate forbids unknown keys, so a request can only touch the
    columns listed here. Only fields actually present in the body are applied
    (`model_dump(exclude_unset=True)`); an empty body is rejected by the
    service.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Categories ────────────────────────────────────────────────────────────


class CategoryCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="nome", min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, alias="descricao")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Category name must not be blank")
        return v


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str = Field(serialization_alias="nome")
    description: Optional[str] = Field(default=None, serialization_alias="descricao")


# ── Insects ───────────────────────────────────────────────────────────────


class InsectCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    common_name: str = Field(alias="nome_comum", min_length=1, max_length=150)
    scientific_name: Optional[str] = Field(default=None, alias="nome_cientifico", max_length=150)
    category_id: Optional[int] = Field(default=None, alias="id_categoria")
    description: Optional[str] = Field(default=None, alias="descricao")
    habitat: Optional[str] = None
    behavior: Optional[str] = Field(default=None, alias="comportamento")


class InsectUpdate(BaseModel):
    """Allow-listed partial update for PUT /insetos/{id}."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    common_name: Optional[str] = Field(default=None, alias="nome_comum", min_length=1, max_length=150)
    scientific_name: Optional[str] = Field(default=None, alias="nome_cientifico", max_length=150)
    category_id: Optional[int] = Field(default=None, alias="id_categoria")
    description: Optional[str] = Field(default=None, alias="descricao")
    habitat: Optional[str] = None
    behavior: Optional[str] = Field(default=None, alias="comportamento")


class InsectImageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    insect_id: int = Field(serialization_alias="id_inseto")
    image_url: str = Field(serialization_alias="url_imagem")
    caption: Optional[str] = Field(default=None, serialization_alias="descricao")
    created_at: Optional[datetime] = None


class InsectResponse(BaseModel):
    """
    Insect with the locators of its images (`imagens`), the shape the
    catalog list screen renders directly.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    common_name: str = Field(serialization_alias="nome_comum")
    scientific_name: Optional[str] = Field(default=None, serialization_alias="nome_cientifico")
    category_id: Optional[int] = Field(default=None, serialization_alias="id_categoria")
    description: Optional[str] = Field(default=None, serialization_alias="descricao")
    habitat: Optional[str] = None
    behavior: Optional[str] = Field(default=None, serialization_alias="comportamento")
    images: List[str] = Field(default_factory=list, serialization_alias="imagens")

    @field_validator("images", mode="before")
    @classmethod
    def images_to_locators(cls, v):
        # ORM rows arrive as InsectImage objects; keep only their locators
        return [getattr(item, "image_url", item) for item in v or []]


class AttachManyResponse(BaseModel):
    message: str
    ids: List[int]
    images: List[InsectImageResponse] = Field(serialization_alias="imagens")
