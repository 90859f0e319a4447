"""
EntomoGuide Backend: Catalog Service Tests
===========================================

What:  Category and insect CRUD, the update allow-list, and cascades.
"""

import pytest

from entomoguide.exceptions import ConflictError, NotFoundError, ValidationError
from entomoguide.models.catalog import Insect

from conftest import stored_files


class TestCategories:
    @pytest.mark.asyncio
    async def test_create_and_list_sorted_by_name(self, db_session, catalog):
        await catalog.create_category(db_session, "Coleoptera", "Beetles")
        await catalog.create_category(db_session, "Apidae")

        names = [c.name for c in await catalog.list_categories(db_session)]
        assert names == ["Apidae", "Coleoptera"]

    @pytest.mark.asyncio
    async def test_duplicate_name(self, db_session, catalog):
        await catalog.create_category(db_session, "Coleoptera")
        with pytest.raises(ConflictError):
            await catalog.create_category(db_session, "Coleoptera")

    @pytest.mark.asyncio
    async def test_update(self, db_session, catalog):
        category = await catalog.create_category(db_session, "Coleoptera")
        updated = await catalog.update_category(db_session, category.id, {"description": "Beetles"})
        assert updated.description == "Beetles"

    @pytest.mark.asyncio
    async def test_delete_missing(self, db_session, catalog):
        with pytest.raises(NotFoundError):
            await catalog.delete_category(db_session, 99)

    @pytest.mark.asyncio
    async def test_delete_keeps_insects_without_category(self, database, db_session, catalog):
        category = await catalog.create_category(db_session, "Coleoptera")
        insect = await catalog.create_insect(db_session, {"common_name": "Besouro", "category_id": category.id})

        await catalog.delete_category(db_session, category.id)

        async with database.session_factory() as fresh:
            survivor = await fresh.get(Insect, insect.id)
            assert survivor is not None
            assert survivor.category_id is None


class TestInsects:
    @pytest.mark.asyncio
    async def test_create_requires_common_name(self, db_session, catalog):
        with pytest.raises(ValidationError):
            await catalog.create_insect(db_session, {"common_name": "", "habitat": "Forest"})

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_category(self, db_session, catalog):
        with pytest.raises(ValidationError, match="does not exist"):
            await catalog.create_insect(db_session, {"common_name": "Besouro", "category_id": 12})

    @pytest.mark.asyncio
    async def test_create_starts_without_images(self, db_session, catalog):
        insect = await catalog.create_insect(db_session, {"common_name": "Besouro"})
        assert insect.images == []

    @pytest.mark.asyncio
    async def test_list_filters_by_name_and_category(self, db_session, catalog):
        beetles = await catalog.create_category(db_session, "Coleoptera")
        await catalog.create_insect(db_session, {"common_name": "Besouro-rinoceronte", "category_id": beetles.id})
        await catalog.create_insect(db_session, {"common_name": "Joaninha", "category_id": beetles.id})
        await catalog.create_insect(db_session, {"common_name": "Abelha"})

        by_name = await catalog.list_insects(db_session, name_contains="besouro")
        assert [i.common_name for i in by_name] == ["Besouro-rinoceronte"]

        by_category = await catalog.list_insects(db_session, category_id=beetles.id)
        assert len(by_category) == 2

    @pytest.mark.asyncio
    async def test_update_applies_only_given_fields(self, db_session, catalog):
        insect = await catalog.create_insect(db_session, {"common_name": "Besouro", "habitat": "Forest"})
        updated = await catalog.update_insect(db_session, insect.id, {"behavior": "Nocturnal"})
        assert updated.behavior == "Nocturnal"
        assert updated.habitat == "Forest"

    @pytest.mark.asyncio
    async def test_update_rejects_unlisted_field(self, db_session, catalog):
        insect = await catalog.create_insect(db_session, {"common_name": "Besouro"})
        with pytest.raises(ValidationError) as exc_info:
            await catalog.update_insect(db_session, insect.id, {"id": 1000})
        assert exc_info.value.context["fields"] == ["id"]

    @pytest.mark.asyncio
    async def test_update_rejects_empty_payload(self, db_session, catalog):
        insect = await catalog.create_insect(db_session, {"common_name": "Besouro"})
        with pytest.raises(ValidationError, match="No data"):
            await catalog.update_insect(db_session, insect.id, {})

    @pytest.mark.asyncio
    async def test_update_missing_insect(self, db_session, catalog):
        with pytest.raises(NotFoundError):
            await catalog.update_insect(db_session, 404, {"habitat": "Forest"})

    @pytest.mark.asyncio
    async def test_delete_removes_images_and_files(
        self, database, db_session, catalog, attachments, storage, png_bytes
    ):
        insect = await catalog.create_insect(db_session, {"common_name": "Besouro"})
        await attachments.attach(db_session, insect.id, png_bytes, "a.png")
        await attachments.attach(db_session, insect.id, png_bytes, "b.png")

        async with database.session_factory() as fresh:
            await catalog.delete_insect(fresh, insect.id)

        async with database.session_factory() as check:
            assert await attachments.count(check, insect.id) == 0
        assert stored_files(storage) == []
