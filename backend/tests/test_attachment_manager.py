"""
EntomoGuide Backend: Attachment Manager Tests
==============================================

What:  The per-insect image limit and the file compensation around it.
How:   Real SQLite database and upload directory; every test checks both the
       image rows and the files actually left on disk.

What we test:
    ✅ Three attaches succeed, the fourth is rejected and its file removed
    ✅ Missing insect and database failures leave no file behind
    ✅ Concurrent attaches at count 2 end at exactly 3
    ✅ Detach tolerates a file that is already gone
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from entomoguide.exceptions import (
    AttachmentLimitExceededError,
    EntomoGuideError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

from conftest import stored_files


class TestAttach:
    @pytest.mark.asyncio
    async def test_fourth_attach_is_rejected_and_its_file_removed(
        self, db_session, attachments, storage, insect, png_bytes
    ):
        for n in range(3):
            image = await attachments.attach(db_session, insect.id, png_bytes, f"photo{n}.png")
            assert image.image_url.startswith("/uploads/")
            assert image.image_url.endswith(".png")

        with pytest.raises(AttachmentLimitExceededError) as exc_info:
            await attachments.attach(db_session, insect.id, png_bytes, "photo3.png")

        assert exc_info.value.context == {"insect_id": insect.id, "limit": 3}
        assert await attachments.count(db_session, insect.id) == 3
        assert len(stored_files(storage)) == 3

    @pytest.mark.asyncio
    async def test_caption_is_stored(self, db_session, attachments, insect, png_bytes):
        image = await attachments.attach(db_session, insect.id, png_bytes, "a.jpeg", caption="Wing detail")
        assert image.caption == "Wing detail"
        assert image.image_url.endswith(".jpg")
        assert image.created_at is not None

    @pytest.mark.asyncio
    async def test_missing_insect_leaves_no_file(self, db_session, attachments, storage, png_bytes):
        with pytest.raises(NotFoundError):
            await attachments.attach(db_session, 404, png_bytes, "a.png")
        assert stored_files(storage) == []

    @pytest.mark.asyncio
    async def test_invalid_upload_stores_nothing(self, db_session, attachments, storage, insect):
        with pytest.raises(ValidationError):
            await attachments.attach(db_session, insect.id, b"GIF89a", "anim.gif")
        assert stored_files(storage) == []

    @pytest.mark.asyncio
    async def test_database_failure_removes_the_file(
        self, db_session, attachments, storage, insect, png_bytes, monkeypatch
    ):
        async def broken_record(*args, **kwargs):
            raise OperationalError("INSERT INTO insect_images", {}, Exception("disk I/O error"))

        monkeypatch.setattr(attachments, "_record", broken_record)

        with pytest.raises(PersistenceError):
            await attachments.attach(db_session, insect.id, png_bytes, "a.png")
        assert stored_files(storage) == []

    @pytest.mark.asyncio
    async def test_concurrent_attaches_never_exceed_the_limit(
        self, database, db_session, attachments, storage, insect, png_bytes
    ):
        for n in range(2):
            await attachments.attach(db_session, insect.id, png_bytes, f"seed{n}.png")

        async def attempt(n):
            async with database.session_factory() as session:
                return await attachments.attach(session, insect.id, png_bytes, f"race{n}.png")

        results = await asyncio.gather(*(attempt(n) for n in range(5)), return_exceptions=True)

        succeeded = [r for r in results if not isinstance(r, BaseException)]
        failed = [r for r in results if isinstance(r, BaseException)]
        assert len(succeeded) == 1
        assert all(isinstance(e, EntomoGuideError) for e in failed)

        async with database.session_factory() as fresh:
            assert await attachments.count(fresh, insect.id) == 3
        assert len(stored_files(storage)) == 3


class TestAttachMany:
    @pytest.mark.asyncio
    async def test_attaches_each_file(self, db_session, attachments, insect, png_bytes):
        images = await attachments.attach_many(
            db_session, insect.id, [("a.png", png_bytes), ("b.webp", png_bytes)]
        )
        assert len(images) == 2
        assert len({i.image_url for i in images}) == 2

    @pytest.mark.asyncio
    async def test_rejects_more_files_than_the_limit(self, db_session, attachments, storage, insect, png_bytes):
        with pytest.raises(ValidationError):
            await attachments.attach_many(db_session, insect.id, [("a.png", png_bytes)] * 4)
        assert stored_files(storage) == []

    @pytest.mark.asyncio
    async def test_rejects_empty_upload(self, db_session, attachments, insect):
        with pytest.raises(ValidationError):
            await attachments.attach_many(db_session, insect.id, [])

    @pytest.mark.asyncio
    async def test_stops_at_the_limit(self, db_session, attachments, storage, insect, png_bytes):
        await attachments.attach(db_session, insect.id, png_bytes, "first.png")
        await attachments.attach(db_session, insect.id, png_bytes, "second.png")

        with pytest.raises(AttachmentLimitExceededError):
            await attachments.attach_many(db_session, insect.id, [("a.png", png_bytes), ("b.png", png_bytes)])

        assert await attachments.count(db_session, insect.id) == 3
        assert len(stored_files(storage)) == 3


class TestDetach:
    @pytest.mark.asyncio
    async def test_detach_removes_row_and_file(self, db_session, attachments, storage, insect, png_bytes):
        image = await attachments.attach(db_session, insect.id, png_bytes, "a.png")

        await attachments.detach(db_session, image.id)

        assert await attachments.count(db_session, insect.id) == 0
        assert stored_files(storage) == []

    @pytest.mark.asyncio
    async def test_detach_tolerates_missing_file(self, db_session, attachments, storage, insect, png_bytes):
        image = await attachments.attach(db_session, insect.id, png_bytes, "a.png")
        storage.path_for(image.image_url).unlink()

        await attachments.detach(db_session, image.id)

        assert await attachments.count(db_session, insect.id) == 0

    @pytest.mark.asyncio
    async def test_detach_missing_image(self, db_session, attachments):
        with pytest.raises(NotFoundError):
            await attachments.detach(db_session, 999)

    @pytest.mark.asyncio
    async def test_slot_is_reusable_after_detach(self, db_session, attachments, insect, png_bytes):
        images = [await attachments.attach(db_session, insect.id, png_bytes, f"{n}.png") for n in range(3)]
        await attachments.detach(db_session, images[0].id)

        await attachments.attach(db_session, insect.id, png_bytes, "replacement.png")
        assert await attachments.count(db_session, insect.id) == 3
