"""
EntomoGuide Backend: Insect Image Attachments
==============================================

What:  Attaches images to insects (at most `limit` per insect) and detaches them.
How:   The file is stored first; the database write follows in one
       transaction. Any failure after the file exists deletes the file
       again, so a failed attach never leaves an orphaned upload.
Who:   routes/images.py.

Attach sequence:
    1. FileService.save()                     → locator (nothing to undo yet)
    2. SELECT insects.id ... FOR UPDATE       → 404 if missing; serializes
                                                concurrent attaches per insect
    3. SELECT count(*)                        → limit check with a clear error
    4. INSERT ... SELECT ... WHERE count < N  → 0 rows means a concurrent
                                                writer filled the last slot
    5. COMMIT
    Failure in 2-5: ROLLBACK, delete stored file, raise.

    Step 4 holds the limit on back-ends without row locks (SQLite ignores
    FOR UPDATE): the count is evaluated inside the INSERT itself.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import Integer, String, Text, cast, delete, func, insert, literal, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from entomoguide.exceptions import (
    AttachmentLimitExceededError,
    EntomoGuideError,
    FileStorageError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from entomoguide.models.catalog import Insect, InsectImage
from entomoguide.services.file_service import FileService

logger = logging.getLogger(__name__)


class AttachmentManager:
    """
    Args:
        storage: FileService holding the image bytes
        limit:   Maximum images per insect
    """

    def __init__(self, storage: FileService, limit: int = 3):
        self.storage = storage
        self.limit = limit

    # ── Queries ───────────────────────────────────────────────────────────

    async def list_for(self, db: AsyncSession, insect_id: int) -> List[InsectImage]:
        stmt = (
            select(InsectImage)
            .where(InsectImage.insect_id == insect_id)
            .order_by(InsectImage.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def count(self, db: AsyncSession, insect_id: int) -> int:
        stmt = select(func.count(InsectImage.id)).where(InsectImage.insect_id == insect_id)
        return (await db.execute(stmt)).scalar_one()

    # ── Attach ────────────────────────────────────────────────────────────

    async def attach(
        self,
        db: AsyncSession,
        insect_id: int,
        content: bytes,
        filename: Optional[str],
        caption: Optional[str] = None,
    ) -> InsectImage:
        """
        Stores the file and records it as an image of `insect_id`.

        Raises:
            ValidationError:              bad upload (nothing stored)
            StorageWriteError:            disk write failed (nothing stored)
            NotFoundError:                no such insect (file removed)
            AttachmentLimitExceededError: insect already has `limit` images (file removed)
            PersistenceError:             database failure (file removed)
        """
        locator = await self.storage.save(filename, content)

        try:
            image = await self._record(db, insect_id, locator, caption)
            await db.commit()
        except EntomoGuideError:
            await db.rollback()
            await self.storage.discard(locator)
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            await self.storage.discard(locator)
            logger.error("Attach to insect %s failed: %s", insect_id, e)
            raise PersistenceError(context={"operation": "attach_image", "insect_id": insect_id})

        logger.info("Image %s attached to insect %s (%s)", image.id, insect_id, locator)
        return image

    async def _record(
        self, db: AsyncSession, insect_id: int, locator: str, caption: Optional[str]
    ) -> InsectImage:
        owner = await db.execute(
            select(Insect.id).where(Insect.id == insect_id).with_for_update()
        )
        if owner.scalar_one_or_none() is None:
            raise NotFoundError("insect", insect_id)

        if await self.count(db, insect_id) >= self.limit:
            raise AttachmentLimitExceededError(insect_id, self.limit)

        current = (
            select(func.count(InsectImage.id))
            .where(InsectImage.insect_id == insect_id)
            .scalar_subquery()
            .correlate(None)
        )
        guarded_row = select(
            cast(literal(insect_id), Integer),
            cast(literal(locator), String(255)),
            cast(literal(caption), Text),
            func.now(),
        ).where(current < self.limit)

        result = await db.execute(
            insert(InsectImage.__table__).from_select(
                ["insect_id", "image_url", "caption", "created_at"],
                guarded_row,
                include_defaults=False,
            )
        )
        if result.rowcount == 0:
            raise AttachmentLimitExceededError(insect_id, self.limit)

        created = await db.execute(select(InsectImage).where(InsectImage.image_url == locator))
        return created.scalar_one()

    async def attach_many(
        self,
        db: AsyncSession,
        insect_id: int,
        files: Sequence[Tuple[Optional[str], bytes]],
    ) -> List[InsectImage]:
        """
        Attaches `(filename, content)` pairs one after another.

        Stops at the first failure and re-raises it; images attached before
        the failure stay attached.
        """
        if not files:
            raise ValidationError("No image was uploaded.", field="images")
        if len(files) > self.limit:
            raise ValidationError(
                f"At most {self.limit} images can be uploaded at once.",
                field="images",
                context={"received": len(files), "limit": self.limit},
            )

        attached: List[InsectImage] = []
        for filename, content in files:
            attached.append(await self.attach(db, insect_id, content, filename))
        return attached

    # ── Detach ────────────────────────────────────────────────────────────

    async def detach(self, db: AsyncSession, image_id: int) -> InsectImage:
        """
        Deletes the image row, then its stored file.

        A failure to delete the file is logged and tolerated: the row is
        already gone and the client's request succeeded.

        Raises:
            NotFoundError: no such image
        """
        image = await db.get(InsectImage, image_id)
        if image is None:
            raise NotFoundError("image", image_id)

        locator = image.image_url
        await db.execute(delete(InsectImage).where(InsectImage.id == image_id))
        await db.commit()

        try:
            await self.storage.delete(locator)
        except (FileStorageError, ValidationError) as e:
            logger.warning(
                "Image %s removed but its file %s could not be deleted: %s",
                image_id,
                locator,
                e.message,
            )
        return image
