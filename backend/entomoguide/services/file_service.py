"""
EntomoGuide Backend: File Storage Service
==========================================

What:  Validates, stores, lists and deletes uploaded images.
How:   Extension and size checks, an optional magic-byte MIME check, then an
       async write (aiofiles) under the upload root with a generated name.
Who:   AttachmentManager (insect images), the profile route (profile photos),
       CatalogService (cleanup after deleting an insect), /uploads serving.

Locators:
    Every stored object is addressed by `/uploads/<timestamp>.<ext>`, where
    <timestamp> is `time.time_ns()`. The name never contains user input, so a
    locator can be mapped back to a path without traversal risk.

Security checks:
    1. Extension:  .png .jpg .jpeg .webp
    2. Size:       1 byte .. MAX_FILE_SIZE
    3. MIME type:  libmagic inspects the header bytes (VERIFY_IMAGE_CONTENT)
"""

import logging
import os
import time
from pathlib import Path
from typing import List, Optional

import aiofiles

from entomoguide.config import Settings
from entomoguide.exceptions import FileStorageError, StorageWriteError, ValidationError

logger = logging.getLogger(__name__)

LOCATOR_PREFIX = "/uploads/"

ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
}

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}


class FileService:
    """
    Storage collaborator for uploaded images.

    Args:
        upload_root:    Directory that holds every stored object
        max_file_size:  Upper bound in bytes
        verify_content: Run the libmagic MIME check on every upload
    """

    def __init__(self, upload_root: str, max_file_size: int = 5_242_880, verify_content: bool = True):
        self.upload_root = Path(upload_root).resolve()
        self.max_file_size = max_file_size
        self.verify_content = verify_content
        self.upload_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with upload_root=%s", self.upload_root)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FileService":
        return cls(
            upload_root=settings.upload_root,
            max_file_size=settings.max_file_size,
            verify_content=settings.verify_image_content,
        )

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: Optional[str]) -> str:
        """Returns the normalized extension (lowercase, with dot)."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or '(none)'}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="imagem",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ".jpg" if ext == ".jpeg" else ext

    def validate_size(self, size: int) -> None:
        if size == 0:
            raise ValidationError("The uploaded file is empty.", field="imagem")
        if size > self.max_file_size:
            max_mb = self.max_file_size / (1024 * 1024)
            raise ValidationError(
                message=f"File size ({size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="imagem",
                context={"max_size_mb": max_mb, "actual_size": size},
            )

    def validate_mime_type(self, content: bytes) -> str:
        """
        Detects the real content type from the header bytes.

        Requires the python-magic package and the libmagic system library.
        """
        import magic

        try:
            mime_type = magic.from_buffer(content[:2048], mime=True)
        except Exception as e:
            logger.error("MIME type detection failed: %s", e)
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=f"File content type '{mime_type}' is not a supported image.",
                field="imagem",
                context={"detected_mime": mime_type, "allowed": sorted(ALLOWED_MIME_TYPES)},
            )
        return mime_type

    # ── Locators ──────────────────────────────────────────────────────────

    def path_for(self, locator: str) -> Path:
        """
        Maps `/uploads/<name>` to its file path.

        Raises:
            ValidationError: the locator is not a plain name under the upload root
        """
        if not locator.startswith(LOCATOR_PREFIX):
            raise ValidationError("Invalid file locator.", context={"locator": locator})
        name = locator[len(LOCATOR_PREFIX):]
        if not name or "/" in name or "\\" in name or name in {".", ".."}:
            raise ValidationError("Invalid file locator.", context={"locator": locator})

        path = (self.upload_root / name).resolve()
        if path.parent != self.upload_root:
            raise ValidationError("Invalid file locator.", context={"locator": locator})
        return path

    def list_locators(self) -> List[str]:
        return sorted(
            f"{LOCATOR_PREFIX}{entry.name}"
            for entry in self.upload_root.iterdir()
            if entry.is_file()
        )

    # ── Write / Delete ────────────────────────────────────────────────────

    async def save(self, filename: Optional[str], content: bytes) -> str:
        """
        Validates and stores an upload.

        Returns:
            The locator of the stored object (`/uploads/<timestamp>.<ext>`)

        Raises:
            ValidationError:   bad extension, empty, too large, wrong content type
            StorageWriteError: the file could not be written
        """
        ext = self.validate_extension(filename)
        self.validate_size(len(content))
        if self.verify_content:
            self.validate_mime_type(content)

        while True:
            name = f"{time.time_ns()}{ext}"
            path = self.upload_root / name
            try:
                # "xb" fails instead of overwriting when two uploads land on
                # the same nanosecond
                async with aiofiles.open(path, "xb") as f:
                    await f.write(content)
                break
            except FileExistsError:
                continue
            except OSError as e:
                logger.error("Failed to store file at %s: %s", path, e)
                await self.discard(f"{LOCATOR_PREFIX}{name}")
                raise StorageWriteError(context={"path": str(path), "os_error": str(e)})

        logger.info("File stored: %s (%d bytes)", name, len(content))
        return f"{LOCATOR_PREFIX}{name}"

    async def delete(self, locator: str) -> None:
        """
        Removes a stored object.

        Raises:
            FileStorageError: the file is missing or could not be removed
        """
        path = self.path_for(locator)
        try:
            os.remove(path)
        except OSError as e:
            raise FileStorageError(
                message="Failed to delete stored file.",
                context={"locator": locator, "os_error": str(e)},
            )
        logger.info("File deleted: %s", path.name)

    async def discard(self, locator: str) -> None:
        """Best-effort delete used for compensation; never raises."""
        try:
            await self.delete(locator)
        except (FileStorageError, ValidationError) as e:
            logger.warning("Failed to discard %s: %s", locator, e.message)

    async def health_check(self) -> bool:
        return self.upload_root.is_dir() and os.access(self.upload_root, os.W_OK)
