"""
EntomoGuide Backend: Insect Image Route Handlers
=================================================

What:  Attach, list and detach insect images; serve stored uploads.
How:   Multipart uploads are read into memory (bounded by MAX_FILE_SIZE in
       FileService) and handed to AttachmentManager, which enforces the
       per-insect image limit.
Who:   The admin panel's insect editor and every <img> in the clients.

Routes:
    GET    /insetos/{id}/imagens   public
    POST   /insetos/{id}/imagem    token   (form field "imagem", optional "descricao")
    POST   /insetos/{id}/imagens   token   (form field "images", up to the limit)
    DELETE /insetos/imagens/{id}   token
    GET    /uploads/{name}         public
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from entomoguide.database import get_db_session
from entomoguide.deps import get_attachments, get_current_claim, get_storage
from entomoguide.exceptions import NotFoundError
from entomoguide.schemas.catalog import AttachManyResponse, InsectImageResponse
from entomoguide.schemas.common import ErrorResponse, MessageResponse
from entomoguide.services.attachment_manager import AttachmentManager
from entomoguide.services.file_service import LOCATOR_PREFIX, FileService
from entomoguide.services.security import Claim

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Images"])


@router.get(
    "/insetos/{insect_id}/imagens",
    response_model=List[InsectImageResponse],
    summary="List the images of an insect",
)
async def list_images(
    insect_id: int,
    db: AsyncSession = Depends(get_db_session),
    attachments: AttachmentManager = Depends(get_attachments),
) -> List[InsectImageResponse]:
    images = await attachments.list_for(db, insect_id)
    return [InsectImageResponse.model_validate(i) for i in images]


@router.post(
    "/insetos/{insect_id}/imagem",
    response_model=InsectImageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid file or image limit reached", "model": ErrorResponse},
        404: {"description": "Insect not found", "model": ErrorResponse},
    },
    summary="Attach one image to an insect",
)
async def attach_image(
    insect_id: int,
    imagem: UploadFile = File(description="PNG, JPEG or WebP image"),
    descricao: Optional[str] = Form(default=None),
    claim: Claim = Depends(get_current_claim),
    db: AsyncSession = Depends(get_db_session),
    attachments: AttachmentManager = Depends(get_attachments),
) -> InsectImageResponse:
    content = await imagem.read()
    image = await attachments.attach(db, insect_id, content, imagem.filename, caption=descricao)
    return InsectImageResponse.model_validate(image)


@router.post(
    "/insetos/{insect_id}/imagens",
    response_model=AttachManyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Attach several images to an insect",
)
async def attach_images(
    insect_id: int,
    images: List[UploadFile] = File(description="Up to 3 images"),
    claim: Claim = Depends(get_current_claim),
    db: AsyncSession = Depends(get_db_session),
    attachments: AttachmentManager = Depends(get_attachments),
) -> AttachManyResponse:
    files = [(upload.filename, await upload.read()) for upload in images]
    attached = await attachments.attach_many(db, insect_id, files)
    return AttachManyResponse(
        message=f"{len(attached)} image(s) added.",
        ids=[image.id for image in attached],
        images=[InsectImageResponse.model_validate(image) for image in attached],
    )


@router.delete(
    "/insetos/imagens/{image_id}",
    response_model=MessageResponse,
    responses={404: {"description": "Image not found", "model": ErrorResponse}},
    summary="Detach an image and delete its file",
)
async def detach_image(
    image_id: int,
    claim: Claim = Depends(get_current_claim),
    db: AsyncSession = Depends(get_db_session),
    attachments: AttachmentManager = Depends(get_attachments),
) -> MessageResponse:
    await attachments.detach(db, image_id)
    return MessageResponse(message="Image deleted.")


@router.get("/uploads/{name}", summary="Serve a stored upload")
async def serve_upload(
    name: str,
    storage: FileService = Depends(get_storage),
) -> FileResponse:
    """
    Security:
        `path_for` rejects anything that is not a plain file name directly
        under the upload root (no separators, no `..`).
    """
    path = storage.path_for(f"{LOCATOR_PREFIX}{name}")
    if not path.is_file():
        raise NotFoundError(resource="file", resource_id=name)

    return FileResponse(
        path=str(path),
        headers={"Cache-Control": "public, max-age=86400"},
    )
