# src/scholar_media_client/server/main.py
import logging
from typing import Annotated, AsyncIterator, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Response, UploadFile, status
from pydantic import BaseModel

from scholar_media_client import MediaClient, create_media_client
from scholar_media_client.exceptions import (
    ChunkedFileError,
    MediaClientError,
    MediaFileNotFoundError,
    NotAuthenticatedError,
    ReassemblyError,
    UploadError,
)
from scholar_media_client.models.media import DeletionReport, MediaFileInDB

from .auth import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Media"])


class MediaUrl(BaseModel):
    url: str
    expires_in: int


async def get_media_client() -> AsyncIterator[MediaClient]:
    client = create_media_client()
    try:
        yield client
    finally:
        await client.aclose()


async def _owned_file(client: MediaClient, file_id: UUID, user_id: UUID) -> MediaFileInDB:
    try:
        record = await client.get_media_file(file_id)
    except MediaFileNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Media file not found.")
    # Чужой файл неотличим от отсутствующего
    if record.owner_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Media file not found.")
    return record


@router.post("/projects/{project_id}/media", response_model=MediaFileInDB, status_code=status.HTTP_201_CREATED)
async def upload_media(
    project_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    client: Annotated[MediaClient, Depends(get_media_client)],
    file: UploadFile = File(...),
    folder_id: Optional[UUID] = Form(None),
):
    """
    Загружает медиафайл в проект текущего пользователя.
    Крупные файлы режутся на части; ответ приходит после записи метаданных.
    """
    try:
        return await client.upload_large_file(
            user_id,
            project_id,
            file.file,
            file_name=file.filename or "upload.bin",
            content_type=file.content_type,
            folder_id=folder_id,
        )
    except NotAuthenticatedError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated.")
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (UploadError, ReassemblyError) as e:
        logger.error(f"Upload to project {project_id} failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except MediaClientError as e:
        logger.error(f"Upload to project {project_id} failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="An internal error occurred.")


@router.get("/projects/{project_id}/media", response_model=list[MediaFileInDB])
async def list_media(
    project_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    client: Annotated[MediaClient, Depends(get_media_client)],
):
    return await client.list_media_files(project_id, owner_id=user_id)


@router.get("/media/{file_id}", response_model=MediaFileInDB)
async def get_media(
    file_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    client: Annotated[MediaClient, Depends(get_media_client)],
):
    return await _owned_file(client, file_id, user_id)


@router.get("/media/{file_id}/content")
async def get_media_content(
    file_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    client: Annotated[MediaClient, Depends(get_media_client)],
):
    record = await _owned_file(client, file_id, user_id)
    try:
        data = await client.reconstruct_file(record)
    except ReassemblyError as e:
        logger.error(f"Failed to reconstruct media file {file_id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return Response(content=data, media_type=record.mime_type or "application/octet-stream")


@router.get("/media/{file_id}/url", response_model=MediaUrl)
async def get_media_url(
    file_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    client: Annotated[MediaClient, Depends(get_media_client)],
    expires_in: int = 3600,
):
    await _owned_file(client, file_id, user_id)
    try:
        url = await client.get_media_url(file_id, expires_in=expires_in)
    except ChunkedFileError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return MediaUrl(url=url, expires_in=expires_in)


@router.delete("/media/{file_id}", response_model=DeletionReport)
async def delete_media(
    file_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    client: Annotated[MediaClient, Depends(get_media_client)],
):
    await _owned_file(client, file_id, user_id)
    try:
        return await client.delete_media_file(file_id)
    except MediaClientError as e:
        logger.error(f"Failed to delete media file {file_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


def create_app() -> FastAPI:
    app = FastAPI(title="scholar-media-client")
    app.include_router(router)
    return app
