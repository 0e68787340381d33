"""Chunk splitter/uploader for files the object store cannot take in one piece."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Optional

from scholar_media_client.config import UploadConfig
from scholar_media_client.exceptions import ChunkUploadError, MinioError, UploadCancelledError
from scholar_media_client.models.media import ChunkDescriptor, UploadResult, UploadTarget
from scholar_media_client.repositories.object_store import ObjectStore
from scholar_media_client.services.progress import (
    STAGE_UPLOADING,
    STAGE_UPLOADING_CHUNKS,
    UPLOAD_SHARE,
    ProgressReporter,
)
from scholar_media_client.services.retry import RETRYABLE_ERRORS, store_call
from scholar_media_client.services.sources import ByteSource
from scholar_media_client.utils.naming import part_name

logger = logging.getLogger(__name__)


def chunk_count(total_size: int, chunk_size: int) -> int:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return math.ceil(total_size / chunk_size) if total_size > 0 else 0


def plan_chunks(total_size: int, chunk_size: int, base: str) -> list[ChunkDescriptor]:
    """Split ``[0, total_size)`` into contiguous ``chunk_size`` ranges.

    The last range holds the remainder, or a full chunk when the size divides evenly.
    """
    if total_size < 0:
        raise ValueError("total_size must not be negative")
    return [
        ChunkDescriptor(
            index=i,
            start=i * chunk_size,
            end=min((i + 1) * chunk_size, total_size),
            object_name=part_name(base, i),
        )
        for i in range(chunk_count(total_size, chunk_size))
    ]


class ChunkUploader:
    """
    Загружает файл целиком (L <= T) или частями по chunk_size (L > T).
    Части идут строго последовательно: следующая начинается только после
    подтверждения предыдущей, в памяти одна часть.
    """

    def __init__(self, store: ObjectStore, config: UploadConfig):
        self._store = store
        self._config = config

    @property
    def config(self) -> UploadConfig:
        return self._config

    async def upload(
        self,
        target: UploadTarget,
        source: ByteSource,
        content_type: Optional[str],
        *,
        chunk_size: Optional[int] = None,
        threshold: Optional[int] = None,
        progress: Optional[ProgressReporter] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> UploadResult:
        chunk_size = chunk_size or self._config.chunk_size
        threshold = self._config.threshold if threshold is None else threshold
        progress = progress or ProgressReporter()

        if source.size <= threshold:
            return await self._upload_whole(target, source, content_type, progress, cancel_event)
        return await self._upload_chunks(target, source, content_type, chunk_size, progress, cancel_event)

    async def _upload_whole(
        self,
        target: UploadTarget,
        source: ByteSource,
        content_type: Optional[str],
        progress: ProgressReporter,
        cancel_event: Optional[asyncio.Event],
    ) -> UploadResult:
        if cancel_event is not None and cancel_event.is_set():
            raise UploadCancelledError(0)

        path = target.object_path
        progress.report(0, STAGE_UPLOADING)
        try:
            data = await source.read_all()
        except OSError as e:
            raise ChunkUploadError(None, f"read failed: {e}") from e
        try:
            await store_call(lambda: self._store.put_object(path, data, content_type), self._config)
        except RETRYABLE_ERRORS as e:
            logger.error(f"Whole-file upload of '{path}' failed after {self._config.max_attempts} attempts: {e}")
            raise ChunkUploadError(None, str(e)) from e

        logger.info(f"Uploaded '{path}' ({source.size} bytes) as a single object")
        progress.report(UPLOAD_SHARE, STAGE_UPLOADING)
        return UploadResult(object_path=path, size=source.size, chunked=False)

    async def _upload_chunks(
        self,
        target: UploadTarget,
        source: ByteSource,
        content_type: Optional[str],
        chunk_size: int,
        progress: ProgressReporter,
        cancel_event: Optional[asyncio.Event],
    ) -> UploadResult:
        base = target.object_path
        chunks = plan_chunks(source.size, chunk_size, base)
        total = len(chunks)
        uploaded: list[str] = []
        logger.info(f"Uploading '{base}' in {total} chunks of {chunk_size} bytes")
        progress.report(0, STAGE_UPLOADING_CHUNKS)

        for chunk in chunks:
            if cancel_event is not None and cancel_event.is_set():
                await self._discard_parts(uploaded, f"cancelled before chunk {chunk.index}")
                raise UploadCancelledError(chunk.index)
            try:
                await self._upload_chunk(source, chunk, content_type)
            except ChunkUploadError:
                await self._discard_parts(uploaded, f"chunk {chunk.index} failed")
                raise
            except BaseException as e:
                # Отмена задачи или непредвиденная ошибка. Текущая часть могла
                # успеть записаться, поэтому удаляем и её
                await asyncio.shield(
                    self._discard_parts(
                        uploaded + [chunk.object_name], f"interrupted at chunk {chunk.index}: {e!r}"
                    )
                )
                raise
            uploaded.append(chunk.object_name)
            progress.report_fraction(
                chunk.index + 1, total, start=0.0, span=UPLOAD_SHARE, stage=STAGE_UPLOADING_CHUNKS
            )

        return UploadResult(
            object_path=base,
            size=source.size,
            chunked=True,
            total_chunks=total,
            chunk_pattern=base,
        )

    async def _upload_chunk(self, source: ByteSource, chunk: ChunkDescriptor, content_type: Optional[str]) -> None:
        try:
            data = await source.read_range(chunk.start, chunk.end)
        except OSError as e:
            raise ChunkUploadError(chunk.index, f"read failed: {e}") from e

        try:
            await store_call(
                lambda: self._store.put_object(chunk.object_name, data, content_type),
                self._config,
            )
        except RETRYABLE_ERRORS as e:
            logger.error(
                f"Chunk {chunk.index} ('{chunk.object_name}') failed after {self._config.max_attempts} attempts: {e}"
            )
            raise ChunkUploadError(chunk.index, str(e)) from e
        logger.debug(f"Uploaded chunk {chunk.index} [{chunk.start}, {chunk.end})")

    async def _discard_parts(self, paths: list[str], reason: str) -> None:
        if not paths:
            return
        if not self._config.cleanup_on_failure:
            logger.warning(f"Upload aborted ({reason}); orphaned_parts={len(paths)} first='{paths[0]}'")
            return
        try:
            result = await self._store.delete_objects(paths)
        except MinioError as e:
            logger.warning(f"Upload aborted ({reason}); cleanup failed: {e}; orphaned_parts={len(paths)}")
            return
        leftover = [p for p, err in result.items() if err]
        logger.warning(
            f"Upload aborted ({reason}); removed {len(paths) - len(leftover)} parts, orphaned_parts={len(leftover)}"
        )
