"""
Сборка файла из частей.

Два варианта одного интерфейса, выбираются при сборке клиента (UploadConfig.reassembly):

* ``merge`` — части скачиваются сразу после загрузки, склеиваются и
  перезаливаются одним объектом; части удаляются, в записи ``is_chunked=False``.
* ``deferred`` — части остаются в хранилище, запись хранит манифест, а
  склейка происходит при каждом чтении.

Чтение всегда идёт по манифесту записи, а не по выбранному варианту.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from scholar_media_client.config import UploadConfig
from scholar_media_client.exceptions import (
    ChunkDownloadError,
    MergeUploadError,
    MinioError,
    ReconstructionError,
)
from scholar_media_client.models.media import ChunkManifest, MediaFileInDB, UploadResult
from scholar_media_client.repositories.object_store import ObjectStore
from scholar_media_client.services.progress import (
    MERGE_SHARE,
    STAGE_MERGING,
    UPLOAD_SHARE,
    ProgressReporter,
)
from scholar_media_client.services.retry import RETRYABLE_ERRORS, store_call

logger = logging.getLogger(__name__)


class Reassembler(ABC):
    name: str = ""

    def __init__(self, store: ObjectStore, config: UploadConfig):
        self._store = store
        self._config = config

    @abstractmethod
    async def finalize(
        self,
        result: UploadResult,
        content_type: Optional[str],
        progress: Optional[ProgressReporter] = None,
    ) -> ChunkManifest:
        """Вызывается после успешной загрузки; возвращает манифест для записи."""

    async def fetch_parts(
        self,
        paths: list[str],
        progress: Optional[ProgressReporter] = None,
    ) -> bytearray:
        """Скачивает части строго по порядку индексов и склеивает их в один буфер."""
        buf = bytearray()
        for index, path in enumerate(paths):
            try:
                data = await store_call(lambda: self._store.get_object(path), self._config)
            except RETRYABLE_ERRORS as e:
                logger.error(f"Failed to download chunk {index} ('{path}'): {e}")
                raise ChunkDownloadError(index, str(e)) from e
            buf += data
            logger.debug(f"Downloaded chunk {index}, size: {len(data)} bytes")
            if progress is not None:
                progress.report_fraction(
                    index + 1, len(paths), start=UPLOAD_SHARE, span=MERGE_SHARE, stage=STAGE_MERGING
                )
        return buf

    async def reconstruct(self, record: MediaFileInDB) -> bytes:
        manifest = record.manifest
        if manifest.is_chunked:
            data = bytes(await self.fetch_parts(manifest.part_paths()))
        else:
            try:
                data = await store_call(lambda: self._store.get_object(record.storage_path), self._config)
            except RETRYABLE_ERRORS as e:
                raise ReconstructionError(f"Failed to download '{record.storage_path}': {e}") from e

        if record.file_size is not None and len(data) != record.file_size:
            raise ReconstructionError(
                f"Media file {record.id}: expected {record.file_size} bytes, got {len(data)}"
            )
        return data


class EagerMergeReassembler(Reassembler):
    name = "merge"

    async def finalize(
        self,
        result: UploadResult,
        content_type: Optional[str],
        progress: Optional[ProgressReporter] = None,
    ) -> ChunkManifest:
        if not result.chunked:
            return ChunkManifest.single()

        paths = result.part_paths
        logger.info(f"Starting merge for '{result.object_path}' with {len(paths)} chunks")
        if progress is not None:
            progress.report(UPLOAD_SHARE, STAGE_MERGING)

        # До успешной заливки склеенного объекта части не трогаем: они единственная копия
        merged = await self.fetch_parts(paths, progress)
        if len(merged) != result.size:
            raise ReconstructionError(
                f"Merged size {len(merged)} does not match uploaded size {result.size} for '{result.object_path}'"
            )

        try:
            await store_call(
                lambda: self._store.put_object(result.object_path, merged, content_type),
                self._config,
            )
        except RETRYABLE_ERRORS as e:
            logger.error(f"Failed to upload merged file '{result.object_path}': {e}")
            raise MergeUploadError(f"Failed to upload merged file '{result.object_path}': {e}") from e
        logger.info(f"Merged file uploaded: '{result.object_path}' ({len(merged)} bytes)")

        await self._remove_parts(paths)
        return ChunkManifest.single()

    async def _remove_parts(self, paths: list[str]) -> None:
        # Склеенный объект уже на месте, поэтому ошибки удаления частей не фатальны
        try:
            outcome = await self._store.delete_objects(paths)
        except MinioError as e:
            logger.warning(f"Failed to delete {len(paths)} chunk files after merge: {e}; orphaned_parts={len(paths)}")
            return
        failed = {p: err for p, err in outcome.items() if err}
        if failed:
            logger.warning(f"Failed to delete {len(failed)} of {len(paths)} chunk files; orphaned_parts={len(failed)}")
        else:
            logger.info(f"Deleted {len(paths)} chunk files")


class DeferredReassembler(Reassembler):
    name = "deferred"

    async def finalize(
        self,
        result: UploadResult,
        content_type: Optional[str],
        progress: Optional[ProgressReporter] = None,
    ) -> ChunkManifest:
        if not result.chunked:
            return ChunkManifest.single()
        return ChunkManifest(
            is_chunked=True,
            total_chunks=result.total_chunks,
            chunk_pattern=result.chunk_pattern,
        )


REASSEMBLERS: dict[str, type[Reassembler]] = {
    EagerMergeReassembler.name: EagerMergeReassembler,
    DeferredReassembler.name: DeferredReassembler,
}


def build_reassembler(store: ObjectStore, config: UploadConfig) -> Reassembler:
    try:
        cls = REASSEMBLERS[config.reassembly]
    except KeyError:
        raise ValueError(f"Unknown reassembly strategy: {config.reassembly!r}") from None
    return cls(store, config)
