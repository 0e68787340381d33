import logging
from typing import Optional
from uuid import UUID

from scholar_media_client.config import UploadConfig
from scholar_media_client.exceptions import (
    DatabaseError,
    MediaFileNotFoundError,
    MetadataWriteError,
    MinioError,
)
from scholar_media_client.models.media import ChunkManifest, DeletionReport, MediaFileInDB
from scholar_media_client.repositories.object_store import ObjectStore
from scholar_media_client.repositories.pg_repositoryMedia import MediaRepository
from scholar_media_client.services.retry import db_call

logger = logging.getLogger(__name__)


class ManifestTracker:
    """
    Хранит манифест частей в записи файла.
    Запись (commit) — последний шаг загрузки: для остальных компонентов это сигнал «файл готов».
    """

    def __init__(self, repo: MediaRepository, store: ObjectStore, config: UploadConfig):
        self._repo = repo
        self._store = store
        self._config = config

    async def commit(self, record: MediaFileInDB) -> MediaFileInDB:
        try:
            return await self._repo.upsert(record)
        except DatabaseError as e:
            logger.error(f"Failed to write media file record {record.id}: {e}")
            raise MetadataWriteError(str(e)) from e

    async def record_chunking(
        self,
        file_id: UUID,
        is_chunked: bool,
        total_chunks: Optional[int],
        chunk_pattern: Optional[str],
    ) -> None:
        manifest = ChunkManifest(is_chunked=is_chunked, total_chunks=total_chunks, chunk_pattern=chunk_pattern)
        try:
            found = await self._repo.update_manifest(file_id, manifest)
        except DatabaseError as e:
            raise MetadataWriteError(str(e)) from e
        if not found:
            raise MediaFileNotFoundError(f"Media file with id {file_id} not found.")
        logger.info(f"Recorded manifest for {file_id}: chunked={is_chunked} total={total_chunks}")

    async def delete(self, record: MediaFileInDB) -> DeletionReport:
        """
        Удаляет объекты файла, затем запись.
        Ошибки по отдельным объектам копятся в отчёте и не прерывают пакет;
        удаление записи повторяется, иначе она останется мусором без объектов.
        """
        manifest = record.manifest
        paths = manifest.part_paths() if manifest.is_chunked else [record.storage_path]
        report = DeletionReport(file_id=record.id, requested_paths=paths)

        try:
            outcome = await self._store.delete_objects(paths)
        except MinioError as e:
            outcome = {p: str(e) for p in paths}
        report.failed_paths = {p: err for p, err in outcome.items() if err}
        if report.failed_paths:
            logger.warning(
                f"Media file {record.id}: {len(report.failed_paths)} of {len(paths)} objects were not deleted"
            )

        try:
            await db_call(lambda: self._repo.delete(record.id), self._config)
        except DatabaseError as e:
            logger.error(f"Objects of {record.id} removed but the record could not be deleted: {e}")
            raise MetadataWriteError(f"Failed to delete record {record.id}: {e}") from e
        report.record_deleted = True
        logger.info(f"Media file {record.id} deleted ({len(report.deleted_paths)} objects removed)")
        return report
