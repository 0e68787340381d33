import asyncio
import logging
import mimetypes
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncEngine

from scholar_media_client.config import UploadConfig
from scholar_media_client.db import Base, FileType
from scholar_media_client.exceptions import (
    ChunkedFileError,
    DatabaseError,
    MediaFileNotFoundError,
    MetadataWriteError,
    MinioError,
    NotAuthenticatedError,
)
from scholar_media_client.models.media import (
    ChunkManifest,
    DeletionReport,
    MediaFileInDB,
    OrphanedPart,
    UploadResult,
    UploadTarget,
)
from scholar_media_client.repositories import MediaRepository, ObjectStore
from scholar_media_client.services.manifest import ManifestTracker
from scholar_media_client.services.progress import (
    MERGE_SHARE,
    STAGE_FINALIZING,
    UPLOAD_SHARE,
    ProgressCallback,
    ProgressReporter,
)
from scholar_media_client.services.reassembly import build_reassembler
from scholar_media_client.services.sources import ByteSource, SourceLike
from scholar_media_client.services.uploader import ChunkUploader
from scholar_media_client.utils.naming import build_base_name, split_part_name

AUDIO_EXTS = ["wav", "mp3", "ogg", "m4a", "flac", "aac", "wma", "alac", "opus"]
VIDEO_EXTS = ["mp4", "mov", "mkv", "webm", "avi"]


def get_filetype(file_name: str, mime_type: Optional[str] = None) -> FileType:
    if mime_type:
        major = mime_type.split("/", 1)[0].lower()
        if major == "audio":
            return FileType.audio
        if major == "video":
            return FileType.video
    ext = Path(file_name).suffix.lower().lstrip(".")
    if ext in AUDIO_EXTS:
        return FileType.audio
    elif ext in VIDEO_EXTS:
        return FileType.video
    else:
        return FileType.generic


def detect_content_type(file_name: str, provided_type: Optional[str] = None) -> str:
    if provided_type and provided_type != "application/octet-stream":
        return provided_type
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or provided_type or "application/octet-stream"


logger = logging.getLogger(__name__)


class MediaClient:
    """
    Единая точка доступа: загрузка крупных медиафайлов частями, чтение, удаление.
    """

    def __init__(
        self,
        media_repo: MediaRepository,
        object_store: ObjectStore,
        upload_config: UploadConfig | None = None,
        engine: AsyncEngine | None = None,
    ):
        self.media_repo = media_repo
        self.store = object_store
        self.upload_config = upload_config or UploadConfig()
        self.uploader = ChunkUploader(object_store, self.upload_config)
        self.reassembler = build_reassembler(object_store, self.upload_config)
        self.tracker = ManifestTracker(media_repo, object_store, self.upload_config)
        self._engine = engine

    async def aclose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def create_schema(self) -> None:
        """Создаёт таблицы (замена миграциям для dev/тестов)."""
        if self._engine is None:
            raise RuntimeError("MediaClient was built without an engine")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def check_connections(self) -> dict[str, str]:
        """
        Проверяет доступность внешних сервисов (PostgreSQL, MinIO).
        Возвращает словарь со статусами.
        """
        statuses = {}

        try:
            await self.media_repo.check_connection()
            statuses["postgres"] = "ok"
        except DatabaseError as e:
            statuses["postgres"] = f"failed: {e}"

        try:
            await self.store.check_connection()
            statuses["minio"] = "ok"
        except MinioError as e:
            statuses["minio"] = f"failed: {e}"

        return statuses

    # ――― upload ――― #

    async def upload_large_file(
        self,
        owner_id: Optional[UUID],
        project_id: UUID,
        file: SourceLike,
        *,
        file_name: Optional[str] = None,
        content_type: Optional[str] = None,
        chunk_size: Optional[int] = None,
        threshold: Optional[int] = None,
        folder_id: Optional[UUID] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> MediaFileInDB:
        """
        Загружает файл и создаёт запись о нём.

        - Файлы не больше порога грузятся одним объектом, остальные — частями
          ``<base>.part0..N-1`` последовательно, с повтором каждой части.
        - Дальше выбранный сборщик либо склеивает части в один объект, либо
          оставляет их и возвращает манифест.
        - Запись в БД — последний шаг; 100% прогресса сообщается только после неё.
        """
        if not owner_id:
            raise NotAuthenticatedError("User not authenticated")
        if chunk_size is not None and chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if threshold is not None and threshold < 0:
            raise ValueError("threshold must not be negative")

        if file_name is None:
            if not isinstance(file, (str, os.PathLike)):
                raise ValueError("file_name is required when uploading from memory or a stream")
            file_name = Path(file).name
        content_type = detect_content_type(file_name, content_type)

        progress = ProgressReporter(on_progress)
        target = UploadTarget(owner_id=owner_id, project_id=project_id, base_name=build_base_name(file_name))
        logger.info(f"Uploading '{file_name}' to '{target.object_path}'")

        with ByteSource(file) as source:
            result = await self.uploader.upload(
                target,
                source,
                content_type,
                chunk_size=chunk_size,
                threshold=threshold,
                progress=progress,
                cancel_event=cancel_event,
            )

        manifest = await self.reassembler.finalize(result, content_type, progress)

        progress.report(UPLOAD_SHARE + MERGE_SHARE, STAGE_FINALIZING)
        record = MediaFileInDB(
            id=uuid4(),
            project_id=project_id,
            owner_id=owner_id,
            folder_id=folder_id,
            name=file_name,
            file_type=get_filetype(file_name, content_type).value,
            mime_type=content_type,
            storage_path=result.object_path,
            file_size=result.size,
            **manifest.model_dump(),
        )
        try:
            saved = await self.tracker.commit(record)
        except MetadataWriteError:
            await self._discard_uncommitted(result, manifest)
            raise

        progress.complete()
        logger.info(
            f"Media file {saved.id} ready: {saved.file_size} bytes, "
            f"{'chunked x' + str(saved.total_chunks) if saved.is_chunked else 'single object'}"
        )
        return saved

    async def _discard_uncommitted(self, result: UploadResult, manifest: ChunkManifest) -> None:
        paths = manifest.part_paths() if manifest.is_chunked else [result.object_path]
        if not self.upload_config.cleanup_on_failure:
            logger.warning(f"Record write failed; orphaned_parts={len(paths)} under '{result.object_path}'")
            return
        # Rollback: запись в БД не удалась, убираем уже загруженные объекты
        try:
            outcome = await self.store.delete_objects(paths)
        except MinioError as e:
            logger.warning(f"Record write failed and cleanup failed: {e}; orphaned_parts={len(paths)}")
            return
        leftover = [p for p, err in outcome.items() if err]
        logger.warning(
            f"Record write failed; rolled back {len(paths) - len(leftover)} objects, orphaned_parts={len(leftover)}"
        )

    # ――― read ――― #

    async def get_media_file(self, file_id: UUID) -> MediaFileInDB:
        record = await self.media_repo.get(file_id)
        if record is None:
            raise MediaFileNotFoundError(f"Media file with id {file_id} not found.")
        return record

    async def list_media_files(self, project_id: UUID, owner_id: Optional[UUID] = None) -> list[MediaFileInDB]:
        return await self.media_repo.list_by_project(project_id, owner_id)

    async def reconstruct_file(self, record: Union[MediaFileInDB, UUID]) -> bytes:
        """Полный поток байт файла: один объект или склейка частей по манифесту."""
        if not isinstance(record, MediaFileInDB):
            record = await self.get_media_file(record)
        return await self.reassembler.reconstruct(record)

    async def get_media_url(self, file_id: UUID, expires_in: int = 3600) -> str:
        """
        Создаёт временную ссылку на файл.
        Для файлов, хранящихся частями, единого объекта нет: нужен reconstruct_file.
        """
        record = await self.get_media_file(file_id)
        if record.is_chunked:
            raise ChunkedFileError(
                f"Media file {file_id} is stored as {record.total_chunks} parts; use reconstruct_file"
            )
        url = await self.store.public_url(record.storage_path, expires_in_seconds=expires_in)
        logger.info(f"Generated presigned URL for media file {file_id}")
        return url

    # ――― manifest / delete ――― #

    async def record_chunking(
        self,
        file_id: UUID,
        is_chunked: bool,
        total_chunks: Optional[int],
        chunk_pattern: Optional[str],
    ) -> None:
        await self.tracker.record_chunking(file_id, is_chunked, total_chunks, chunk_pattern)

    async def delete_media_file(self, file_id: UUID) -> DeletionReport:
        record = await self.get_media_file(file_id)
        return await self.tracker.delete(record)

    # ――― orphan sweep ――― #

    async def find_orphaned_parts(
        self,
        prefix: Optional[str] = None,
        min_age: timedelta = timedelta(hours=1),
    ) -> list[OrphanedPart]:
        """
        Части (``*.partN``), на которые не ссылается ни одна запись.
        Объекты моложе ``min_age`` пропускаются: это могут быть идущие загрузки.
        """
        objects = await self.store.list_all(prefix=prefix)
        known = await self.media_repo.list_chunk_patterns()
        cutoff = datetime.now(timezone.utc) - min_age

        by_base: dict[str, list[OrphanedPart]] = {}
        for obj in objects:
            parsed = split_part_name(obj.name)
            if parsed is None:
                continue
            base, index = parsed
            if base in known and index < known[base]:
                continue
            by_base.setdefault(base, []).append(
                OrphanedPart(object_name=obj.name, base=base, index=index, last_modified=obj.last_modified)
            )

        # Возраст считается по самой свежей части: загрузка может ещё идти
        candidates: list[OrphanedPart] = []
        for base, parts in by_base.items():
            stamps = [p.last_modified for p in parts if p.last_modified is not None]
            if stamps and max(stamps) > cutoff:
                logger.debug(f"Skipping '{base}': newest part is younger than {min_age}")
                continue
            candidates.extend(sorted(parts, key=lambda p: p.index))

        # Имя вида "lecture.part1" может оказаться единым объектом записи
        taken = await self.media_repo.existing_storage_paths([c.object_name for c in candidates])
        return [c for c in candidates if c.object_name not in taken]

    async def sweep_orphaned_parts(
        self,
        prefix: Optional[str] = None,
        min_age: timedelta = timedelta(hours=1),
        dry_run: bool = True,
    ) -> list[OrphanedPart]:
        orphans = await self.find_orphaned_parts(prefix=prefix, min_age=min_age)
        logger.info(f"Orphan sweep found orphaned_parts={len(orphans)} (dry_run={dry_run})")
        if dry_run or not orphans:
            return orphans
        outcome = await self.store.delete_objects([o.object_name for o in orphans])
        failed = {p for p, err in outcome.items() if err}
        if failed:
            logger.warning(f"Orphan sweep could not delete {len(failed)} parts")
        return [o for o in orphans if o.object_name not in failed]
