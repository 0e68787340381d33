import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scholar_media_client.db.base import get_session
from scholar_media_client.db.media_orm import MediaFileORM
from scholar_media_client.exceptions import DatabaseError
from scholar_media_client.models.media import ChunkManifest, MediaFileInDB

logger = logging.getLogger(__name__)


class MediaRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def check_connection(self):
        """Проверяет соединение с базой данных, выполняя простой запрос."""
        logger.debug("Checking database connection...")
        async with get_session(self._session_factory) as session:
            try:
                await session.execute(text("SELECT 1"))
                logger.debug("Database connection successful.")
            except SQLAlchemyError as e:
                logger.error(f"Database connection failed: {e}")
                raise DatabaseError("Failed to connect to the database.") from e

    async def upsert(self, record: MediaFileInDB) -> MediaFileInDB:
        """Одна строка, одна транзакция: вставка или полная перезапись по id."""
        async with get_session(self._session_factory) as session:
            try:
                orm = await session.merge(MediaFileORM.from_pydantic(record))
                await session.commit()
                await session.refresh(orm)
                return orm.to_pydantic()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to save media file {record.id}: {e}") from e

    async def get(self, file_id: UUID) -> Optional[MediaFileInDB]:
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(select(MediaFileORM).where(MediaFileORM.id == file_id))
            except SQLAlchemyError as e:
                raise DatabaseError(str(e)) from e
            orm = res.scalar_one_or_none()
            return orm.to_pydantic() if orm else None

    async def list_by_project(self, project_id: UUID, owner_id: Optional[UUID] = None) -> list[MediaFileInDB]:
        async with get_session(self._session_factory) as session:
            q = select(MediaFileORM).where(MediaFileORM.project_id == project_id)
            if owner_id is not None:
                q = q.where(MediaFileORM.owner_id == owner_id)
            q = q.order_by(MediaFileORM.created.desc())
            try:
                res = await session.execute(q)
            except SQLAlchemyError as e:
                raise DatabaseError(str(e)) from e
            return [orm.to_pydantic() for orm in res.scalars().all()]

    async def update_manifest(self, file_id: UUID, manifest: ChunkManifest) -> bool:
        """Атомарно обновляет поля манифеста. False, если записи нет."""
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(
                    update(MediaFileORM)
                    .where(MediaFileORM.id == file_id)
                    .values(
                        is_chunked=manifest.is_chunked,
                        total_chunks=manifest.total_chunks,
                        chunk_pattern=manifest.chunk_pattern,
                    )
                )
                await session.commit()
                return res.rowcount > 0
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to update manifest of {file_id}: {e}") from e

    async def delete(self, file_id: UUID) -> bool:
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(delete(MediaFileORM).where(MediaFileORM.id == file_id))
                await session.commit()
                return res.rowcount > 0
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to delete media file {file_id}: {e}") from e

    async def list_chunk_patterns(self) -> dict[str, int]:
        """{chunk_pattern: total_chunks} для всех записей, хранящихся частями."""
        async with get_session(self._session_factory) as session:
            stmt = (
                select(MediaFileORM.chunk_pattern, MediaFileORM.total_chunks)
                .where(MediaFileORM.is_chunked.is_(True))
            )
            try:
                res = await session.execute(stmt)
            except SQLAlchemyError as e:
                raise DatabaseError(str(e)) from e
            return {pattern: total for pattern, total in res.all()}

    async def existing_storage_paths(self, paths: list[str]) -> set[str]:
        """Какие из путей заняты единым объектом какой-либо записи."""
        if not paths:
            return set()
        async with get_session(self._session_factory) as session:
            stmt = select(MediaFileORM.storage_path).where(MediaFileORM.storage_path.in_(paths))
            try:
                res = await session.execute(stmt)
            except SQLAlchemyError as e:
                raise DatabaseError(str(e)) from e
            return set(res.scalars().all())
