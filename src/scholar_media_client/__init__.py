# Файл: src/scholar_media_client/__init__.py

from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from .client import MediaClient
from .config import (
    MediaClientConfig,
    MinioConfig,
    PostgresConfig,
    UploadConfig,
    get_settings,
)
from .exceptions import *
from .repositories.minio_repository import MinioRepository
from .repositories.object_store import ObjectStore
from .repositories.pg_repositoryMedia import MediaRepository


def create_media_client(
    config: Optional[MediaClientConfig] = None,
    object_store: Optional[ObjectStore] = None,
) -> MediaClient:
    """
    Фабрика MediaClient.

    :param config: Единый объект с настройками.
                   Если не предоставлен, используются переменные окружения.
    :param object_store: Готовое хранилище вместо MinIO из конфигурации.
    :return: Сконфигурированный экземпляр MediaClient.
    """
    if config is None:
        s = get_settings()
        config = MediaClientConfig(postgres=s.postgres, minio=s.minio, upload=s.upload)

    dsn = config.postgres.get_pg_dsn()
    engine_kwargs = {"pool_pre_ping": config.postgres.pool_pre_ping}
    if dsn.startswith("postgresql"):
        engine_kwargs.update(
            pool_size=config.postgres.pool_size,
            max_overflow=config.postgres.max_overflow,
            pool_timeout=config.postgres.pool_timeout,
            pool_recycle=config.postgres.pool_recycle,
            connect_args={
                "server_settings": {
                    "application_name": config.postgres.application_name
                }
            },
        )
    engine = create_async_engine(dsn, **engine_kwargs)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    media_repo = MediaRepository(session_factory)
    store = object_store if object_store is not None else MinioRepository(config.minio)

    return MediaClient(
        media_repo=media_repo,
        object_store=store,
        upload_config=config.upload,
        engine=engine,
    )


__all__ = [
    "MediaClient", "create_media_client",
    "MediaClientConfig", "PostgresConfig", "MinioConfig", "UploadConfig",
    "ObjectStore", "MinioRepository", "MediaRepository",
    "MediaClientError", "NotAuthenticatedError", "UploadError", "ChunkUploadError",
    "UploadCancelledError", "ReassemblyError", "ChunkDownloadError", "MergeUploadError",
    "ReconstructionError", "MetadataWriteError", "MediaFileNotFoundError",
    "ChunkedFileError", "DatabaseError", "MinioError",
]
