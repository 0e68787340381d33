from .minio_repository import MinioRepository
from .object_store import ObjectStore
from .pg_repositoryMedia import MediaRepository

__all__ = [
    "MinioRepository",
    "MediaRepository",
    "ObjectStore",
]
