# scholar_media_client/db/__init__.py

from .base import Base
from .media_orm import FileType, MediaFileORM

__all__ = [
    "Base",
    "FileType",
    "MediaFileORM",
]
