from .media import (
    ChunkDescriptor,
    ChunkManifest,
    DeletionReport,
    MediaFileCreate,
    MediaFileInDB,
    OrphanedPart,
    StoredObjectInfo,
    UploadResult,
    UploadTarget,
)

__all__ = [
    "ChunkDescriptor",
    "ChunkManifest",
    "DeletionReport",
    "MediaFileCreate",
    "MediaFileInDB",
    "OrphanedPart",
    "StoredObjectInfo",
    "UploadResult",
    "UploadTarget",
]
