from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from scholar_media_client.utils.naming import build_object_path, part_name


class UploadTarget(BaseModel):
    """Где живёт логический файл: владелец, проект и базовое имя объекта."""

    owner_id: UUID
    project_id: UUID
    base_name: str

    @property
    def object_path(self) -> str:
        return build_object_path(self.owner_id, self.project_id, self.base_name)


class ChunkDescriptor(BaseModel):
    """Один диапазон байт [start, end) исходного файла."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    start: int = Field(ge=0)
    end: int = Field(gt=0)
    object_name: str

    @property
    def size(self) -> int:
        return self.end - self.start


class UploadResult(BaseModel):
    object_path: str
    size: int
    chunked: bool
    total_chunks: Optional[int] = None
    chunk_pattern: Optional[str] = None

    @property
    def part_paths(self) -> list[str]:
        if not self.chunked:
            return []
        return [part_name(self.chunk_pattern, i) for i in range(self.total_chunks)]


class ChunkManifest(BaseModel):
    """Поля записи файла, описывающие хранение частями."""

    is_chunked: bool = False
    total_chunks: Optional[int] = None
    chunk_pattern: Optional[str] = None

    @model_validator(mode="after")
    def _consistent(self) -> "ChunkManifest":
        if self.is_chunked:
            if not self.total_chunks or self.total_chunks < 1:
                raise ValueError("chunked manifest requires a positive total_chunks")
            if not self.chunk_pattern:
                raise ValueError("chunked manifest requires chunk_pattern")
        elif self.total_chunks is not None:
            raise ValueError("total_chunks must be empty for a single-object file")
        return self

    @classmethod
    def single(cls) -> "ChunkManifest":
        return cls()

    def part_paths(self) -> list[str]:
        if not self.is_chunked:
            return []
        return [part_name(self.chunk_pattern, i) for i in range(self.total_chunks)]


class MediaFileCreate(BaseModel):
    project_id: UUID
    owner_id: UUID
    folder_id: Optional[UUID] = None
    name: str
    file_type: str = "generic"
    mime_type: Optional[str] = None


class MediaFileInDB(MediaFileCreate):
    id: UUID = Field(default_factory=uuid4)
    storage_path: str
    file_size: Optional[int] = None
    is_chunked: bool = False
    total_chunks: Optional[int] = None
    chunk_pattern: Optional[str] = None
    created: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    model_config = ConfigDict(from_attributes=True)

    @property
    def manifest(self) -> ChunkManifest:
        return ChunkManifest(
            is_chunked=self.is_chunked,
            total_chunks=self.total_chunks,
            chunk_pattern=self.chunk_pattern,
        )


class DeletionReport(BaseModel):
    file_id: UUID
    requested_paths: list[str]
    failed_paths: dict[str, str] = Field(default_factory=dict)
    record_deleted: bool = False

    @property
    def deleted_paths(self) -> list[str]:
        return [p for p in self.requested_paths if p not in self.failed_paths]


class StoredObjectInfo(BaseModel):
    name: str
    size: int = 0
    last_modified: Optional[datetime] = None


class OrphanedPart(BaseModel):
    object_name: str
    base: str
    index: int
    last_modified: Optional[datetime] = None
