import enum
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Index, Integer, String, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Uuid
from sqlalchemy.orm import Mapped, mapped_column

from scholar_media_client.db.base import Base, CreatedAt
from scholar_media_client.models.media import MediaFileInDB


class FileType(str, enum.Enum):
    generic = "generic"
    audio = "audio"
    video = "video"


class MediaFileORM(Base):
    __tablename__ = "media_files"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    owner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    folder_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    name: Mapped[str] = mapped_column(String, nullable=False)
    file_type: Mapped[str] = mapped_column(
        SAEnum(FileType, name="media_file_type_enum", native_enum=False),
        nullable=False,
        default=FileType.generic,
    )
    mime_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Путь единого объекта либо общий префикс частей (<storage_path>.partN)
    storage_path: Mapped[str] = mapped_column(String, nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    is_chunked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    total_chunks: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    chunk_pattern: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created: Mapped[CreatedAt]

    __table_args__ = (
        CheckConstraint(
            "(is_chunked AND total_chunks >= 1 AND chunk_pattern IS NOT NULL) OR (NOT is_chunked AND total_chunks IS NULL)",
            name="manifest_consistent",
        ),
        Index("idx_media_files_project_id", "project_id"),
        Index("idx_media_files_owner_id", "owner_id"),
    )

    def to_pydantic(self) -> MediaFileInDB:
        data = {col.key: getattr(self, col.key) for col in self.__table__.columns}
        data["file_type"] = FileType(data["file_type"]).value
        return MediaFileInDB.model_validate(data)

    @classmethod
    def from_pydantic(cls, record: MediaFileInDB) -> "MediaFileORM":
        data = record.model_dump()
        data["file_type"] = FileType(data["file_type"])
        return cls(**data)
