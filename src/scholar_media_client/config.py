# Файл: src/scholar_media_client/config.py

from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MiB = 1024 * 1024


# --- 1. Настройки PostgreSQL ---
class PostgresConfig(BaseModel):
    user: str = "postgres"
    password: str = "postgres"
    host: str = "localhost"
    port: int = 5432
    db: str = "scholar"
    # Полный DSN (например sqlite+aiosqlite:///...) имеет приоритет над полями выше
    dsn: Optional[str] = None

    pool_size: int = 5
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    application_name: str = "scholar_media_client"

    def get_pg_dsn(self) -> str:
        """Собирает DSN для SQLAlchemy из полей этого объекта."""
        if self.dsn:
            return self.dsn
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"


# --- 2. Настройки MinIO ---
class MinioConfig(BaseModel):
    endpoint: str = "localhost:9000"
    accesskey: str = "minioadmin"
    secretkey: str = "minioadmin"
    bucket: str = "media"
    secure: bool = False
    # Таймауты HTTP-клиента SDK: ограничивают и поток исполнителя
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    http_retries: int = 3


# --- 3. Параметры загрузки по частям ---
class UploadConfig(BaseModel):
    chunk_size: int = Field(5 * MiB, gt=0, description="Размер одной части, байт")
    threshold: int = Field(50 * MiB, ge=0, description="Файлы больше порога грузятся частями")
    max_attempts: int = Field(3, ge=1)
    base_delay: float = Field(1.0, ge=0, description="Пауза перед попыткой n равна n * base_delay")
    attempt_timeout: Optional[float] = Field(120.0, gt=0, description="Таймаут одной попытки, сек")
    reassembly: Literal["merge", "deferred"] = "merge"
    cleanup_on_failure: bool = True


class AuthConfig(BaseModel):
    secret_key: str = "change-me"
    algorithm: str = "HS256"


# --- 4. Явная конфигурация клиента ---
class MediaClientConfig(BaseModel):
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    minio: MinioConfig = Field(default_factory=MinioConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)


# --- 5. Settings из .env / окружения ---
class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    minio: MinioConfig = Field(default_factory=MinioConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)


_cached_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Возвращает синглтон настроек, создавая его при первом вызове.
    Это предотвращает ошибки валидации при импорте.
    """
    global _cached_settings
    if _cached_settings is None:
        _cached_settings = Settings()
    return _cached_settings
