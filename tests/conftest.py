from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Union
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from scholar_media_client.client import MediaClient
from scholar_media_client.config import UploadConfig
from scholar_media_client.db.base import Base
from scholar_media_client.exceptions import MinioError
from scholar_media_client.models.media import StoredObjectInfo
from scholar_media_client.repositories.pg_repositoryMedia import MediaRepository

Matcher = Union[str, Callable[[str], bool]]


@dataclass
class StoredObject:
    data: bytes
    content_type: Optional[str]
    last_modified: datetime


@dataclass
class FailureRule:
    op: str
    match: Matcher
    times: int  # < 0 — всегда

    def applies(self, op: str, name: str) -> bool:
        if op != self.op or self.times == 0:
            return False
        return self.match(name) if callable(self.match) else self.match == name


@dataclass
class InMemoryObjectStore:
    """Объектное хранилище в памяти с журналом вызовов и внедрением сбоев."""

    objects: dict[str, StoredObject] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    rules: list[FailureRule] = field(default_factory=list)
    delete_errors: dict[str, str] = field(default_factory=dict)

    def fail(self, op: str, match: Matcher, times: int = -1) -> None:
        self.rules.append(FailureRule(op, match, times))

    def _maybe_fail(self, op: str, name: str) -> None:
        for rule in self.rules:
            if rule.applies(op, name):
                if rule.times > 0:
                    rule.times -= 1
                raise MinioError(f"injected {op} failure for {name}")

    def names(self, op: str) -> list[str]:
        return [name for call_op, name in self.calls if call_op == op]

    async def check_connection(self) -> None:
        return None

    async def put_object(self, object_name: str, data: bytes, content_type: Optional[str] = None) -> None:
        self.calls.append(("put", object_name))
        self._maybe_fail("put", object_name)
        self.objects[object_name] = StoredObject(bytes(data), content_type, datetime.now(timezone.utc))

    async def get_object(self, object_name: str) -> bytes:
        self.calls.append(("get", object_name))
        self._maybe_fail("get", object_name)
        if object_name not in self.objects:
            raise MinioError(f"NoSuchKey: {object_name}")
        return self.objects[object_name].data

    async def delete_objects(self, object_names: list[str]) -> dict[str, Optional[str]]:
        result: dict[str, Optional[str]] = {}
        for name in object_names:
            self.calls.append(("delete", name))
            if name in self.delete_errors:
                result[name] = self.delete_errors[name]
                continue
            # Как и в S3, удаление отсутствующего ключа — не ошибка
            self.objects.pop(name, None)
            result[name] = None
        return result

    async def public_url(self, object_name: str, expires_in_seconds: int = 3600) -> str:
        return f"http://minio.test/media/{object_name}?X-Amz-Expires={expires_in_seconds}"

    async def list_all(self, prefix: Optional[str] = None, recursive: bool = True) -> list[StoredObjectInfo]:
        return [
            StoredObjectInfo(name=name, size=len(obj.data), last_modified=obj.last_modified)
            for name, obj in sorted(self.objects.items())
            if prefix is None or name.startswith(prefix)
        ]


def sqlite_url(path) -> str:
    return f"sqlite+aiosqlite:///{path}"


def build_client(db_url: str, store: InMemoryObjectStore, config: UploadConfig) -> MediaClient:
    engine = create_async_engine(db_url)
    repo = MediaRepository(async_sessionmaker(bind=engine, expire_on_commit=False))
    return MediaClient(media_repo=repo, object_store=store, upload_config=config, engine=engine)


def sample_bytes(size: int) -> bytes:
    """Детерминированные байты без повторяющегося по чанкам рисунка."""
    return bytes((i * 7 + i // 251) % 256 for i in range(size))


@pytest.fixture
def upload_config() -> UploadConfig:
    return UploadConfig(
        chunk_size=1024,
        threshold=4096,
        max_attempts=3,
        base_delay=0,
        attempt_timeout=5,
        reassembly="merge",
    )


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def project_id() -> UUID:
    return uuid4()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Отдельная SQLite-база на каждый тест; таблицы создаются заново."""
    engine = create_async_engine(sqlite_url(tmp_path / "media.db"))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def media_repo(db_engine) -> MediaRepository:
    return MediaRepository(async_sessionmaker(bind=db_engine, expire_on_commit=False))


@pytest.fixture
def media_client(media_repo, object_store, upload_config) -> MediaClient:
    return MediaClient(media_repo=media_repo, object_store=object_store, upload_config=upload_config)


@pytest.fixture
def deferred_client(media_repo, object_store, upload_config) -> MediaClient:
    config = upload_config.model_copy(update={"reassembly": "deferred"})
    return MediaClient(media_repo=media_repo, object_store=object_store, upload_config=config)
