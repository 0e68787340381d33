from typing import Optional, Protocol, runtime_checkable

from scholar_media_client.models.media import StoredObjectInfo


@runtime_checkable
class ObjectStore(Protocol):
    """
    Минимальный контракт объектного хранилища.
    Нативной multipart-загрузки не предполагается, поэтому крупные файлы режутся на части выше.
    """

    async def check_connection(self) -> None: ...

    async def put_object(self, object_name: str, data: bytes, content_type: Optional[str] = None) -> None: ...

    async def get_object(self, object_name: str) -> bytes: ...

    async def delete_objects(self, object_names: list[str]) -> dict[str, Optional[str]]:
        """Возвращает {имя: текст ошибки или None} для каждого запрошенного имени."""
        ...

    async def public_url(self, object_name: str, expires_in_seconds: int = 3600) -> str: ...

    async def list_all(self, prefix: Optional[str] = None, recursive: bool = True) -> list[StoredObjectInfo]: ...
