import logging
from datetime import timedelta
from io import BytesIO
from typing import Optional

import urllib3
from minio import Minio
from minio.deleteobjects import DeleteObject
from minio.error import MinioException

from scholar_media_client.config import MinioConfig
from scholar_media_client.exceptions import MinioError
from scholar_media_client.models.media import StoredObjectInfo
from scholar_media_client.utils.minio_async import run_io_bound

logger = logging.getLogger(__name__)
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


class MinioRepository:
    def __init__(self, settings: MinioConfig):
        pool_kwargs = dict(
            timeout=urllib3.Timeout(connect=settings.connect_timeout, read=settings.read_timeout),
            retries=urllib3.Retry(
                total=settings.http_retries,
                backoff_factor=0.2,
                status_forcelist=[500, 502, 503, 504],
            ),
        )
        if settings.secure:
            pool_kwargs["cert_reqs"] = 'CERT_NONE'
        http_client = urllib3.PoolManager(**pool_kwargs)
        self._http_client = http_client
        self._client = Minio(
            endpoint=settings.endpoint,
            access_key=settings.accesskey,
            secret_key=settings.secretkey,
            secure=settings.secure,
            http_client=http_client
        )
        self._bucket = settings.bucket
        self._bucket_ready = False

    @property
    def bucket(self) -> str:
        return self._bucket

    async def _ensure_bucket(self):
        if self._bucket_ready:
            return
        try:
            exists = await run_io_bound(self._client.bucket_exists, self._bucket)
            if not exists:
                await run_io_bound(self._client.make_bucket, self._bucket)
                logger.info(f"Bucket '{self._bucket}' created.")
        except (MinioException, urllib3.exceptions.HTTPError) as e:
            raise MinioError(str(e)) from e
        self._bucket_ready = True

    async def check_connection(self):
        """Проверяет соединение с MinIO и наличие бакета."""
        logger.debug(f"Checking MinIO connection and bucket '{self._bucket}' existence...")
        try:
            await self._ensure_bucket()
            logger.debug("MinIO connection and bucket presence confirmed.")
        except MinioError as e:
            logger.error(f"MinIO connection failed: {e}")
            raise

    async def put_object(self, object_name: str, data: bytes, content_type: str | None = None):
        await self._ensure_bucket()  # сам переводит ошибки в MinioError
        try:
            await run_io_bound(
                self._client.put_object,
                self._bucket,
                object_name,
                BytesIO(data),
                len(data),
                content_type=content_type or "application/octet-stream",
            )
        except (MinioException, urllib3.exceptions.HTTPError) as e:
            raise MinioError(str(e)) from e

    async def get_object(self, object_name: str) -> bytes:
        def _read() -> bytes:
            resp = self._client.get_object(self._bucket, object_name)
            try:
                return resp.read()
            finally:
                resp.close()
                resp.release_conn()

        try:
            return await run_io_bound(_read)
        except (MinioException, urllib3.exceptions.HTTPError) as e:
            raise MinioError(str(e)) from e

    async def delete_objects(self, object_names: list[str]) -> dict[str, Optional[str]]:
        """
        Пакетное удаление. Ошибка по одному имени не прерывает остальные:
        результат содержит текст ошибки для каждого неудачного имени.
        """
        if not object_names:
            return {}

        def _remove() -> dict[str, str]:
            # remove_objects ленивый: ошибки приходят только при обходе итератора
            errors = self._client.remove_objects(
                self._bucket, [DeleteObject(name) for name in object_names]
            )
            return {err.name: f"{err.code}: {err.message}" for err in errors}

        try:
            failed = await run_io_bound(_remove)
        except (MinioException, urllib3.exceptions.HTTPError) as e:
            raise MinioError(str(e)) from e
        return {name: failed.get(name) for name in object_names}

    async def public_url(self, object_name: str, expires_in_seconds: int = 3600) -> str:
        """Генерирует временную ссылку для скачивания объекта."""
        try:
            return await run_io_bound(
                self._client.presigned_get_object,
                self._bucket,
                object_name,
                expires=timedelta(seconds=expires_in_seconds),
            )
        except (MinioException, urllib3.exceptions.HTTPError) as e:
            raise MinioError(str(e)) from e

    async def list_all(self,
                       prefix: str | None = None,
                       recursive: bool = True) -> list[StoredObjectInfo]:
        """
        Возвращает список всех объектов в бакете (или под-префиксе).
        """
        def _collect():
            # list_objects – генератор, собираем сразу в список
            return [
                StoredObjectInfo(
                    name=obj.object_name,
                    size=obj.size or 0,
                    last_modified=obj.last_modified,
                )
                for obj in self._client.list_objects(
                    self._bucket, prefix=prefix, recursive=recursive
                )
                if not obj.is_dir
            ]

        try:
            return await run_io_bound(_collect)
        except (MinioException, urllib3.exceptions.HTTPError) as e:
            raise MinioError(str(e)) from e
