"""Random-access byte sources for the uploader."""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO, Union

from scholar_media_client.utils.minio_async import run_io_bound

SourceLike = Union[bytes, bytearray, memoryview, str, os.PathLike, BinaryIO]


class ByteSource:
    """A sized source readable by byte range.

    Only the requested range is read, so one chunk buffer is in memory at a time
    for file-backed sources.
    """

    def __init__(self, source: SourceLike):
        self._owned = False
        self._data: bytes | memoryview | None = None
        self._fh: BinaryIO | None = None

        if isinstance(source, (bytes, bytearray, memoryview)):
            self._data = memoryview(source)
            self.size = len(self._data)
        elif isinstance(source, (str, os.PathLike)):
            self._fh = open(Path(source), "rb")
            self._owned = True
            self.size = os.fstat(self._fh.fileno()).st_size
        elif hasattr(source, "read") and hasattr(source, "seek"):
            self._fh = source
            self._fh.seek(0, os.SEEK_END)
            self.size = self._fh.tell()
            self._fh.seek(0)
        else:
            raise TypeError(f"Unsupported upload source: {type(source).__name__}")

    def _read_sync(self, start: int, end: int) -> bytes:
        self._fh.seek(start)
        return self._fh.read(end - start)

    async def read_range(self, start: int, end: int) -> bytes:
        if not 0 <= start <= end <= self.size:
            raise ValueError(f"range [{start}, {end}) outside source of {self.size} bytes")
        if self._data is not None:
            return bytes(self._data[start:end])
        data = await run_io_bound(self._read_sync, start, end)
        if len(data) != end - start:
            raise IOError(f"short read at [{start}, {end}): got {len(data)} bytes")
        return data

    async def read_all(self) -> bytes:
        return await self.read_range(0, self.size)

    def close(self) -> None:
        if self._owned and self._fh is not None:
            self._fh.close()
        self._fh = None
        self._data = None

    def __enter__(self) -> "ByteSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
