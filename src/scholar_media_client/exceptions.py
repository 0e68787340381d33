from typing import Optional


class MediaClientError(Exception):
    """Base class."""


class NotAuthenticatedError(MediaClientError):
    """Нет владельца загрузки. Проверяется до первого обращения к хранилищу."""


class DatabaseError(MediaClientError):
    pass


class MinioError(MediaClientError):
    pass


class MediaFileNotFoundError(MediaClientError):
    pass


class ChunkedFileError(MediaClientError):
    """Операция требует единого объекта, а файл хранится частями."""


class MetadataWriteError(MediaClientError):
    pass


class UploadError(MediaClientError):
    pass


class ChunkUploadError(UploadError):
    def __init__(self, index: Optional[int], message: str = ""):
        self.index = index
        unit = "whole file" if index is None else f"chunk {index}"
        super().__init__(f"Upload of {unit} failed" + (f": {message}" if message else ""))


class UploadCancelledError(UploadError):
    def __init__(self, next_index: int):
        self.next_index = next_index
        super().__init__(f"Upload cancelled before chunk {next_index}")


class ReassemblyError(MediaClientError):
    pass


class ChunkDownloadError(ReassemblyError):
    def __init__(self, index: int, message: str = ""):
        self.index = index
        super().__init__(f"Download of chunk {index} failed" + (f": {message}" if message else ""))


class MergeUploadError(ReassemblyError):
    pass


class ReconstructionError(ReassemblyError):
    pass
