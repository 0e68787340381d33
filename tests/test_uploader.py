import asyncio
import io
from uuid import uuid4

import pytest

from scholar_media_client.exceptions import ChunkUploadError, UploadCancelledError
from scholar_media_client.models.media import UploadTarget
from scholar_media_client.services.progress import ProgressReporter
from scholar_media_client.services.sources import ByteSource
from scholar_media_client.services.uploader import ChunkUploader

from .conftest import InMemoryObjectStore, sample_bytes

pytestmark = pytest.mark.asyncio


@pytest.fixture
def target() -> UploadTarget:
    return UploadTarget(owner_id=uuid4(), project_id=uuid4(), base_name="1700000000000_abcd1234_lecture.mp4")


@pytest.fixture
def uploader(object_store, upload_config) -> ChunkUploader:
    return ChunkUploader(object_store, upload_config)


async def test_file_at_threshold_is_one_whole_upload(uploader, object_store, target):
    data = sample_bytes(4096)

    result = await uploader.upload(target, ByteSource(data), "video/mp4")

    assert result.chunked is False
    assert result.total_chunks is None
    assert object_store.names("put") == [target.object_path]
    stored = object_store.objects[target.object_path]
    assert stored.data == data
    assert stored.content_type == "video/mp4"


async def test_file_above_threshold_is_split_in_order(uploader, object_store, target):
    data = sample_bytes(4096 * 2 + 100)

    result = await uploader.upload(target, ByteSource(data), "audio/mpeg")

    assert result.chunked is True
    assert result.total_chunks == 9
    assert result.chunk_pattern == target.object_path
    assert object_store.names("put") == [f"{target.object_path}.part{i}" for i in range(9)]
    assert all(o.content_type == "audio/mpeg" for o in object_store.objects.values())
    rebuilt = b"".join(object_store.objects[p].data for p in result.part_paths)
    assert rebuilt == data
    assert target.object_path not in object_store.objects


async def test_chunk_size_and_threshold_can_be_overridden(uploader, object_store, target):
    data = sample_bytes(1000)

    result = await uploader.upload(target, ByteSource(data), None, chunk_size=300, threshold=500)

    assert result.total_chunks == 4
    assert [len(object_store.objects[p].data) for p in result.part_paths] == [300, 300, 300, 100]


async def test_transient_chunk_failure_is_retried(uploader, object_store, target):
    data = sample_bytes(5000)
    flaky = f"{target.object_path}.part2"
    object_store.fail("put", flaky, times=2)

    result = await uploader.upload(target, ByteSource(data), "video/mp4")

    assert object_store.names("put").count(flaky) == 3
    assert b"".join(object_store.objects[p].data for p in result.part_paths) == data


async def test_exhausted_retries_abort_before_later_chunks(uploader, object_store, target):
    data = sample_bytes(6000)
    broken = f"{target.object_path}.part2"
    object_store.fail("put", broken)

    with pytest.raises(ChunkUploadError) as exc_info:
        await uploader.upload(target, ByteSource(data), "video/mp4")

    assert exc_info.value.index == 2
    puts = object_store.names("put")
    assert puts.count(broken) == 3
    assert f"{target.object_path}.part3" not in puts
    # Уже загруженные части 0..1 убраны
    assert sorted(object_store.names("delete")) == [f"{target.object_path}.part0", f"{target.object_path}.part1"]
    assert object_store.objects == {}


async def test_failed_upload_leaves_parts_when_cleanup_disabled(object_store, upload_config, target):
    uploader = ChunkUploader(object_store, upload_config.model_copy(update={"cleanup_on_failure": False}))
    object_store.fail("put", f"{target.object_path}.part1")

    with pytest.raises(ChunkUploadError):
        await uploader.upload(target, ByteSource(sample_bytes(5000)), None)

    assert list(object_store.objects) == [f"{target.object_path}.part0"]
    assert object_store.names("delete") == []


async def test_whole_file_failure_names_the_whole_file(uploader, object_store, target):
    object_store.fail("put", target.object_path)

    with pytest.raises(ChunkUploadError) as exc_info:
        await uploader.upload(target, ByteSource(b"small"), "text/plain")

    assert exc_info.value.index is None
    assert "whole file" in str(exc_info.value)
    assert object_store.names("put") == [target.object_path] * 3


async def test_cancellation_is_honoured_between_chunks(uploader, object_store, target):
    cancel = asyncio.Event()

    def _on_progress(percent, stage):
        # Отмена после второй части
        if len(object_store.names("put")) == 2:
            cancel.set()

    with pytest.raises(UploadCancelledError) as exc_info:
        await uploader.upload(
            target,
            ByteSource(sample_bytes(5000)),
            None,
            progress=ProgressReporter(_on_progress),
            cancel_event=cancel,
        )

    assert exc_info.value.next_index == 2
    assert object_store.names("put") == [f"{target.object_path}.part0", f"{target.object_path}.part1"]
    assert object_store.objects == {}


async def test_already_cancelled_whole_upload_never_touches_store(uploader, object_store, target):
    cancel = asyncio.Event()
    cancel.set()

    with pytest.raises(UploadCancelledError):
        await uploader.upload(target, ByteSource(b"abc"), None, cancel_event=cancel)

    assert object_store.calls == []


class SlowFirstPutStore(InMemoryObjectStore):
    def __init__(self, slow_calls: int):
        super().__init__()
        self.slow_calls = slow_calls

    async def put_object(self, object_name, data, content_type=None):
        if self.slow_calls > 0:
            self.slow_calls -= 1
            await asyncio.sleep(5)
        await super().put_object(object_name, data, content_type)


async def test_attempt_timeout_triggers_retry(upload_config, target):
    store = SlowFirstPutStore(slow_calls=1)
    uploader = ChunkUploader(store, upload_config.model_copy(update={"attempt_timeout": 0.05}))

    result = await uploader.upload(target, ByteSource(b"payload"), None)

    assert store.objects[result.object_path].data == b"payload"


async def test_attempt_timeout_exhaustion_fails_the_unit(upload_config, target):
    store = SlowFirstPutStore(slow_calls=10)
    uploader = ChunkUploader(store, upload_config.model_copy(update={"attempt_timeout": 0.05}))

    with pytest.raises(ChunkUploadError) as exc_info:
        await uploader.upload(target, ByteSource(sample_bytes(5000)), None)

    assert exc_info.value.index == 0


async def test_uploads_from_path_and_stream(uploader, object_store, target, tmp_path):
    data = sample_bytes(4500)
    path = tmp_path / "lecture.mp4"
    path.write_bytes(data)

    with ByteSource(path) as source:
        from_path = await uploader.upload(target, source, None)
    assert b"".join(object_store.objects[p].data for p in from_path.part_paths) == data

    other = target.model_copy(update={"base_name": "stream.mp4"})
    stream_result = await uploader.upload(other, ByteSource(io.BytesIO(data)), None)
    assert b"".join(object_store.objects[p].data for p in stream_result.part_paths) == data


class HangingPutStore(InMemoryObjectStore):
    def __init__(self, hang_on: str):
        super().__init__()
        self.hang_on = hang_on
        self.hanging = asyncio.Event()

    async def put_object(self, object_name, data, content_type=None):
        if object_name.endswith(self.hang_on):
            self.calls.append(("put", object_name))
            self.hanging.set()
            await asyncio.Event().wait()
        await super().put_object(object_name, data, content_type)


async def test_task_cancelled_mid_chunk_discards_uploaded_parts(upload_config, target, caplog):
    store = HangingPutStore(".part2")
    uploader = ChunkUploader(store, upload_config)

    task = asyncio.create_task(uploader.upload(target, ByteSource(sample_bytes(5000)), None))
    await asyncio.wait_for(store.hanging.wait(), timeout=5)
    task.cancel()

    with caplog.at_level("WARNING"), pytest.raises(asyncio.CancelledError):
        await task

    assert store.objects == {}
    assert sorted(store.names("delete")) == [f"{target.object_path}.part{i}" for i in range(3)]
    assert "orphaned_parts=0" in caplog.text


async def test_unexpected_error_mid_chunk_is_logged_with_leftovers(upload_config, target, caplog):
    store = InMemoryObjectStore()
    store.delete_errors[f"{target.object_path}.part0"] = "AccessDenied"
    uploader = ChunkUploader(store, upload_config)

    original_put = store.put_object

    async def _broken_put(object_name, data, content_type=None):
        if object_name.endswith(".part1"):
            raise RuntimeError("serializer bug")
        await original_put(object_name, data, content_type)

    store.put_object = _broken_put

    with caplog.at_level("WARNING"), pytest.raises(RuntimeError):
        await uploader.upload(target, ByteSource(sample_bytes(5000)), None)

    assert list(store.objects) == [f"{target.object_path}.part0"]
    assert "orphaned_parts=1" in caplog.text
