import pytest
from pydantic import ValidationError

from scholar_media_client.config import MiB
from scholar_media_client.models.media import ChunkManifest
from scholar_media_client.services.uploader import chunk_count, plan_chunks


@pytest.mark.parametrize(
    "total_size, chunk_size",
    [(1, 1), (10, 3), (9, 3), (1024, 1000), (5 * MiB + 1, MiB), (4097, 1024)],
)
def test_chunks_partition_source_exactly(total_size, chunk_size):
    chunks = plan_chunks(total_size, chunk_size, "u/p/base")

    assert len(chunks) == -(-total_size // chunk_size)
    assert chunks[0].start == 0
    assert chunks[-1].end == total_size
    for prev, nxt in zip(chunks, chunks[1:]):
        assert prev.end == nxt.start
    assert sum(c.size for c in chunks) == total_size
    assert [c.index for c in chunks] == list(range(len(chunks)))

    remainder = total_size % chunk_size
    assert chunks[-1].size == (remainder or chunk_size)
    assert all(c.size == chunk_size for c in chunks[:-1])


def test_chunk_object_names_follow_part_pattern():
    chunks = plan_chunks(2500, 1000, "owner/project/123_ab_lecture.mp4")
    assert [c.object_name for c in chunks] == [
        "owner/project/123_ab_lecture.mp4.part0",
        "owner/project/123_ab_lecture.mp4.part1",
        "owner/project/123_ab_lecture.mp4.part2",
    ]


def test_lecture_recording_of_120_mib_needs_24_chunks():
    assert chunk_count(120 * MiB, 5 * MiB) == 24
    chunks = plan_chunks(120 * MiB, 5 * MiB, "b")
    assert len(chunks) == 24
    assert chunks[-1].size == 5 * MiB


def test_empty_source_has_no_chunks():
    assert plan_chunks(0, 1024, "b") == []


def test_non_positive_chunk_size_is_rejected():
    with pytest.raises(ValueError):
        plan_chunks(10, 0, "b")


def test_manifest_part_paths():
    manifest = ChunkManifest(is_chunked=True, total_chunks=3, chunk_pattern="o/p/f")
    assert manifest.part_paths() == ["o/p/f.part0", "o/p/f.part1", "o/p/f.part2"]
    assert ChunkManifest.single().part_paths() == []


@pytest.mark.parametrize(
    "fields",
    [
        {"is_chunked": True, "total_chunks": 0, "chunk_pattern": "o/p/f"},
        {"is_chunked": True, "total_chunks": None, "chunk_pattern": "o/p/f"},
        {"is_chunked": True, "total_chunks": 2, "chunk_pattern": None},
        {"is_chunked": False, "total_chunks": 2, "chunk_pattern": None},
    ],
)
def test_inconsistent_manifest_is_rejected(fields):
    with pytest.raises(ValidationError):
        ChunkManifest(**fields)
