from .manifest import ManifestTracker
from .progress import ProgressReporter
from .reassembly import DeferredReassembler, EagerMergeReassembler, Reassembler, build_reassembler
from .sources import ByteSource
from .uploader import ChunkUploader, chunk_count, plan_chunks

__all__ = [
    "ByteSource",
    "ChunkUploader",
    "DeferredReassembler",
    "EagerMergeReassembler",
    "ManifestTracker",
    "ProgressReporter",
    "Reassembler",
    "build_reassembler",
    "chunk_count",
    "plan_chunks",
]
