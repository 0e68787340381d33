import pytest

from scholar_media_client.exceptions import MinioError
from scholar_media_client.services.progress import ProgressReporter
from scholar_media_client.services.retry import run_with_retry


def test_progress_never_decreases_and_holds_below_100():
    seen = []
    reporter = ProgressReporter(lambda percent, stage: seen.append((percent, stage)))

    reporter.report(10, "Uploading chunks...")
    reporter.report(5)
    reporter.report(150, "Merging...")
    reporter.complete()
    reporter.report(50)

    assert seen == [
        (10.0, "Uploading chunks..."),
        (10.0, None),
        (99.0, "Merging..."),
        (100.0, "Done"),
    ]
    assert reporter.completed is True


def test_progress_fraction_maps_onto_span():
    reporter = ProgressReporter()
    reporter.report_fraction(3, 4, start=0.0, span=80.0)
    assert reporter.last == 60.0


def test_broken_callback_does_not_break_reporting():
    def _boom(percent, stage):
        raise RuntimeError("ui gone")

    reporter = ProgressReporter(_boom)
    reporter.report(42)
    assert reporter.last == 42.0


@pytest.mark.asyncio
async def test_retry_reraises_last_error_after_budget():
    calls = []

    async def _always_fails():
        calls.append(1)
        raise MinioError("503 SlowDown")

    with pytest.raises(MinioError):
        await run_with_retry(_always_fails, max_attempts=4, base_delay=0)
    assert len(calls) == 4


@pytest.mark.asyncio
async def test_retry_does_not_retry_unexpected_errors():
    calls = []

    async def _bug():
        calls.append(1)
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await run_with_retry(_bug, max_attempts=3, base_delay=0)
    assert calls == [1]
