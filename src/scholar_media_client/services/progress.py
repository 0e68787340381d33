"""Progress reporting for a single upload call."""

from __future__ import annotations

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, Optional[str]], None]

STAGE_UPLOADING = "Uploading..."
STAGE_UPLOADING_CHUNKS = "Uploading chunks..."
STAGE_MERGING = "Merging..."
STAGE_FINALIZING = "Finalizing..."
STAGE_DONE = "Done"

# Доли шкалы: загрузка частей, склейка, запись метаданных
UPLOAD_SHARE = 90.0
MERGE_SHARE = 5.0
# До фиксации записи шкала не поднимается выше этого значения
MAX_BEFORE_COMMIT = 99.0


class ProgressReporter:
    """Wraps the caller's callback.

    Values never decrease and stay below 100 until :meth:`complete` is called,
    which the client does only after the file record was written.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._last = 0.0
        self._completed = False

    @property
    def last(self) -> float:
        return self._last

    @property
    def completed(self) -> bool:
        return self._completed

    def report(self, percent: float, stage: Optional[str] = None) -> None:
        if self._completed:
            return
        value = max(self._last, min(max(float(percent), 0.0), MAX_BEFORE_COMMIT))
        self._emit(value, stage)

    def report_fraction(self, done: int, total: int, *, start: float, span: float, stage: Optional[str] = None) -> None:
        ratio = 1.0 if total <= 0 else done / total
        self.report(start + span * ratio, stage)

    def complete(self, stage: Optional[str] = STAGE_DONE) -> None:
        if self._completed:
            return
        self._completed = True
        self._emit(100.0, stage)

    def _emit(self, value: float, stage: Optional[str]) -> None:
        self._last = value
        if self._callback is None:
            return
        try:
            self._callback(value, stage)
        except Exception:
            # Сбой UI-колбэка не должен ронять загрузку
            logger.exception("Progress callback raised; ignoring")
