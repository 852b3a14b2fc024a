"""Scan progress driver and the tick/data join used to finish a scan."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional

from .models import MeasurementReport
from .state import Severity

logger = logging.getLogger(__name__)

SCAN_COMPLETE = 100


@dataclass(frozen=True)
class ScanMessage:
    threshold: int
    text: str
    severity: Severity


# Each message replaces the previous one once progress reaches its threshold.
SCAN_SCRIPT = (
    ScanMessage(0, "INITIALIZING BIOSENSORS...", Severity.INFO),
    ScanMessage(5, "CALIBRATING ZONE 1: TOE CONTACT...", Severity.INFO),
    ScanMessage(20, "CALIBRATING ZONE 2: METATARSAL HEAD...", Severity.INFO),
    ScanMessage(35, "KEEP STEADY: MIDFOOT ANALYSIS...", Severity.WARN),
    ScanMessage(55, "CALIBRATING ZONE 4: HEEL PRESSURE...", Severity.INFO),
    ScanMessage(70, "PEAK PRESSURE LOAD TEST. DO NOT MOVE.", Severity.CRITICAL),
    ScanMessage(85, "MEASURING SKIN HUMIDITY & TEMP...", Severity.INFO),
    ScanMessage(95, "PROCESSING 4-ZONE HEATMAP...", Severity.INFO),
)


def message_for(progress: int) -> ScanMessage:
    current = SCAN_SCRIPT[0]
    for entry in SCAN_SCRIPT:
        if entry.threshold > progress:
            break
        current = entry
    return current


class ScanProgressDriver:
    """Advances progress 0 → 100 by `step` every `period` seconds."""

    def __init__(self, *, step: int = 1, period: float = 0.5) -> None:
        self.step = step
        self.period = period
        self._progress = 0
        self._message = message_for(0)

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def message(self) -> ScanMessage:
        return self._message

    @property
    def done(self) -> bool:
        return self._progress >= SCAN_COMPLETE

    def tick(self) -> bool:
        """Advance one step; returns True once progress has reached 100."""
        if self.done:
            return True
        self._progress = min(SCAN_COMPLETE, self._progress + self.step)
        message = message_for(self._progress)
        if message is not self._message:
            logger.info("📡 [SCAN] %d%% %s", self._progress, message.text)
            self._message = message
        return self.done

    async def run(self, on_tick: Callable[["ScanProgressDriver"], Awaitable[None]]) -> None:
        while not self.done:
            await asyncio.sleep(self.period)
            self.tick()
            await on_tick(self)


class ScanJoin:
    """Two-flag barrier: the animation must finish AND the report must arrive."""

    def __init__(self) -> None:
        self._ticks_done = False
        self._report: Optional[MeasurementReport] = None
        self._event = asyncio.Event()

    @property
    def ticks_done(self) -> bool:
        return self._ticks_done

    @property
    def data_ready(self) -> bool:
        return self._report is not None

    @property
    def ready(self) -> bool:
        return self._ticks_done and self._report is not None

    def mark_ticks_done(self) -> None:
        self._ticks_done = True
        self._check()

    def mark_data_ready(self, report: MeasurementReport) -> None:
        self._report = report
        self._check()

    def _check(self) -> None:
        if self.ready:
            self._event.set()

    async def wait(self) -> MeasurementReport:
        await self._event.wait()
        assert self._report is not None
        return self._report


__all__ = ["SCAN_SCRIPT", "SCAN_COMPLETE", "ScanMessage", "message_for", "ScanProgressDriver", "ScanJoin"]
