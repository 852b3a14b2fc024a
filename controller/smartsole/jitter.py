"""Cosmetic live jitter for the results dashboard.

Readings wander by a couple of units per tick so the dashboard looks live.
Status, risk level and peak are left exactly as acquired.
"""
from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from typing import Optional

import numpy as np

from .models import MeasurementReport, ZONES


def _wobble(value: int, rng: np.random.Generator) -> int:
    return max(0, value + int(rng.integers(0, 5)) - 2)


def perturb(report: MeasurementReport, rng: np.random.Generator) -> MeasurementReport:
    zones = {zone: _wobble(getattr(report.pressures, zone), rng) for zone in ZONES}
    return dataclasses.replace(
        report,
        pressures=dataclasses.replace(report.pressures, **zones),
        temperature=round(report.temperature + float(rng.uniform(-0.1, 0.1)), 1),
        humidity=_wobble(report.humidity, rng),
    )


class LiveJitterLoop:
    def __init__(self, rng: Optional[np.random.Generator] = None, *, period: float = 0.8) -> None:
        self.rng = rng if rng is not None else np.random.default_rng()
        self.period = period

    async def run(
        self,
        report: MeasurementReport,
        on_tick: Callable[[MeasurementReport], Awaitable[None]],
    ) -> None:
        """Runs until cancelled."""
        while True:
            await asyncio.sleep(self.period)
            report = perturb(report, self.rng)
            await on_tick(report)


__all__ = ["perturb", "LiveJitterLoop"]
