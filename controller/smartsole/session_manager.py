"""Session orchestration for the SmartSole diagnostic kiosk."""
from __future__ import annotations

import asyncio
from asyncio import QueueEmpty
import functools
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Dict, List, Optional, Protocol, Set

import numpy as np

from .backend.http_client import AcquisitionClient, fallback_report
from .config import Settings, get_settings
from .jitter import LiveJitterLoop
from .models import MeasurementReport, zone_band
from .pairing import PairingSimulator
from .scan import ScanJoin, ScanProgressDriver
from .state import ControllerEvent, Gender, PairingState, SessionPhase

logger = logging.getLogger(__name__)


class Acquirer(Protocol):
    async def acquire(self, age: Optional[int], gender: Any) -> MeasurementReport: ...

    async def aclose(self) -> None: ...


class SessionFlowError(RuntimeError):
    """Raised when a user action cannot be applied to the session."""

    def __init__(self, user_message: str, *, log_message: Optional[str] = None) -> None:
        super().__init__(log_message or user_message)
        self.user_message = user_message


class InvalidSubjectError(SessionFlowError):
    """Subject age or gender rejected at submission."""


class SessionManager:
    """Owns the single session record and the one timer armed for its phase.

    User actions (``start``, ``submit_subject``, ``connect_device``,
    ``reset_session``) are the only mutation entry points. Every phase change
    cancels the outgoing phase's timer before the next one is armed.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        acquirer: Optional[Acquirer] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._rng = rng if rng is not None else np.random.default_rng(self.settings.rng_seed)
        self._acquirer: Acquirer = acquirer or AcquisitionClient(self.settings)
        self._ui_subscribers: List[asyncio.Queue[ControllerEvent]] = []

        self._phase: SessionPhase = SessionPhase.WELCOME
        self._phase_started_at: float = time.time()
        self._generation: int = 0
        self._session_id: Optional[int] = None
        self._subject_age: Optional[int] = None
        self._subject_gender: Optional[Gender] = None
        self._pairing: Optional[PairingSimulator] = None
        self._scan: Optional[ScanProgressDriver] = None
        self._report: Optional[MeasurementReport] = None

        self._timer: Optional[asyncio.Task[None]] = None
        self._acquisitions: Set[asyncio.Task[None]] = set()

    # ============================================================
    # Read-only projection
    # ============================================================

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def report(self) -> Optional[MeasurementReport]:
        return self._report

    @property
    def pairing_state(self) -> Optional[PairingState]:
        return self._pairing.state if self._pairing else None

    @property
    def scan_progress(self) -> int:
        return self._scan.progress if self._scan else 0

    @property
    def timer_active(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def snapshot(self) -> Dict[str, Any]:
        report = self._report
        message = self._scan.message if self._scan else None
        return {
            "session_id": self._session_id,
            "phase": self._phase.value,
            "phase_started_at": self._phase_started_at,
            "subject": {
                "age": self._subject_age,
                "gender": self._subject_gender.value if self._subject_gender else None,
            },
            "pairing_state": self._pairing.state.value if self._pairing and self._phase == SessionPhase.PAIRING else None,
            "scan_progress": self.scan_progress,
            "scan_message": message.text if message else None,
            "scan_severity": message.severity.value if message else None,
            "report": report.to_wire() if report else None,
            "zone_bands": {zone: zone_band(v) for zone, v in report.pressures.zones().items()} if report else None,
            "is_risk": report.is_risk if report else False,
        }

    # ============================================================
    # UI subscribers
    # ============================================================

    def register_ui(self) -> asyncio.Queue[ControllerEvent]:
        queue: asyncio.Queue[ControllerEvent] = asyncio.Queue(maxsize=self.settings.performance.ui_event_queue_size)
        self._ui_subscribers.append(queue)
        return queue

    def unregister_ui(self, queue: asyncio.Queue[ControllerEvent]) -> None:
        if queue in self._ui_subscribers:
            self._ui_subscribers.remove(queue)

    async def _broadcast(self, event: ControllerEvent) -> None:
        """Broadcast event to all UI subscribers, dropping the oldest on overflow."""
        for queue in list(self._ui_subscribers):
            try:
                if queue.full():
                    try:
                        queue.get_nowait()
                    except QueueEmpty:
                        pass
                queue.put_nowait(event)
            except Exception as e:
                logger.warning("Failed to broadcast event to subscriber: %s", e)

    async def _publish(self) -> None:
        await self._broadcast(ControllerEvent(type="state", data=self.snapshot(), phase=self._phase))

    # ============================================================
    # USER ACTIONS
    # ============================================================

    async def start(self) -> bool:
        """Welcome → Input."""
        if self._phase != SessionPhase.WELCOME:
            logger.info("start ignored in phase %s", self._phase.value)
            return False
        self._session_id = int(self._rng.integers(0, 99999))
        logger.info("🎬 [SESSION_START] New session %05d", self._session_id)
        await self._advance_phase(SessionPhase.INPUT)
        return True

    async def submit_subject(self, age: Any, gender: Any = Gender.MALE) -> bool:
        """Input → Pairing. Raises InvalidSubjectError for a bad age or gender."""
        if self._phase != SessionPhase.INPUT:
            logger.info("submit_subject ignored in phase %s", self._phase.value)
            return False
        if isinstance(age, bool) or not isinstance(age, int) or age <= 0:
            raise InvalidSubjectError("Please enter a valid age", log_message=f"invalid subject age {age!r}")
        try:
            subject_gender = Gender(gender)
        except ValueError as exc:
            raise InvalidSubjectError("Please select a gender", log_message=f"invalid subject gender {gender!r}") from exc

        self._subject_age = age
        self._subject_gender = subject_gender
        logger.info("🧍 [SUBJECT] age=%d gender=%s", age, subject_gender.value)
        await self._enter_pairing()
        return True

    async def connect_device(self) -> bool:
        """User "connect" press; only honoured once the insole has been found."""
        if self._phase != SessionPhase.PAIRING or self._pairing is None:
            logger.info("connect_device ignored in phase %s", self._phase.value)
            return False
        if not self._pairing.connect():
            return False
        await self._publish()
        self._arm(self._pairing_connect, name="pairing-connect")
        return True

    async def reset_session(self) -> None:
        """Abandon whatever is running and return to Welcome."""
        self._cancel_timer()
        self._generation += 1
        self._session_id = None
        self._subject_age = None
        self._subject_gender = None
        self._pairing = None
        self._scan = None
        logger.info("🔄 [SESSION_RESET] generation=%d", self._generation)
        await self._advance_phase(SessionPhase.WELCOME)

    async def stop(self) -> None:
        logger.info("Stopping session manager")
        timer = self._timer
        self._cancel_timer()
        if timer is not None:
            try:
                await timer
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("Error stopping timer task: %s", e)

        if self._acquisitions:
            await asyncio.gather(*list(self._acquisitions), return_exceptions=True)

        try:
            await self._acquirer.aclose()
        except Exception as e:
            logger.warning("Error closing acquirer: %s", e)
        logger.info("Session manager stopped")

    # ============================================================
    # PHASE FLOW
    # ============================================================

    async def _advance_phase(self, phase: SessionPhase, *, report: Optional[MeasurementReport] = None) -> None:
        self._cancel_timer()
        previous = self._phase
        self._phase = phase
        self._report = report
        self._phase_started_at = time.time()
        logger.info("🎬 [PHASE] %s → %s", previous.value, phase.value)
        await self._publish()

    async def _enter_pairing(self) -> None:
        self._pairing = PairingSimulator()
        await self._advance_phase(SessionPhase.PAIRING)
        self._arm(self._pairing_search, name="pairing-search")

    async def _pairing_search(self) -> None:
        assert self._pairing is not None
        await self._pairing.search(self.settings.phases.pairing_search)
        await self._publish()

    async def _pairing_connect(self) -> None:
        assert self._pairing is not None
        await self._pairing.complete(self.settings.phases.pairing_connect)
        await self._publish()
        await asyncio.sleep(self.settings.phases.pairing_handoff)
        await self._enter_scanning()

    async def _enter_scanning(self) -> None:
        driver = ScanProgressDriver(step=self.settings.scan.step, period=self.settings.phases.scan_tick)
        join = ScanJoin()
        self._scan = driver
        await self._advance_phase(SessionPhase.SCANNING)

        # Acquisition runs alongside the animation from tick 0
        self._start_acquisition(join)
        self._arm(functools.partial(self._run_scan, driver, join), name="scan-progress")

    def _start_acquisition(self, join: ScanJoin) -> None:
        task = asyncio.create_task(
            self._acquire(join, self._generation, self._subject_age, self._subject_gender),
            name="scan-acquisition",
        )
        self._acquisitions.add(task)
        task.add_done_callback(self._acquisitions.discard)

    async def _acquire(self, join: ScanJoin, generation: int, age: Optional[int], gender: Optional[Gender]) -> None:
        try:
            report = await self._acquirer.acquire(age, gender)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # A raising acquirer still settles the join
            logger.exception("📦 [SCAN] acquirer raised: %s", exc)
            report = fallback_report(age, gender)

        if generation != self._generation or self._phase != SessionPhase.SCANNING:
            logger.info(
                "🗑️ [SCAN] discarding stale acquisition (generation %d, current %d, phase %s)",
                generation, self._generation, self._phase.value,
            )
            return
        logger.info("📦 [SCAN] acquisition settled: %s", report.status_label)
        join.mark_data_ready(report)

    async def _run_scan(self, driver: ScanProgressDriver, join: ScanJoin) -> None:
        await driver.run(self._on_scan_tick)
        join.mark_ticks_done()
        if not join.data_ready:
            logger.info("⏳ [SCAN] animation complete, waiting for acquisition")
        report = await join.wait()
        await self._enter_monitoring(report)

    async def _on_scan_tick(self, driver: ScanProgressDriver) -> None:
        await self._publish()

    async def _enter_monitoring(self, report: MeasurementReport) -> None:
        await self._advance_phase(SessionPhase.MONITORING, report=report)
        logger.info(
            "🩺 [RESULT] %s (risk %s) peak=%dkPa temp=%.1f°C humidity=%d%%",
            report.status_label, report.risk_level.value, report.pressures.peak, report.temperature, report.humidity,
        )
        self._arm(self._run_jitter, name="live-jitter")

    async def _run_jitter(self) -> None:
        assert self._report is not None
        loop = LiveJitterLoop(self._rng, period=self.settings.phases.jitter_tick)
        await loop.run(self._report, self._on_jitter_tick)

    async def _on_jitter_tick(self, report: MeasurementReport) -> None:
        if self._phase != SessionPhase.MONITORING:
            return
        self._report = report
        await self._publish()

    # ============================================================
    # TIMER OWNERSHIP
    # ============================================================

    def _arm(self, factory: Callable[[], Awaitable[None]], *, name: str) -> None:
        self._cancel_timer()
        self._timer = asyncio.create_task(self._run_timer(factory, name), name=name)

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        # A timer may hand off to the next phase from inside itself; it then just runs to completion.
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    async def _run_timer(self, factory: Callable[[], Awaitable[None]], name: str) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            logger.debug("⏱️ [TIMER] %s cancelled", name)
            raise
        except Exception as exc:
            logger.exception("⏱️ [TIMER] %s crashed: %s", name, exc)


__all__ = ["SessionManager", "SessionFlowError", "InvalidSubjectError", "Acquirer"]
