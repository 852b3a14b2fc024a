import asyncio
import unittest

import numpy as np

from smartsole.config import PhaseDurations, Settings
from smartsole.session_manager import InvalidSubjectError, SessionManager
from smartsole.state import Gender, PairingState, SessionPhase
from smartsole.synthesizer import synthesize

VALID_STATUSES = {"Healthy", "Moderate Risk", "Ulcer Risk Detected", "Healthy (Simulated)"}


def fast_settings(**phase_overrides):
    phases = dict(
        pairing_search=0.001,
        pairing_connect=0.001,
        pairing_handoff=0.001,
        scan_tick=0.001,
        jitter_tick=0.005,
    )
    phases.update(phase_overrides)
    return Settings(phases=PhaseDurations(**phases))


async def wait_until(predicate, timeout=5.0, message="condition not reached"):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError(message)
        await asyncio.sleep(0.002)


class FakeAcquirer:
    """Stands in for the HTTP client; `gate` holds the response back until set."""

    def __init__(self, *, gate=None, error=None):
        self.report = synthesize(70, "Male", rng=np.random.default_rng(3))
        self.gate = gate
        self.error = error
        self.calls = []
        self.closed = False

    async def acquire(self, age, gender):
        self.calls.append((age, gender))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.report

    async def aclose(self):
        self.closed = True


class SessionManagerTestCase(unittest.IsolatedAsyncioTestCase):

    settings_overrides = {}

    async def asyncSetUp(self):
        self.gate = asyncio.Event()
        self.gate.set()
        self.acquirer = FakeAcquirer(gate=self.gate)
        self.manager = SessionManager(
            settings=fast_settings(**self.settings_overrides),
            acquirer=self.acquirer,
            rng=np.random.default_rng(11),
        )

    async def asyncTearDown(self):
        self.gate.set()
        await self.manager.stop()

    async def run_to_scanning(self, age=70, gender="Male"):
        await self.manager.start()
        await self.manager.submit_subject(age, gender)
        await wait_until(lambda: self.manager.pairing_state == PairingState.FOUND)
        self.assertTrue(await self.manager.connect_device())
        await wait_until(lambda: self.manager.phase == SessionPhase.SCANNING)

    async def run_to_monitoring(self, **subject):
        await self.run_to_scanning(**subject)
        await wait_until(lambda: self.manager.phase == SessionPhase.MONITORING)


class TestUserActions(SessionManagerTestCase):

    async def test_01_start_moves_welcome_to_input(self):
        self.assertEqual(self.manager.phase, SessionPhase.WELCOME)
        self.assertTrue(await self.manager.start())
        self.assertEqual(self.manager.phase, SessionPhase.INPUT)
        self.assertIsNotNone(self.manager.snapshot()["session_id"])
        # Second press is ignored
        self.assertFalse(await self.manager.start())
        self.assertEqual(self.manager.phase, SessionPhase.INPUT)

    async def test_02_invalid_age_is_rejected(self):
        await self.manager.start()
        for bad in (None, 0, -4, "70", True, 70.5):
            with self.assertRaises(InvalidSubjectError):
                await self.manager.submit_subject(bad, "Male")
        self.assertEqual(self.manager.phase, SessionPhase.INPUT)
        self.assertFalse(self.manager.timer_active)

    async def test_03_invalid_gender_is_rejected(self):
        await self.manager.start()
        with self.assertRaises(InvalidSubjectError) as ctx:
            await self.manager.submit_subject(40, "Robot")
        self.assertEqual(ctx.exception.user_message, "Please select a gender")

    async def test_04_subject_outside_input_is_ignored(self):
        self.assertFalse(await self.manager.submit_subject(40, "Male"))
        self.assertEqual(self.manager.phase, SessionPhase.WELCOME)

    async def test_05_connect_outside_pairing_is_ignored(self):
        self.assertFalse(await self.manager.connect_device())
        await self.manager.start()
        self.assertFalse(await self.manager.connect_device())


class TestPairingPhase(SessionManagerTestCase):

    settings_overrides = {"pairing_search": 0.2}

    async def test_connect_ignored_until_found(self):
        await self.manager.start()
        await self.manager.submit_subject(52, Gender.FEMALE)
        self.assertEqual(self.manager.phase, SessionPhase.PAIRING)
        self.assertEqual(self.manager.pairing_state, PairingState.SEARCHING)

        self.assertFalse(await self.manager.connect_device())
        self.assertEqual(self.manager.pairing_state, PairingState.SEARCHING)

        await wait_until(lambda: self.manager.pairing_state == PairingState.FOUND)
        self.assertEqual(self.manager.phase, SessionPhase.PAIRING)
        self.assertTrue(await self.manager.connect_device())
        self.assertEqual(self.manager.pairing_state, PairingState.CONNECTING)
        await wait_until(lambda: self.manager.phase == SessionPhase.SCANNING)

    async def test_pairing_waits_for_user(self):
        await self.manager.start()
        await self.manager.submit_subject(52, "Female")
        await wait_until(lambda: self.manager.pairing_state == PairingState.FOUND)
        await asyncio.sleep(0.05)
        self.assertEqual(self.manager.phase, SessionPhase.PAIRING)
        self.assertEqual(self.manager.pairing_state, PairingState.FOUND)
        self.assertFalse(self.manager.timer_active)


class TestScanJoin(SessionManagerTestCase):

    async def test_slow_acquisition_delays_monitoring(self):
        self.gate.clear()
        await self.run_to_scanning()
        await wait_until(lambda: self.manager.scan_progress == 100)
        await asyncio.sleep(0.05)
        self.assertEqual(self.manager.phase, SessionPhase.SCANNING)
        self.assertIsNone(self.manager.report)

        self.gate.set()
        await wait_until(lambda: self.manager.phase == SessionPhase.MONITORING)
        self.assertEqual(self.manager.report.status, self.acquirer.report.status)

    async def test_acquisition_starts_at_tick_zero(self):
        self.gate.clear()
        await self.run_to_scanning(age=61, gender="Female")
        await wait_until(lambda: self.acquirer.calls)
        self.assertEqual(self.acquirer.calls, [(61, Gender.FEMALE)])


class TestSlowAnimation(SessionManagerTestCase):

    settings_overrides = {"scan_tick": 0.01}

    async def test_fast_acquisition_waits_for_animation(self):
        await self.run_to_scanning()
        await wait_until(lambda: self.acquirer.calls)
        await asyncio.sleep(0.02)
        self.assertLess(self.manager.scan_progress, 100)
        self.assertEqual(self.manager.phase, SessionPhase.SCANNING)
        self.assertIsNone(self.manager.report)

        await wait_until(lambda: self.manager.phase == SessionPhase.MONITORING, timeout=10)
        self.assertEqual(self.manager.scan_progress, 100)


class TestEndToEnd(SessionManagerTestCase):

    async def test_full_session(self):
        queue = self.manager.register_ui()
        await self.run_to_monitoring(age=70, gender="Male")

        report = self.manager.report
        self.assertIsNotNone(report)
        self.assertIn(report.status_label, VALID_STATUSES)
        self.assertEqual(self.acquirer.calls, [(70, Gender.MALE)])
        self.assertTrue(self.manager.timer_active)

        snapshot = self.manager.snapshot()
        self.assertEqual(snapshot["phase"], "monitoring")
        self.assertEqual(snapshot["scan_progress"], 100)
        self.assertEqual(set(snapshot["zone_bands"]), {"heel", "toe", "met", "mid"})
        self.assertEqual(snapshot["report"]["status"], report.status_label)
        self.assertIsNone(snapshot["pairing_state"])

        event = queue.get_nowait()
        self.assertEqual(event.type, "state")
        self.assertLessEqual(queue.qsize(), self.manager.settings.performance.ui_event_queue_size)

    async def test_raising_acquirer_still_completes(self):
        self.acquirer.error = RuntimeError("boom")
        await self.run_to_monitoring(age=40, gender="Female")
        self.assertEqual(self.manager.report.status_label, "Healthy (Simulated)")
        self.assertEqual(self.manager.report.gender, "Female")

    async def test_stop_closes_acquirer(self):
        await self.run_to_monitoring()
        await self.manager.stop()
        self.assertTrue(self.acquirer.closed)
        self.assertFalse(self.manager.timer_active)


class TestJitter(SessionManagerTestCase):

    settings_overrides = {"jitter_tick": 0.05}

    async def test_one_tick_is_bounded_and_keeps_diagnosis(self):
        await self.run_to_monitoring()
        acquired = self.manager.report
        await wait_until(lambda: self.manager.report is not acquired)
        jittered = self.manager.report
        for zone, value in acquired.pressures.zones().items():
            after = getattr(jittered.pressures, zone)
            self.assertGreaterEqual(after, 0)
            self.assertTrue(value - 2 <= after <= value + 2)
        self.assertEqual(jittered.status, acquired.status)
        self.assertEqual(jittered.risk_level, acquired.risk_level)
        self.assertEqual(jittered.pressures.peak, acquired.pressures.peak)


class TestReset(SessionManagerTestCase):

    async def test_reset_during_scan_discards_late_result(self):
        self.gate.clear()
        await self.run_to_scanning()
        await wait_until(lambda: self.manager.scan_progress > 0)

        await self.manager.reset_session()
        self.assertEqual(self.manager.phase, SessionPhase.WELCOME)
        self.assertEqual(self.manager.generation, 1)
        self.assertEqual(self.manager.scan_progress, 0)
        self.assertFalse(self.manager.timer_active)

        self.gate.set()
        await asyncio.sleep(0.05)
        self.assertEqual(self.manager.phase, SessionPhase.WELCOME)
        self.assertIsNone(self.manager.report)

    async def test_reset_from_monitoring_stops_jitter(self):
        await self.run_to_monitoring()
        await self.manager.reset_session()
        self.assertIsNone(self.manager.report)
        self.assertFalse(self.manager.timer_active)
        await asyncio.sleep(0.03)
        self.assertEqual(self.manager.phase, SessionPhase.WELCOME)
        self.assertIsNone(self.manager.report)
        self.assertIsNone(self.manager.snapshot()["subject"]["age"])

    async def test_reset_during_pairing_cancels_timer(self):
        await self.manager.start()
        await self.manager.submit_subject(30, "Male")
        await self.manager.reset_session()
        await asyncio.sleep(0.02)
        self.assertEqual(self.manager.phase, SessionPhase.WELCOME)
        self.assertIsNone(self.manager.pairing_state)

    async def test_new_session_after_reset(self):
        await self.run_to_monitoring()
        await self.manager.reset_session()
        await self.run_to_monitoring(age=33, gender="Female")
        self.assertEqual(self.acquirer.calls[-1], (33, Gender.FEMALE))


if __name__ == "__main__":
    unittest.main()
