"""Scripted insole pairing: searching → found → connecting → success.

There is no device behind this. Every step is a fixed delay except
found → connecting, which waits for the user to press "connect".
"""
from __future__ import annotations

import asyncio
import logging

from .state import PairingState

logger = logging.getLogger(__name__)


class PairingTransitionError(RuntimeError):
    """Raised on a pairing transition that is not a single step forward."""


class PairingSimulator:
    def __init__(self) -> None:
        self._state = PairingState.SEARCHING

    @property
    def state(self) -> PairingState:
        return self._state

    def advance(self, target: PairingState) -> None:
        if target.order != self._state.order + 1:
            raise PairingTransitionError(f"cannot move from {self._state.value} to {target.value}")
        logger.info("🔗 [PAIRING] %s → %s", self._state.value, target.value)
        self._state = target

    async def search(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self.advance(PairingState.FOUND)

    def connect(self) -> bool:
        """User "connect" action; only honoured once the insole has been found."""
        if self._state != PairingState.FOUND:
            logger.debug("🔗 [PAIRING] connect ignored in state %s", self._state.value)
            return False
        self.advance(PairingState.CONNECTING)
        return True

    async def complete(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self.advance(PairingState.SUCCESS)


__all__ = ["PairingSimulator", "PairingTransitionError"]
