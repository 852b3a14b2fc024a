"""Shared controller state definitions for the SmartSole kiosk."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional


class SessionPhase(str, enum.Enum):
    """
    Session phases in chronological order:

    1. WELCOME     - Branding screen, waiting for "initiate diagnostics"
    2. INPUT       - Subject calibration form (age, gender)
    3. PAIRING     - Simulated insole pairing (search → found → connect)
    4. SCANNING    - 50s scripted scan racing the acquisition call
    5. MONITORING  - Results dashboard with live jitter → WELCOME on reset
    """
    WELCOME = "welcome"
    INPUT = "input"
    PAIRING = "pairing"
    SCANNING = "scanning"
    MONITORING = "monitoring"


class PairingState(str, enum.Enum):
    SEARCHING = "searching"
    FOUND = "found"
    CONNECTING = "connecting"
    SUCCESS = "success"

    @property
    def order(self) -> int:
        return _PAIRING_ORDER.index(self)


_PAIRING_ORDER = [
    PairingState.SEARCHING,
    PairingState.FOUND,
    PairingState.CONNECTING,
    PairingState.SUCCESS,
]


class Severity(str, enum.Enum):
    INFO = "info"
    WARN = "warn"
    CRITICAL = "critical"


class Gender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"


class RiskStatus(str, enum.Enum):
    HEALTHY = "Healthy"
    MODERATE_RISK = "Moderate Risk"
    ULCER_RISK_DETECTED = "Ulcer Risk Detected"


class RiskLevel(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


RISK_LEVELS: Dict[RiskStatus, RiskLevel] = {
    RiskStatus.HEALTHY: RiskLevel.LOW,
    RiskStatus.MODERATE_RISK: RiskLevel.MEDIUM,
    RiskStatus.ULCER_RISK_DETECTED: RiskLevel.HIGH,
}


@dataclass
class ControllerEvent:
    """Event payload distributed to UI clients over the local WebSocket."""

    type: str
    data: Dict[str, Any]
    phase: SessionPhase
    error: Optional[str] = None


__all__ = [
    "SessionPhase",
    "PairingState",
    "Severity",
    "Gender",
    "RiskStatus",
    "RiskLevel",
    "RISK_LEVELS",
    "ControllerEvent",
]
