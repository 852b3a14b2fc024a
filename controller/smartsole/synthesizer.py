"""Synthetic 4-zone plantar pressure, skin temperature and humidity generator.

Heel carries the highest load, followed by the toe, the 1st metatarsal head
and finally the midfoot arch. Older subjects get proportionally higher
pressures, warmer skin and drier feet.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

import numpy as np

from .models import MeasurementReport, Pressures, coerce_age
from .state import RISK_LEVELS, Gender, RiskLevel, RiskStatus

logger = logging.getLogger(__name__)

# (low, high) in kPa for a healthy young adult
BASE_PRESSURE_RANGES = {
    "heel": (180.0, 220.0),
    "toe": (150.0, 180.0),
    "met": (120.0, 150.0),
    "mid": (40.0, 60.0),
}

BASE_TEMPERATURE_C = 31.0
ELDERLY_TEMPERATURE_OFFSET_C = 1.0
TEMPERATURE_SPREAD_C = 1.5

HUMIDITY_BASE = 45
DRY_HUMIDITY_BASE = 30
DRY_SKIN_AGE = 55
HUMIDITY_SPREAD = 15

MULTIPLIER_AGE = 50
PRESSURE_RISK_THRESHOLD = 260
TEMP_RISK_THRESHOLD = 33.5
MODERATE_RISK_AGE = 65


def age_multiplier(age: Optional[int]) -> float:
    """1.0 up to age 50, then 1.2 plus one percent per year over 50 (age 70 → 1.4)."""
    years = age or 0
    if years <= MULTIPLIER_AGE:
        return 1.0
    return 1.2 + (years - MULTIPLIER_AGE) / 100


def classify(
    heel: int,
    toe: int,
    temperature: float,
    age: Optional[int],
    rng: np.random.Generator,
) -> Tuple[RiskStatus, RiskLevel]:
    if heel > PRESSURE_RISK_THRESHOLD or toe > PRESSURE_RISK_THRESHOLD or temperature > TEMP_RISK_THRESHOLD:
        status = RiskStatus.ULCER_RISK_DETECTED
    elif (age or 0) > MODERATE_RISK_AGE and rng.random() > 0.5:
        # Coin flip for very old subjects so the demo shows some variation
        status = RiskStatus.MODERATE_RISK
    else:
        status = RiskStatus.HEALTHY
    return status, RISK_LEVELS[status]


def synthesize(
    age: Any = None,
    gender: Any = Gender.MALE,
    rng: Optional[np.random.Generator] = None,
) -> MeasurementReport:
    """Draw one synthetic measurement report for the subject.

    A missing or non-numeric age is treated as 0: no multiplier and the
    young-adult baselines. No error is raised.
    """
    rng = rng if rng is not None else np.random.default_rng()
    years = coerce_age(age)
    multiplier = age_multiplier(years)

    zones = {
        zone: int(round(rng.uniform(low, high) * multiplier))
        for zone, (low, high) in BASE_PRESSURE_RANGES.items()
    }
    pressures = Pressures.from_zones(**zones)

    temperature = BASE_TEMPERATURE_C
    if (years or 0) > MULTIPLIER_AGE:
        temperature += ELDERLY_TEMPERATURE_OFFSET_C
    temperature = round(temperature + float(rng.uniform(0.0, TEMPERATURE_SPREAD_C)), 1)

    humidity_base = DRY_HUMIDITY_BASE if (years or 0) > DRY_SKIN_AGE else HUMIDITY_BASE
    humidity = humidity_base + int(rng.integers(0, HUMIDITY_SPREAD))

    status, risk_level = classify(pressures.heel, pressures.toe, temperature, years, rng)
    gender_value = gender.value if isinstance(gender, Gender) else str(gender)

    logger.debug(
        "[SYNTH] age=%s multiplier=%.2f pressures=%s temp=%.1f humidity=%d status=%s",
        years, multiplier, pressures, temperature, humidity, status.value,
    )
    return MeasurementReport(
        pressures=pressures,
        temperature=temperature,
        humidity=humidity,
        status=status,
        risk_level=risk_level,
        age=years,
        gender=gender_value,
    )


__all__ = ["synthesize", "age_multiplier", "classify"]
