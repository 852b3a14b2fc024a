"""Measurement report types and the JSON shapes exchanged with the analyze endpoint."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, NonNegativeInt, field_validator

from .state import Gender, RiskLevel, RiskStatus

SIMULATED_SUFFIX = " (Simulated)"
ZONES = ("heel", "toe", "met", "mid")


def coerce_age(value: Any) -> Optional[int]:
    """Best-effort age parse; anything non-numeric or non-positive becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        age = int(float(value))
    except (TypeError, ValueError):
        return None
    return age if age > 0 else None


def zone_band(value: int) -> str:
    """Display band for a zone pressure in kPa."""
    if value < 100:
        return "low"
    if value < 180:
        return "normal"
    if value < 240:
        return "warning"
    return "high"


@dataclass(frozen=True)
class Pressures:
    heel: int
    toe: int
    met: int
    mid: int
    peak: int

    @classmethod
    def from_zones(cls, heel: int, toe: int, met: int, mid: int) -> "Pressures":
        return cls(heel=heel, toe=toe, met=met, mid=mid, peak=max(heel, toe, met, mid))

    def zones(self) -> Dict[str, int]:
        return {zone: getattr(self, zone) for zone in ZONES}


@dataclass(frozen=True)
class MeasurementReport:
    """One synthetic scan result. Superseded, never mutated, by each jitter tick."""

    pressures: Pressures
    temperature: float
    humidity: int
    status: RiskStatus
    risk_level: RiskLevel
    age: Optional[int] = None
    gender: str = Gender.MALE.value
    simulated: bool = False

    @property
    def status_label(self) -> str:
        label = self.status.value
        return label + SIMULATED_SUFFIX if self.simulated else label

    @property
    def is_risk(self) -> bool:
        return "Risk" in self.status_label

    def to_wire(self) -> Dict[str, Any]:
        return AnalyzeResponse(
            age=self.age,
            gender=self.gender,
            pressures=PressuresPayload(**asdict(self.pressures)),
            temp=f"{self.temperature:.1f}",
            humidity=self.humidity,
            status=self.status_label,
            riskLevel=self.risk_level.value,
        ).model_dump()

    @classmethod
    def from_wire(cls, payload: Any) -> "MeasurementReport":
        """Parse an analyze response; raises ValidationError/ValueError when malformed."""
        body = AnalyzeResponse.model_validate(payload)
        label = body.status
        simulated = label.endswith(SIMULATED_SUFFIX)
        if simulated:
            label = label[: -len(SIMULATED_SUFFIX)]
        return cls(
            pressures=Pressures(**body.pressures.model_dump()),
            temperature=round(float(body.temp), 1),
            humidity=body.humidity,
            status=RiskStatus(label),
            risk_level=RiskLevel(body.riskLevel),
            age=body.age,
            gender=body.gender,
            simulated=simulated,
        )


# ============================================================
# Wire models
# ============================================================

class AnalyzeRequest(BaseModel):
    age: Optional[int] = None
    gender: str = Gender.MALE.value

    @field_validator("age", mode="before")
    @classmethod
    def _lenient_age(cls, value: Any) -> Optional[int]:
        return coerce_age(value)


class PressuresPayload(BaseModel):
    heel: NonNegativeInt
    toe: NonNegativeInt
    met: NonNegativeInt
    mid: NonNegativeInt
    peak: NonNegativeInt


class AnalyzeResponse(BaseModel):
    age: Optional[int] = None
    gender: str
    pressures: PressuresPayload
    temp: str
    humidity: int
    status: str
    riskLevel: str

    @field_validator("age", mode="before")
    @classmethod
    def _lenient_age(cls, value: Any) -> Optional[int]:
        return coerce_age(value)

    @field_validator("temp")
    @classmethod
    def _numeric_temp(cls, value: str) -> str:
        float(value)
        return value


class SubjectRequest(BaseModel):
    age: Optional[int] = Field(None, description="Subject age in years")
    gender: Gender = Gender.MALE


__all__ = [
    "MeasurementReport",
    "Pressures",
    "AnalyzeRequest",
    "AnalyzeResponse",
    "PressuresPayload",
    "SubjectRequest",
    "coerce_age",
    "zone_band",
    "ZONES",
    "SIMULATED_SUFFIX",
]
