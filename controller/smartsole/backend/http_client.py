"""HTTP client for the analyze endpoint, with a fixed offline fallback."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import MeasurementReport, Pressures, coerce_age
from ..state import Gender, RiskLevel, RiskStatus

logger = logging.getLogger(__name__)

FALLBACK_AGE = 45


class AcquisitionFailure(RuntimeError):
    """Analyze call failed (transport, HTTP status or payload shape)."""


def fallback_report(age: Any = None, gender: Any = None) -> MeasurementReport:
    """Fixed report used when the analyze call fails. Not a random draw."""
    if isinstance(gender, Gender):
        gender = gender.value
    return MeasurementReport(
        pressures=Pressures.from_zones(heel=210, toe=160, met=140, mid=55),
        temperature=31.2,
        humidity=42,
        status=RiskStatus.HEALTHY,
        risk_level=RiskLevel.LOW,
        age=coerce_age(age) or FALLBACK_AGE,
        gender=gender or Gender.MALE.value,
        simulated=True,
    )


class AcquisitionClient:
    """Thin wrapper around the analyze REST endpoint."""

    def __init__(self, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._client = httpx.AsyncClient(
            base_url=self.settings.backend_api_url,
            timeout=self.settings.acquisition.timeout_seconds,
            transport=transport,
        )

    async def acquire(self, age: Optional[int], gender: Any) -> MeasurementReport:
        """Fetch one report; any failure is logged and replaced by the fallback."""
        try:
            return await self._request(age, gender)
        except AcquisitionFailure as e:
            logger.error("acquisition.acquire: %s - using simulated fallback", e)
            return fallback_report(age, gender)

    async def _request(self, age: Optional[int], gender: Any) -> MeasurementReport:
        if isinstance(gender, Gender):
            gender = gender.value
        payload = {"age": age, "gender": gender}
        try:
            logger.info("acquisition.acquire: requesting analysis age=%s gender=%s", age, gender)
            response = await self._client.post(self.settings.acquisition.analyze_path, json=payload)
            response.raise_for_status()
            return MeasurementReport.from_wire(response.json())
        except httpx.TimeoutException as e:
            raise AcquisitionFailure("request timeout") from e
        except httpx.NetworkError as e:
            raise AcquisitionFailure(f"network error - {e}") from e
        except httpx.HTTPStatusError as e:
            raise AcquisitionFailure(f"HTTP {e.response.status_code} - {e.response.text}") from e
        except httpx.HTTPError as e:
            raise AcquisitionFailure(f"transport error - {e}") from e
        except (ValidationError, ValueError) as e:
            raise AcquisitionFailure(f"malformed payload - {e}") from e

    async def aclose(self) -> None:
        try:
            await self._client.aclose()
        except Exception as e:
            logger.warning("Error closing HTTP client: %s", e)


__all__ = ["AcquisitionClient", "AcquisitionFailure", "fallback_report"]
