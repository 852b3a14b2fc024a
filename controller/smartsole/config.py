"""Central configuration for the SmartSole controller service."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"


# ============================================================
# Nested Configuration Classes
# ============================================================

class PhaseDurations(BaseModel):
    """Timer configuration for the scripted phases (seconds)."""
    pairing_search: float = Field(2.5, description="Searching → Found delay")
    pairing_connect: float = Field(2.0, description="Connecting → Success delay")
    pairing_handoff: float = Field(1.5, description="Success screen before scanning starts")
    scan_tick: float = Field(0.5, description="Scan progress tick period")
    jitter_tick: float = Field(0.8, description="Live jitter tick period on the results dashboard")


class ScanSettings(BaseModel):
    """Scan progress driver tuning."""
    step: int = Field(1, description="Progress increment per tick (percent)")

    @field_validator("step")
    @classmethod
    def _positive_step(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("scan step must be positive")
        return value


class AcquisitionSettings(BaseModel):
    """Remote synthesizer call configuration."""
    analyze_path: str = Field("/api/analyze", description="Path of the analyze endpoint on the backend")
    timeout_seconds: float = Field(15.0, description="HTTP timeout for the analyze call")
    simulated_delay: float = Field(1.0, description="Artificial latency added by the analyze endpoint")


class PerformanceSettings(BaseModel):
    """Queue tuning."""
    ui_event_queue_size: int = Field(4, description="Max buffered UI events per subscriber")


class Settings(BaseSettings):
    """Environment-driven settings for controller subsystems."""

    # Backend & API
    backend_api_url: Optional[str] = Field(None, description="Base URL serving the analyze endpoint (default: this controller)")

    # Controller HTTP Server
    controller_host: str = Field("0.0.0.0", description="Host interface for local FastAPI server")
    controller_port: int = Field(5000, description="Port for FastAPI server")

    # Randomness
    rng_seed: Optional[int] = Field(None, description="Seed for synthetic data and jitter (None = nondeterministic)")

    # Logging
    service_name: str = Field("smartsole-controller", description="Service name, also used for the runtime log file")
    log_level: str = Field("INFO", description="Logging level")
    log_directory: Path = Field(ROOT_DIR / "logs", description="Log directory path")
    log_retention_days: int = Field(14, description="Number of log files to retain")

    # Nested Configuration Objects
    phases: PhaseDurations = Field(default_factory=PhaseDurations, description="Phase timer durations")
    scan: ScanSettings = Field(default_factory=ScanSettings, description="Scan driver settings")
    acquisition: AcquisitionSettings = Field(default_factory=AcquisitionSettings, description="Acquisition call settings")
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings, description="Performance tuning")

    @field_validator("rng_seed", mode="before")
    @classmethod
    def _parse_seed(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _default_backend_to_self(self) -> "Settings":
        # The analyze endpoint is served by this controller unless pointed elsewhere
        if not self.backend_api_url:
            host = self.controller_host
            if host in ("0.0.0.0", "::", ""):
                host = "127.0.0.1"
            self.backend_api_url = f"http://{host}:{self.controller_port}"
        return self

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings(override_env_file: Optional[Path] = None) -> Settings:
    """Cached Settings instance; accepts optional env override for tests."""

    if override_env_file:
        return Settings(_env_file=str(override_env_file))
    return Settings()
