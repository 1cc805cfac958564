"""Runtime settings for the sampling engine."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

DATA_DIR_ENV = "AUDIT_SAMPLING_DATA_DIR"
LEDGER_DIR_ENV = "AUDIT_SAMPLING_LEDGER_DIR"
CACHE_TTL_ENV = "AUDIT_SAMPLING_CACHE_TTL"
HIGH_RISK_THRESHOLD_ENV = "AUDIT_SAMPLING_HIGH_RISK_THRESHOLD"


class EngineSettings(BaseModel):
    """Storage locations, cache lifetime and risk cut-off."""

    data_dir: Path = Path("sampling_artifacts")
    ledger_dir: Path = Path("ledger")
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    high_risk_threshold: float = Field(default=0.8, ge=0, le=1)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from environment variables, falling back to defaults.

        Returns:
            EngineSettings: Validated settings instance.
        """
        overrides: dict[str, str] = {}
        for field_name, env_name in (
            ("data_dir", DATA_DIR_ENV),
            ("ledger_dir", LEDGER_DIR_ENV),
            ("cache_ttl_seconds", CACHE_TTL_ENV),
            ("high_risk_threshold", HIGH_RISK_THRESHOLD_ENV),
        ):
            value = os.environ.get(env_name)
            if value:
                overrides[field_name] = value
        return cls.model_validate(overrides)
