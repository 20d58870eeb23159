"""Auto-save configuration model."""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AutoSaveConfig(BaseModel):
    """Timing and retry policy for one editing session.

    Defaults: 2.5 s debounce, 30 s periodic
    fallback, three retries with ``min(1 s * 2**n, 10 s)`` backoff.
    """

    debounce_s: float = Field(default=2.5, gt=0)
    periodic_interval_s: float = Field(default=30.0, gt=0)

    max_retries: int = Field(default=3, ge=0)
    backoff_base_s: float = Field(default=1.0, gt=0)
    backoff_cap_s: float = Field(default=10.0, gt=0)

    # How long the transient "saved" indicator stays before reverting to idle.
    saved_indicator_s: float = Field(default=2.0, ge=0)

    # Upper bound for every gateway call; a timeout is a retryable failure.
    request_timeout_s: float = Field(default=15.0, gt=0)

    pending_queue_limit: int = Field(default=5, ge=1)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_json_obj(cls, obj: dict[str, Any]) -> AutoSaveConfig:
        """Create an AutoSaveConfig instance from a JSON-compatible object."""
        return cls.model_validate(obj)

    @classmethod
    def from_file(cls, path: str | Path) -> AutoSaveConfig:
        """Load configuration from a JSON or TOML file.

        TOML files may either hold the keys at top level or under an
        ``[autosave]`` table.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(path)

        raw = path.read_text(encoding="utf-8")
        if path.suffix == ".toml":
            data: dict[str, Any] = tomllib.loads(raw)
            section = data.get("autosave")
            if isinstance(section, dict):
                data = section
        else:
            data = json.loads(raw)

        if not isinstance(data, dict):
            raise ValueError(f"Config root must be an object: {path}")

        return cls.from_json_obj(data)

    @model_validator(mode="after")
    def validate_consistency(self) -> AutoSaveConfig:
        """Validate internal consistency of the configuration."""
        if self.backoff_cap_s < self.backoff_base_s:
            raise ValueError("backoff_cap_s must be >= backoff_base_s")
        return self
