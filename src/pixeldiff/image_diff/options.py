from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_CHANNEL_SUM = 255 * 3
DEFAULT_TOLERANCE = 5
HIGHLIGHT_COLOR = (255, 0, 255, 255)
PASSTHROUGH_ALPHA = 0.7
MIN_ROWS_PER_WORKER = 64

ENV_VARS = {
    "tolerance": "PIXELDIFF_TOLERANCE",
    "workers": "PIXELDIFF_WORKERS",
    "passthrough_alpha": "PIXELDIFF_PASSTHROUGH_ALPHA",
}


class DiffOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Not range checked: the engine degrades gracefully outside [0, 100].
    tolerance: float = DEFAULT_TOLERANCE
    highlight_color: tuple[int, int, int, int] = HIGHLIGHT_COLOR
    passthrough_alpha: float = Field(default=PASSTHROUGH_ALPHA, ge=0.0, le=1.0)
    workers: int = Field(default=1, ge=1)
    min_rows_per_worker: int = Field(default=MIN_ROWS_PER_WORKER, ge=1)

    @field_validator("highlight_color")
    @classmethod
    def _validate_highlight_color(
        cls, value: tuple[int, int, int, int]
    ) -> tuple[int, int, int, int]:
        if any(not 0 <= channel <= 255 for channel in value):
            raise ValueError(f"highlight channels must be within [0, 255], got {value}")
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DiffOptions:
        if environ is None:
            environ = os.environ
        values = {field: environ[var] for field, var in ENV_VARS.items() if var in environ}
        return cls(**values)


def threshold_for_tolerance(tolerance: float) -> float:
    return (tolerance / 100) * MAX_CHANNEL_SUM


def clamp_tolerance(value: float) -> float:
    return max(0.0, min(100.0, float(value)))
