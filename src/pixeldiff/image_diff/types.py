from __future__ import annotations

import numpy as np
from pydantic import BaseModel, ConfigDict, field_validator


class PixelBuffer(BaseModel):
    """A decoded RGBA raster, stored row-major as a (height, width, 4) uint8 array."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    pixels: np.ndarray

    @field_validator("pixels")
    @classmethod
    def _validate_pixels(cls, value: np.ndarray) -> np.ndarray:
        if value.ndim != 3 or value.shape[2] != 4:
            raise ValueError(f"expected an array of shape (height, width, 4), got {value.shape}")
        if value.dtype != np.uint8:
            raise ValueError(f"expected uint8 channels, got {value.dtype}")
        return value

    @classmethod
    def blank(cls, width: int, height: int) -> PixelBuffer:
        return cls(pixels=np.zeros((height, width, 4), dtype=np.uint8))

    @classmethod
    def filled(cls, width: int, height: int, color: tuple[int, int, int, int]) -> PixelBuffer:
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = color
        return cls(pixels=pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        r, g, b, a = (int(c) for c in self.pixels[y, x])
        return r, g, b, a


class DiffResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    diff_mask: PixelBuffer
    differing_pixels: int
    total_pixels: int
    tolerance: float
    threshold: float

    @property
    def width(self) -> int:
        return self.diff_mask.width

    @property
    def height(self) -> int:
        return self.diff_mask.height

    @property
    def match_percentage(self) -> float:
        # Zero-area images are vacuously identical.
        if self.total_pixels <= 0:
            return 100.0
        return (self.total_pixels - self.differing_pixels) / self.total_pixels * 100

    @property
    def diff_score(self) -> float:
        if self.total_pixels <= 0:
            return 0.0
        return self.differing_pixels / self.total_pixels

    @property
    def is_identical(self) -> bool:
        return self.differing_pixels == 0
