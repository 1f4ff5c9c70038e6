from __future__ import annotations


class ImageDiffError(Exception):
    pass


class DimensionMismatch(ImageDiffError, ValueError):
    def __init__(self, size_a: tuple[int, int], size_b: tuple[int, int]) -> None:
        self.size_a = size_a
        self.size_b = size_b
        super().__init__(
            "images must have matching dimensions "
            f"(got {size_a[0]}x{size_a[1]} and {size_b[0]}x{size_b[1]})"
        )


class SurfaceAcquisitionFailure(ImageDiffError):
    pass


class DecodeFailure(ImageDiffError, ValueError):
    pass


class MissingImage(ImageDiffError):
    pass


class NoResult(ImageDiffError):
    pass
