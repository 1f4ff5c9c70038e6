from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from pixeldiff.image_diff.codec import ImageSource, decode_image
from pixeldiff.image_diff.errors import DimensionMismatch, SurfaceAcquisitionFailure
from pixeldiff.image_diff.options import DiffOptions, threshold_for_tolerance
from pixeldiff.image_diff.types import DiffResult, PixelBuffer

logger = logging.getLogger(__name__)


def _row_ranges(height: int, workers: int, min_rows_per_worker: int) -> list[tuple[int, int]]:
    parts = max(1, min(workers, height // min_rows_per_worker))
    step, extra = divmod(height, parts)
    ranges: list[tuple[int, int]] = []
    start = 0
    for idx in range(parts):
        stop = start + step + (1 if idx < extra else 0)
        ranges.append((start, stop))
        start = stop
    return ranges


def _attenuate_alpha(alpha: np.ndarray, factor: float) -> np.ndarray:
    # Same rounding as an 8-bit clamped store: half to even, then clamp.
    return np.clip(np.rint(alpha * factor), 0, 255).astype(np.uint8)


def _diff_rows(
    pixels_a: np.ndarray,
    pixels_b: np.ndarray,
    out: np.ndarray,
    threshold: float,
    options: DiffOptions,
    start: int,
    stop: int,
) -> int:
    rgb_a = pixels_a[start:stop, :, :3].astype(np.int16)
    rgb_b = pixels_b[start:stop, :, :3].astype(np.int16)
    # Alpha of the second image never contributes.
    delta = np.abs(rgb_a - rgb_b).sum(axis=-1)
    differs = delta > threshold

    block = out[start:stop]
    block[..., :3] = pixels_a[start:stop, :, :3]
    block[..., 3] = _attenuate_alpha(pixels_a[start:stop, :, 3], options.passthrough_alpha)
    block[differs] = options.highlight_color
    return int(np.count_nonzero(differs))


def compare(
    buffer_a: PixelBuffer,
    buffer_b: PixelBuffer,
    tolerance_percent: float,
    options: DiffOptions | None = None,
) -> DiffResult:
    if buffer_a.size != buffer_b.size:
        raise DimensionMismatch(buffer_a.size, buffer_b.size)

    if options is None:
        options = DiffOptions()
    threshold = threshold_for_tolerance(tolerance_percent)

    try:
        out = np.empty_like(buffer_a.pixels)
    except MemoryError as e:
        raise SurfaceAcquisitionFailure(
            f"could not allocate a {buffer_a.width}x{buffer_a.height} diff buffer"
        ) from e

    ranges = _row_ranges(buffer_a.height, options.workers, options.min_rows_per_worker)
    if len(ranges) == 1:
        differing_pixels = _diff_rows(
            buffer_a.pixels, buffer_b.pixels, out, threshold, options, *ranges[0]
        )
    else:
        with ThreadPoolExecutor(max_workers=len(ranges)) as pool:
            counts = pool.map(
                lambda rows: _diff_rows(
                    buffer_a.pixels, buffer_b.pixels, out, threshold, options, *rows
                ),
                ranges,
            )
            differing_pixels = sum(counts)

    result = DiffResult(
        diff_mask=PixelBuffer(pixels=out),
        differing_pixels=differing_pixels,
        total_pixels=buffer_a.width * buffer_a.height,
        tolerance=tolerance_percent,
        threshold=threshold,
    )
    logger.debug(
        "Compared %dx%d images, %d differing pixels",
        result.width,
        result.height,
        differing_pixels,
        extra={
            "tolerance": tolerance_percent,
            "threshold": threshold,
            "partitions": len(ranges),
        },
    )
    return result


def compare_images(
    before: ImageSource,
    after: ImageSource,
    tolerance: float | None = None,
    options: DiffOptions | None = None,
) -> DiffResult:
    if options is None:
        options = DiffOptions()
    if tolerance is None:
        tolerance = options.tolerance
    return compare(decode_image(before), decode_image(after), tolerance, options)


def compare_images_batch(
    pairs: Sequence[tuple[ImageSource, ImageSource]],
    tolerance: float | None = None,
    options: DiffOptions | None = None,
) -> list[DiffResult | None]:
    results: list[DiffResult | None] = []
    for idx, (before, after) in enumerate(pairs):
        try:
            results.append(compare_images(before, after, tolerance, options))
        except Exception:
            logger.exception("Failed to compare image pair %d", idx)
            results.append(None)
    return results
