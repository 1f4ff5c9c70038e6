from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path

from pixeldiff.image_diff.codec import ImageSource, decode_image, encode_png
from pixeldiff.image_diff.compare import compare
from pixeldiff.image_diff.errors import DecodeFailure, ImageDiffError, MissingImage, NoResult
from pixeldiff.image_diff.options import DiffOptions, clamp_tolerance
from pixeldiff.image_diff.types import DiffResult, PixelBuffer
from pixeldiff.report import ComparisonReport, MatchVerdict, build_report, classify_match

logger = logging.getLogger(__name__)

DOWNLOAD_FILE_NAME = "image-diff.png"
GENERIC_FAILURE_MESSAGE = "an unexpected error occurred while comparing images"


class Side(str, Enum):
    BEFORE = "image1"
    AFTER = "image2"


class SessionState(str, Enum):
    EMPTY = "empty"
    READY = "ready"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class ComparisonSession:
    """
    Host-side state for comparing two uploaded images.

    Uploading either image clears the previous result and error. Only the most
    recently started comparison may publish its outcome; results from runs
    that were superseded by a newer run or a new upload are dropped.
    """

    def __init__(
        self, options: DiffOptions | None = None, executor: Executor | None = None
    ) -> None:
        self._options = options or DiffOptions()
        self._tolerance = clamp_tolerance(self._options.tolerance)
        self._executor = executor
        self._owns_executor = False
        self._images: dict[Side, PixelBuffer] = {}
        self._result: DiffResult | None = None
        self._error: str | None = None
        self._busy = False
        self._run_id = 0
        self._pending: Future[DiffResult] | None = None
        self._lock = threading.Lock()

    def __enter__(self) -> ComparisonSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def tolerance(self) -> float:
        return self._tolerance

    @tolerance.setter
    def tolerance(self, value: float) -> None:
        self._tolerance = clamp_tolerance(value)

    @property
    def state(self) -> SessionState:
        with self._lock:
            if self._busy:
                return SessionState.PROCESSING
            if self._error is not None:
                return SessionState.FAILED
            if self._result is not None:
                return SessionState.SUCCESS
            if len(self._images) == 2:
                return SessionState.READY
            return SessionState.EMPTY

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def can_compare(self) -> bool:
        return len(self._images) == 2

    @property
    def result(self) -> DiffResult | None:
        return self._result

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def match_percentage(self) -> float:
        result = self._result
        return result.match_percentage if result is not None else 100.0

    @property
    def verdict(self) -> MatchVerdict | None:
        result = self._result
        return classify_match(result.match_percentage) if result is not None else None

    def image(self, side: Side | str) -> PixelBuffer | None:
        return self._images.get(Side(side))

    def _reset_locked(self) -> None:
        self._run_id += 1
        self._result = None
        self._error = None
        self._busy = False
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def set_image(self, side: Side | str, source: ImageSource) -> PixelBuffer:
        side = Side(side)
        with self._lock:
            self._reset_locked()
            self._images.pop(side, None)

        try:
            buffer = decode_image(source)
        except DecodeFailure as e:
            with self._lock:
                self._error = str(e)
            logger.warning("Failed to decode uploaded image", extra={"side": side.value})
            raise

        with self._lock:
            self._images[side] = buffer
        return buffer

    def clear(self) -> None:
        with self._lock:
            self._reset_locked()
            self._images.clear()

    def _begin_run(self) -> tuple[int, PixelBuffer, PixelBuffer, float]:
        with self._lock:
            before = self._images.get(Side.BEFORE)
            after = self._images.get(Side.AFTER)
            if before is None or after is None:
                error = MissingImage("upload both images before comparing")
                self._error = str(error)
                raise error
            self._reset_locked()
            self._busy = True
            return self._run_id, before, after, self._tolerance

    def _run(
        self, run_id: int, before: PixelBuffer, after: PixelBuffer, tolerance: float
    ) -> DiffResult:
        try:
            result = compare(before, after, tolerance, self._options)
        except BaseException as e:
            with self._lock:
                if run_id == self._run_id:
                    self._error = (
                        str(e) if isinstance(e, ImageDiffError) else GENERIC_FAILURE_MESSAGE
                    )
                    self._busy = False
            logger.exception("Image comparison failed", extra={"run_id": run_id})
            raise

        with self._lock:
            if run_id != self._run_id:
                logger.info("Discarding superseded comparison result", extra={"run_id": run_id})
                return result
            self._result = result
            self._busy = False
            self._pending = None

        logger.info(
            "Image comparison complete",
            extra={
                "run_id": run_id,
                "width": result.width,
                "height": result.height,
                "differing_pixels": result.differing_pixels,
                "total_pixels": result.total_pixels,
                "tolerance": tolerance,
            },
        )
        return result

    def compare(self) -> DiffResult:
        return self._run(*self._begin_run())

    def compare_async(self) -> Future[DiffResult]:
        run = self._begin_run()
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1)
                self._owns_executor = True
            try:
                future = self._executor.submit(self._run, *run)
            except BaseException:
                if run[0] == self._run_id:
                    self._busy = False
                    self._error = GENERIC_FAILURE_MESSAGE
                logger.exception("Failed to schedule image comparison", extra={"run_id": run[0]})
                raise
            if run[0] == self._run_id:
                self._pending = future
        return future

    def download_bytes(self) -> bytes:
        result = self._result
        if result is None:
            raise NoResult("no comparison result to download")
        return encode_png(result.diff_mask)

    def save_diff(self, path: str | Path) -> Path:
        target = Path(path)
        if target.is_dir():
            target = target / DOWNLOAD_FILE_NAME
        target.write_bytes(self.download_bytes())
        return target

    def report(self, include_mask: bool = False) -> ComparisonReport:
        result = self._result
        if result is None:
            raise NoResult("no comparison result to report")
        return build_report(result, include_mask=include_mask)

    def close(self) -> None:
        with self._lock:
            executor = self._executor if self._owns_executor else None
            self._executor = None
            self._owns_executor = False
        if executor is not None:
            executor.shutdown(wait=True)
