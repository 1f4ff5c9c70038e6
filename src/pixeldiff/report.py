from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

import orjson
from pydantic import BaseModel, ConfigDict

from pixeldiff.image_diff.codec import encode_png_base64
from pixeldiff.image_diff.types import DiffResult


class MatchVerdict(str, Enum):
    IDENTICAL = "identical"
    MINOR = "minor"
    SIGNIFICANT = "significant"
    REWORK = "rework"


VERDICT_MESSAGES = {
    MatchVerdict.IDENTICAL: "Images match perfectly.",
    MatchVerdict.MINOR: "Fix the differences.",
    MatchVerdict.SIGNIFICANT: "Significant differences were found.",
    MatchVerdict.REWORK: "Many regions do not match. Rework is needed.",
}


def classify_match(match_percentage: float) -> MatchVerdict:
    if match_percentage >= 100:
        return MatchVerdict.IDENTICAL
    if match_percentage >= 80:
        return MatchVerdict.MINOR
    if match_percentage < 70:
        return MatchVerdict.REWORK
    return MatchVerdict.SIGNIFICANT


def format_match_percentage(match_percentage: float) -> str:
    # Ties round up, on the exact binary value of the float.
    rounded = Decimal(match_percentage).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{rounded}%"


class ComparisonReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    tolerance: float
    threshold: float
    differing_pixels: int
    total_pixels: int
    match_percentage: float
    match_percentage_display: str
    verdict: MatchVerdict
    message: str
    diff_mask_png: str | None = None


def build_report(result: DiffResult, include_mask: bool = False) -> ComparisonReport:
    verdict = classify_match(result.match_percentage)
    return ComparisonReport(
        width=result.width,
        height=result.height,
        tolerance=result.tolerance,
        threshold=result.threshold,
        differing_pixels=result.differing_pixels,
        total_pixels=result.total_pixels,
        match_percentage=result.match_percentage,
        match_percentage_display=format_match_percentage(result.match_percentage),
        verdict=verdict,
        message=VERDICT_MESSAGES[verdict],
        diff_mask_png=encode_png_base64(result.diff_mask) if include_mask else None,
    )


def dumps_report(report: ComparisonReport) -> bytes:
    return orjson.dumps(report.model_dump(mode="json"))
