"""Rescale mapped category totals against an authoritative total.

Ledger-derived category sums undercount (unmapped projects, parsing gaps).
Rather than publish those absolute figures, :func:`scale` multiplies every
bucket by one factor so the mapped share of spend lines up with a trusted
total, usually the transfer log's outgoing total for the same period.

With ``L`` the ledger total over all mapped and excluded rows, ``M`` the
mapped total, and ``A`` the authoritative total:

- ``coverage_ratio = M / L`` (``0`` when ``L == 0``);
- ``scale_factor = A / L`` (``1.0`` when ``L == 0``);
- so ``sum(scaled totals) = M * A / L = A * coverage_ratio``.

Excluded spend therefore stays excluded after scaling instead of being
silently spread over the mapped buckets.

The factor assumes the mapped subset has the same category distribution as
the whole ledger. Nothing checks that; ``ScaledMapping.proportions_verified``
is always ``False`` so consumers keep showing the caveat.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass

from .categories import CategoryMapping
from .logging_setup import get_logger
from .models import CategoryBucket

_logger = get_logger("disbursement_recon.scaling")

TOTAL_CHECK_TOLERANCE = 0.01
DEFAULT_LOW_COVERAGE_THRESHOLD = 0.5


@dataclass(frozen=True, slots=True)
class ScaledMapping:
    buckets: tuple[CategoryBucket, ...]
    scale_factor: float
    coverage_ratio: float
    authoritative_total: float
    raw_mapped_total: float
    raw_ledger_total: float
    excluded_total: float
    proportions_verified: bool = False

    @property
    def scaled_total(self) -> float:
        return sum(b.scaled_total or 0.0 for b in self.buckets)


def _check_bucket_sum(mapping: CategoryMapping) -> None:
    bucket_sum = sum(b.total for b in mapping.buckets)
    if abs(bucket_sum - mapping.mapped_total) > TOTAL_CHECK_TOLERANCE:
        _logger.warning(
            "scale:total_check_failed bucket_sum=%.3f mapped_total=%.3f diff=%.3f",
            bucket_sum,
            mapping.mapped_total,
            bucket_sum - mapping.mapped_total,
        )


def scale(
    mapping: CategoryMapping,
    authoritative_total: float,
    *,
    low_coverage_threshold: float = DEFAULT_LOW_COVERAGE_THRESHOLD,
) -> ScaledMapping:
    """Return ``mapping`` with every bucket multiplied by the scale factor.

    The input is not modified. Raises ``ValueError`` for a negative or
    non-finite authoritative total.
    """

    if not math.isfinite(authoritative_total) or authoritative_total < 0:
        raise ValueError("authoritative_total must be a finite, non-negative number")

    _check_bucket_sum(mapping)

    ledger_total = mapping.ledger_total
    if ledger_total:
        factor = authoritative_total / ledger_total
        coverage = mapping.mapped_total / ledger_total
    else:
        factor = 1.0
        coverage = 0.0

    buckets = tuple(
        dataclasses.replace(
            b,
            scaled_hbd=b.hbd * factor,
            scaled_hive=b.hive * factor,
            scaled_total=b.total * factor,
        )
        for b in mapping.buckets
    )

    if coverage < low_coverage_threshold:
        _logger.warning(
            "scale:low_coverage coverage=%.4f threshold=%.2f excluded_total=%.3f",
            coverage,
            low_coverage_threshold,
            mapping.excluded_total,
        )
    _logger.info(
        "scale:applied factor=%.6f coverage=%.4f authoritative=%.3f mapped=%.3f ledger=%.3f",
        factor,
        coverage,
        authoritative_total,
        mapping.mapped_total,
        ledger_total,
    )
    return ScaledMapping(
        buckets=buckets,
        scale_factor=factor,
        coverage_ratio=coverage,
        authoritative_total=authoritative_total,
        raw_mapped_total=mapping.mapped_total,
        raw_ledger_total=ledger_total,
        excluded_total=mapping.excluded_total,
    )


__all__ = [
    "TOTAL_CHECK_TOLERANCE",
    "DEFAULT_LOW_COVERAGE_THRESHOLD",
    "ScaledMapping",
    "scale",
]
