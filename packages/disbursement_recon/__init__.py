"""Public interface for the ``disbursement_recon`` package.

Symbol re-exports only; the logic lives in the submodules.
"""

from .api import map_and_scale, reconcile, verify_batch
from .errors import DateParseError, ReconError, SourceUnavailable
from .models import (
    CategoryBucket,
    Currency,
    Discrepancy,
    ManualRecord,
    ManualRecordKind,
    Taxonomy,
    TaxonomyEntry,
    Transaction,
    Transfer,
    VerificationResult,
    VerificationStatus,
)
from .reconciliation import ReconciliationReport, ReportingPeriod
from .scaling import ScaledMapping
from .verification import VerificationBatch

__all__ = [
    # API
    "verify_batch",
    "reconcile",
    "map_and_scale",
    # Errors
    "ReconError",
    "DateParseError",
    "SourceUnavailable",
    # Models / results
    "Currency",
    "Transaction",
    "Transfer",
    "ManualRecord",
    "ManualRecordKind",
    "VerificationStatus",
    "Discrepancy",
    "VerificationResult",
    "VerificationBatch",
    "TaxonomyEntry",
    "Taxonomy",
    "CategoryBucket",
    "ScaledMapping",
    "ReportingPeriod",
    "ReconciliationReport",
]
