"""Public entry points for ``disbursement_recon``.

Each function is a thin caller of the shared core so that the CLI and any
host application reconcile through exactly the same code path:

- :func:`verify_batch` links ledger rows to on-chain transfers;
- :func:`reconcile` cross-checks ledger, transfer log, and manual records
  for a reporting period;
- :func:`map_and_scale` maps spending onto the taxonomy and rescales it to
  an authoritative total.
"""

from __future__ import annotations

from collections.abc import Sequence

from .categories import DEFAULT_KEYWORD_RULES, KeywordRule, map_transactions
from .ledger import DEFAULT_CONVERSION_RATE, filter_spending
from .matching import TolerancePolicy, fixed_tolerance
from .models import Taxonomy, Transaction
from .reconciliation import (
    DEFAULT_SAMPLE_LIMIT,
    ReconciliationAggregator,
    ReconciliationReport,
    ReportingPeriod,
)
from .scaling import DEFAULT_LOW_COVERAGE_THRESHOLD, ScaledMapping, scale
from .sources import LedgerSource, ManualRecordsSource, TransferSource
from .verification import ProgressCallback, VerificationBatch, VerificationEngine


def verify_batch(
    transactions: Sequence[Transaction],
    account: str,
    tolerance_days: int = 1,
    on_progress: ProgressCallback | None = None,
    *,
    transfer_source: TransferSource,
    tolerance_policy: TolerancePolicy = fixed_tolerance,
    timeout: float | None = None,
) -> VerificationBatch:
    """Verify ``transactions`` sent by ``account`` with a single transfer fetch.

    ``tolerance_days`` is the base window handed to ``tolerance_policy``.
    A failed fetch marks every result ``unverified`` and sets
    ``VerificationBatch.error``.
    """

    engine = VerificationEngine(
        transfer_source, tolerance_policy=tolerance_policy, timeout=timeout
    )
    return engine.verify_batch(transactions, account, tolerance_days, on_progress)


def reconcile(
    period: ReportingPeriod,
    *,
    account: str,
    ledger_source: LedgerSource,
    transfer_source: TransferSource,
    manual_source: ManualRecordsSource,
    timeout: float | None = None,
    sample_limit: int = DEFAULT_SAMPLE_LIMIT,
    conversion_rate: float = DEFAULT_CONVERSION_RATE,
) -> ReconciliationReport:
    """Reconcile all three sources for ``period``.

    Unaccounted sets always carry the full count and totals plus at most
    ``sample_limit`` transfers. Failed sources appear in ``report.errors``.
    ``report.authoritative_total`` converts the outgoing transfer total to
    stable units at ``conversion_rate``.
    """

    aggregator = ReconciliationAggregator(
        ledger_source,
        transfer_source,
        manual_source,
        account=account,
        timeout=timeout,
        sample_limit=sample_limit,
        conversion_rate=conversion_rate,
    )
    return aggregator.reconcile(period)


def map_and_scale(
    transactions: Sequence[Transaction],
    taxonomy: Taxonomy,
    authoritative_total: float,
    *,
    rules: Sequence[KeywordRule] = DEFAULT_KEYWORD_RULES,
    spending_only: bool = True,
    low_coverage_threshold: float = DEFAULT_LOW_COVERAGE_THRESHOLD,
) -> ScaledMapping:
    """Map transactions to the taxonomy and rescale to ``authoritative_total``.

    With ``spending_only`` (the default) explicit loans and refunds are
    dropped first, since they are not spending. The result carries
    ``buckets`` (scaled), ``coverage_ratio``, and ``scale_factor``; the
    coverage ratio must be shown alongside the scaled figures.
    """

    rows = filter_spending(transactions) if spending_only else list(transactions)
    mapping = map_transactions(rows, taxonomy, rules)
    return scale(mapping, authoritative_total, low_coverage_threshold=low_coverage_threshold)


__all__ = ["verify_batch", "reconcile", "map_and_scale"]
