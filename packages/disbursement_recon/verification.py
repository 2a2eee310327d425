"""Batch verification of ledger transactions against the transfer log.

One call to :meth:`VerificationEngine.verify_batch` performs exactly one
transfer-source query, covering the whole batch's date range, and then
classifies every transaction in memory:

- loan/refund-flagged rows are ``unverified`` (they reconcile through
  :mod:`.reconciliation` instead);
- no amount-matching transfer to the recipient → ``not_found``;
- amount and date match → ``verified``, even when only the currency differs
  (ledger currency tags are frequently wrong; the slip is recorded in
  ``detail``);
- amount matches but the date falls outside the window → ``discrepancy``.

If the single fetch fails, every transaction comes back ``unverified`` and the
:class:`~disbursement_recon.errors.SourceUnavailable` is attached to the
batch. Nothing is retried.

Two transactions with the same recipient, amount, and date can both link to
the same transfer: matching is first-match-wins per transaction, with no
one-to-one assignment across the batch.
"""

from __future__ import annotations

import time
from collections import Counter, defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta

from .errors import SourceUnavailable
from .logging_setup import get_logger
from .matching import (
    AMOUNT_EPSILON,
    Match,
    TolerancePolicy,
    best_match,
    fixed_tolerance,
    rank_declared,
)
from .models import (
    Currency,
    Discrepancy,
    Transaction,
    Transfer,
    VerificationResult,
    VerificationStatus,
    normalize_account,
)
from .sources import TRANSFERS, TransferSource, call_with_timeout

_logger = get_logger("disbursement_recon.verification")

# Days fetched beyond the widest tolerance window, so out-of-window transfers
# can still be reported as date discrepancies.
DEFAULT_DATE_BUFFER_DAYS = 7

type ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True, slots=True)
class VerificationBatch:
    """Results of one batch, in input order, plus the fetch error if any."""

    results: tuple[VerificationResult, ...]
    error: SourceUnavailable | None = None
    summary: dict[str, int] = field(default_factory=dict)


def _skip_reason(tx: Transaction) -> str | None:
    if tx.is_loan_refund:
        return "loan refund: reconciled against manual records"
    if tx.is_loan:
        return "loan: reconciled against manual records"
    if tx.is_refund:
        return "refund: reconciled against manual records"
    return None


def _declared(tx: Transaction) -> list[tuple[float, Currency]]:
    return [(tx.hbd, Currency.STABLE), (tx.hive, Currency.VOLATILE)]


def _summarize(results: Sequence[VerificationResult]) -> dict[str, int]:
    counts = Counter(r.status.value for r in results)
    summary = {s.value: counts.get(s.value, 0) for s in VerificationStatus}
    summary["total"] = len(results)
    return summary


def _classify(tx: Transaction, match: Match | None) -> VerificationResult:
    if match is None:
        return VerificationResult(tx, VerificationStatus.NOT_FOUND)

    detail = Discrepancy(
        amount_delta=round(match.amount_delta, 6),
        date_delta_days=match.date_delta_days,
        currency_expected=None if match.currency_matches else match.expected_currency,
        currency_actual=None if match.currency_matches else match.transfer.currency,
    )
    if match.within_window:
        # Currency-only mismatches still verify; ``detail`` records the slip.
        return VerificationResult(
            tx,
            VerificationStatus.VERIFIED,
            transfer=match.transfer,
            detail=detail if detail.currency_mismatch else None,
        )
    return VerificationResult(
        tx, VerificationStatus.DISCREPANCY, transfer=match.transfer, detail=detail
    )


class VerificationEngine:
    """Verify ledger transactions against a :class:`TransferSource`.

    Parameters
    ----------
    transfer_source:
        Where transfers come from; queried once per batch.
    tolerance_policy:
        ``policy(date, base_days) -> days``. Defaults to the caller's base
        window for every date.
    timeout:
        Optional deadline in seconds for the transfer fetch.
    date_buffer_days:
        Extra days fetched on each side of the batch range.
    """

    def __init__(
        self,
        transfer_source: TransferSource,
        *,
        tolerance_policy: TolerancePolicy = fixed_tolerance,
        timeout: float | None = None,
        date_buffer_days: int = DEFAULT_DATE_BUFFER_DAYS,
    ) -> None:
        self._source = transfer_source
        self._policy = tolerance_policy
        self._timeout = timeout
        self._buffer = date_buffer_days

    def verify_batch(
        self,
        transactions: Sequence[Transaction],
        counterparty_account: str,
        base_tolerance_days: int = 1,
        on_progress: ProgressCallback | None = None,
    ) -> VerificationBatch:
        """Verify ``transactions`` sent by ``counterparty_account``.

        Returns one result per input transaction, in input order.
        """

        if base_tolerance_days < 0:
            raise ValueError("base_tolerance_days must be >= 0")
        account = normalize_account(counterparty_account)
        total = len(transactions)
        t0 = time.perf_counter()

        # Work out which rows need the chain and what window each gets.
        windows: dict[int, int] = {}
        prefilled: dict[int, VerificationResult] = {}
        for i, tx in enumerate(transactions):
            reason = _skip_reason(tx)
            if reason is not None:
                prefilled[i] = VerificationResult(tx, VerificationStatus.UNVERIFIED, reason=reason)
            elif tx.date is None:
                prefilled[i] = VerificationResult(
                    tx, VerificationStatus.UNVERIFIED, reason="missing date"
                )
            elif tx.hbd <= 0 and tx.hive <= 0:
                prefilled[i] = VerificationResult(
                    tx, VerificationStatus.UNVERIFIED, reason="no declared amount"
                )
            elif not tx.recipient:
                prefilled[i] = VerificationResult(tx, VerificationStatus.NOT_FOUND)
            else:
                windows[i] = self._policy(tx.date, base_tolerance_days)

        by_recipient: dict[str, list[Transfer]] = defaultdict(list)
        error: SourceUnavailable | None = None
        if windows:
            dated = [transactions[i].date for i in windows]
            widest = max(windows.values()) + self._buffer
            start = min(d for d in dated if d is not None) - timedelta(days=widest)
            end = max(d for d in dated if d is not None) + timedelta(days=widest)
            try:
                transfers = self._fetch(account, start, end)
            except SourceUnavailable as e:
                error = e
                _logger.error(
                    "verify:fetch_failed source=%s account=%s transactions=%d error=%s",
                    e.source,
                    account,
                    total,
                    e.detail,
                )
            else:
                for t in transfers:
                    if normalize_account(t.sender) == account:
                        by_recipient[normalize_account(t.recipient)].append(t)

        results: list[VerificationResult] = []
        for i, tx in enumerate(transactions):
            pre = prefilled.get(i)
            if pre is not None and (error is None or pre.status is VerificationStatus.UNVERIFIED):
                result = pre
            elif error is not None:
                # A failed fetch fails the whole batch, not just the chain-bound rows.
                result = VerificationResult(
                    tx, VerificationStatus.UNVERIFIED, reason=f"transfer source unavailable: {error}"
                )
            else:
                result = self._verify_one(tx, by_recipient.get(tx.recipient, ()), windows[i])
            results.append(result)
            if on_progress is not None:
                on_progress(i + 1, total)

        summary = _summarize(results)
        _logger.info(
            "verify:batch_done account=%s total=%d verified=%d discrepancy=%d not_found=%d "
            "unverified=%d latency_ms=%.2f",
            account,
            total,
            summary["verified"],
            summary["discrepancy"],
            summary["not_found"],
            summary["unverified"],
            (time.perf_counter() - t0) * 1000.0,
        )
        return VerificationBatch(results=tuple(results), error=error, summary=summary)

    def _fetch(self, account: str, start: date, end: date) -> list[Transfer]:
        return call_with_timeout(
            TRANSFERS,
            lambda: self._source.fetch_transfers(account, start, end),
            self._timeout,
        )

    @staticmethod
    def _verify_one(
        tx: Transaction, candidates: Sequence[Transfer], window_days: int
    ) -> VerificationResult:
        assert tx.date is not None  # filtered in verify_batch
        matches = rank_declared(candidates, _declared(tx), tx.date, window_days)
        return _classify(tx, best_match(matches))


# ---------------------------------------------------------------------------
# Not-found diagnosis
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NearMiss:
    transfer: Transfer
    amount_delta: float
    date_delta_days: int
    same_recipient: bool


@dataclass(frozen=True, slots=True)
class Diagnosis:
    """Why a transaction found no match, as evidence rather than a verdict."""

    transaction: Transaction
    same_recipient: tuple[NearMiss, ...]
    same_amount_other_recipient: tuple[NearMiss, ...]

    @property
    def likely_cause(self) -> str:
        if self.same_amount_other_recipient and not self.same_recipient:
            return "recipient mismatch"
        if self.same_recipient:
            return "amount mismatch"
        return "no nearby transfers"


def diagnose_not_found(
    transaction: Transaction,
    transfers: Sequence[Transfer],
    counterparty_account: str,
    *,
    window_days: int = 30,
    limit: int = 5,
) -> Diagnosis:
    """Collect near-misses for a transaction that verified as ``not_found``.

    ``same_recipient`` holds transfers to the declared recipient within
    ``window_days``, closest amount first. ``same_amount_other_recipient``
    holds transfers of a matching amount to other accounts in the same window,
    which usually means a misspelled wallet in the ledger.
    """

    account = normalize_account(counterparty_account)
    if transaction.date is None:
        return Diagnosis(transaction, (), ())
    declared = [amt for amt, _ in _declared(transaction) if amt > 0]
    if not declared:
        return Diagnosis(transaction, (), ())

    same: list[NearMiss] = []
    other: list[NearMiss] = []
    for t in transfers:
        if normalize_account(t.sender) != account:
            continue
        delta_days = (t.day - transaction.date).days
        if abs(delta_days) > window_days:
            continue
        amount_delta = min((t.amount - a for a in declared), key=abs)
        to_recipient = normalize_account(t.recipient) == transaction.recipient
        miss = NearMiss(t, round(amount_delta, 6), delta_days, to_recipient)
        if to_recipient:
            same.append(miss)
        elif abs(amount_delta) <= AMOUNT_EPSILON:
            other.append(miss)

    same.sort(key=lambda m: (abs(m.amount_delta), abs(m.date_delta_days)))
    other.sort(key=lambda m: abs(m.date_delta_days))
    return Diagnosis(transaction, tuple(same[:limit]), tuple(other[:limit]))


__all__ = [
    "DEFAULT_DATE_BUFFER_DAYS",
    "VerificationBatch",
    "VerificationEngine",
    "NearMiss",
    "Diagnosis",
    "diagnose_not_found",
]
