"""Tolerance-based ranking of candidate transfers against a ledger target.

The ranking policy is deliberately simple so an auditor can replay it by hand:

1. A candidate is considered only when its amount equals the target amount
   within :data:`AMOUNT_EPSILON` (floating-point noise, not a business slack).
   Amounts compare across currencies too: a ledger row tagged with the wrong
   currency is still linked, and flagged.
2. Currency-exact candidates rank before currency-mismatched ones.
3. Then smallest absolute calendar-day delta.
4. Then input order (the first candidate wins).

Candidates outside the inclusive window ``[target - N, target + N]`` are kept
and flagged ``within_window=False``; the caller decides what they mean.

The window ``N`` comes from a tolerance policy supplied by the caller, since
ledger date quality varies by period.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from .models import Currency, Transfer

AMOUNT_EPSILON = 0.001

# policy(target_date, base_days) -> window in days
type TolerancePolicy = Callable[[date, int], int]


@dataclass(frozen=True, slots=True)
class Match:
    """A candidate transfer that matched the target amount."""

    transfer: Transfer
    index: int
    expected_currency: Currency
    date_delta_days: int
    within_window: bool
    amount_delta: float

    @property
    def currency_matches(self) -> bool:
        return self.transfer.currency == self.expected_currency

    @property
    def sort_key(self) -> tuple[bool, int, int]:
        return (not self.currency_matches, abs(self.date_delta_days), self.index)


# ---------------------------------------------------------------------------
# Tolerance policies
# ---------------------------------------------------------------------------


def fixed_tolerance(target_date: date, base_days: int) -> int:
    """Default policy: the caller's base window, whatever the date."""

    return base_days


@dataclass(frozen=True, slots=True)
class TolerancePeriod:
    start: date
    end: date
    days: int


@dataclass(frozen=True, slots=True)
class PeriodTolerancePolicy:
    """Fixed windows for listed date ranges, ``max(base, floor)`` elsewhere.

    The first period containing the target date wins.
    """

    periods: tuple[TolerancePeriod, ...] = ()
    floor_days: int = 0

    def __call__(self, target_date: date, base_days: int) -> int:
        for p in self.periods:
            if p.start <= target_date <= p.end:
                return p.days
        return max(base_days, self.floor_days)


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


def rank(
    candidates: Sequence[Transfer],
    target_amount: float,
    target_currency: Currency | str,
    target_date: date,
    date_tolerance_days: int,
) -> list[Match]:
    """Return the candidates whose amount matches, best first.

    Parameters
    ----------
    candidates:
        Transfers to consider; their order is the final tie-breaker.
    target_amount, target_currency:
        The declared amount and the currency the ledger tagged it with.
    target_date:
        The declared calendar date.
    date_tolerance_days:
        Inclusive window half-width in days (``N >= 0``).
    """

    if date_tolerance_days < 0:
        raise ValueError("date_tolerance_days must be >= 0")
    expected = Currency(target_currency)

    matches: list[Match] = []
    for idx, transfer in enumerate(candidates):
        amount_delta = transfer.amount - target_amount
        if abs(amount_delta) > AMOUNT_EPSILON:
            continue
        delta = (transfer.day - target_date).days
        matches.append(
            Match(
                transfer=transfer,
                index=idx,
                expected_currency=expected,
                date_delta_days=delta,
                within_window=abs(delta) <= date_tolerance_days,
                amount_delta=amount_delta,
            )
        )
    matches.sort(key=lambda m: m.sort_key)
    return matches


def rank_declared(
    candidates: Sequence[Transfer],
    declared: Iterable[tuple[float, Currency]],
    target_date: date,
    date_tolerance_days: int,
) -> list[Match]:
    """Rank against every non-zero declared ``(amount, currency)`` pair.

    Ledger rows may declare both a stable and a volatile amount. Each pair is
    ranked separately; a transfer matched by more than one pair keeps its best
    ranking. The merged list uses the same ordering as :func:`rank`.
    """

    best: dict[int, Match] = {}
    for amount, currency in declared:
        if not amount or amount <= 0:
            continue
        for m in rank(candidates, amount, currency, target_date, date_tolerance_days):
            prev = best.get(m.index)
            if prev is None or m.sort_key < prev.sort_key:
                best[m.index] = m
    return sorted(best.values(), key=lambda m: m.sort_key)


def best_match(matches: Sequence[Match]) -> Match | None:
    """Pick the highest-ranked in-window match, else the highest-ranked one."""

    for m in matches:
        if m.within_window:
            return m
    return matches[0] if matches else None


__all__ = [
    "AMOUNT_EPSILON",
    "TolerancePolicy",
    "Match",
    "fixed_tolerance",
    "TolerancePeriod",
    "PeriodTolerancePolicy",
    "rank",
    "rank_declared",
    "best_match",
]
