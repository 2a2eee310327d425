"""Adapter for transfer-log CSV exports from the chain's SQL bridge.

CSV header (exact keys expected):
Transaction ID, Timestamp, From Account, To Account, Amount, Currency,
Amount Value, Memo

``Amount`` is the display string (``"100.000 HBD"``); ``Amount Value`` is the
numeric part. When ``Amount Value`` is blank the number is taken from
``Amount``. Timestamps are ISO-8601 (UTC, naive).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime

from ...models import Currency, Transfer

TRANSFER_HEADERS: tuple[str, ...] = (
    "Transaction ID",
    "Timestamp",
    "From Account",
    "To Account",
    "Amount",
    "Currency",
    "Amount Value",
    "Memo",
)


def _parse_timestamp(value: str, *, row: int) -> datetime:
    s = value.strip()
    try:
        ts = datetime.fromisoformat(s)
    except ValueError as e:
        raise ValueError(f"row {row}: unparseable timestamp {value!r}") from e
    # Store naive UTC, matching the bridge.
    return ts.replace(tzinfo=None)


def _parse_amount(amount_value: str | None, amount_display: str | None, *, row: int) -> float:
    raw = (amount_value or "").strip()
    if not raw:
        raw = (amount_display or "").strip().split(" ")[0]
    try:
        return float(raw.replace(",", ""))
    except ValueError as e:
        raise ValueError(f"row {row}: unparseable amount {raw!r}") from e


def to_transfers(rows: Iterable[Mapping[str, str]]) -> Iterator[Transfer]:
    """Convert export rows to :class:`Transfer` records.

    Raises ``ValueError`` on a malformed row: the transfer log is ground truth,
    so a bad row means a bad export rather than a row to skip.
    """

    for idx, row in enumerate(rows):
        currency_raw = (row.get("Currency") or "").strip().upper()
        try:
            currency = Currency(currency_raw)
        except ValueError as e:
            raise ValueError(f"row {idx}: unknown currency {currency_raw!r}") from e
        yield Transfer(
            id=(row.get("Transaction ID") or "").strip(),
            timestamp=_parse_timestamp(row.get("Timestamp") or "", row=idx),
            sender=(row.get("From Account") or "").strip().lower(),
            recipient=(row.get("To Account") or "").strip().lower(),
            amount=_parse_amount(row.get("Amount Value"), row.get("Amount"), row=idx),
            currency=currency,
            memo=(row.get("Memo") or "").strip(),
        )


__all__ = ["TRANSFER_HEADERS", "to_transfers"]
