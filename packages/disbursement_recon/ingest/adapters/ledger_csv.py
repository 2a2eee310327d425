"""Adapter for the disbursement ledger CSV export.

CSV header (exact keys expected; extra columns are ignored):
Wallet, Date, HBD, HIVE, Hive To HBD, Event/Project, Country, Theme,
Event Type, Category, Memo

Only ``Wallet``, ``Date``, ``HBD`` and ``HIVE`` are required. Rows are turned
into :class:`~disbursement_recon.models.Transaction` records with flags and
stable-equivalent totals derived.

Skipped rows (logged, never fatal):
- blank wallet, or both amounts zero;
- spreadsheet subtotal rows (wallet ``Total``/``HBD Total``/``HIVE Total`` or
  ``Total ...``, or a digit-free date mentioning ``total``);
- amounts that are not numbers in either US or European notation;
- dates that raise :class:`~disbursement_recon.errors.DateParseError`.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping

from ...dates import parse_date
from ...errors import DateParseError
from ...ledger import DEFAULT_CONVERSION_RATE, derive
from ...logging_setup import get_logger
from ...models import Transaction

_logger = get_logger("disbursement_recon.ingest.ledger_csv")

LEDGER_HEADERS: tuple[str, ...] = (
    "Wallet",
    "Date",
    "HBD",
    "HIVE",
    "Hive To HBD",
    "Event/Project",
    "Country",
    "Theme",
    "Event Type",
    "Category",
    "Memo",
)
REQUIRED_HEADERS: frozenset[str] = frozenset({"Wallet", "Date", "HBD", "HIVE"})

_DIGIT_RE = re.compile(r"\d")


def _clean_text(value: str | None) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", value).strip()


def _normalize_number(s: str) -> str:
    comma, dot = s.rfind(","), s.rfind(".")
    if comma == -1:
        return s
    if dot == -1:
        # "300,00" is a decimal comma; "1,234,567" only groups thousands.
        return s.replace(",", "") if s.count(",") > 1 else s.replace(",", ".")
    if comma > dot:
        return s.replace(".", "").replace(",", ".")
    return s.replace(",", "")


def _parse_amount(value: str | None) -> float:
    """Parse an amount cell in US (``1,234.56``) or European (``1.234,56``) form.

    Blank cells and ``-`` read as zero; any other non-number raises ``ValueError``.
    """

    s = (value or "").strip().replace(" ", "")
    if not s or s == "-":
        return 0.0
    return float(_normalize_number(s))


def _parse_optional_amount(value: str | None) -> float | None:
    s = (value or "").strip()
    if not s:
        return None
    return _parse_amount(s)


_TOTAL_WALLETS: frozenset[str] = frozenset({"total", "hbd total", "hive total"})


def _is_total_row(wallet: str, raw_date: str) -> bool:
    w = wallet.lower()
    if w in _TOTAL_WALLETS or w.startswith("total "):
        return True
    return "total" in raw_date.lower() and not _DIGIT_RE.search(raw_date)


def to_transactions(
    rows: Iterable[Mapping[str, str]],
    *,
    loan_wallets: Iterable[str] = (),
    rate: float = DEFAULT_CONVERSION_RATE,
) -> Iterator[Transaction]:
    """Convert ledger CSV rows to derived :class:`Transaction` records."""

    wallets = tuple(loan_wallets)
    skipped = 0
    for idx, row in enumerate(rows):
        wallet = _clean_text(row.get("Wallet"))
        raw_date = _clean_text(row.get("Date"))
        if not wallet or _is_total_row(wallet, raw_date):
            skipped += 1
            continue

        try:
            hbd = _parse_amount(row.get("HBD"))
            hive = _parse_amount(row.get("HIVE"))
            hive_to_hbd = _parse_optional_amount(row.get("Hive To HBD"))
        except ValueError as e:
            _logger.warning("ledger:row_skipped row=%d wallet=%s reason=%s", idx, wallet, e)
            skipped += 1
            continue
        if hbd == 0 and hive == 0:
            skipped += 1
            continue

        try:
            tx_date = parse_date(raw_date)
        except DateParseError as e:
            _logger.warning("ledger:row_skipped row=%d wallet=%s reason=%s", idx, wallet, e)
            skipped += 1
            continue

        tx = Transaction(
            wallet=wallet,
            date=tx_date,
            hbd=hbd,
            hive=hive,
            hive_to_hbd=hive_to_hbd,
            event_project=_clean_text(row.get("Event/Project")),
            country=_clean_text(row.get("Country")),
            theme=_clean_text(row.get("Theme")),
            event_type=_clean_text(row.get("Event Type")),
            category=_clean_text(row.get("Category")),
            memo=_clean_text(row.get("Memo")),
        )
        yield derive(tx, loan_wallets=wallets, rate=rate)

    if skipped:
        _logger.info("ledger:rows_skipped count=%d", skipped)


__all__ = ["LEDGER_HEADERS", "REQUIRED_HEADERS", "to_transactions"]
