from __future__ import annotations

import logging
from datetime import date

import pytest

from disbursement_recon.api import map_and_scale
from disbursement_recon.categories import CategoryMapping, map_transactions
from disbursement_recon.models import CategoryBucket, TaxonomyEntry
from disbursement_recon.scaling import scale
from tests.helpers.records import tx

D = date(2025, 8, 1)
TAXONOMY = (
    TaxonomyEntry("Events", ("Meetup",)),
    TaxonomyEntry("Media", ("Podcast",)),
)


def _mapping(*, events: float, media: float, excluded: float) -> CategoryMapping:
    return CategoryMapping(
        buckets=(
            CategoryBucket("Events", hbd=events, total=events, count=1),
            CategoryBucket("Media", hbd=media, total=media, count=1),
        ),
        mapped_total=events + media,
        ledger_total=events + media + excluded,
        excluded_total=excluded,
        excluded_stable_total=excluded,
        excluded_count=1 if excluded else 0,
    )


@pytest.mark.parametrize(
    ("events", "media", "excluded", "authoritative"),
    [
        (300.0, 100.0, 100.0, 1000.0),
        (300.0, 100.0, 0.0, 1000.0),
        (0.0, 0.0, 250.0, 1000.0),
        (0.0, 0.0, 0.0, 1000.0),
        (300.0, 100.0, 100.0, 0.0),
    ],
)
def test_scaled_sum_equals_authoritative_times_coverage(events, media, excluded, authoritative) -> None:
    result = scale(_mapping(events=events, media=media, excluded=excluded), authoritative)
    assert result.scaled_total == pytest.approx(authoritative * result.coverage_ratio)


def test_full_coverage_scales_to_authoritative_total() -> None:
    result = scale(_mapping(events=300.0, media=100.0, excluded=0.0), 1000.0)
    assert result.coverage_ratio == 1.0
    assert result.scale_factor == pytest.approx(2.5)
    assert [b.scaled_total for b in result.buckets] == pytest.approx([750.0, 250.0])


def test_partial_coverage_keeps_exclusions_out_of_buckets() -> None:
    result = scale(_mapping(events=300.0, media=100.0, excluded=100.0), 1000.0)
    assert result.coverage_ratio == pytest.approx(0.8)
    assert result.scale_factor == pytest.approx(2.0)
    assert result.scaled_total == pytest.approx(800.0)
    assert result.excluded_total == 100.0


def test_proportions_are_preserved() -> None:
    result = scale(_mapping(events=300.0, media=100.0, excluded=50.0), 777.0)
    events, media = result.buckets
    assert events.scaled_total / media.scaled_total == pytest.approx(3.0)


def test_zero_ledger_total_uses_unit_factor() -> None:
    result = scale(_mapping(events=0.0, media=0.0, excluded=0.0), 500.0)
    assert result.scale_factor == 1.0
    assert result.coverage_ratio == 0.0
    assert result.scaled_total == 0.0


def test_scaling_is_deterministic_and_leaves_input_untouched() -> None:
    mapping = _mapping(events=123.456, media=7.89, excluded=1.0)
    a = scale(mapping, 4321.0)
    b = scale(mapping, 4321.0)
    assert a == b
    assert all(bucket.scaled_total is None for bucket in mapping.buckets)
    assert a.proportions_verified is False


@pytest.mark.parametrize("bad", [-1.0, float("nan"), float("inf")])
def test_invalid_authoritative_total(bad) -> None:
    with pytest.raises(ValueError):
        scale(_mapping(events=1.0, media=1.0, excluded=0.0), bad)


@pytest.fixture
def pkg_caplog(caplog: pytest.LogCaptureFixture):
    """caplog wired to the package logger, which may not propagate once configured."""

    logger = logging.getLogger("disbursement_recon")
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.WARNING, logger="disbursement_recon")
    try:
        yield caplog
    finally:
        logger.removeHandler(caplog.handler)


def test_low_coverage_is_logged(pkg_caplog: pytest.LogCaptureFixture) -> None:
    scale(_mapping(events=10.0, media=0.0, excluded=90.0), 100.0, low_coverage_threshold=0.5)
    assert any("scale:low_coverage" in r.getMessage() for r in pkg_caplog.records)


def test_bucket_sum_mismatch_is_logged(pkg_caplog: pytest.LogCaptureFixture) -> None:
    mapping = _mapping(events=10.0, media=10.0, excluded=0.0)
    broken = CategoryMapping(
        buckets=mapping.buckets,
        mapped_total=25.0,
        ledger_total=25.0,
        excluded_total=0.0,
        excluded_stable_total=0.0,
        excluded_count=0,
    )
    scale(broken, 50.0)
    assert any("scale:total_check_failed" in r.getMessage() for r in pkg_caplog.records)


def test_map_and_scale_drops_explicit_loans_and_refunds() -> None:
    rows = [
        tx("a", D, hbd=300.0, project="Meetup"),
        tx("b", D, hbd=100.0, project="Podcast"),
        tx("c", D, hbd=100.0, project="Unlisted"),
        tx("blocktrades", D, hbd=13000.0, category="Loan", loan_wallets=("blocktrades",)),
        tx("alpha", D, hive=500.0, category="Loan Refund"),
    ]
    result = map_and_scale(rows, TAXONOMY, 1000.0)
    assert result.raw_ledger_total == pytest.approx(500.0)
    assert result.coverage_ratio == pytest.approx(0.8)
    assert result.scaled_total == pytest.approx(800.0)

    direct = scale(map_transactions(rows[:3], TAXONOMY), 1000.0)
    assert result == direct
