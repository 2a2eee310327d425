from __future__ import annotations

from pathlib import Path

import pytest

from disbursement_recon.config import Settings
from disbursement_recon.dataset import DEFAULT_DATASET_PATH, load_dataset


def test_defaults_from_empty_env() -> None:
    s = Settings.from_env({})
    assert s == Settings()
    assert s.org_account == "valueplan"
    assert s.database_url is None
    assert s.source_timeout == 30.0
    assert s.sample_limit == 50
    assert s.conversion_rate is None
    assert s.dataset_path == DEFAULT_DATASET_PATH
    assert s.low_coverage_threshold == 0.5


def test_values_from_env() -> None:
    s = Settings.from_env(
        {
            "DATABASE_URL": "sqlite+pysqlite:///x.db",
            "RECON_ORG_ACCOUNT": " ValuePlan ",
            "RECON_SOURCE_TIMEOUT_SECONDS": "2.5",
            "RECON_SAMPLE_LIMIT": "10",
            "RECON_CONVERSION_RATE": "0.3",
            "RECON_DATASET_PATH": "/tmp/ds.json",
            "RECON_LOW_COVERAGE_THRESHOLD": "0.75",
        }
    )
    assert s.database_url == "sqlite+pysqlite:///x.db"
    assert s.org_account == "valueplan"
    assert s.source_timeout == 2.5
    assert s.sample_limit == 10
    assert s.conversion_rate == 0.3
    assert s.dataset_path == Path("/tmp/ds.json")
    assert s.low_coverage_threshold == 0.75


def test_blank_values_fall_back_to_defaults() -> None:
    s = Settings.from_env({"RECON_SAMPLE_LIMIT": "  ", "DATABASE_URL": ""})
    assert s.sample_limit == 50
    assert s.database_url is None


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("RECON_SOURCE_TIMEOUT_SECONDS", "soon"),
        ("RECON_SAMPLE_LIMIT", "1.5"),
        ("RECON_SAMPLE_LIMIT", "-1"),
        ("RECON_CONVERSION_RATE", "-0.2"),
    ],
)
def test_malformed_values_name_the_variable(name: str, value: str) -> None:
    with pytest.raises(ValueError, match=name):
        Settings.from_env({name: value})


def test_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RECON_ORG_ACCOUNT", "OtherOrg")
    assert Settings.from_env().org_account == "otherorg"


def test_conversion_rate_defaults_to_dataset_and_env_overrides_it() -> None:
    dataset = load_dataset()
    assert Settings.from_env({}).rate_for(dataset) == dataset.conversion_rate
    assert Settings.from_env({"RECON_CONVERSION_RATE": "0.31"}).rate_for(dataset) == 0.31
