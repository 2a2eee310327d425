"""Environment-driven settings.

Entrypoints load ``.env`` (see ``cli``) and then read :class:`Settings` once.
Library code receives values explicitly and never reads the environment.

=============================  ========================
Variable                       Default
=============================  ========================
``DATABASE_URL``               unset (SQL source only)
``RECON_ORG_ACCOUNT``          ``valueplan``
``RECON_SOURCE_TIMEOUT_SECONDS``  ``30``
``RECON_SAMPLE_LIMIT``         ``50``
``RECON_CONVERSION_RATE``      from dataset
``RECON_DATASET_PATH``         packaged dataset
``RECON_LOW_COVERAGE_THRESHOLD``  ``0.5``
=============================  ========================
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .dataset import DEFAULT_DATASET_PATH, ReferenceDataset

DEFAULT_ORG_ACCOUNT = "valueplan"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_SAMPLE_LIMIT = 50
DEFAULT_LOW_COVERAGE_THRESHOLD = 0.5


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {raw!r}")
    return value


def _env_optional_float(env: Mapping[str, str], name: str) -> float | None:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return None
    return _env_float(env, name, 0.0)


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {raw!r}")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None = None
    org_account: str = DEFAULT_ORG_ACCOUNT
    source_timeout: float = DEFAULT_TIMEOUT_SECONDS
    sample_limit: int = DEFAULT_SAMPLE_LIMIT
    # None defers to the reference dataset.
    conversion_rate: float | None = None
    dataset_path: Path = DEFAULT_DATASET_PATH
    low_coverage_threshold: float = DEFAULT_LOW_COVERAGE_THRESHOLD

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``env`` (defaults to ``os.environ``).

        Raises ``ValueError`` naming the variable when a value is malformed.
        """

        env = os.environ if env is None else env
        dataset_raw = env.get("RECON_DATASET_PATH")
        return cls(
            database_url=env.get("DATABASE_URL") or None,
            org_account=(env.get("RECON_ORG_ACCOUNT") or DEFAULT_ORG_ACCOUNT).strip().lower(),
            source_timeout=_env_float(env, "RECON_SOURCE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            sample_limit=_env_int(env, "RECON_SAMPLE_LIMIT", DEFAULT_SAMPLE_LIMIT),
            conversion_rate=_env_optional_float(env, "RECON_CONVERSION_RATE"),
            dataset_path=Path(dataset_raw) if dataset_raw else DEFAULT_DATASET_PATH,
            low_coverage_threshold=_env_float(
                env, "RECON_LOW_COVERAGE_THRESHOLD", DEFAULT_LOW_COVERAGE_THRESHOLD
            ),
        )

    def rate_for(self, dataset: ReferenceDataset) -> float:
        """HIVE-to-HBD rate: the environment override, else the dataset's own."""

        return dataset.conversion_rate if self.conversion_rate is None else self.conversion_rate


__all__ = ["Settings", "DEFAULT_ORG_ACCOUNT"]
