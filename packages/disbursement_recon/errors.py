"""Error taxonomy for ``disbursement_recon``.

Only two conditions are errors in the engine's sense:

- :class:`DateParseError` is raised per record and is never fatal to a batch;
  ingestion logs and skips the offending row.
- :class:`SourceUnavailable` is raised when a collaborator (transfer log,
  ledger, manual records) fails or times out. It is fatal to the operation
  that needs the source and always names the source. Nothing inside the
  engine retries.

Ambiguous matches are not errors: ties resolve deterministically in
``matching.rank``.
"""

from __future__ import annotations


class ReconError(Exception):
    """Base class for engine errors."""


class DateParseError(ReconError, ValueError):
    """A date string matched no accepted format or fell outside the year bounds."""

    def __init__(self, value: str, reason: str | None = None) -> None:
        self.value = value
        self.reason = reason
        msg = f"unparseable date {value!r}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class SourceUnavailable(ReconError):
    """A data source failed to respond in time or raised while loading."""

    def __init__(self, source: str, detail: str) -> None:
        self.source = source
        self.detail = detail
        super().__init__(f"source {source!r} unavailable: {detail}")


__all__ = ["ReconError", "DateParseError", "SourceUnavailable"]
