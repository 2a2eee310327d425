"""Logging for reconciliation runs.

Every module logs through ``get_logger("disbursement_recon.<module>")`` and
formats messages as ``area:event key=value ...``. The areas in use:

==============  ==================================================
``source``      loads and fetches, failures and timeouts
``verify``      batch results and failed transfer fetches
``reconcile``   failed sources and the finished report
``categories``  mapped and excluded spend per tier
``scale``       scale factor, coverage, low-coverage warnings
``ledger``      skipped spreadsheet rows
``dataset``     reference dataset loads
==============  ==================================================

Nothing is printed until an entrypoint calls :func:`configure_logging`; a
host application that never does sees no output from this package.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_ROOT = "disbursement_recon"
_LEVEL_ENV = "DISBURSEMENT_RECON_LOG_LEVEL"
_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_configured = False


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    # Unknown names fall back to INFO rather than failing a reconciliation run.
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send ``disbursement_recon`` logs to ``stream``; later calls are no-ops.

    ``level`` defaults to ``$DISBURSEMENT_RECON_LOG_LEVEL``, then ``INFO``.
    Records stop at the package logger so a host's root handlers do not
    print them a second time.
    """

    global _configured
    if _configured:
        return

    root = logging.getLogger(_ROOT)
    root.handlers = [h for h in root.handlers if not isinstance(h, logging.NullHandler)]

    resolved = _resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt or _FORMAT))
    handler.setLevel(resolved)
    root.addHandler(handler)
    root.setLevel(resolved)
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    root = logging.getLogger(_ROOT)
    if not _configured and not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
