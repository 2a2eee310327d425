"""Shared SQLAlchemy models registry for the workspace database.

Currently holds the transfer-log mirror read by ``disbursement_recon``.
"""

from .recon import Base, RcTransfer

__all__ = [
    "Base",
    "RcTransfer",
]
