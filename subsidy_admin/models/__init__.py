"""
Database models for the subsidy admin backend.

Only the mutable off-chain side lives here; ledger data is read from the
indexer and never persisted locally.
"""

from .base import Base, BaseModel, TimestampMixin
from .beneficiary import BeneficiaryProfile

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "BeneficiaryProfile",
]
