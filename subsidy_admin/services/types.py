"""
Shared record types for the ledger and profile sides.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from subsidy_admin.utils.validation import scale_amount, truncate_address


@dataclass(frozen=True)
class LedgerRecord:
    """Indexed on-chain state for one beneficiary."""
    address: str
    date_added: int
    date_removed: Optional[int]
    is_active: bool
    total_claimed: int  # base units

    @property
    def claimed_amount(self) -> Decimal:
        return scale_amount(self.total_claimed)


@dataclass(frozen=True)
class DailyClaim:
    """One day's claim batch as reported by the indexer."""
    date: int
    beneficiaries: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ProfileRecord:
    """Off-chain contact data for one address."""
    address: str
    name: str
    phone_number: Optional[str] = None
    responsable: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, model) -> "ProfileRecord":
        return cls(
            address=model.address,
            name=model.name,
            phone_number=model.phone_number,
            responsable=model.responsable,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass(frozen=True)
class ProfileInput:
    """Profile payload supplied by an operator (already validated)."""
    address: str
    name: str
    phone_number: Optional[str] = None
    responsable: Optional[str] = None


@dataclass(frozen=True)
class ReconciledRow:
    """Ledger and profile data joined on canonical address."""
    address: str
    ledger: Optional[LedgerRecord] = None
    profile: Optional[ProfileRecord] = None

    @property
    def has_ledger(self) -> bool:
        return self.ledger is not None

    @property
    def has_profile(self) -> bool:
        return self.profile is not None

    @property
    def date_added(self) -> Optional[int]:
        return self.ledger.date_added if self.ledger else None

    @property
    def date_removed(self) -> Optional[int]:
        return self.ledger.date_removed if self.ledger else None

    @property
    def is_active(self) -> bool:
        return bool(self.ledger and self.ledger.is_active)

    @property
    def total_claimed(self) -> int:
        return self.ledger.total_claimed if self.ledger else 0

    @property
    def claimed_amount(self) -> Decimal:
        return scale_amount(self.total_claimed)

    @property
    def name(self) -> Optional[str]:
        return self.profile.name if self.profile else None

    @property
    def phone_number(self) -> Optional[str]:
        return self.profile.phone_number if self.profile else None

    @property
    def responsable(self) -> Optional[str]:
        return self.profile.responsable if self.profile else None

    @property
    def display_name(self) -> str:
        """Profile name, or a truncated address placeholder."""
        return self.name or truncate_address(self.address)
