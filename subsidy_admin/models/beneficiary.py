"""
Beneficiary profile model - off-chain contact data keyed by canonical address.
"""

from typing import Optional
import uuid

from sqlalchemy import String, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class BeneficiaryProfile(BaseModel, TimestampMixin):
    """Mutable profile for a beneficiary enrolled (or once enrolled) on-chain."""

    __tablename__ = "beneficiaries"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Surrogate identifier"
    )

    # Sole uniqueness constraint; always lowercase 0x-prefixed hex
    address: Mapped[str] = mapped_column(
        String(42),
        unique=True,
        nullable=False,
        comment="Canonical beneficiary address"
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Beneficiary full name"
    )

    phone_number: Mapped[Optional[str]] = mapped_column(
        String(64),
        comment="Contact phone number"
    )

    responsable: Mapped[Optional[str]] = mapped_column(
        String(255),
        comment="Responsible contact person"
    )

    __table_args__ = (
        Index("ix_beneficiaries_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<BeneficiaryProfile(address={self.address}, name={self.name})>"
