"""
Ledger data validation utilities.
Provides validation for EVM addresses, profile payloads and token amounts.
"""

import re
from decimal import Decimal
from typing import Optional, Union

import structlog
from web3 import Web3

from subsidy_admin.core.exceptions import InvalidAddressError, ValidationError
from subsidy_admin.core.config import settings


logger = structlog.get_logger(__name__)

CANONICAL_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


class AddressValidator:
    """Validator for EVM account identifiers."""

    @staticmethod
    def is_valid(address: str) -> bool:
        """
        Validate that a string is a well-formed EVM address.

        Accepts all-lowercase, all-uppercase and EIP-55 checksummed input.
        A mixed-case string with a wrong checksum is rejected.

        Args:
            address: String to validate

        Returns:
            True if valid, False otherwise
        """
        if not isinstance(address, str) or not address:
            return False
        if not Web3.is_address(address):
            return False
        body = address[2:] if address[:2].lower() == "0x" else address
        if body != body.lower() and body != body.upper():
            return Web3.is_checksum_address(address)
        return True

    @staticmethod
    def is_canonical(address: str) -> bool:
        """True only for lowercase hex with a 0x prefix."""
        return isinstance(address, str) and bool(CANONICAL_ADDRESS_RE.match(address))

    @staticmethod
    def normalize(address: str) -> str:
        """
        Validate operator input and return its canonical form.

        Raises:
            InvalidAddressError: if the input is not a valid address
        """
        candidate = address.strip() if isinstance(address, str) else address
        if not AddressValidator.is_valid(candidate):
            raise InvalidAddressError(str(address), "Invalid address")
        if not candidate.lower().startswith("0x"):
            raise InvalidAddressError(str(address), "Address must be 0x-prefixed")
        return candidate.lower()

    @staticmethod
    def require_canonical(address: str) -> str:
        """
        Guard for store boundaries: canonical input only, never coerced.

        Raises:
            InvalidAddressError: if the address is not canonical
        """
        if not AddressValidator.is_canonical(address):
            raise InvalidAddressError(str(address), "Address is not in canonical form")
        return address


class ProfileValidator:
    """Validator for off-chain profile payloads."""

    MAX_NAME_LENGTH = 255

    @staticmethod
    def validate_name(name: Optional[str]) -> str:
        """Return the stripped name or raise if it is empty."""
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Name is required", {"field": "name"})
        if len(cleaned) > ProfileValidator.MAX_NAME_LENGTH:
            raise ValidationError(
                "Name is too long",
                {"field": "name", "max_length": ProfileValidator.MAX_NAME_LENGTH}
            )
        return cleaned

    @staticmethod
    def clean_optional(value: Optional[str]) -> Optional[str]:
        """Blank optional fields are stored as NULL."""
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


def normalize_address(address: str) -> str:
    """Validate and lowercase an address."""
    return AddressValidator.normalize(address)


def require_canonical_address(address: str) -> str:
    """Reject anything that is not already canonical."""
    return AddressValidator.require_canonical(address)


def is_valid_address(address: str) -> bool:
    """Validate address format."""
    return AddressValidator.is_valid(address)


def truncate_address(address: str, head: int = 7, tail: int = 5) -> str:
    """Short display form, e.g. ``0x12345...abcde``."""
    if len(address) <= head + tail:
        return address
    return f"{address[:head]}...{address[-tail:]}"


def scale_amount(raw: Union[int, str], decimals: Optional[int] = None) -> Decimal:
    """Convert a base-unit integer into decimal token units without float rounding."""
    decimals = settings.token_decimals if decimals is None else decimals
    # Built from text so no context precision applies
    return Decimal(f"{int(raw)}E-{decimals}")
