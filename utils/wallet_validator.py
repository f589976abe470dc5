# utils/wallet_validator.py
"""
Wallet address validation utilities.
Supports TON addresses for NFT withdrawal.
"""
import re
import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class WalletValidationCode(Enum):
    """Validation result codes for wallet addresses."""
    VALID = "valid"
    INVALID_FORMAT = "invalid_format"  # Neither raw nor user-friendly form
    INVALID_LENGTH = "invalid_length"  # Wrong number of characters
    INVALID_CHARS = "invalid_chars"  # Contains invalid characters
    EMPTY = "empty"  # Empty or None input


@dataclass
class WalletValidationResult:
    """Result of wallet address validation."""
    code: WalletValidationCode
    details: str = None

    @property
    def is_valid(self) -> bool:
        """Check if validation passed."""
        return self.code == WalletValidationCode.VALID


# =============================================================================
# TON VALIDATION
# =============================================================================

# Raw form: workchain:64 hex chars, e.g. 0:83df...
TON_RAW_PATTERN = re.compile(r"^-?\d{1,3}:[0-9a-fA-F]{64}$")

# User-friendly form: 48 chars, base64 or base64url alphabet
BASE64_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/-_"
TON_FRIENDLY_PATTERN = re.compile(r"^[A-Za-z0-9+/\-_]{48}$")
TON_FRIENDLY_LENGTH = 48


def validate_ton_address(address: str) -> WalletValidationResult:
    """
    Validate TON wallet address.

    Accepted forms:
    - raw: "<workchain>:<64 hex>"
    - user-friendly: 48 base64/base64url characters (EQ..., UQ..., kQ..., 0Q...)

    Args:
        address: Wallet address to validate

    Returns:
        WalletValidationResult

    Examples:
        >>> validate_ton_address("0:" + "ab" * 32)
        WalletValidationResult(code=VALID)

        >>> validate_ton_address("TJYeasTPa6gpBZEgKso8R79RNEQ5GRgvz3")
        WalletValidationResult(code=INVALID_LENGTH, details="...")
    """
    if not address or not address.strip():
        return WalletValidationResult(
            WalletValidationCode.EMPTY,
            "Address is empty"
        )

    address = address.strip()

    if ":" in address:
        if TON_RAW_PATTERN.match(address):
            logger.debug(f"TON raw address validated: {address[:6]}...{address[-4:]}")
            return WalletValidationResult(WalletValidationCode.VALID)
        return WalletValidationResult(
            WalletValidationCode.INVALID_FORMAT,
            "Raw TON address must be <workchain>:<64 hex characters>"
        )

    if len(address) != TON_FRIENDLY_LENGTH:
        return WalletValidationResult(
            WalletValidationCode.INVALID_LENGTH,
            f"TON address must be {TON_FRIENDLY_LENGTH} characters, got {len(address)}"
        )

    if not TON_FRIENDLY_PATTERN.match(address):
        invalid_chars = [
            f"'{char}' at position {i + 1}"
            for i, char in enumerate(address)
            if char not in BASE64_ALPHABET
        ]
        details = f"Invalid characters: {', '.join(invalid_chars[:3])}"
        if len(invalid_chars) > 3:
            details += f" and {len(invalid_chars) - 3} more"

        return WalletValidationResult(
            WalletValidationCode.INVALID_CHARS,
            details
        )

    logger.debug(f"TON address validated: {address[:6]}...{address[-4:]}")
    return WalletValidationResult(WalletValidationCode.VALID)


__all__ = [
    'WalletValidationCode',
    'WalletValidationResult',
    'validate_ton_address',
]
