"""
Referral code generation and parsing.
"""
import re
import secrets
from typing import Optional

# Values a client sends when there is no code at all
PLACEHOLDER_CODES = frozenset({"", "none", "undefined", "null"})

_DIGITS = re.compile(r"^\d+$")


def generate_referral_code(prefix: str = "ref_") -> str:
    """Random code, e.g. ref_9f86d081."""
    return f"{prefix}{secrets.token_hex(4)}"


def normalize_code(raw: Optional[str]) -> Optional[str]:
    """Stripped code, or None for empty input and placeholders."""
    if raw is None:
        return None
    code = str(raw).strip()
    if code.lower() in PLACEHOLDER_CODES:
        return None
    return code


def parse_legacy_id(code: str, prefix: str = "ref_") -> Optional[int]:
    """
    Account id embedded in a legacy code.

    "ref_12345" and "12345" give 12345; anything non-numeric after the
    prefix gives None.
    """
    raw_id = code[len(prefix):] if prefix and code.startswith(prefix) else code
    if not _DIGITS.match(raw_id):
        return None
    return int(raw_id)
