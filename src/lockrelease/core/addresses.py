"""
Address helpers shared by the schedule, checkpoint and token components.

Identifiers are opaque strings compared case-insensitively; the canonical
form is lower-case.
"""

from __future__ import annotations

from typing import Optional

ZERO_ADDRESS = "0x" + "0" * 40


def normalize_address(address: Optional[str]) -> str:
    """Return the canonical (lower-case, stripped) form of an identifier."""
    if address is None:
        return ""
    return str(address).strip().lower()


def is_zero_address(address: Optional[str]) -> bool:
    """True for None, empty strings and the all-zero hex address."""
    normalized = normalize_address(address)
    return not normalized or normalized == ZERO_ADDRESS
