"""
Phone number normalization for Pairline.

Turns whatever a user typed into the canonical WhatsApp routing address
for one numbering region. Everything here is pure.

Example:
    >>> normalize_number("077 123 4567")
    '94771234567'
    >>> resolve_address("771234567").jid
    '94771234567@s.whatsapp.net'
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pairline.errors import InvalidAddressFormat

USER_SERVER = "s.whatsapp.net"

_NON_DIGITS = re.compile(r"[^0-9]")


@dataclass(frozen=True, slots=True)
class NumberingPlan:
    """
    Numbering plan of the target region.

    Attributes:
        country_code: International dialling code, digits only
        trunk_prefix: Digit dialled before national numbers domestically
        national_length: Subscriber number length without trunk prefix
    """

    country_code: str
    trunk_prefix: str = "0"
    national_length: int = 9

    @property
    def international_length(self) -> int:
        return len(self.country_code) + self.national_length


SRI_LANKA = NumberingPlan(country_code="94")


@dataclass(frozen=True, slots=True)
class CanonicalAddress:
    """Resolved routing address: country-prefixed digits plus the chat id."""

    number: str

    @property
    def jid(self) -> str:
        return f"{self.number}@{USER_SERVER}"

    def __str__(self) -> str:
        return self.jid


def digits_only(raw: str | None) -> str:
    """Strip every non-digit character."""
    return _NON_DIGITS.sub("", str(raw or ""))


def normalize_number(raw: str | None, plan: NumberingPlan = SRI_LANKA) -> str:
    """
    Normalize a user-supplied phone number.

    Accepted shapes (Sri Lanka shown):
        0771234567    -> 94771234567  (trunk prefix replaced)
        771234567     -> 94771234567  (country code prepended)
        94771234567   -> 94771234567
        94XXXXXXXXXX  -> unchanged     (one digit too long, accepted as entered)

    Raises:
        InvalidAddressFormat: For any other shape
    """
    digits = digits_only(raw)
    cc = plan.country_code

    if len(digits) == plan.national_length + len(plan.trunk_prefix) and digits.startswith(
        plan.trunk_prefix
    ):
        return cc + digits[len(plan.trunk_prefix) :]
    if len(digits) == plan.national_length:
        return cc + digits
    if len(digits) == plan.international_length and digits.startswith(cc):
        return digits
    if len(digits) == plan.international_length + 1 and digits.startswith(cc):
        return digits

    raise InvalidAddressFormat(raw="" if raw is None else str(raw), normalized="")


def resolve_address(raw: str | None, plan: NumberingPlan = SRI_LANKA) -> CanonicalAddress:
    """Resolve a raw phone number to its CanonicalAddress."""
    return CanonicalAddress(number=normalize_number(raw, plan))
