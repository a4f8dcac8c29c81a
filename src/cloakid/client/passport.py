"""
Passport number <-> address conversion and country codes.

A passport number (at most 20 ASCII characters) is zero-padded into a
20-byte address so it can travel as an encrypted address. The mapping is
reversible for the holder once they decrypt their own record.
"""
import re
from typing import Optional

ADDRESS_BYTES = 20

COUNTRY_CODES = {
    "US": 1,
    "UK": 2,
    "CA": 3,
    "AU": 4,
    "FR": 5,
    "DE": 6,
    "IT": 7,
    "ES": 8,
    "NL": 9,
    "CH": 10,
    "JP": 11,
    "KR": 12,
    "CN": 13,
    "SG": 14,
    "HK": 15,
}

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_PASSPORT_RE = re.compile(r"^[A-Za-z0-9]+$")


def passport_to_address(passport_number: str) -> str:
    """
    Convert a passport number into a 0x-prefixed 20-byte address.

    Only the length is checked here. Characters are validated when
    converting back, so address_to_passport() returns None for numbers
    that are not alphanumeric.

    Raises:
        ValueError: if the number is longer than 20 bytes
    """
    raw = passport_number.encode("utf-8")
    if len(raw) > ADDRESS_BYTES:
        raise ValueError(f"Passport number too long (max {ADDRESS_BYTES} characters)")
    return "0x" + raw.ljust(ADDRESS_BYTES, b"\0").hex()


def address_to_passport(address: str) -> Optional[str]:
    """Recover a passport number from its address, or None if it is not one."""
    if not is_valid_passport_address(address):
        return None
    try:
        passport = bytes.fromhex(address[2:]).rstrip(b"\0").decode("utf-8")
    except UnicodeDecodeError:
        return None
    if not _PASSPORT_RE.match(passport):
        return None
    return passport


def address_from_int(value: int) -> str:
    """Format a decrypted eaddress as a 0x-prefixed hex address."""
    return "0x" + format(value, "040x")


def is_valid_passport_address(address: str) -> bool:
    return isinstance(address, str) and bool(_ADDRESS_RE.match(address))


def country_code(country: str) -> int:
    """Numeric code for a two-letter country name."""
    try:
        return COUNTRY_CODES[country.upper()]
    except KeyError:
        raise ValueError(f"Unknown country {country!r}") from None
