"""
Customer contact resolution for order notifications.
"""

import re
from typing import Any, Mapping, Optional

from recycletrade.services.notifications.gateway import CustomerContact

GUEST_FALLBACK_NAME = "Guest Customer"

_NON_DIGITS = re.compile(r"\D")


def dedupe_name(*parts: Optional[str]) -> str:
    """
    Join name fragments, dropping repeated words case-insensitively.

    Accounts created through social sign-in often carry the full name in both
    the first and last name fields ("Jane Doe" / "Doe").
    """
    seen: list[str] = []
    for part in parts:
        for word in (part or "").split():
            if word.lower() not in (w.lower() for w in seen):
                seen.append(word)
    return " ".join(seen)


def normalize_phone(phone: Optional[str], default_country_code: str = "1") -> Optional[str]:
    """
    Normalise a phone number to E.164, or return None if that is not possible.

    Numbers with a leading ``+`` or ``00`` keep their country code, numbers
    with a trunk ``0`` prefix get the default country code.
    """
    if not phone:
        return None

    raw = phone.strip()
    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        return None

    if raw.startswith("+"):
        number = digits
    elif digits.startswith("00"):
        number = digits[2:]
    elif digits.startswith("0"):
        number = default_country_code + digits.lstrip("0")
    elif len(digits) <= 10:
        number = default_country_code + digits
    else:
        number = digits

    if not 8 <= len(number) <= 15:
        return None
    return f"+{number}"


def _format_address(address: Any) -> Optional[str]:
    if not address:
        return None
    if isinstance(address, str):
        return address.strip() or None
    if isinstance(address, Mapping):
        parts = [
            address.get("street") or address.get("line1"),
            address.get("line2"),
            address.get("city"),
            address.get("state"),
            address.get("postal_code"),
            address.get("country"),
        ]
        return ", ".join(str(p) for p in parts if p) or None
    return str(address)


def resolve_customer_contact(
    user: Any = None,
    guest_info: Optional[Mapping[str, Any]] = None,
) -> CustomerContact:
    """
    Build the contact record for an order's customer.

    Args:
        user: Registered user placing the order, if any
        guest_info: Embedded guest contact, if the order was anonymous

    Returns:
        CustomerContact with a display name that is never empty
    """
    if user is not None:
        name = dedupe_name(getattr(user, "first_name", None), getattr(user, "last_name", None))
        return CustomerContact(
            name=name or GUEST_FALLBACK_NAME,
            email=getattr(user, "email", None),
            phone=getattr(user, "phone", None),
            address=None,
        )

    guest = guest_info or {}
    name = dedupe_name(
        guest.get("first_name"),
        guest.get("last_name"),
    ) or dedupe_name(guest.get("name"))

    return CustomerContact(
        name=name or GUEST_FALLBACK_NAME,
        email=guest.get("email") or None,
        phone=guest.get("phone") or None,
        address=_format_address(guest.get("address")),
    )
