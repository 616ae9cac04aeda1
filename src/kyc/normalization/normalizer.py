"""Field normalization for upstream customer data payloads.

Turns the three raw payload shapes returned by the customer data API
(personal details, contact details, compliance form) into the scalar fields
of a :class:`~kyc.store.schema.CanonicalRecord`.

Upstream data-quality problems (missing lists, odd key casing, malformed
income values) are expected and degrade to empty or absent fields; nothing in
this module raises on bad payload content.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Sequence

from kyc.store.schema import CanonicalRecord

Payload = Mapping[str, Any]

ADDRESS_PARTS = ("street", "postal_code", "city", "country")
FORM_KEY_ALIASES = ("key", "Key")
FORM_VALUE_ALIASES = ("value", "Value")

TAX_COUNTRY_KEY = "tax_country"
ANNUAL_INCOME_KEY = "annual_income"

# Income is stored as a signed 32-bit integer.
INCOME_MIN = -(2**31)
INCOME_MAX = 2**31 - 1
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


def resolve_field(item: Payload | None, aliases: Sequence[str]) -> Any:
    """Return the first non-``None`` value found under any of ``aliases``.

    Args:
        item: Payload mapping to inspect.
        aliases: Candidate field names, tried in order.

    Returns:
        The resolved value, or ``None`` when no alias is present.
    """

    if not item:
        return None
    for alias in aliases:
        value = item.get(alias)
        if value is not None:
            return value
    return None


def format_address(addresses: Sequence[Payload] | None) -> str:
    """Format the first address entry as a single comma-separated line.

    Example:
        ``{"street": "Smågatan 1", "postal_code": "123 22", "city": "Malmö",
        "country": "Sweden"}`` becomes ``"Smågatan 1, 123 22, Malmö, Sweden"``.
    """

    if not addresses:
        return ""
    first = addresses[0] or {}
    parts = [first.get(part) for part in ADDRESS_PARTS]
    return ", ".join(str(part) for part in parts if part)


def select_preferred(entries: Sequence[Payload] | None, value_field: str) -> Optional[str]:
    """Pick the preferred entry's value, falling back to the first entry.

    Args:
        entries: Phone or email entries, each with a ``preferred`` flag.
        value_field: Name of the field holding the value (``number`` or
            ``email_address``).

    Returns:
        The selected value, or ``None`` when the list is empty.
    """

    if not entries:
        return None
    first = entries[0] or {}
    for entry in entries:
        if entry and entry.get("preferred"):
            value = entry.get(value_field)
            return value if value is not None else first.get(value_field)
    return first.get(value_field)


def find_form_value(form: Payload | None, key: str) -> Optional[str]:
    """Look up a compliance-form item value by key, ignoring key casing.

    The upstream API is inconsistent about both the casing of the item keys
    themselves (``tax_country`` vs ``Tax_Country``) and the casing of the
    attribute names carrying them (``key``/``value`` vs ``Key``/``Value``).
    """

    items = (form or {}).get("items") or []
    wanted = key.casefold()
    for item in items:
        item_key = resolve_field(item, FORM_KEY_ALIASES)
        if isinstance(item_key, str) and item_key.casefold() == wanted:
            value = resolve_field(item, FORM_VALUE_ALIASES)
            return None if value is None else str(value)
    return None


def extract_tax_country(form: Payload | None) -> str:
    return find_form_value(form, TAX_COUNTRY_KEY) or ""


def extract_income(form: Payload | None) -> Optional[int]:
    """Parse the annual income item as an integer.

    Only plain ASCII digits with an optional sign are accepted, and the value
    must fit in a signed 32-bit integer. Anything else yields ``None``.
    """

    raw = find_form_value(form, ANNUAL_INCOME_KEY)
    if raw is None:
        return None
    text = raw.strip()
    if not _INTEGER_PATTERN.fullmatch(text):
        return None
    value = int(text)
    if value < INCOME_MIN or value > INCOME_MAX:
        return None
    return value


def normalize_record(
    identifier: str,
    personal: Payload,
    contact: Payload,
    form: Payload,
) -> CanonicalRecord:
    """Merge the three upstream payloads into a canonical record.

    Args:
        identifier: Customer key the payloads were fetched for.
        personal: Personal-details payload (``first_name``, ``sur_name``).
        contact: Contact-details payload (``address``, ``emails``,
            ``phone_numbers``).
        form: Compliance-form payload (``items``).

    Returns:
        A :class:`CanonicalRecord` without ``cached_at``.
    """

    return CanonicalRecord(
        identifier=identifier,
        first_name=personal.get("first_name") or "",
        last_name=personal.get("sur_name") or "",
        address=format_address(contact.get("address")),
        phone_number=select_preferred(contact.get("phone_numbers"), "number"),
        email=select_preferred(contact.get("emails"), "email_address"),
        tax_country=extract_tax_country(form),
        income=extract_income(form),
    )


__all__ = [
    "resolve_field",
    "format_address",
    "select_preferred",
    "find_form_value",
    "extract_tax_country",
    "extract_income",
    "normalize_record",
]
