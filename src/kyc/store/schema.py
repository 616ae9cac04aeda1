"""Schema definitions for kyc storage.

Defines the canonical in-memory representation of an aggregated customer
profile. The same dataclass is held by the volatile tier, persisted by the
durable tier, and serialized by the API.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CanonicalRecord:
    """Normalized, merged view of one customer's upstream data.

    Attributes:
        identifier: Customer key (unique across the system).
        first_name: Given name, empty string when upstream omitted it.
        last_name: Surname, empty string when upstream omitted it.
        address: First address entry formatted as a single line.
        phone_number: Preferred phone number, if any.
        email: Preferred email address, if any.
        tax_country: Tax residence country code, empty string when absent.
        income: Annual income parsed from the compliance form, if any.
        cached_at: UTC timestamp of the last durable-tier write. ``None`` for
            records that have not been persisted yet.
    """

    identifier: str
    first_name: str = ""
    last_name: str = ""
    address: str = ""
    phone_number: Optional[str] = None
    email: Optional[str] = None
    tax_country: str = ""
    income: Optional[int] = None
    cached_at: Optional[datetime] = None

    def with_cached_at(self, cached_at: datetime) -> "CanonicalRecord":
        """Return a copy stamped with the given durable-write timestamp."""

        return replace(self, cached_at=cached_at)

    def same_fields(self, other: "CanonicalRecord") -> bool:
        """True when both records carry identical values, ignoring ``cached_at``."""

        return replace(self, cached_at=None) == replace(other, cached_at=None)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the record to the JSON document returned by the API.

        Returns:
            A dictionary with camelCase keys and JSON-serializable values.
        """
        return {
            "identifier": self.identifier,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "address": self.address,
            "phoneNumber": self.phone_number,
            "email": self.email,
            "taxCountry": self.tax_country,
            "income": self.income,
            "cachedAt": self.cached_at.isoformat() if self.cached_at else None,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "CanonicalRecord":
        """Deserialize a record produced by :meth:`to_dict`.

        Args:
            d: Dictionary with camelCase keys.

        Returns:
            CanonicalRecord instance.
        """
        cached_at = d.get("cachedAt")
        if isinstance(cached_at, str):
            cached_at = datetime.fromisoformat(cached_at)
        income = d.get("income")
        return CanonicalRecord(
            identifier=d["identifier"],
            first_name=d.get("firstName") or "",
            last_name=d.get("lastName") or "",
            address=d.get("address") or "",
            phone_number=d.get("phoneNumber"),
            email=d.get("email"),
            tax_country=d.get("taxCountry") or "",
            income=int(income) if income is not None else None,
            cached_at=cached_at,
        )
