"""HTTP client for the upstream customer data API.

Each lookup distinguishes an explicit "no data" answer (HTTP 404, or a 2xx
response whose body is JSON ``null``), returned as ``None``, from transport
faults (timeouts, connection errors, other non-2xx statuses, undecodable
bodies), raised as :class:`~kyc.errors.UpstreamUnavailable`.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional, Protocol

import httpx

from kyc.errors import UpstreamUnavailable
from kyc.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)

Payload = Dict[str, Any]


class CustomerDataSource(Protocol):
    """Capability to fetch raw customer payloads by identifier."""

    def get_personal_details(self, identifier: str) -> Optional[Payload]: ...

    def get_contact_details(self, identifier: str) -> Optional[Payload]: ...

    def get_compliance_form(self, identifier: str, as_of: date) -> Optional[Payload]: ...


class CustomerDataClient:
    """Blocking ``httpx`` client for the customer data API."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
        settings: Settings | None = None,
    ) -> None:
        resolved = settings or get_settings()
        base = (base_url or resolved.upstream.base_url).rstrip("/")
        self._client = client or httpx.Client(
            base_url=base,
            timeout=timeout if timeout is not None else resolved.upstream.timeout_seconds,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CustomerDataClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_personal_details(self, identifier: str) -> Optional[Payload]:
        """Return ``{"first_name", "sur_name"}`` or ``None`` when unknown."""

        return self._get_json(f"/personal-details/{identifier}", operation="personal_details", identifier=identifier)

    def get_contact_details(self, identifier: str) -> Optional[Payload]:
        """Return addresses, emails, and phone numbers or ``None`` when unknown."""

        return self._get_json(f"/contact-details/{identifier}", operation="contact_details", identifier=identifier)

    def get_compliance_form(self, identifier: str, as_of: date) -> Optional[Payload]:
        """Return the KYC form items valid on ``as_of`` or ``None`` when unknown."""

        return self._get_json(
            f"/kyc-form/{identifier}/{as_of.isoformat()}",
            operation="compliance_form",
            identifier=identifier,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _get_json(self, path: str, *, operation: str, identifier: str) -> Optional[Payload]:
        try:
            response = self._client.get(path)
        except httpx.TimeoutException as exc:
            LOGGER.error("Timed out fetching %s for identifier=%s: %s", operation, identifier, exc)
            raise UpstreamUnavailable(operation, identifier, timed_out=True) from exc
        except httpx.HTTPError as exc:
            LOGGER.error("Error fetching %s for identifier=%s: %s", operation, identifier, exc)
            raise UpstreamUnavailable(operation, identifier, reason=str(exc) or type(exc).__name__) from exc

        if response.status_code == 404:
            LOGGER.warning("%s not found for identifier=%s", operation, identifier)
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            LOGGER.error(
                "Upstream %s for identifier=%s failed with status %s",
                operation,
                identifier,
                exc.response.status_code,
            )
            raise UpstreamUnavailable(operation, identifier, status_code=exc.response.status_code) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            LOGGER.error("Upstream %s for identifier=%s returned invalid JSON", operation, identifier)
            raise UpstreamUnavailable(operation, identifier, reason="invalid JSON body") from exc

        if payload is None:
            LOGGER.warning("%s returned an empty body for identifier=%s", operation, identifier)
            return None
        if not isinstance(payload, dict):
            raise UpstreamUnavailable(operation, identifier, reason="unexpected payload shape")
        return payload


__all__ = ["CustomerDataClient", "CustomerDataSource", "Payload"]
