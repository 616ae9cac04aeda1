"""Fault taxonomy raised by the aggregation core."""

from __future__ import annotations

from typing import Sequence


class KycError(RuntimeError):
    """Base class for faults surfaced by the aggregation core."""


class IncompleteUpstreamData(KycError):
    """Raised when one or more upstream lookups returned an explicit not-found."""

    def __init__(self, identifier: str, missing: Sequence[str] = ()) -> None:
        self.identifier = identifier
        self.missing = tuple(missing)
        detail = f" (missing: {', '.join(self.missing)})" if self.missing else ""
        super().__init__(f"Failed to retrieve complete KYC data for identifier {identifier}{detail}")


class UpstreamUnavailable(KycError):
    """Raised on transport-level failures talking to the customer data API."""

    def __init__(
        self,
        operation: str,
        identifier: str,
        *,
        status_code: int | None = None,
        timed_out: bool = False,
        reason: str | None = None,
    ) -> None:
        self.operation = operation
        self.identifier = identifier
        self.status_code = status_code
        self.timed_out = timed_out
        if timed_out:
            cause = "timed out"
        elif status_code is not None:
            cause = f"returned HTTP {status_code}"
        else:
            cause = reason or "failed"
        super().__init__(f"Upstream {operation} for identifier {identifier} {cause}")


class DurableStoreFailure(KycError):
    """Raised when the durable tier cannot be read or written."""

    def __init__(self, operation: str, identifier: str) -> None:
        self.operation = operation
        self.identifier = identifier
        super().__init__(f"Durable store {operation} failed for identifier {identifier}")


__all__ = ["KycError", "IncompleteUpstreamData", "UpstreamUnavailable", "DurableStoreFailure"]
