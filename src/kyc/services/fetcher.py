"""Upstream aggregation: fetch the three payloads and build a canonical record."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from typing import Callable, Dict, Optional

from kyc.errors import IncompleteUpstreamData
from kyc.normalization.normalizer import normalize_record
from kyc.observability import Observability
from kyc.store.schema import CanonicalRecord
from kyc.upstream.client import CustomerDataSource, Payload

LOGGER = logging.getLogger(__name__)

PERSONAL_DETAILS = "personal_details"
CONTACT_DETAILS = "contact_details"
COMPLIANCE_FORM = "compliance_form"


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class UpstreamAggregationFetcher:
    """Build a :class:`CanonicalRecord` from the three upstream lookups.

    All three lookups are required. If any of them answers "no data" the
    aggregation fails with :class:`IncompleteUpstreamData`; transport faults
    from the source propagate unchanged.

    Args:
        source: Upstream capability (usually :class:`CustomerDataClient`).
        parallel: Issue the three lookups concurrently instead of one after
            another.
        today: Returns the as-of date for the compliance form.
        observability: Optional metrics/event sink.
    """

    def __init__(
        self,
        source: CustomerDataSource,
        *,
        parallel: bool = False,
        today: Callable[[], date] = _utc_today,
        observability: Observability | None = None,
    ) -> None:
        self._source = source
        self._parallel = parallel
        self._today = today
        self._observability = observability

    def fetch(self, identifier: str) -> CanonicalRecord:
        """Fetch and normalize upstream data for ``identifier``.

        Raises:
            IncompleteUpstreamData: If any upstream lookup returned no data.
            UpstreamUnavailable: If any upstream lookup failed in transport.
        """

        started = time.perf_counter()
        as_of = self._today()
        if self._parallel:
            payloads = self._fetch_parallel(identifier, as_of)
        else:
            payloads = self._fetch_sequential(identifier, as_of)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if self._observability:
            self._observability.record_timing(
                "upstream.fetch_ms", elapsed_ms, tags={"mode": "parallel" if self._parallel else "sequential"}
            )

        missing = [name for name, payload in payloads.items() if payload is None]
        if missing:
            LOGGER.warning("Incomplete upstream data for identifier=%s missing=%s", identifier, ",".join(missing))
            raise IncompleteUpstreamData(identifier, missing)

        return normalize_record(
            identifier,
            payloads[PERSONAL_DETAILS],
            payloads[CONTACT_DETAILS],
            payloads[COMPLIANCE_FORM],
        )

    def _fetch_sequential(self, identifier: str, as_of: date) -> Dict[str, Optional[Payload]]:
        return {
            PERSONAL_DETAILS: self._source.get_personal_details(identifier),
            CONTACT_DETAILS: self._source.get_contact_details(identifier),
            COMPLIANCE_FORM: self._source.get_compliance_form(identifier, as_of),
        }

    def _fetch_parallel(self, identifier: str, as_of: date) -> Dict[str, Optional[Payload]]:
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="kyc-upstream") as pool:
            futures = {
                PERSONAL_DETAILS: pool.submit(self._source.get_personal_details, identifier),
                CONTACT_DETAILS: pool.submit(self._source.get_contact_details, identifier),
                COMPLIANCE_FORM: pool.submit(self._source.get_compliance_form, identifier, as_of),
            }
            # result() re-raises the first transport fault in declaration order.
            return {name: future.result() for name, future in futures.items()}


__all__ = ["UpstreamAggregationFetcher", "PERSONAL_DETAILS", "CONTACT_DETAILS", "COMPLIANCE_FORM"]
