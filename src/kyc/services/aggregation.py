"""Two-tier cache orchestration for aggregated KYC records.

Lookup order for :meth:`KycAggregationService.get_aggregated_data`, first hit
wins:

1. volatile tier (in-process, absolute expiry);
2. durable tier (SQL), which repopulates the volatile tier on a hit;
3. upstream fetch, written to the durable tier and then the volatile tier.

Failures are never cached: the next call for the same identifier starts again
from step 1.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Dict, Optional

from kyc.cache import VolatileCache
from kyc.errors import DurableStoreFailure, IncompleteUpstreamData, UpstreamUnavailable
from kyc.observability import Observability
from kyc.services.fetcher import UpstreamAggregationFetcher
from kyc.settings import Settings, get_settings
from kyc.store.record_store import KycRecordStore
from kyc.store.schema import CanonicalRecord

LOGGER = logging.getLogger(__name__)


class _SingleFlight:
    """Collapse concurrent calls for the same key onto one execution."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._inflight: Dict[str, Future] = {}

    def run(self, key: str, fn: Callable[[], CanonicalRecord]) -> CanonicalRecord:
        with self._lock:
            pending = self._inflight.get(key)
            leader = pending is None
            if leader:
                pending = Future()
                self._inflight[key] = pending
        if not leader:
            return pending.result()

        try:
            result = fn()
        except BaseException as exc:
            pending.set_exception(exc)
            raise
        else:
            pending.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight.pop(key, None)


class KycAggregationService:
    """Serve canonical records through the volatile → durable → upstream hierarchy."""

    def __init__(
        self,
        *,
        fetcher: UpstreamAggregationFetcher,
        record_store: KycRecordStore,
        cache: VolatileCache[CanonicalRecord],
        settings: Settings | None = None,
        observability: Observability | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._fetcher = fetcher
        self._store = record_store
        self._cache = cache
        self._observability = observability
        self._ttl_seconds = self.settings.cache.ttl_seconds
        self._key_prefix = self.settings.cache.key_prefix
        self._single_flight: Optional[_SingleFlight] = _SingleFlight() if self.settings.cache.single_flight else None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_aggregated_data(self, identifier: str) -> CanonicalRecord:
        """Return the canonical record for ``identifier``.

        Args:
            identifier: Customer key; surrounding whitespace is ignored.

        Returns:
            The cached or freshly aggregated :class:`CanonicalRecord`.

        Raises:
            ValueError: If ``identifier`` is blank.
            IncompleteUpstreamData: If upstream has no data for one of the parts.
            UpstreamUnavailable: If an upstream call failed in transport.
            DurableStoreFailure: If the durable tier could not be read or written.
        """

        normalized = (identifier or "").strip()
        if not normalized:
            raise ValueError("identifier cannot be empty")

        cache_key = self._cache_key(normalized)
        cached = self._cache.get(cache_key)
        if cached is not None:
            self._record_hit("volatile", normalized)
            return cached

        if self._single_flight is None:
            return self._load(normalized, cache_key)
        return self._single_flight.run(cache_key, lambda: self._load(normalized, cache_key))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _load(self, identifier: str, cache_key: str) -> CanonicalRecord:
        if self._single_flight is not None:
            # A concurrent leader may have populated the volatile tier meanwhile.
            cached = self._cache.get(cache_key)
            if cached is not None:
                self._record_hit("volatile", identifier)
                return cached

        persisted = self._store.find_by_identifier(identifier)
        if persisted is not None:
            self._record_hit("durable", identifier)
            self._cache.set(cache_key, persisted, ttl_seconds=self._ttl_seconds)
            return persisted

        self._record_miss(identifier)
        try:
            fresh = self._fetcher.fetch(identifier)
        except (IncompleteUpstreamData, UpstreamUnavailable) as exc:
            self._emit("kyc.lookup_failed", identifier=identifier, error=type(exc).__name__)
            raise

        try:
            stored = self._store.upsert(fresh)
        except DurableStoreFailure:
            self._emit("kyc.lookup_failed", identifier=identifier, error="DurableStoreFailure")
            raise

        self._cache.set(cache_key, stored, ttl_seconds=self._ttl_seconds)
        self._emit("kyc.lookup", identifier=identifier, tier="upstream")
        return stored

    def _cache_key(self, identifier: str) -> str:
        return f"{self._key_prefix}{identifier}"

    def _record_hit(self, tier: str, identifier: str) -> None:
        LOGGER.info("Retrieved KYC data from %s tier for identifier=%s", tier, identifier)
        if self._observability:
            self._observability.increment("cache.hit", tags={"tier": tier})
        self._emit("kyc.lookup", identifier=identifier, tier=tier)

    def _record_miss(self, identifier: str) -> None:
        LOGGER.info("Fetching fresh KYC data from upstream for identifier=%s", identifier)
        if self._observability:
            self._observability.increment("cache.miss")

    def _emit(self, event: str, **fields: object) -> None:
        if self._observability:
            self._observability.emit_event(event, **fields)


__all__ = ["KycAggregationService"]
