"""Factory helpers that instantiate core services based on configuration.

These helpers centralize the logic for honoring the settings declared in
:mod:`kyc.settings`. The volatile cache is built once by the caller and
passed down explicitly so that every request shares the same instance.
"""

from __future__ import annotations

from sqlalchemy.orm import sessionmaker

from kyc.cache import VolatileCache
from kyc.observability import get_observability
from kyc.services.aggregation import KycAggregationService
from kyc.services.fetcher import UpstreamAggregationFetcher
from kyc.settings import Settings, get_settings
from kyc.store.record_store import KycRecordStore
from kyc.store.schema import CanonicalRecord
from kyc.store.sql import session_factory as build_sql_session_factory
from kyc.upstream.client import CustomerDataClient, CustomerDataSource


def build_volatile_cache(settings: Settings | None = None) -> VolatileCache[CanonicalRecord]:
    """Return an empty volatile tier using the configured expiry."""

    resolved = settings or get_settings()
    return VolatileCache(ttl_seconds=resolved.cache.ttl_seconds)


def build_customer_data_client(settings: Settings | None = None) -> CustomerDataClient:
    """Instantiate the upstream HTTP client."""

    return CustomerDataClient(settings=settings or get_settings())


def build_fetcher(
    settings: Settings | None = None,
    *,
    source: CustomerDataSource | None = None,
) -> UpstreamAggregationFetcher:
    """Return an :class:`UpstreamAggregationFetcher` wired to the configured source."""

    resolved = settings or get_settings()
    return UpstreamAggregationFetcher(
        source or build_customer_data_client(resolved),
        parallel=resolved.upstream.parallel_requests,
        observability=get_observability(component="fetcher", settings=resolved),
    )


def build_record_store(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker | None = None,
) -> KycRecordStore:
    """Instantiate a :class:`KycRecordStore` backed by the configured SQL engine."""

    factory = session_factory or build_sql_session_factory(settings=settings or get_settings())
    return KycRecordStore(session_factory=factory)


def build_aggregation_service(
    settings: Settings | None = None,
    *,
    cache: VolatileCache[CanonicalRecord] | None = None,
    source: CustomerDataSource | None = None,
    session_factory: sessionmaker | None = None,
) -> KycAggregationService:
    """Assemble the orchestrator with its fetcher, durable store, and volatile cache.

    Args:
        settings: Optional settings override.
        cache: Shared volatile tier. A new one is created when omitted.
        source: Optional upstream source override (tests, alternative clients).
        session_factory: Optional SQL session factory override.

    Returns:
        Configured :class:`KycAggregationService`.
    """

    resolved = settings or get_settings()
    return KycAggregationService(
        fetcher=build_fetcher(resolved, source=source),
        record_store=build_record_store(resolved, session_factory=session_factory),
        cache=cache if cache is not None else build_volatile_cache(resolved),
        settings=resolved,
        observability=get_observability(component="aggregation", settings=resolved),
    )


__all__ = [
    "build_aggregation_service",
    "build_customer_data_client",
    "build_fetcher",
    "build_record_store",
    "build_volatile_cache",
]
