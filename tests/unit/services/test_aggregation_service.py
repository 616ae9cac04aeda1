"""Unit tests for the two-tier cache orchestrator."""

from __future__ import annotations

import threading
import time

import pytest
import sqlalchemy as sa
from sqlalchemy.orm import sessionmaker

from kyc.cache import VolatileCache
from kyc.errors import DurableStoreFailure, IncompleteUpstreamData, UpstreamUnavailable
from kyc.services.aggregation import KycAggregationService
from kyc.services.fetcher import UpstreamAggregationFetcher
from kyc.settings.config import CacheSettings, Settings
from kyc.store import sql as sql_schema
from kyc.store.record_store import KycRecordStore
from kyc.store.schema import CanonicalRecord

IDENTIFIER = "19800115-1234"

PERSONAL = {"first_name": "Lars", "sur_name": "Larsson"}
CONTACT = {
    "address": [{"street": "Smågatan 1", "postal_code": "123 22", "city": "Malmö", "country": "Sweden"}],
    "emails": [{"preferred": True, "email_address": "lars.larsson@example.com"}],
    "phone_numbers": [{"preferred": True, "number": "+46 70 123 45 67"}],
}
FORM = {"items": [{"key": "tax_country", "value": "SE"}, {"key": "annual_income", "value": "550000"}]}


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _CountingSource:
    """Upstream double; ``fetches`` counts personal-details calls (one per aggregation)."""

    def __init__(self) -> None:
        self.personal: dict | None = PERSONAL
        self.contact: dict | None = CONTACT
        self.form: dict | None = FORM
        self.error: Exception | None = None
        self.gate: threading.Event | None = None
        self.entered = threading.Event()
        self.fetches = 0
        self._lock = threading.Lock()

    def get_personal_details(self, identifier):
        with self._lock:
            self.fetches += 1
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error:
            raise self.error
        return self.personal

    def get_contact_details(self, identifier):
        return self.contact

    def get_compliance_form(self, identifier, as_of):
        return self.form


class _SpyStore(KycRecordStore):
    """Real SQL store that counts reads and writes and can be told to fail writes."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.finds = 0
        self.upserts = 0
        self.fail_writes = False

    def find_by_identifier(self, identifier):
        self.finds += 1
        return super().find_by_identifier(identifier)

    def upsert(self, record):
        self.upserts += 1
        if self.fail_writes:
            raise DurableStoreFailure("upsert", record.identifier)
        return super().upsert(record)


class _SpyObservability:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, object]]] = []
        self.counters: list[tuple[str, dict[str, str] | None]] = []

    def emit_event(self, event: str, **fields: object) -> None:
        self.events.append((event, dict(fields)))

    def increment(self, metric: str, *, value: float = 1.0, tags=None) -> None:
        self.counters.append((metric, tags))

    def record_timing(self, metric: str, value_ms: float, *, tags=None) -> None:
        pass


def _session_factory(tmp_path) -> sessionmaker:
    engine = sa.create_engine(
        f"sqlite:///{tmp_path / 'kyc.db'}", future=True, connect_args={"check_same_thread": False}
    )
    sql_schema.METADATA.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def _build(tmp_path, *, single_flight: bool = False, observability=None):
    source = _CountingSource()
    store = _SpyStore(session_factory=_session_factory(tmp_path))
    clock = _FakeClock()
    cache: VolatileCache[CanonicalRecord] = VolatileCache(ttl_seconds=3600, clock=clock)
    settings = Settings(cache=CacheSettings(ttl_seconds=3600, single_flight=single_flight))
    service = KycAggregationService(
        fetcher=UpstreamAggregationFetcher(source),
        record_store=store,
        cache=cache,
        settings=settings,
        observability=observability,
    )
    return service, source, store, cache, clock


def test_first_call_fetches_persists_and_caches(tmp_path):
    service, source, store, cache, _ = _build(tmp_path)

    record = service.get_aggregated_data(IDENTIFIER)

    assert source.fetches == 1
    assert store.upserts == 1
    assert record.first_name == "Lars"
    assert record.income == 550000
    assert record.cached_at is not None
    assert cache.get(f"kyc_data_{IDENTIFIER}") == record
    assert store.find_by_identifier(IDENTIFIER) == record


def test_second_call_is_served_from_volatile_tier(tmp_path):
    service, source, store, _, _ = _build(tmp_path)

    first = service.get_aggregated_data(IDENTIFIER)
    finds_after_first = store.finds
    second = service.get_aggregated_data(IDENTIFIER)

    assert second is first
    assert source.fetches == 1
    assert store.finds == finds_after_first
    assert store.upserts == 1


def test_durable_hit_repopulates_volatile_tier_without_upstream(tmp_path):
    service, source, store, cache, _ = _build(tmp_path)
    persisted = store.upsert(CanonicalRecord(identifier=IDENTIFIER, first_name="Persisted", tax_country="NO"))
    store.upserts = 0

    record = service.get_aggregated_data(IDENTIFIER)

    assert record == persisted
    assert source.fetches == 0
    assert store.upserts == 0
    assert cache.get(f"kyc_data_{IDENTIFIER}") == persisted


def test_expired_volatile_entry_falls_back_to_durable_tier(tmp_path):
    service, source, store, _, clock = _build(tmp_path)

    service.get_aggregated_data(IDENTIFIER)
    clock.now += 3600
    finds_before = store.finds
    record = service.get_aggregated_data(IDENTIFIER)

    assert source.fetches == 1
    assert store.finds == finds_before + 1
    assert record.first_name == "Lars"


def test_identifier_is_stripped(tmp_path):
    service, source, _, cache, _ = _build(tmp_path)

    record = service.get_aggregated_data(f"  {IDENTIFIER} ")

    assert record.identifier == IDENTIFIER
    assert cache.get(f"kyc_data_{IDENTIFIER}") is not None


@pytest.mark.parametrize("identifier", ["", "   ", None])
def test_blank_identifier_is_rejected_before_any_lookup(tmp_path, identifier):
    service, source, store, _, _ = _build(tmp_path)

    with pytest.raises(ValueError):
        service.get_aggregated_data(identifier)

    assert source.fetches == 0
    assert store.finds == 0


def test_missing_personal_details_fails_without_durable_write(tmp_path):
    service, source, store, cache, _ = _build(tmp_path)
    source.personal = None

    with pytest.raises(IncompleteUpstreamData):
        service.get_aggregated_data(IDENTIFIER)

    assert store.upserts == 0
    assert store.find_by_identifier(IDENTIFIER) is None
    assert len(cache) == 0


def test_missing_contact_details_is_never_persisted_or_cached(tmp_path):
    service, source, store, cache, _ = _build(tmp_path)
    source.contact = None

    with pytest.raises(IncompleteUpstreamData) as excinfo:
        service.get_aggregated_data(IDENTIFIER)

    assert excinfo.value.missing == ("contact_details",)
    assert store.upserts == 0
    assert store.find_by_identifier(IDENTIFIER) is None
    assert len(cache) == 0


def test_failures_are_not_cached_and_next_call_retries(tmp_path):
    service, source, store, _, _ = _build(tmp_path)
    source.form = None

    with pytest.raises(IncompleteUpstreamData):
        service.get_aggregated_data(IDENTIFIER)

    source.form = FORM
    record = service.get_aggregated_data(IDENTIFIER)

    assert source.fetches == 2
    assert record.tax_country == "SE"


def test_upstream_unavailable_propagates(tmp_path):
    service, source, store, cache, _ = _build(tmp_path)
    source.error = UpstreamUnavailable("personal_details", IDENTIFIER, timed_out=True)

    with pytest.raises(UpstreamUnavailable):
        service.get_aggregated_data(IDENTIFIER)

    assert store.upserts == 0
    assert len(cache) == 0


def test_durable_write_failure_fails_the_request(tmp_path):
    service, source, store, cache, _ = _build(tmp_path)
    store.fail_writes = True

    with pytest.raises(DurableStoreFailure):
        service.get_aggregated_data(IDENTIFIER)

    assert source.fetches == 1
    assert len(cache) == 0


def test_lookup_events_name_the_serving_tier(tmp_path):
    spy = _SpyObservability()
    service, _, _, cache, _ = _build(tmp_path, observability=spy)

    service.get_aggregated_data(IDENTIFIER)
    service.get_aggregated_data(IDENTIFIER)
    cache.clear()
    service.get_aggregated_data(IDENTIFIER)

    tiers = [fields["tier"] for event, fields in spy.events if event == "kyc.lookup"]
    assert tiers == ["upstream", "volatile", "durable"]
    assert ("cache.miss", None) in spy.counters
    assert ("cache.hit", {"tier": "volatile"}) in spy.counters


def test_single_flight_collapses_concurrent_misses(tmp_path):
    service, source, store, _, _ = _build(tmp_path, single_flight=True)
    source.gate = threading.Event()
    results: list[CanonicalRecord] = []
    errors: list[BaseException] = []

    def _worker():
        try:
            results.append(service.get_aggregated_data(IDENTIFIER))
        except BaseException as exc:  # pragma: no cover - surfaced via assertion
            errors.append(exc)

    threads = [threading.Thread(target=_worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    assert source.entered.wait(timeout=5)
    time.sleep(0.05)
    source.gate.set()
    for thread in threads:
        thread.join(timeout=5)

    assert not errors
    assert len(results) == 5
    assert source.fetches == 1
    assert store.upserts == 1
    assert all(result == results[0] for result in results)


def test_single_flight_shares_failures_and_caches_nothing(tmp_path):
    service, source, store, cache, _ = _build(tmp_path, single_flight=True)
    source.gate = threading.Event()
    source.personal = None
    errors: list[BaseException] = []

    def _worker():
        try:
            service.get_aggregated_data(IDENTIFIER)
        except IncompleteUpstreamData as exc:
            errors.append(exc)

    threads = [threading.Thread(target=_worker) for _ in range(3)]
    for thread in threads:
        thread.start()
    assert source.entered.wait(timeout=5)
    time.sleep(0.05)
    source.gate.set()
    for thread in threads:
        thread.join(timeout=5)

    assert len(errors) == 3
    assert store.upserts == 0
    assert len(cache) == 0


def test_oversized_income_is_dropped_and_record_still_persists(tmp_path):
    service, source, store, _, _ = _build(tmp_path)
    source.form = {
        "items": [{"key": "tax_country", "value": "SE"}, {"key": "annual_income", "value": "99999999999999999999"}]
    }

    record = service.get_aggregated_data(IDENTIFIER)

    assert record.income is None
    assert record.tax_country == "SE"
    assert store.find_by_identifier(IDENTIFIER) == record
