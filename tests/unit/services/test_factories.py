"""Tests for the service factory helpers."""

from __future__ import annotations

from kyc.cache import VolatileCache
from kyc.services.factories import build_aggregation_service, build_fetcher, build_volatile_cache
from kyc.settings.config import CacheSettings, Settings, StorageSettings, UpstreamSettings

PERSONAL = {"first_name": "Lars", "sur_name": "Larsson"}
CONTACT = {"address": [], "emails": [], "phone_numbers": []}
FORM = {"items": [{"Key": "tax_country", "Value": "SE"}]}


class _StaticSource:
    def get_personal_details(self, identifier):
        return PERSONAL

    def get_contact_details(self, identifier):
        return CONTACT

    def get_compliance_form(self, identifier, as_of):
        return FORM


def _settings(tmp_path, **overrides) -> Settings:
    return Settings(storage=StorageSettings(sqlite_path=tmp_path / "nested" / "kyc.db"), **overrides)


def test_build_volatile_cache_uses_configured_ttl(tmp_path):
    cache = build_volatile_cache(_settings(tmp_path, cache=CacheSettings(ttl_seconds=90)))

    assert isinstance(cache, VolatileCache)
    assert cache.ttl_seconds == 90
    assert len(cache) == 0


def test_build_fetcher_honors_parallel_flag(tmp_path):
    fetcher = build_fetcher(
        _settings(tmp_path, upstream=UpstreamSettings(parallel_requests=True)),
        source=_StaticSource(),
    )

    assert fetcher._parallel is True


def test_build_aggregation_service_end_to_end(tmp_path):
    settings = _settings(tmp_path)
    cache = build_volatile_cache(settings)
    service = build_aggregation_service(settings, cache=cache, source=_StaticSource())

    record = service.get_aggregated_data("19800115-1234")

    assert record.first_name == "Lars"
    assert record.tax_country == "SE"
    assert record.address == ""
    assert record.cached_at is not None
    assert (tmp_path / "nested" / "kyc.db").exists()
    assert len(cache) == 1


def test_services_built_over_same_database_share_durable_tier(tmp_path):
    settings = _settings(tmp_path)
    first = build_aggregation_service(settings, source=_StaticSource())
    persisted = first.get_aggregated_data("19800115-1234")

    class _Unreachable:
        def __getattr__(self, name):
            raise AssertionError(f"upstream should not be called: {name}")

    second = build_aggregation_service(settings, source=_Unreachable())

    assert second.get_aggregated_data("19800115-1234") == persisted
