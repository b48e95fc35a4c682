"""
Tests for the StatisticsService facade, warm-up and invalidation hooks.
"""
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from constants import (
    ROLE_SUPER_ADMIN, ROLE_USER_DISTRICT, STATS_GROUPS, STATUS_ACTIVE, WARM_UP_TTL,
)
from services.statistics import aggregator
from services.statistics import service as service_module
from services.statistics.access_scope import Caller
from services.statistics.cache import CacheIdentity, MemoryCacheStore, StatisticsCache
from services.statistics.errors import CacheBackendError, InvalidPeriodError
from services.statistics.invalidation import (
    on_applicant_changed,
    on_association_changed,
    on_case_changed,
    on_property_changed,
    on_user_changed,
)
from services.statistics.periods import resolve_period
from services.statistics.service import (
    TYPE_ALL_CHARTS,
    TYPE_ALL_STATS,
    WARM_UP_CHARTS,
    StatisticsService,
    get_warm_up_status,
    start_background_warm_up,
)

ADMIN = Caller(user_id=1, role=ROLE_SUPER_ADMIN)


@pytest.fixture
def cache():
    return StatisticsCache(MemoryCacheStore(maxsize=500))


@pytest.fixture
def service(session, cache, now):
    return StatisticsService(session, cache, clock=lambda: now)


@pytest.fixture
def two_districts(factory):
    north = factory.district(name="North")
    south = factory.district(name="South")
    factory.case(north, opened_on=date(2024, 6, 3))
    factory.case(south, opened_on=date(2024, 6, 4))
    factory.case(south, opened_on=date(2024, 6, 5), closed_on=date(2024, 6, 9))
    return north, south


def _failing_group(session, scope, window, *, now):
    raise OperationalError("SELECT 1", {}, Exception("statement timeout"))


class TestStatisticsPage:

    def test_all_stats_bundle(self, service, two_districts):
        stats = service.get_all_stats(ADMIN, "month")

        assert list(stats.keys()) == STATS_GROUPS
        assert stats["cases"]["total"] == 3
        assert stats["cases"]["average_duration_days"] == 4.0

    def test_second_call_is_a_hit(self, service, cache, two_districts):
        first = service.get_all_stats(ADMIN, "month")
        second = service.get_all_stats(ADMIN, "month")

        assert first == second
        assert cache.stats()["hits"] == 1

    def test_restricted_caller_sees_own_district(self, service, two_districts):
        north, south = two_districts
        caller = Caller(user_id=5, role=ROLE_USER_DISTRICT, district_id=south.id)

        stats = service.get_all_stats(caller, "month", district_id=north.id)

        assert stats["cases"]["total"] == 2

    def test_unrestricted_caller_narrows(self, service, two_districts):
        north, _ = two_districts
        assert service.get_all_stats(ADMIN, "month", district_id=north.id)["cases"]["total"] == 1

    def test_partial_bundle_is_not_cached(self, service, cache, two_districts, monkeypatch):
        monkeypatch.setitem(aggregator.GROUP_QUERIES, "financials", _failing_group)

        stats = service.get_all_stats(ADMIN, "month")
        service.get_all_stats(ADMIN, "month")

        assert stats["financials"]["status"] == "unavailable"
        assert cache.stats()["hits"] == 0
        assert cache.stats()["misses"] == 2

    def test_invalid_custom_period_raises(self, service, two_districts):
        with pytest.raises(InvalidPeriodError):
            service.get_all_stats(ADMIN, "custom", "2024-06-30", "2024-06-01")

    def test_custom_period(self, service, two_districts):
        stats = service.get_all_stats(ADMIN, "custom", "2024-06-04", "2024-06-05")
        assert stats["cases"]["total"] == 2

    def test_single_group(self, service, two_districts):
        assert service.get_group(ADMIN, "cases", "month")["open"] == 2
        with pytest.raises(ValueError):
            service.get_group(ADMIN, "weather", "month")

    def test_charts(self, service, two_districts):
        charts = service.get_all_charts(ADMIN)
        assert charts["top_districts"][0] == {"label": "South", "value": 2}

    def test_compare_periods(self, service, two_districts):
        result = service.compare_periods(ADMIN, "month")
        assert result["current_count"] == 3
        assert result["previous_count"] == 0
        assert result["growth_rate"] == 100.0
        assert result["trend"] == "up"
        assert result["previous_to"] == "2024-05-31"


class TestDashboard:

    def test_kpis_and_alerts(self, service, factory, two_districts):
        north, _ = two_districts
        case = factory.case(north, opened_on=date(2024, 6, 1))
        prop = factory.property(case)
        factory.associate(factory.applicant([case]), prop, status=STATUS_ACTIVE, total_price=700)

        kpis = service.get_dashboard_kpis(ADMIN)
        alerts = service.get_alerts(ADMIN)

        assert kpis["potential_revenue"] == 700
        assert kpis["new_cases_this_month"] == 4
        assert {alert["title"] for alert in alerts} == {"Incomplete cases", "Cases without properties"}


class TestWarmUp:

    def test_warm_up_fills_request_keys(self, service, cache, two_districts, now):
        results = service.warm_up(ADMIN, ["week", "month"])

        assert results == {"week": "ok", "month": "ok", WARM_UP_CHARTS: "ok"}
        service.get_all_stats(ADMIN, "week")
        service.get_all_stats(ADMIN, "month")
        service.get_all_charts(ADMIN)
        assert cache.stats()["hits"] == 3
        assert cache.stats()["misses"] == 0

    def test_warm_up_uses_long_ttl(self, session, two_districts, now):
        class RecordingStore(MemoryCacheStore):
            def __init__(self):
                super().__init__()
                self.ttls = {}

            def set(self, key, value, ttl):
                self.ttls[key] = ttl
                super().set(key, value, ttl)

        store = RecordingStore()
        service = StatisticsService(session, StatisticsCache(store), clock=lambda: now)
        service.warm_up(ADMIN, ["today"])

        identity = CacheIdentity("district_all", ADMIN.user_id)
        window = resolve_period("today", now=now)
        stats_key = service.cache.build_key(TYPE_ALL_STATS, identity, window.as_params())
        charts_key = service.cache.build_key(TYPE_ALL_CHARTS, identity, {"day": now.date()})
        assert store.ttls == {stats_key: WARM_UP_TTL, charts_key: WARM_UP_TTL}

    def test_charts_computed_once_for_all_periods(self, service, two_districts, monkeypatch):
        real_compute_charts = service_module.compute_charts
        calls = []

        def counting_compute_charts(session, scope, *, now):
            calls.append(1)
            return real_compute_charts(session, scope, now=now)

        monkeypatch.setattr(service_module, "compute_charts", counting_compute_charts)

        service.warm_up(ADMIN, ["today", "week", "month", "year"])

        assert len(calls) == 1

    def test_failing_period_does_not_stop_the_rest(self, service, two_districts, monkeypatch):
        real_compute_all = service_module.compute_all
        calls = []

        def flaky_compute_all(session, scope, window, *, now):
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))
            return real_compute_all(session, scope, window, now=now)

        monkeypatch.setattr(service_module, "compute_all", flaky_compute_all)

        results = service.warm_up(ADMIN, ["today", "week"])

        assert results["today"].startswith("error:")
        assert results["week"] == "ok"
        assert results[WARM_UP_CHARTS] == "ok"

    def test_unavailable_group_is_reported_and_not_cached(self, service, cache, two_districts, monkeypatch):
        monkeypatch.setitem(aggregator.GROUP_QUERIES, "cases", _failing_group)

        results = service.warm_up(ADMIN, ["month"])

        assert results == {"month": "partial: cases", WARM_UP_CHARTS: "ok"}
        assert cache.store.keys_by_prefix("stats:district_all:user_1:all_stats:") == []
        assert len(cache.store.keys_by_prefix("stats:district_all:user_1:all_charts:")) == 1

    def test_background_warm_up(self, engine, cache):
        thread = start_background_warm_up(
            cache, ADMIN, lambda: Session(bind=engine), ["month"],
        )
        assert thread is not None
        thread.join(10)

        status = get_warm_up_status()
        assert status["in_progress"] is False
        assert status["last_warm_up_result"] == {"month": "ok", WARM_UP_CHARTS: "ok"}
        assert status["last_warm_up_time"] is not None

    def test_background_warm_up_skips_when_running(self, cache, monkeypatch):
        monkeypatch.setattr(service_module, "_warmup_in_progress", True)
        assert start_background_warm_up(cache, ADMIN, lambda: None) is None


class TestInvalidationHooks:

    def test_case_change_refreshes_stats(self, service, factory, two_districts):
        north, _ = two_districts
        assert service.get_all_stats(ADMIN, "month")["cases"]["total"] == 3

        factory.case(north, opened_on=date(2024, 6, 6))
        # Still cached until the back office reports the change
        assert service.get_all_stats(ADMIN, "month")["cases"]["total"] == 3

        on_case_changed(service.cache, north.id)
        assert service.get_all_stats(ADMIN, "month")["cases"]["total"] == 4

    def test_change_in_one_district_keeps_the_other(self, service, cache, two_districts):
        north, south = two_districts
        north_caller = Caller(user_id=7, role=ROLE_USER_DISTRICT, district_id=north.id)
        south_caller = Caller(user_id=8, role=ROLE_USER_DISTRICT, district_id=south.id)
        service.get_all_stats(north_caller, "month")
        service.get_all_stats(south_caller, "month")
        service.get_all_stats(ADMIN, "month")

        deleted = on_property_changed(cache, north.id)

        assert deleted == 2
        assert len(cache.store.keys_by_prefix(f"stats:district_{south.id}:")) == 1

    def test_applicant_in_several_districts(self, cache, two_districts):
        north, south = two_districts
        for label in (f"district_{north.id}", f"district_{south.id}", "district_all"):
            cache.remember("cases", CacheIdentity(label, 1), {}, lambda: {"x": 1})

        assert on_applicant_changed(cache, [north.id, south.id, None]) == 3

    def test_unlinked_applicant_clears_cross_district_views(self, cache):
        cache.remember("cases", CacheIdentity("district_all", 1), {}, lambda: {"x": 1})
        cache.remember("cases", CacheIdentity("district_2", 1), {}, lambda: {"x": 1})

        assert on_applicant_changed(cache, []) == 1

    def test_association_and_user_hooks(self, cache):
        cache.remember("cases", CacheIdentity("district_2", 4), {}, lambda: {"x": 1})
        cache.remember("cases", CacheIdentity("district_3", 5), {}, lambda: {"x": 1})

        assert on_association_changed(cache, 2) == 1
        assert on_user_changed(cache, 5) == 1
        assert cache.store.keys_by_prefix("stats:") == []

    def test_unreachable_store_is_logged_not_raised(self):
        class DownStore(MemoryCacheStore):
            def keys_by_prefix(self, prefix):
                raise CacheBackendError("down")

        cache = StatisticsCache(DownStore())
        assert on_case_changed(cache, 1) == 0
        assert on_user_changed(cache, 1) == 0
