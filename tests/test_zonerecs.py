import time

import pytest

from fakes import FAKE_CAPABILITIES, MockDNSProvider, instance, make_domain, make_registry, rec
from zonectl.models import CapabilityError, ProviderTimeoutError
from zonectl.zonerecs import correct_zone_records


def _desired():
    return make_domain(
        records=[
            rec("@", "NS", 300, "ns1.example.net."),
            rec("@", "A", 300, "1.2.3.4"),
            rec("www", "CNAME", 300, "@"),
        ]
    )


def test_corrections_apply_and_converge():
    driver = MockDNSProvider(zones={"example.com": [rec("old", "A", 300, "9.9.9.9")]})
    registry = make_registry({"a": driver})
    dc = _desired()

    reports, corrections, count = correct_zone_records(instance("a", driver), dc, registry=registry)

    assert reports == []
    assert count == len(corrections) == 4
    for correction in corrections:
        correction.action()

    _, again, count = correct_zone_records(instance("a", driver), dc, registry=registry)
    assert again == []
    assert count == 0


def test_reports_are_split_from_corrections():
    dc = make_domain(records=[rec("www", "A", 300, "1.1.1.1")], keep_unknown=True)
    driver = MockDNSProvider(zones={"example.com": [rec("legacy", "A", 300, "9.9.9.9")]})

    reports, corrections, count = correct_zone_records(instance("a", driver), dc, registry=make_registry({"a": driver}))

    assert [r.msg for r in reports][0] == "1 records not being deleted because of NO_PURGE:"
    assert all(r.is_report for r in reports)
    assert len(corrections) == count == 1


def test_planning_does_not_touch_the_desired_state():
    driver = MockDNSProvider()
    dc = make_domain(records=[rec("www", "CNAME", 300, "web.example.com.")])
    dc.records[0].target = "Web"

    correct_zone_records(instance("a", driver), dc, registry=make_registry({"a": driver}))

    assert dc.records[0].target == "Web"
    assert len(dc.records) == 1


def test_apex_ns_left_alone_without_dual_host_support():
    driver = MockDNSProvider(zones={"example.com": [rec("@", "NS", 300, "ns.provider.net.")]})
    registry = make_registry({"a": driver})
    registry.register_dns_provider("PLAIN", lambda creds, meta: driver)

    reports, corrections, _ = correct_zone_records(
        instance("plain", driver, provider_type="PLAIN"), _desired(), registry=registry
    )

    assert reports[0].msg.startswith("WARNING: PLAIN does not allow apex NS records")
    assert all(" NS " not in c.msg for c in corrections)


def test_missing_capability_stops_before_fetching():
    driver = MockDNSProvider()
    registry = make_registry({"a": driver})
    registry.register_dns_provider("PLAIN", lambda creds, meta: driver)
    dc = make_domain(records=[rec("@", "CAA", 300, '0 issue "letsencrypt.org"')])

    with pytest.raises(CapabilityError, match="CAA"):
        correct_zone_records(instance("plain", driver, provider_type="PLAIN"), dc, registry=registry)

    assert driver.fetch_calls == []


def test_driver_deadline_overrides_run_default():
    class Sluggish(MockDNSProvider):
        call_timeout = 0.05

        def get_zone_records(self, domain, metadata):
            time.sleep(1.0)
            return []

    driver = Sluggish()

    with pytest.raises(ProviderTimeoutError):
        correct_zone_records(instance("a", driver), make_domain(), timeout=600, registry=make_registry({"a": driver}))


def test_driver_deadline_covers_building_corrections():
    class SlowPlanner(MockDNSProvider):
        call_timeout = 0.05

        def get_zone_records_corrections(self, dc, existing):
            time.sleep(0.5)
            return super().get_zone_records_corrections(dc, existing)

    driver = SlowPlanner(zones={"example.com": []})

    with pytest.raises(ProviderTimeoutError):
        correct_zone_records(instance("a", driver), _desired(), timeout=600, registry=make_registry({"a": driver}))


def test_zero_ttl_takes_the_provider_default():
    driver = MockDNSProvider(zones={"example.com": []})
    registry = make_registry({"a": driver})
    registry.register_dns_provider("HOURLY", lambda creds, meta: driver, capabilities=FAKE_CAPABILITIES, default_ttl=3600)
    dc = make_domain(records=[rec("www", "A", 0, "1.2.3.4"), rec("ftp", "A", 60, "1.2.3.5")])

    _, corrections, _ = correct_zone_records(instance("a", driver, provider_type="HOURLY"), dc, registry=registry)

    assert [c.msg for c in corrections] == [
        "+ CREATE ftp A 1.2.3.5 ttl=60",
        "+ CREATE www A 1.2.3.4 ttl=3600",
    ]
    assert dc.records[0].ttl == 0
