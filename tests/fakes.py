"""In-memory providers and record builders shared by the tests."""

from __future__ import annotations

import threading
import time
from functools import partial
from typing import Dict, List

from zonectl import diffing, rdata
from zonectl.models import (
    Correction,
    DomainConfig,
    Nameserver,
    ProviderError,
    ProviderInstance,
    Record,
    strings_to_nameservers,
)
from zonectl.providers.base import Capability, DNSProvider, Registrar, ZoneCreator, ZoneLister
from zonectl.providers.registry import ProviderRegistry

ORIGIN = "example.com"

FAKE_CAPABILITIES = [
    Capability.CAN_CONCUR,
    Capability.CAN_GET_ZONES,
    Capability.CAN_USE_CAA,
    Capability.CAN_USE_DS_FOR_CHILDREN,
    Capability.CAN_USE_SRV,
    Capability.CAN_USE_TXT_MULTI,
    Capability.DOC_DUAL_HOST,
]


def rec(label: str, rtype: str, ttl: int, text: str, origin: str = ORIGIN) -> Record:
    """Build a record from its zone-file text, e.g. ``rec("www", "A", 300, "1.2.3.4")``."""
    return rdata.parse_record(label, rtype, ttl, text, origin)


def ds(label: str, ttl: int, keytag: int, algorithm: int, digest_type: int, digest: str, origin: str = ORIGIN) -> Record:
    record = Record(type="DS", ttl=ttl)
    record.set_label(label, origin)
    rdata.set_target_ds(record, keytag, algorithm, digest_type, digest)
    return record


def make_domain(name: str = ORIGIN, records=(), **kwargs) -> DomainConfig:
    dc = DomainConfig(name=name, records=list(records), **kwargs)
    dc.update_split_horizon_names()
    return dc


def _identity(record: Record) -> tuple:
    return (record.name_fqdn, record.type, record.get_target_combined(), record.ttl)


class MockDNSProvider(DNSProvider, ZoneLister, ZoneCreator):
    """DNS provider with in-memory zones and call tracking."""

    def __init__(
        self,
        zones: Dict[str, List[Record]] | None = None,
        nameservers: List[str] | None = None,
        by_record_set: bool = False,
    ):
        self.zones: Dict[str, List[Record]] = zones if zones is not None else {}
        self.nameservers = nameservers or []
        self.by_record_set = by_record_set
        self.list_calls = 0
        self.fetch_calls: List[str] = []
        self.created: List[str] = []
        self.applied: List[str] = []

    def get_nameservers(self, domain: str) -> List[Nameserver]:
        return strings_to_nameservers(self.nameservers)

    def get_zone_records(self, domain: str, metadata: Dict[str, str]) -> List[Record]:
        self.fetch_calls.append(domain)
        return [record.copy() for record in self.zones.get(domain, [])]

    def get_zone_records_corrections(self, dc: DomainConfig, existing: List[Record]):
        differ = diffing.by_record_set if self.by_record_set else diffing.by_record
        changes = differ(existing, dc, self.compare_extra)
        corrections = [Correction.message(line) for line in changes.reports]
        for change in changes.instructions:
            corrections.append(Correction(msg=change.msgs_joined, action=partial(self._apply, dc.name, change)))
        return corrections, changes.actual_change_count

    def _apply(self, domain: str, change: diffing.Change) -> None:
        records = self.zones.setdefault(domain, [])
        for old in change.old:
            for index, current in enumerate(records):
                if _identity(current) == _identity(old):
                    del records[index]
                    break
        records.extend(new.copy() for new in change.new)
        self.applied.append(change.msgs_joined)

    def list_zones(self) -> List[str]:
        self.list_calls += 1
        return list(self.zones)

    def ensure_zone_exists(self, domain: str, metadata: Dict[str, str]) -> None:
        self.created.append(domain)
        self.zones.setdefault(domain, [])


class FailingDNSProvider(MockDNSProvider):
    """Every fetch fails."""

    def get_zone_records(self, domain: str, metadata: Dict[str, str]) -> List[Record]:
        raise ProviderError(f"cannot reach API for {domain}")


class CrashingDNSProvider(MockDNSProvider):
    """Fails with an unexpected exception type."""

    def get_zone_records(self, domain: str, metadata: Dict[str, str]) -> List[Record]:
        raise RuntimeError("driver bug")


class SlowLister(ZoneLister):
    """Counts list_zones calls and takes a while to answer."""

    def __init__(self, zones: List[str], delay: float = 0.05, fail_times: int = 0):
        self.zones = zones
        self.delay = delay
        self.fail_times = fail_times
        self.calls = 0
        self._lock = threading.Lock()

    def list_zones(self) -> List[str]:
        with self._lock:
            self.calls += 1
            should_fail = self.calls <= self.fail_times
        time.sleep(self.delay)
        if should_fail:
            raise ProviderError("listing failed")
        return list(self.zones)


class MockRegistrar(Registrar):
    """Records the nameservers it was asked to delegate to."""

    def __init__(self, current: List[str] | None = None):
        self.current = sorted(current or [])
        self.calls: List[str] = []

    def get_registrar_corrections(self, dc: DomainConfig) -> List[Correction]:
        self.calls.append(dc.name)
        wanted = sorted(ns.name for ns in dc.nameservers)
        if wanted == self.current:
            return []
        return [
            Correction(
                msg=f"Update nameservers {','.join(self.current)} -> {','.join(wanted)}",
                action=partial(setattr, self, "current", wanted),
            )
        ]


def make_registry(dns: Dict[str, DNSProvider], registrar: Registrar | None = None) -> ProviderRegistry:
    """A registry whose FAKE drivers are looked up by the creds entry's ``instance`` key."""
    registry = ProviderRegistry()
    registry.register_dns_provider("FAKE", lambda creds, meta: dns[creds["instance"]], capabilities=FAKE_CAPABILITIES)
    registry.register_registrar(
        "FAKEREG",
        lambda creds: registrar or MockRegistrar(),
        capabilities=[Capability.CAN_CONCUR],
    )
    registry.register_registrar("NONE", lambda creds: MockRegistrar(), capabilities=[Capability.CAN_CONCUR])
    return registry


def instance(name: str, driver, provider_type: str = "FAKE", is_default: bool = True) -> ProviderInstance:
    return ProviderInstance(name=name, provider_type=provider_type, driver=driver, is_default=is_default)
