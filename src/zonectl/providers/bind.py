"""The BIND provider: zones kept as zone files in a directory."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .. import diffing
from ..models import APEX, Correction, DomainConfig, Nameserver, ProviderError, Record, strings_to_nameservers
from ..rdata import record_from_rdata, split_long_txt
from .base import Capability, DNSProvider, ZoneCreator, ZoneLister
from .registry import REGISTRY

LOG = logging.getLogger("zonectl")

PROVIDER_TYPE = "BIND"
TEMPLATE_NAME = "zone.j2"

DEFAULT_TEMPLATE = """\
$ORIGIN {{ origin }}.
$TTL {{ default_ttl }}
@ {{ soa.minimum }} IN SOA {{ soa.primary_ns }} {{ soa.admin_email }} {{ soa.serial }} {{ soa.refresh }} {{ soa.retry }} {{ soa.expire }} {{ soa.minimum }}
{% for record in records %}
{{ record.owner }} {{ record.ttl }} IN {{ record.type }} {{ record.value }}
{% endfor %}
"""

CAPABILITIES = [
    Capability.CAN_CONCUR,
    Capability.CAN_GET_ZONES,
    Capability.CAN_USE_CAA,
    Capability.CAN_USE_DNSKEY,
    Capability.CAN_USE_DS,
    Capability.CAN_USE_DS_FOR_CHILDREN,
    Capability.CAN_USE_HTTPS,
    Capability.CAN_USE_LOC,
    Capability.CAN_USE_NAPTR,
    Capability.CAN_USE_PTR,
    Capability.CAN_USE_SRV,
    Capability.CAN_USE_SSHFP,
    Capability.CAN_USE_SVCB,
    Capability.CAN_USE_TLSA,
    Capability.CAN_USE_TXT_MULTI,
    Capability.DOC_CREATE_DOMAINS,
    Capability.DOC_DUAL_HOST,
    Capability.DOC_OFFICIALLY_SUPPORTED,
]

_FORCED_SERIAL = 0


def set_forced_serial(serial: int) -> None:
    """Use ``serial`` for every zone written in this run (0 disables)."""
    global _FORCED_SERIAL
    _FORCED_SERIAL = int(serial)


@dataclass
class SOAConfig:
    """SOA fields written at the top of each zone file."""

    primary_ns: str
    admin_email: str
    serial: int = 0
    refresh: int = 3600
    retry: int = 600
    expire: int = 604800
    minimum: int = 86400


def _suggest_serial(strategy: str, current_serial: int | None) -> int:
    """Return a serial number that satisfies the chosen strategy."""
    if _FORCED_SERIAL:
        return _FORCED_SERIAL
    if strategy == "epoch":
        candidate = int(time.time())
    else:
        candidate = int(datetime.now(tz=timezone.utc).strftime("%Y%m%d00"))
    if current_serial is None:
        return candidate
    return max(candidate, current_serial + 1)


def _record_to_template_data(record: Record) -> dict[str, str | int]:
    """Convert a record into template-friendly data."""
    return {
        "owner": record.name or APEX,
        "ttl": record.ttl,
        "type": record.type,
        "value": record.get_target_combined(),
    }


def _zone_order(record: Record) -> tuple:
    return (tuple(reversed(record.name_fqdn.split("."))), record.type != "NS", record.type, record.get_target_combined())


class BindProvider(DNSProvider, ZoneLister, ZoneCreator):
    """Reads and writes ``<directory>/<zone>.zone``."""

    def __init__(self, creds: Mapping[str, str], metadata: Mapping[str, Any] | None = None):
        metadata = dict(metadata or {})
        self.directory = Path(creds.get("directory") or "zones")
        self.templates_dir = creds.get("templates_dir") or None
        self.serial_strategy = creds.get("serial_strategy") or "date"
        self.default_ttl = int(creds.get("default_ttl") or 300)
        self.default_ns = strings_to_nameservers(metadata.get("default_ns") or [])
        self.default_soa: Dict[str, Any] = dict(metadata.get("default_soa") or {})
        self._soa_seen: Dict[str, SOAConfig] = {}

    def zone_path(self, domain: str) -> Path:
        return self.directory / f"{domain.rstrip('.')}.zone"

    def get_nameservers(self, domain: str) -> List[Nameserver]:
        return list(self.default_ns)

    def list_zones(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(path.name[: -len(".zone")] for path in self.directory.glob("*.zone"))

    def get_zone_records(self, domain: str, metadata: Dict[str, str]) -> List[Record]:
        """Parse the zone file; a missing file is an empty zone."""
        import dns.exception
        import dns.rdatatype
        import dns.zone

        path = self.zone_path(domain)
        if not path.exists():
            LOG.debug("Zone file %s does not exist yet", path)
            return []
        try:
            zone = dns.zone.from_file(str(path), origin=f"{domain}.", relativize=False, check_origin=False)
        except (dns.exception.DNSException, OSError) as exc:
            raise ProviderError(f"cannot read zone file {path}: {exc}") from exc

        records: List[Record] = []
        for name, node in zone.nodes.items():
            owner = name.to_text()
            for rdataset in node.rdatasets:
                if rdataset.rdtype == dns.rdatatype.SOA:
                    soa = rdataset[0]
                    self._soa_seen[domain] = SOAConfig(
                        primary_ns=soa.mname.to_text(),
                        admin_email=soa.rname.to_text(),
                        serial=int(soa.serial),
                        refresh=int(soa.refresh),
                        retry=int(soa.retry),
                        expire=int(soa.expire),
                        minimum=int(soa.minimum),
                    )
                    continue
                for rdata in rdataset:
                    record = record_from_rdata(rdata, owner, domain, rdataset.ttl)
                    record.original = rdata
                    records.append(record)
        return records

    def _build_soa(self, domain: str) -> SOAConfig:
        """Combine the SOA seen on disk with configured defaults and a new serial."""
        seen = self._soa_seen.get(domain)
        defaults = self.default_soa
        primary_ns = defaults.get("master") or (seen.primary_ns if seen else f"ns.{domain}.")
        admin_email = defaults.get("mbox") or (seen.admin_email if seen else f"hostmaster.{domain}.")
        return SOAConfig(
            primary_ns=primary_ns,
            admin_email=admin_email,
            serial=_suggest_serial(self.serial_strategy, seen.serial if seen else None),
            refresh=int(defaults.get("refresh") or (seen.refresh if seen else 3600)),
            retry=int(defaults.get("retry") or (seen.retry if seen else 600)),
            expire=int(defaults.get("expire") or (seen.expire if seen else 604800)),
            minimum=int(defaults.get("minttl") or (seen.minimum if seen else 86400)),
        )

    def render_zone(self, domain: str, records: List[Record]) -> str:
        """Render a zone file using the configured template directory, if any."""
        env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)) if self.templates_dir else None,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        template = env.get_template(TEMPLATE_NAME) if self.templates_dir else env.from_string(DEFAULT_TEMPLATE)
        data = [_record_to_template_data(record) for record in sorted(records, key=_zone_order) if record.type != "SOA"]
        soa = self._build_soa(domain)
        text = template.render(origin=domain, default_ttl=self.default_ttl, soa=asdict(soa), records=data)
        return text.strip() + "\n"

    def get_zone_records_corrections(self, dc: DomainConfig, existing: List[Record]) -> Tuple[List[Correction], int]:
        split_long_txt(dc.records)
        changes = diffing.by_zone(existing, dc)
        corrections = [Correction.message(line) for line in changes.reports]
        if not changes.changed:
            return corrections, 0

        records = diffing.desired_records(existing, dc)
        path = self.zone_path(dc.name)
        if path.exists():
            header = f"GENERATE_ZONEFILE: '{dc.name}'. Changes:"
        else:
            header = f"GENERATE_ZONEFILE: '{dc.name}' (new file with {len(records)} records)"
        text = self.render_zone(dc.name, records)

        def write_zone_file() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
            LOG.info("Wrote zone file to %s", path)

        corrections.append(Correction(msg="\n".join([header, *changes.msgs]), action=write_zone_file))
        return corrections, changes.actual_change_count

    def ensure_zone_exists(self, domain: str, metadata: Dict[str, str]) -> None:
        path = self.zone_path(domain)
        if path.exists():
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render_zone(domain, []), encoding="utf-8")
        LOG.info("Created empty zone file %s", path)


def _new_dns(creds: Mapping[str, str], metadata: Mapping[str, Any]) -> BindProvider:
    return BindProvider(creds, metadata)


REGISTRY.register_dns_provider(PROVIDER_TYPE, _new_dns, capabilities=CAPABILITIES, default_ttl=300)
