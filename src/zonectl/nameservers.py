"""Work out which nameservers a zone advertises."""

from __future__ import annotations

import logging
from typing import List

from .models import APEX, DomainConfig, Nameserver, Record
from .providers.base import call_with_deadline, deadline_for

LOG = logging.getLogger("zonectl")

DEFAULT_NS_TTL = 300


def determine_nameservers(dc: DomainConfig, timeout: float | None = None) -> List[Nameserver]:
    """Combine the zone's explicit nameservers with those each provider assigns.

    A provider's ``num_nameservers`` of -1 takes all, 0 takes none, n takes the first n.
    """
    result: List[Nameserver] = list(dc.nameservers)
    for instance in dc.dns_provider_instances:
        wanted = instance.num_nameservers
        if wanted == 0:
            continue
        names = call_with_deadline(
            instance.driver.get_nameservers, dc.name, timeout=deadline_for(instance.driver, timeout)
        )
        if wanted > 0:
            names = names[:wanted]
        LOG.debug("%s: %s supplies %d nameservers", dc.unique_name, instance.name, len(names))
        result.extend(names)

    unique: List[Nameserver] = []
    for ns in result:
        if ns not in unique:
            unique.append(ns)
    return unique


def add_ns_records(dc: DomainConfig) -> None:
    """Add apex NS records for ``dc.nameservers`` unless the zone already declares some."""
    if dc.metadata.get("no_ns", "").lower() == "true":
        return
    if any(record.type == "NS" and record.name == APEX for record in dc.records):
        return
    ttl = int(dc.metadata.get("ns_ttl") or DEFAULT_NS_TTL)
    for ns in dc.nameservers:
        record = Record(type="NS", ttl=ttl, target=f"{ns.name}.")
        record.set_label(APEX, dc.name)
        dc.records.append(record)
