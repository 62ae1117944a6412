"""Reconcile one zone's records at one provider."""

from __future__ import annotations

import logging
from typing import List, Tuple

from .models import APEX, Correction, DomainConfig, ProviderInstance
from .providers.base import Capability, call_with_deadline, deadline_for
from .providers.registry import REGISTRY, ProviderRegistry
from .rdata import canonicalize_targets, post_process_records
from .validate import check_provider_capabilities

LOG = logging.getLogger("zonectl")


def _strip_apex_ns(dc: DomainConfig, existing: list) -> Tuple[list, bool]:
    """Drop apex NS records from both sides; report whether any desired ones were dropped."""
    desired_ns = [r for r in dc.records if r.type == "NS" and r.name == APEX]
    dc.records = [r for r in dc.records if not (r.type == "NS" and r.name == APEX)]
    existing = [r for r in existing if not (r.type == "NS" and r.name == APEX)]
    return existing, bool(desired_ns)


def correct_zone_records(
    instance: ProviderInstance,
    dc: DomainConfig,
    timeout: float | None = None,
    registry: ProviderRegistry = REGISTRY,
) -> Tuple[List[Correction], List[Correction], int]:
    """Return ``(reports, corrections, actionable_count)`` for ``dc`` at ``instance``.

    Provider errors propagate; nothing partial is returned.
    """
    check_provider_capabilities(dc, instance.provider_type, registry)

    driver = instance.driver
    deadline = deadline_for(driver, timeout)
    existing = call_with_deadline(driver.get_zone_records, dc.name, dict(dc.metadata), timeout=deadline)
    LOG.debug("%s: %s returned %d records", dc.unique_name, instance.name, len(existing))

    post_process_records(existing)
    canonicalize_targets(existing, dc.name)

    desired = dc.copy()
    default_ttl = registry.default_ttl(instance.provider_type)
    for record in desired.records:
        if record.ttl == 0:
            record.ttl = default_ttl
    post_process_records(desired.records)
    canonicalize_targets(desired.records, desired.name)

    warnings: List[Correction] = []
    if not registry.has_capability(instance.provider_type, Capability.DOC_DUAL_HOST):
        existing, dropped = _strip_apex_ns(desired, existing)
        if dropped:
            warnings.append(
                Correction.message(
                    f"WARNING: {instance.provider_type} does not allow apex NS records to be changed; "
                    f"NS records at {desired.name} are left as they are"
                )
            )

    produced, count = call_with_deadline(driver.get_zone_records_corrections, desired, existing, timeout=deadline)
    reports = warnings + [c for c in produced if c.is_report]
    corrections = [c for c in produced if not c.is_report]
    return reports, corrections, count
