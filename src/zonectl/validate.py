"""Checks run on the desired state before any provider is contacted."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List

from .models import APEX, CapabilityError, DNSConfig, DomainConfig, ValidationError
from .providers.base import RTYPE_CAPABILITIES, Capability
from .providers.registry import REGISTRY, ProviderRegistry
from .rdata import PSEUDO_TYPES, STANDARD_TYPES

MAX_TTL = 2**32 - 1


def check_domain(dc: DomainConfig, registry: ProviderRegistry = REGISTRY) -> List[str]:
    """Return every problem found in one zone's desired records."""
    problems: List[str] = []
    by_label: Dict[str, List[str]] = defaultdict(list)
    seen = set()
    for record in dc.records:
        where = f"{dc.unique_name}: {record.name} {record.type}"
        if record.type not in STANDARD_TYPES and record.type not in PSEUDO_TYPES and registry.custom_rtype(record.type) is None:
            problems.append(f"{where}: unknown record type")
        if not 0 <= record.ttl <= MAX_TTL:
            problems.append(f"{where}: TTL {record.ttl} out of range")
        if record.type == "CNAME" and record.name == APEX:
            problems.append(f"{where}: CNAME is not allowed at the apex")
        identity = (record.name_fqdn, record.type, record.get_target_combined())
        if identity in seen:
            problems.append(f"{where} {record.get_target_combined()}: duplicate record")
        seen.add(identity)
        by_label[record.name_fqdn].append(record.type)

    for label, types in by_label.items():
        if "CNAME" in types and len(types) > 1:
            others = sorted(set(types) - {"CNAME"}) or ["CNAME"]
            problems.append(f"{dc.unique_name}: {label} has a CNAME alongside {', '.join(others)} records")
    return problems


def validate_config(cfg: DNSConfig, registry: ProviderRegistry = REGISTRY) -> None:
    """Raise ValidationError listing every problem in the IR."""
    problems: List[str] = []
    provider_names = {p.name for p in cfg.dns_providers}
    registrar_names = {p.name for p in cfg.registrars}
    for dc in cfg.domains:
        problems.extend(check_domain(dc, registry))
        for name in dc.dns_provider_names:
            if name not in provider_names:
                problems.append(f"{dc.unique_name}: DNS provider {name} is not declared")
        if dc.registrar_name not in registrar_names and dc.registrar_name != "none":
            problems.append(f"{dc.unique_name}: registrar {dc.registrar_name} is not declared")
    if problems:
        raise ValidationError("\n".join(problems))


def check_provider_capabilities(dc: DomainConfig, provider_type: str, registry: ProviderRegistry = REGISTRY) -> None:
    """Raise CapabilityError if the zone needs something ``provider_type`` lacks."""
    def has(capability: Capability) -> bool:
        return registry.has_capability(provider_type, capability)

    missing = set()
    for record in dc.records:
        custom = registry.custom_rtype(record.type)
        if custom is not None:
            if custom.provider_type != provider_type:
                missing.add(f"{record.type} (only supported by {custom.provider_type})")
            continue
        if record.type == "DS":
            if record.name == APEX and not has(Capability.CAN_USE_DS):
                missing.add("DS")
            elif record.name != APEX and not (has(Capability.CAN_USE_DS_FOR_CHILDREN) or has(Capability.CAN_USE_DS)):
                missing.add("DS")
            continue
        capability = RTYPE_CAPABILITIES.get(record.type)
        if capability is not None and not has(capability):
            missing.add(record.type)
        if record.type == "TXT" and len(record.txt_strings) > 1 and not has(Capability.CAN_USE_TXT_MULTI):
            missing.add("TXT with multiple strings")
    if dc.keep_unknown and has(Capability.CANT_USE_NOPURGE):
        missing.add("NO_PURGE")
    if missing:
        raise CapabilityError(
            f"{dc.unique_name}: provider type {provider_type} does not support: {', '.join(sorted(missing))}"
        )
