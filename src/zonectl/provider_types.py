"""Reconcile provider types declared in the IR with the credentials store."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Tuple

from .credsfile import TYPE_KEY
from .models import DNSConfig, ProviderTypeError

PLACEHOLDER = "FILL_IN_PROVIDER_TYPE"


def refine_provider_type(
    name: str,
    declared: str,
    cred_fields: Mapping[str, str] | None,
    source: str,
) -> Tuple[str, str]:
    """Return ``(provider_type, message)``; raise ProviderTypeError when unusable.

    ``message`` is empty, a WARNING, or an INFO line. ``source`` names the IR
    section the provider was declared in.
    """
    declared = declared or "-"

    if declared != "-":
        if cred_fields is None:
            return declared, (
                f'WARNING: For future compatibility, add this entry to the credentials file: '
                f'"{name}": {{ "{TYPE_KEY}": "{declared}" }},'
            )
        creds_type = cred_fields.get(TYPE_KEY, "")
        if creds_type == "":
            return declared, (
                f'WARNING: For future compatibility, update the "{name}" entry in the credentials file '
                f'by adding: "{TYPE_KEY}": "{declared}",'
            )
        if creds_type == "-":
            raise ProviderTypeError(
                f'ERROR: credentials entry "{name}" has invalid "{TYPE_KEY}" value "{creds_type}"'
            )
        if creds_type == declared:
            return creds_type, (
                f'INFO: {source} entry "{name}" can drop its type "{declared}"; '
                f'the credentials file already sets it'
            )
        raise ProviderTypeError(
            f'ERROR: Mismatch found! credentials entry "{name}" has "{TYPE_KEY}" set to "{creds_type}" '
            f'but {source} entry "{name}" declares type "{declared}"'
        )

    if cred_fields is None:
        raise ProviderTypeError(
            f'ERROR: the credentials file is missing an entry called "{name}". '
            f'Suggestion: "{name}": {{ "{TYPE_KEY}": "{PLACEHOLDER}" }},'
        )
    creds_type = cred_fields.get(TYPE_KEY, "")
    if creds_type == "":
        raise ProviderTypeError(
            f'ERROR: credentials entry "{name}" is missing: "{TYPE_KEY}": "{PLACEHOLDER}",'
        )
    if creds_type == "-":
        raise ProviderTypeError(
            f'ERROR: credentials entry "{name}" has invalid "{TYPE_KEY}" value "{creds_type}"'
        )
    return creds_type, ""


def unique_strings(items: Iterable[str]) -> List[str]:
    """Drop duplicates, keeping first-seen order."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def populate_provider_types(cfg: DNSConfig, creds: Mapping[str, Dict[str, str]]) -> List[str]:
    """Resolve every provider type in place and return the deduplicated messages."""
    msgs: List[str] = []

    def refine(name: str, declared: str, source: str) -> str:
        try:
            provider_type, msg = refine_provider_type(name, declared, creds.get(name), source)
        except ProviderTypeError as exc:
            raise ProviderTypeError("\n".join(unique_strings(msgs + [str(exc)]))) from None
        if msg:
            msgs.append(msg)
        return provider_type

    for registrar in cfg.registrars:
        registrar.type = refine(registrar.name, registrar.type, "registrars")
    for provider in cfg.dns_providers:
        provider.type = refine(provider.name, provider.type, "dns_providers")
    for domain in cfg.domains:
        for instance in domain.dns_provider_instances:
            instance.provider_type = refine(instance.name, instance.provider_type, "dns_providers")
        if domain.registrar_instance is not None:
            domain.registrar_instance.provider_type = refine(
                domain.registrar_instance.name, domain.registrar_instance.provider_type, "registrars"
            )
    return unique_strings(msgs)
