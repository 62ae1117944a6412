"""The NONE provider: a registrar and DNS provider that never changes anything."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Tuple

from ..models import Correction, DomainConfig, Nameserver, Record
from .base import Capability, DNSProvider, Registrar
from .registry import REGISTRY

PROVIDER_TYPE = "NONE"


class NoneProvider(DNSProvider, Registrar):
    """Reports an empty zone and accepts every change without doing it."""

    def __init__(self, creds: Mapping[str, str] | None = None, metadata: Mapping[str, Any] | None = None):
        self.creds = dict(creds or {})

    def get_nameservers(self, domain: str) -> List[Nameserver]:
        return []

    def get_zone_records(self, domain: str, metadata: Dict[str, str]) -> List[Record]:
        return []

    def get_zone_records_corrections(self, dc: DomainConfig, existing: List[Record]) -> Tuple[List[Correction], int]:
        return [], 0

    def get_registrar_corrections(self, dc: DomainConfig) -> List[Correction]:
        return []


def _new_dns(creds: Mapping[str, str], metadata: Mapping[str, Any]) -> NoneProvider:
    return NoneProvider(creds, metadata)


def _new_registrar(creds: Mapping[str, str]) -> NoneProvider:
    return NoneProvider(creds)


REGISTRY.register_dns_provider(PROVIDER_TYPE, _new_dns, capabilities=[Capability.CAN_CONCUR])
REGISTRY.register_registrar(PROVIDER_TYPE, _new_registrar, capabilities=[Capability.CAN_CONCUR])
