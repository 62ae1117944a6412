"""Process-wide table of provider drivers."""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping

from ..models import ProviderNotFoundError, ZonectlError
from .base import Capability, DNSProvider, Registrar

LOG = logging.getLogger("zonectl")

DNSProviderFactory = Callable[[Mapping[str, str], Mapping[str, Any]], DNSProvider]
RegistrarFactory = Callable[[Mapping[str, str]], Registrar]

BUILTIN_MODULES = ("zonectl.providers.none", "zonectl.providers.bind")


@dataclass
class ProviderSpec:
    """What a driver declared at registration time."""

    provider_type: str
    capabilities: FrozenSet[Capability] = frozenset()
    default_ttl: int = 300
    dns_factory: DNSProviderFactory | None = None
    registrar_factory: RegistrarFactory | None = None


@dataclass
class CustomRType:
    """A provider pseudo-type such as a redirect rule."""

    name: str
    provider_type: str
    real_type: str = ""


@dataclass
class ProviderRegistry:
    """Maps provider type ids to factories and capability sets."""

    providers: Dict[str, ProviderSpec] = field(default_factory=dict)
    custom_rtypes: Dict[str, CustomRType] = field(default_factory=dict)

    def _spec(self, provider_type: str) -> ProviderSpec:
        spec = self.providers.get(provider_type)
        if spec is None:
            spec = ProviderSpec(provider_type=provider_type)
            self.providers[provider_type] = spec
        return spec

    def register_dns_provider(
        self,
        provider_type: str,
        factory: DNSProviderFactory,
        capabilities: Iterable[Capability] = (),
        default_ttl: int = 300,
    ) -> None:
        spec = self._spec(provider_type)
        if spec.dns_factory is not None:
            raise ZonectlError(f"DNS provider type {provider_type} is already registered")
        spec.dns_factory = factory
        spec.capabilities = spec.capabilities | frozenset(capabilities)
        spec.default_ttl = default_ttl

    def register_registrar(
        self,
        provider_type: str,
        factory: RegistrarFactory,
        capabilities: Iterable[Capability] = (),
    ) -> None:
        spec = self._spec(provider_type)
        if spec.registrar_factory is not None:
            raise ZonectlError(f"registrar type {provider_type} is already registered")
        spec.registrar_factory = factory
        spec.capabilities = spec.capabilities | frozenset(capabilities)

    def register_custom_rtype(self, name: str, provider_type: str, real_type: str = "") -> None:
        if name in self.custom_rtypes:
            raise ZonectlError(f"custom record type {name} is already registered")
        self.custom_rtypes[name] = CustomRType(name=name, provider_type=provider_type, real_type=real_type)

    def has_capability(self, provider_type: str, capability: Capability) -> bool:
        spec = self.providers.get(provider_type)
        return spec is not None and capability in spec.capabilities

    def default_ttl(self, provider_type: str) -> int:
        """TTL given to records that ask for the provider default (TTL 0)."""
        spec = self.providers.get(provider_type)
        return spec.default_ttl if spec else 300

    def custom_rtype(self, name: str) -> CustomRType | None:
        return self.custom_rtypes.get(name)

    def create_dns_provider(
        self, provider_type: str, creds: Mapping[str, str], metadata: Mapping[str, Any] | None = None
    ) -> DNSProvider:
        spec = self.providers.get(provider_type)
        if spec is None or spec.dns_factory is None:
            raise ProviderNotFoundError(f"no DNS provider registered for type {provider_type}")
        LOG.debug("Initialising DNS provider type %s", provider_type)
        return spec.dns_factory(creds, metadata or {})

    def create_registrar(self, provider_type: str, creds: Mapping[str, str]) -> Registrar:
        spec = self.providers.get(provider_type)
        if spec is None or spec.registrar_factory is None:
            raise ProviderNotFoundError(f"no registrar registered for type {provider_type}")
        LOG.debug("Initialising registrar type %s", provider_type)
        return spec.registrar_factory(creds)


REGISTRY = ProviderRegistry()


def load_builtin_providers(modules: Iterable[str] = BUILTIN_MODULES) -> ProviderRegistry:
    """Import driver modules; each registers itself into REGISTRY on import."""
    for module in modules:
        importlib.import_module(module)
    return REGISTRY
