"""Core data models used by zonectl."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable

APEX = "@"

# Split-horizon bookkeeping keys stored in DomainConfig.metadata.
DOMAIN_UNIQUE_NAME = "zonectl_uniquename"
DOMAIN_TAG = "zonectl_tag"


class ZonectlError(Exception):
    """Base exception for zonectl."""


class ValidationError(ZonectlError):
    """Raised when the desired state is invalid."""


class CredentialsError(ZonectlError):
    """Raised when the credentials store cannot be loaded."""


class ProviderTypeError(ZonectlError):
    """Raised when a provider type cannot be resolved."""


class ProviderError(ZonectlError):
    """Raised when a provider driver fails."""


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call exceeds its deadline."""


class ProviderNotFoundError(ProviderError):
    """Raised when no driver is registered for a provider type."""


class CapabilityError(ZonectlError):
    """Raised when a zone uses a feature the provider does not support."""


class UnmanagedConflictError(ZonectlError):
    """Raised when a desired record matches an IGNORE pattern."""


@dataclass
class RecordMeta:
    """Provider hints attached to a record.

    Well-known concerns get typed fields; anything driver-private lives in
    ``extra``.
    """

    proxy: str | None = None
    comment: str | None = None
    tags: tuple[str, ...] = ()
    original_ip: str | None = None
    extra: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: dict[str, str] | None) -> "RecordMeta":
        """Split a flat string map into typed fields and extras."""
        data = dict(data or {})
        tags = data.pop("tags", "")
        return cls(
            proxy=data.pop("cloudflare_proxy", None),
            comment=data.pop("comment", None),
            tags=tuple(tag.strip() for tag in tags.split(",") if tag.strip()),
            original_ip=data.pop("original_ip", None),
            extra=data,
        )

    def copy(self) -> "RecordMeta":
        return replace(self, extra=dict(self.extra))


@dataclass(frozen=True)
class RecordKey:
    """Identity of an RRset: owner FQDN plus type."""

    name_fqdn: str
    type: str

    def __str__(self) -> str:
        return f"{self.name_fqdn}:{self.type}"


@dataclass(eq=False)
class Record:
    """A single DNS resource record.

    ``target`` holds the primary value (address, hostname, digest, text of a
    pseudo-type). Multi-field types keep their other parameters in the typed
    attributes below. Use the setters in :mod:`zonectl.rdata` to populate
    them so values are validated and normalised.
    """

    type: str
    name: str = APEX
    name_fqdn: str = ""
    ttl: int = 0
    target: str = ""
    mx_preference: int = 0
    srv_priority: int = 0
    srv_weight: int = 0
    srv_port: int = 0
    caa_flag: int = 0
    caa_tag: str = ""
    tlsa_usage: int = 0
    tlsa_selector: int = 0
    tlsa_matching_type: int = 0
    sshfp_algorithm: int = 0
    sshfp_fingerprint: int = 0
    ds_keytag: int = 0
    ds_algorithm: int = 0
    ds_digest_type: int = 0
    dnskey_flags: int = 0
    dnskey_protocol: int = 0
    dnskey_algorithm: int = 0
    naptr_order: int = 0
    naptr_preference: int = 0
    naptr_flags: str = ""
    naptr_service: str = ""
    naptr_regexp: str = ""
    svc_priority: int = 0
    svc_params: str = ""
    txt_strings: list[str] = field(default_factory=list)
    meta: RecordMeta = field(default_factory=RecordMeta)
    original: Any = None

    def set_label(self, short: str, origin: str) -> None:
        """Store a short label and precompute the FQDN."""
        if origin.endswith("."):
            raise ValueError(f"origin ({origin}) must not end with a dot")
        short = short.lower()
        origin = origin.lower()
        if short in ("", APEX):
            self.name = APEX
            self.name_fqdn = origin
        elif short.endswith("."):
            raise ValueError(f"label ({short}) must not end with a dot")
        else:
            self.name = short
            self.name_fqdn = f"{short}.{origin}"

    def set_label_from_fqdn(self, fqdn: str, origin: str) -> None:
        """Store a label given its FQDN (trailing dot optional)."""
        fqdn = fqdn.lower().rstrip(".")
        origin = origin.lower().rstrip(".")
        self.name_fqdn = fqdn
        if fqdn == origin:
            self.name = APEX
        elif fqdn.endswith("." + origin):
            self.name = fqdn[: -len(origin) - 1]
        else:
            self.name = fqdn

    def key(self) -> RecordKey:
        return RecordKey(self.name_fqdn, self.type)

    def get_target_field(self) -> str:
        """Return the raw target; TXT returns its strings joined."""
        if self.type == "TXT":
            return "".join(self.txt_strings)
        return self.target

    def get_target_combined(self) -> str:
        """Return all rdata fields rendered as one deterministic string."""
        from .rdata import render_target

        return render_target(self)

    def to_comparable_no_ttl(self, compare_fn: Callable[["Record"], str] | None = None) -> str:
        """Return a string that is equal for two records iff their data is equal."""
        text = self.get_target_combined()
        if compare_fn is not None:
            extra = compare_fn(self)
            if extra:
                text = f"{text} {extra}"
        return text

    def copy(self) -> "Record":
        """Return a copy that shares nothing mutable except ``original``."""
        return replace(self, txt_strings=list(self.txt_strings), meta=self.meta.copy())

    def __str__(self) -> str:
        return f"{self.name_fqdn} {self.ttl} {self.type} {self.get_target_combined()}"


@dataclass(frozen=True)
class Nameserver:
    """A nameserver hostname advertised for a zone."""

    name: str


def strings_to_nameservers(names: Iterable[str]) -> list[Nameserver]:
    """Convert hostnames into Nameserver objects, without trailing dots."""
    return [Nameserver(name=name.rstrip(".").lower()) for name in names if name.strip()]


@dataclass
class UnmanagedConfig:
    """An IGNORE() pattern triple. Empty or ``*`` matches anything."""

    label_pattern: str = "*"
    rtype_pattern: str = "*"
    target_pattern: str = "*"


@dataclass
class ProviderConfig:
    """A provider declaration as it appears in the IR."""

    name: str
    type: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class ProviderInstance:
    """A named provider attached to a zone, with its driver once initialised."""

    name: str
    provider_type: str = ""
    driver: Any = None
    is_default: bool = True
    num_nameservers: int = -1


@dataclass(frozen=True)
class Correction:
    """One unit of user-visible work.

    A correction without an ``action`` is a report: it is printed but never
    executed. Actions raise on failure. Equality is by message only.
    """

    msg: str
    action: Callable[[], Any] | None = field(default=None, compare=False)
    provider: str | None = field(default=None, compare=False)
    domain: str | None = field(default=None, compare=False)

    @classmethod
    def message(cls, msg: str) -> "Correction":
        """Return a report-only correction."""
        return cls(msg=msg)

    @property
    def is_report(self) -> bool:
        return self.action is None

    def with_provider(self, provider: str) -> "Correction":
        """Return a copy whose message is prefixed with ``[provider]``."""
        return replace(self, msg=f"[{provider}] {self.msg}", provider=provider)


@dataclass(eq=False)
class DomainConfig:
    """Desired state of one zone plus the work planned for it."""

    name: str
    registrar_name: str = "none"
    dns_provider_names: dict[str, int] = field(default_factory=dict)
    records: list[Record] = field(default_factory=list)
    nameservers: list[Nameserver] = field(default_factory=list)
    unmanaged: list[UnmanagedConfig] = field(default_factory=list)
    unmanaged_unsafe: bool = False
    keep_unknown: bool = False
    ensure_absent: list[Record] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    registrar_instance: ProviderInstance | None = None
    dns_provider_instances: list[ProviderInstance] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _corrections: dict[str, list[Correction]] = field(default_factory=dict, repr=False)
    _populate: dict[str, list[Correction]] = field(default_factory=dict, repr=False)
    _change_counts: dict[str, int] = field(default_factory=dict, repr=False)

    def update_split_horizon_names(self) -> None:
        """Split ``name!tag`` into the zone name and its tag."""
        unique = self.metadata.get(DOMAIN_UNIQUE_NAME) or self.name.lower()
        tag = self.metadata.get(DOMAIN_TAG, "")
        name = self.name
        if "!" in name:
            name, tag = name.split("!", 1)
        self.name = name.lower()
        self.metadata[DOMAIN_UNIQUE_NAME] = unique
        self.metadata[DOMAIN_TAG] = tag

    @property
    def unique_name(self) -> str:
        return self.metadata.get(DOMAIN_UNIQUE_NAME) or self.name

    @property
    def tag(self) -> str:
        return self.metadata.get(DOMAIN_TAG, "")

    def copy(self) -> "DomainConfig":
        """Return a copy safe for a provider to mutate.

        Records and lists are copied; provider instances are shared.
        """
        return DomainConfig(
            name=self.name,
            registrar_name=self.registrar_name,
            dns_provider_names=dict(self.dns_provider_names),
            records=[record.copy() for record in self.records],
            nameservers=list(self.nameservers),
            unmanaged=[replace(u) for u in self.unmanaged],
            unmanaged_unsafe=self.unmanaged_unsafe,
            keep_unknown=self.keep_unknown,
            ensure_absent=[record.copy() for record in self.ensure_absent],
            metadata=dict(self.metadata),
            registrar_instance=self.registrar_instance,
            dns_provider_instances=list(self.dns_provider_instances),
        )

    def store_corrections(self, provider_name: str, corrections: Iterable[Correction]) -> None:
        with self._lock:
            self._corrections.setdefault(provider_name, []).extend(corrections)

    def get_corrections(self, provider_name: str) -> list[Correction]:
        with self._lock:
            return list(self._corrections.get(provider_name, []))

    def store_populate_corrections(self, provider_name: str, corrections: Iterable[Correction]) -> None:
        with self._lock:
            self._populate.setdefault(provider_name, []).extend(corrections)

    def get_populate_corrections(self, provider_name: str) -> list[Correction]:
        with self._lock:
            return list(self._populate.get(provider_name, []))

    def increment_change_count(self, provider_name: str, delta: int) -> None:
        with self._lock:
            self._change_counts[provider_name] = self._change_counts.get(provider_name, 0) + delta

    def get_change_count(self, provider_name: str) -> int:
        with self._lock:
            return self._change_counts.get(provider_name, 0)


@dataclass
class DNSConfig:
    """The whole IR: providers and zones."""

    registrars: list[ProviderConfig] = field(default_factory=list)
    dns_providers: list[ProviderConfig] = field(default_factory=list)
    domains: list[DomainConfig] = field(default_factory=list)

    def find_domain(self, query: str) -> DomainConfig | None:
        """Return the zone whose unique name matches ``query``."""
        for domain in self.domains:
            if domain.unique_name == query:
                return domain
        return None
