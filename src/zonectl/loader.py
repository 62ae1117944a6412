"""Load and validate the desired-state IR (JSON, or YAML rendered through Jinja2)."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaError

from . import rdata
from .models import (
    DNSConfig,
    DomainConfig,
    ProviderConfig,
    Record,
    RecordMeta,
    UnmanagedConfig,
    ValidationError,
    strings_to_nameservers,
)

DEFAULT_TTL = 300

# Typed fields that, when present, replace parsing ``target`` as BIND text.
TYPED_FIELDS = {
    "MX": ("mx_preference",),
    "SRV": ("srv_priority", "srv_weight", "srv_port"),
    "CAA": ("caa_flag", "caa_tag"),
    "TLSA": ("tlsa_usage", "tlsa_selector", "tlsa_matching_type"),
    "SSHFP": ("sshfp_algorithm", "sshfp_fingerprint"),
    "DS": ("ds_keytag", "ds_algorithm", "ds_digest_type"),
    "DNSKEY": ("dnskey_flags", "dnskey_protocol", "dnskey_algorithm"),
    "NAPTR": ("naptr_order", "naptr_preference"),
    "HTTPS": ("svc_priority",),
    "SVCB": ("svc_priority",),
}


class _Spec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RecordSpec(_Spec):
    """Schema for a desired DNS record."""

    type: str
    name: str = "@"
    ttl: int | None = Field(default=None, ge=0, le=2**32 - 1)
    target: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)
    mx_preference: int | None = Field(default=None, alias="mxpreference")
    srv_priority: int | None = Field(default=None, alias="srvpriority")
    srv_weight: int | None = Field(default=None, alias="srvweight")
    srv_port: int | None = Field(default=None, alias="srvport")
    caa_flag: int | None = Field(default=None, alias="caaflag")
    caa_tag: str | None = Field(default=None, alias="caatag")
    tlsa_usage: int | None = Field(default=None, alias="tlsausage")
    tlsa_selector: int | None = Field(default=None, alias="tlsaselector")
    tlsa_matching_type: int | None = Field(default=None, alias="tlsamatchingtype")
    sshfp_algorithm: int | None = Field(default=None, alias="sshfpalgorithm")
    sshfp_fingerprint: int | None = Field(default=None, alias="sshfpfingerprint")
    ds_keytag: int | None = Field(default=None, alias="dskeytag")
    ds_algorithm: int | None = Field(default=None, alias="dsalgorithm")
    ds_digest_type: int | None = Field(default=None, alias="dsdigesttype")
    ds_digest: str | None = Field(default=None, alias="dsdigest")
    dnskey_flags: int | None = Field(default=None, alias="dnskeyflags")
    dnskey_protocol: int | None = Field(default=None, alias="dnskeyprotocol")
    dnskey_algorithm: int | None = Field(default=None, alias="dnskeyalgorithm")
    dnskey_public_key: str | None = Field(default=None, alias="dnskeypublickey")
    naptr_order: int | None = Field(default=None, alias="naptrorder")
    naptr_preference: int | None = Field(default=None, alias="naptrpreference")
    naptr_flags: str = Field(default="", alias="naptrflags")
    naptr_service: str = Field(default="", alias="naptrservice")
    naptr_regexp: str = Field(default="", alias="naptrregexp")
    svc_priority: int | None = Field(default=None, alias="svcpriority")
    svc_params: str = Field(default="", alias="svcparams")
    txt_strings: list[str] | None = Field(default=None, alias="txtstrings")

    @field_validator("type")
    @classmethod
    def _uppercase_type(cls, value: str) -> str:
        """Normalise RR type to uppercase."""
        return value.upper()


class UnmanagedSpec(_Spec):
    """Schema for one IGNORE() pattern triple."""

    label_pattern: str = "*"
    rtype_pattern: str = Field(default="*", alias="rType_pattern")
    target_pattern: str = "*"


class NameserverSpec(_Spec):
    name: str


class ProviderSpec(_Spec):
    name: str
    type: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)


class DomainSpec(_Spec):
    """Schema for one zone."""

    name: str
    registrar: str = "none"
    dns_providers: dict[str, int] = Field(default_factory=dict, alias="dnsProviders")
    records: list[RecordSpec] = Field(default_factory=list)
    nameservers: list[NameserverSpec | str] = Field(default_factory=list)
    unmanaged: list[UnmanagedSpec] = Field(default_factory=list)
    unmanaged_unsafe: bool = Field(default=False, alias="unmanaged_disable_safety_check")
    keep_unknown: bool = Field(default=False, alias="keepunknown")
    ensure_absent: list[RecordSpec] = Field(default_factory=list, alias="recordsabsent")
    meta: dict[str, Any] = Field(default_factory=dict)


class ConfigSpec(_Spec):
    """Schema for the whole IR document."""

    registrars: list[ProviderSpec] = Field(default_factory=list)
    dns_providers: list[ProviderSpec] = Field(default_factory=list)
    domains: list[DomainSpec] = Field(default_factory=list)


def _stringify(data: dict[str, Any]) -> dict[str, str]:
    return {str(key): value if isinstance(value, str) else json.dumps(value) for key, value in data.items()}


def _typed_fields_present(spec: RecordSpec) -> bool:
    return any(getattr(spec, name) is not None for name in TYPED_FIELDS.get(spec.type, ()))


def build_record(spec: RecordSpec, origin: str) -> Record:
    """Turn a record schema into a validated Record."""
    ttl = DEFAULT_TTL if spec.ttl is None else spec.ttl
    rtype = spec.type
    label = spec.name.strip()
    if label.endswith("."):
        fqdn = label.rstrip(".").lower()
        if fqdn != origin and not fqdn.endswith("." + origin):
            raise ValidationError(f"{origin}: record name {label} is outside the zone")
        label = "@" if fqdn == origin else fqdn[: -len(origin) - 1]

    if rtype in TYPED_FIELDS and not _typed_fields_present(spec):
        record = rdata.parse_record(label, rtype, ttl, spec.target, origin)
    else:
        record = Record(type=rtype, ttl=ttl)
        record.set_label(label, origin)
        _apply_typed(record, spec, origin)
    record.meta = RecordMeta.from_mapping(_stringify(spec.meta))
    return record


def _apply_typed(record: Record, spec: RecordSpec, origin: str) -> None:
    rtype = record.type
    target = spec.target
    if rtype in ("A", "AAAA"):
        rdata.set_target_ip(record, target)
    elif rtype in ("CNAME", "NS", "PTR", "DNAME", "ALIAS"):
        rdata.set_target_name(record, target, origin)
    elif rtype == "MX":
        rdata.set_target_mx(record, spec.mx_preference, target, origin)
    elif rtype == "SRV":
        rdata.set_target_srv(record, spec.srv_priority, spec.srv_weight or 0, spec.srv_port or 0, target, origin)
    elif rtype == "CAA":
        rdata.set_target_caa(record, spec.caa_flag or 0, spec.caa_tag or "", target)
    elif rtype == "TLSA":
        rdata.set_target_tlsa(record, spec.tlsa_usage or 0, spec.tlsa_selector or 0, spec.tlsa_matching_type or 0, target)
    elif rtype == "SSHFP":
        rdata.set_target_sshfp(record, spec.sshfp_algorithm or 0, spec.sshfp_fingerprint or 0, target)
    elif rtype == "DS":
        rdata.set_target_ds(record, spec.ds_keytag or 0, spec.ds_algorithm or 0, spec.ds_digest_type or 0, spec.ds_digest or target)
    elif rtype == "DNSKEY":
        rdata.set_target_dnskey(
            record, spec.dnskey_flags or 0, spec.dnskey_protocol or 0, spec.dnskey_algorithm or 0, spec.dnskey_public_key or target
        )
    elif rtype == "NAPTR":
        rdata.set_target_naptr(
            record,
            spec.naptr_order or 0,
            spec.naptr_preference or 0,
            spec.naptr_flags,
            spec.naptr_service,
            spec.naptr_regexp,
            target,
            origin,
        )
    elif rtype in ("HTTPS", "SVCB"):
        rdata.set_target_svcb(record, spec.svc_priority, target, spec.svc_params, origin)
    elif rtype == "LOC":
        rdata.set_target_loc(record, target)
    elif rtype == "TXT":
        rdata.set_target_txt(record, spec.txt_strings if spec.txt_strings is not None else [target])
    else:
        rdata.set_target(record, target)


def _build_domain(spec: DomainSpec) -> DomainConfig:
    dc = DomainConfig(name=spec.name.strip().rstrip("."), metadata=_stringify(spec.meta))
    dc.update_split_horizon_names()
    origin = dc.name
    dc.registrar_name = spec.registrar
    dc.dns_provider_names = dict(spec.dns_providers)
    dc.records = [build_record(record, origin) for record in spec.records]
    dc.ensure_absent = [build_record(record, origin) for record in spec.ensure_absent]
    names = [ns if isinstance(ns, str) else ns.name for ns in spec.nameservers]
    dc.nameservers = strings_to_nameservers(names)
    dc.unmanaged = [
        UnmanagedConfig(
            label_pattern=item.label_pattern or "*",
            rtype_pattern=item.rtype_pattern or "*",
            target_pattern=item.target_pattern or "*",
        )
        for item in spec.unmanaged
    ]
    dc.unmanaged_unsafe = spec.unmanaged_unsafe
    dc.keep_unknown = spec.keep_unknown
    return dc


def _render_yaml(path: Path, extra_context: dict[str, Any] | None = None) -> str:
    """Render a YAML file through Jinja2."""
    env = Environment(
        loader=FileSystemLoader(str(path.parent)),
        undefined=StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )
    template = env.get_template(path.name)
    context = {"env": os.environ}
    if extra_context:
        context.update(extra_context)
    return template.render(**context)


def parse_config(data: dict[str, Any]) -> DNSConfig:
    """Validate a decoded IR document and build model objects."""
    try:
        spec = ConfigSpec.model_validate(data or {})
    except SchemaError as exc:
        raise ValidationError(f"IR validation error: {exc}") from exc
    return DNSConfig(
        registrars=[ProviderConfig(name=p.name, type=p.type, metadata=dict(p.meta)) for p in spec.registrars],
        dns_providers=[ProviderConfig(name=p.name, type=p.type, metadata=dict(p.meta)) for p in spec.dns_providers],
        domains=[_build_domain(domain) for domain in spec.domains],
    )


def load_config_file(path: Path, template_vars: dict[str, Any] | None = None) -> DNSConfig:
    """Load the IR from ``path``; ``.yaml``/``.yml`` files are Jinja2 templates."""
    if not path.exists():
        raise ValidationError(f"Configuration file {path} does not exist.")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(_render_yaml(path, template_vars)) or {}
        else:
            data = json.loads(path.read_text(encoding="utf-8"))
    except TemplateError as exc:
        raise ValidationError(f"Failed to render {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ValidationError(f"Failed to parse YAML: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Failed to parse JSON: {exc}") from exc
    return parse_config(data)

