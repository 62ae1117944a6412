"""Typed record setters, canonicalisation, and BIND text-form conversion."""

from __future__ import annotations

import base64
import binascii
import ipaddress
import string
import unicodedata
from typing import Iterable, Sequence

import dns.exception
import dns.name
import dns.rdata
import dns.rdataclass
import dns.rdatatype

from .models import APEX, Record, ValidationError

STANDARD_TYPES = frozenset(
    {
        "A",
        "AAAA",
        "CAA",
        "CNAME",
        "DNAME",
        "DNSKEY",
        "DS",
        "HTTPS",
        "LOC",
        "MX",
        "NAPTR",
        "NS",
        "PTR",
        "SOA",
        "SRV",
        "SSHFP",
        "SVCB",
        "TLSA",
        "TXT",
    }
)
PSEUDO_TYPES = frozenset({"ALIAS"})

# Types whose target is a hostname that may be given relative to the zone.
HOSTNAME_TARGET_TYPES = frozenset(
    {"ALIAS", "CNAME", "DNAME", "HTTPS", "MX", "NAPTR", "NS", "PTR", "SRV", "SVCB"}
)
# Types whose target compares case-insensitively.
CASE_INSENSITIVE_TYPES = HOSTNAME_TARGET_TYPES | {"AAAA", "DS", "SSHFP", "TLSA"}

CAA_TAGS = frozenset({"issue", "issuewild", "iodef"})

# Longest character-string a zone file may carry.
TXT_CHUNK_BYTES = 255


def _check_range(value: int, low: int, high: int, what: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{what} must be an integer, got {value!r}") from exc
    if not low <= number <= high:
        raise ValidationError(f"{what} must be between {low} and {high}, got {number}")
    return number


def _check_hex(value: str, what: str) -> str:
    cleaned = "".join(value.split()).lower()
    if not cleaned or any(ch not in string.hexdigits for ch in cleaned):
        raise ValidationError(f"{what} must be hexadecimal, got {value!r}")
    return cleaned


def _fold(text: str) -> str:
    return unicodedata.normalize("NFC", text).lower()


def add_origin(name: str, origin: str) -> str:
    """Return ``name`` as an FQDN with one trailing dot."""
    origin = origin.rstrip(".") + "."
    if name in ("", APEX):
        return origin
    if name.endswith("."):
        return name if name == "." else name.rstrip(".") + "."
    return f"{name}.{origin}"


def fqdn_for(label: str, origin: str) -> str:
    """Return the owner FQDN (no trailing dot) for a short label."""
    if label in ("", APEX):
        return origin.rstrip(".")
    if label.endswith("."):
        return label.rstrip(".")
    return f"{label}.{origin.rstrip('.')}"


def _normalise_name(name: str, origin: str | None) -> str:
    cleaned = _fold(name.strip())
    if origin is not None:
        return add_origin(cleaned, origin)
    if cleaned in ("", "."):
        return "."
    return cleaned.rstrip(".") + "."


def set_target(record: Record, target: str) -> None:
    """Set the target verbatim (pseudo-types and already-canonical data)."""
    record.target = target


def set_target_ip(record: Record, value: str) -> None:
    try:
        address = ipaddress.ip_address(str(value).strip())
    except ValueError as exc:
        raise ValidationError(f"{record.type} target {value!r} is not an IP address") from exc
    if record.type == "A" and address.version != 4:
        raise ValidationError(f"A record target {value!r} is not IPv4")
    if record.type == "AAAA" and address.version != 6:
        raise ValidationError(f"AAAA record target {value!r} is not IPv6")
    record.target = address.compressed


def set_target_name(record: Record, name: str, origin: str | None = None) -> None:
    """Set a hostname target, lower-cased and dot-terminated."""
    record.target = _normalise_name(name, origin)


def set_target_mx(record: Record, preference: int, exchange: str, origin: str | None = None) -> None:
    record.mx_preference = _check_range(preference, 0, 65535, "MX preference")
    record.target = _normalise_name(exchange, origin)


def set_target_srv(
    record: Record, priority: int, weight: int, port: int, target: str, origin: str | None = None
) -> None:
    record.srv_priority = _check_range(priority, 0, 65535, "SRV priority")
    record.srv_weight = _check_range(weight, 0, 65535, "SRV weight")
    record.srv_port = _check_range(port, 0, 65535, "SRV port")
    record.target = _normalise_name(target, origin)


def set_target_caa(record: Record, flag: int, tag: str, value: str) -> None:
    record.caa_flag = _check_range(flag, 0, 255, "CAA flag")
    if tag not in CAA_TAGS:
        raise ValidationError(f"CAA tag {tag!r} must be one of {sorted(CAA_TAGS)}")
    record.caa_tag = tag
    record.target = value


def set_target_tlsa(record: Record, usage: int, selector: int, matching_type: int, data: str) -> None:
    record.tlsa_usage = _check_range(usage, 0, 3, "TLSA usage")
    record.tlsa_selector = _check_range(selector, 0, 1, "TLSA selector")
    record.tlsa_matching_type = _check_range(matching_type, 0, 2, "TLSA matching type")
    record.target = _check_hex(data, "TLSA certificate data")


def set_target_sshfp(record: Record, algorithm: int, fingerprint_type: int, fingerprint: str) -> None:
    record.sshfp_algorithm = _check_range(algorithm, 1, 6, "SSHFP algorithm")
    record.sshfp_fingerprint = _check_range(fingerprint_type, 1, 2, "SSHFP fingerprint type")
    record.target = _check_hex(fingerprint, "SSHFP fingerprint")


def set_target_ds(record: Record, keytag: int, algorithm: int, digest_type: int, digest: str) -> None:
    record.ds_keytag = _check_range(keytag, 0, 65535, "DS key tag")
    record.ds_algorithm = _check_range(algorithm, 0, 255, "DS algorithm")
    record.ds_digest_type = _check_range(digest_type, 0, 255, "DS digest type")
    record.target = _check_hex(digest, "DS digest")


def set_target_dnskey(record: Record, flags: int, protocol: int, algorithm: int, public_key: str) -> None:
    record.dnskey_flags = _check_range(flags, 0, 65535, "DNSKEY flags")
    record.dnskey_protocol = _check_range(protocol, 0, 255, "DNSKEY protocol")
    record.dnskey_algorithm = _check_range(algorithm, 0, 255, "DNSKEY algorithm")
    key = "".join(public_key.split())
    try:
        base64.b64decode(key, validate=True)
    except binascii.Error as exc:
        raise ValidationError(f"DNSKEY public key is not base64: {public_key!r}") from exc
    record.target = key


def set_target_naptr(
    record: Record,
    order: int,
    preference: int,
    flags: str,
    service: str,
    regexp: str,
    replacement: str,
    origin: str | None = None,
) -> None:
    record.naptr_order = _check_range(order, 0, 65535, "NAPTR order")
    record.naptr_preference = _check_range(preference, 0, 65535, "NAPTR preference")
    record.naptr_flags = flags
    record.naptr_service = service
    record.naptr_regexp = regexp
    record.target = _normalise_name(replacement or ".", origin)


def set_target_svcb(
    record: Record, priority: int, target: str, params: str = "", origin: str | None = None
) -> None:
    """Set SvcPriority, TargetName and SvcParams; params are stored in dnspython's canonical form."""
    record.svc_priority = _check_range(priority, 0, 65535, f"{record.type} priority")
    record.target = _normalise_name(target, origin)
    record.svc_params = _canonical_svc_params(record.type, record.svc_priority, params)


def _canonical_svc_params(rtype: str, priority: int, params: str) -> str:
    params = params.strip()
    if not params:
        return ""
    try:
        rdata = dns.rdata.from_text(dns.rdataclass.IN, rtype, f"{priority} . {params}")
    except (dns.exception.DNSException, ValueError) as exc:
        raise ValidationError(f"invalid {rtype} parameters {params!r}: {exc}") from exc
    parts = rdata.to_text().split(" ", 2)
    return parts[2] if len(parts) > 2 else ""


def set_target_loc(record: Record, text: str) -> None:
    """Validate a LOC payload and store dnspython's canonical rendering."""
    try:
        rdata = dns.rdata.from_text(dns.rdataclass.IN, dns.rdatatype.LOC, text)
    except (dns.exception.DNSException, ValueError) as exc:
        raise ValidationError(f"invalid LOC data {text!r}: {exc}") from exc
    record.target = rdata.to_text()


def set_target_txt(record: Record, strings: str | Sequence[str]) -> None:
    """Store TXT data as an ordered list of strings, content untouched."""
    if isinstance(strings, str):
        strings = [strings]
    record.txt_strings = list(strings)
    record.target = "".join(record.txt_strings)


def _utf8_len(text: str) -> int:
    return len(text.encode("utf-8", "surrogateescape"))


def split_txt_chunks(text: str, limit: int = TXT_CHUNK_BYTES) -> list[str]:
    """Split ``text`` into pieces of at most ``limit`` UTF-8 bytes, never inside a character."""
    chunks: list[str] = []
    current: list[str] = []
    size = 0
    for char in text:
        width = _utf8_len(char)
        if current and size + width > limit:
            chunks.append("".join(current))
            current, size = [], 0
        current.append(char)
        size += width
    if current or not chunks:
        chunks.append("".join(current))
    return chunks


def split_long_txt(records: Iterable[Record]) -> None:
    """Re-chunk TXT strings too long for one character-string; short strings stay as given."""
    for record in records:
        if record.type != "TXT":
            continue
        if all(_utf8_len(text) <= TXT_CHUNK_BYTES for text in record.txt_strings):
            continue
        set_target_txt(record, [chunk for text in record.txt_strings for chunk in split_txt_chunks(text)])


def quote(text: str) -> str:
    """Quote a character-string the way zone files expect."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_target(record: Record) -> str:
    """Render every rdata field of a record as a single string."""
    rtype = record.type
    if rtype == "MX":
        return f"{record.mx_preference} {record.target}"
    if rtype == "SRV":
        return f"{record.srv_priority} {record.srv_weight} {record.srv_port} {record.target}"
    if rtype == "CAA":
        return f"{record.caa_flag} {record.caa_tag} {quote(record.target)}"
    if rtype == "TLSA":
        return f"{record.tlsa_usage} {record.tlsa_selector} {record.tlsa_matching_type} {record.target}"
    if rtype == "SSHFP":
        return f"{record.sshfp_algorithm} {record.sshfp_fingerprint} {record.target}"
    if rtype == "DS":
        return f"{record.ds_keytag} {record.ds_algorithm} {record.ds_digest_type} {record.target}"
    if rtype == "DNSKEY":
        return f"{record.dnskey_flags} {record.dnskey_protocol} {record.dnskey_algorithm} {record.target}"
    if rtype == "NAPTR":
        return (
            f"{record.naptr_order} {record.naptr_preference} {quote(record.naptr_flags)} "
            f"{quote(record.naptr_service)} {quote(record.naptr_regexp)} {record.target}"
        )
    if rtype in ("HTTPS", "SVCB"):
        return f"{record.svc_priority} {record.target} {record.svc_params}".rstrip()
    if rtype == "TXT":
        if not record.txt_strings:
            return quote("")
        return " ".join(quote(text) for text in record.txt_strings)
    return record.target


def record_from_rdata(rdata: dns.rdata.Rdata, owner_fqdn: str, origin: str, ttl: int) -> Record:
    """Convert a dnspython rdata into a Record."""
    rtype = dns.rdatatype.to_text(rdata.rdtype)
    record = Record(type=rtype, ttl=int(ttl))
    record.set_label_from_fqdn(owner_fqdn, origin)
    if rtype in ("A", "AAAA"):
        set_target_ip(record, rdata.address)
    elif rtype in ("CNAME", "NS", "PTR", "DNAME"):
        set_target_name(record, rdata.target.to_text())
    elif rtype == "MX":
        set_target_mx(record, rdata.preference, rdata.exchange.to_text())
    elif rtype == "SRV":
        set_target_srv(record, rdata.priority, rdata.weight, rdata.port, rdata.target.to_text())
    elif rtype == "CAA":
        set_target_caa(record, rdata.flags, rdata.tag.decode(), rdata.value.decode())
    elif rtype == "TLSA":
        set_target_tlsa(record, rdata.usage, rdata.selector, rdata.mtype, rdata.cert.hex())
    elif rtype == "SSHFP":
        set_target_sshfp(record, rdata.algorithm, rdata.fp_type, rdata.fingerprint.hex())
    elif rtype == "DS":
        set_target_ds(record, rdata.key_tag, int(rdata.algorithm), rdata.digest_type, rdata.digest.hex())
    elif rtype == "DNSKEY":
        set_target_dnskey(
            record,
            rdata.flags,
            rdata.protocol,
            int(rdata.algorithm),
            base64.b64encode(rdata.key).decode("ascii"),
        )
    elif rtype == "NAPTR":
        set_target_naptr(
            record,
            rdata.order,
            rdata.preference,
            rdata.flags.decode(),
            rdata.service.decode(),
            rdata.regexp.decode(),
            rdata.replacement.to_text(),
        )
    elif rtype in ("HTTPS", "SVCB"):
        parts = rdata.to_text().split(" ", 2)
        set_target_svcb(record, rdata.priority, rdata.target.to_text(), parts[2] if len(parts) > 2 else "")
    elif rtype == "LOC":
        record.target = rdata.to_text()
    elif rtype == "TXT":
        set_target_txt(record, [chunk.decode("utf-8", "surrogateescape") for chunk in rdata.strings])
    else:
        record.target = rdata.to_text()
    return record


def parse_record(label: str, rtype: str, ttl: int, text: str, origin: str) -> Record:
    """Build a Record from its BIND presentation form, e.g. ``10 mx.example.com.``."""
    rtype = rtype.upper()
    origin = origin.rstrip(".").lower()
    if rtype not in STANDARD_TYPES:
        record = Record(type=rtype, ttl=int(ttl))
        record.set_label(label, origin)
        record.target = text
        return record
    try:
        rdata = dns.rdata.from_text(
            dns.rdataclass.IN,
            rtype,
            text,
            origin=dns.name.from_text(origin),
            relativize=False,
        )
    except (dns.exception.DNSException, ValueError) as exc:
        raise ValidationError(f"cannot parse {rtype} data {text!r}: {exc}") from exc
    return record_from_rdata(rdata, fqdn_for(label, origin), origin, ttl)


def downcase(records: Iterable[Record]) -> None:
    """NFC-normalise and lower-case labels and case-insensitive targets."""
    for record in records:
        record.name = _fold(record.name)
        record.name_fqdn = _fold(record.name_fqdn)
        if record.type in CASE_INSENSITIVE_TYPES:
            record.target = _fold(record.target)


def canonicalize_targets(records: Iterable[Record], origin: str) -> None:
    """Turn relative hostname targets into FQDNs and re-emit addresses."""
    for record in records:
        if record.type in HOSTNAME_TARGET_TYPES:
            record.target = add_origin(record.target, origin)
        elif record.type in ("A", "AAAA") and record.target:
            try:
                record.target = ipaddress.ip_address(record.target).compressed
            except ValueError:
                pass


def post_process_records(records: Iterable[Record]) -> None:
    """Canonicalise records before diffing. Safe to apply repeatedly."""
    downcase(records)
