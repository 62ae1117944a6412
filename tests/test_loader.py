import json

import pytest

from zonectl.loader import load_config_file, parse_config
from zonectl.models import ValidationError


def _document(records, **domain):
    return {
        "registrars": [{"name": "reg", "type": "NONE"}],
        "dns_providers": [{"name": "bind", "type": "BIND", "meta": {"default_ns": ["ns1.example.net."]}}],
        "domains": [{"name": "Example.com", "registrar": "reg", "dnsProviders": {"bind": -1}, "records": records, **domain}],
    }


def test_records_from_typed_and_combined_fields():
    cfg = parse_config(
        _document(
            [
                {"type": "a", "name": "www", "target": "1.2.3.4"},
                {"type": "MX", "name": "@", "target": "mail", "mxpreference": 10},
                {"type": "MX", "name": "@", "target": "20 mx2"},
                {"type": "TXT", "name": "@", "txtstrings": ["part one", "part two"]},
                {"type": "CNAME", "name": "ftp.example.com.", "target": "www"},
                {"type": "SRV", "name": "_sip._tcp", "target": "sip", "srvpriority": 1, "srvweight": 2, "srvport": 5060},
                {"type": "CAA", "name": "@", "target": "letsencrypt.org", "caaflag": 0, "caatag": "issue"},
            ]
        )
    )

    dc = cfg.domains[0]
    assert dc.name == "example.com"
    assert dc.registrar_name == "reg"
    assert dc.dns_provider_names == {"bind": -1}
    assert [str(r) for r in dc.records] == [
        "www.example.com 300 A 1.2.3.4",
        "example.com 300 MX 10 mail.example.com.",
        "example.com 300 MX 20 mx2.example.com.",
        'example.com 300 TXT "part one" "part two"',
        "ftp.example.com 300 CNAME www.example.com.",
        "_sip._tcp.example.com 300 SRV 1 2 5060 sip.example.com.",
        'example.com 300 CAA 0 issue "letsencrypt.org"',
    ]
    assert cfg.dns_providers[0].metadata == {"default_ns": ["ns1.example.net."]}


def test_domain_options_and_metadata():
    cfg = parse_config(
        _document(
            [{"type": "A", "name": "www", "target": "1.2.3.4", "ttl": 60, "meta": {"cloudflare_proxy": "on", "tags": "a, b"}}],
            unmanaged=[{"label_pattern": "_acme*", "rType_pattern": "TXT"}],
            keepunknown=True,
            unmanaged_disable_safety_check=True,
            recordsabsent=[{"type": "A", "name": "old", "target": "9.9.9.9"}],
            nameservers=["NS1.Example.net.", {"name": "ns2.example.net"}],
            meta={"no_ns": True, "ns_ttl": 86400},
        )
    )

    dc = cfg.domains[0]
    record = dc.records[0]
    assert record.ttl == 60
    assert record.meta.proxy == "on"
    assert record.meta.tags == ("a", "b")
    assert dc.unmanaged[0].rtype_pattern == "TXT"
    assert dc.unmanaged[0].target_pattern == "*"
    assert dc.keep_unknown and dc.unmanaged_unsafe
    assert [r.name for r in dc.ensure_absent] == ["old"]
    assert [ns.name for ns in dc.nameservers] == ["ns1.example.net", "ns2.example.net"]
    assert dc.metadata["no_ns"] == "true"
    assert dc.metadata["ns_ttl"] == "86400"


def test_split_horizon_variants_share_a_name():
    document = _document([])
    document["domains"].append({"name": "example.com!inside", "dnsProviders": {"bind": -1}})

    cfg = parse_config(document)

    assert [(d.name, d.tag, d.unique_name) for d in cfg.domains] == [
        ("example.com", "", "example.com"),
        ("example.com", "inside", "example.com!inside"),
    ]
    assert cfg.find_domain("example.com!inside") is cfg.domains[1]


@pytest.mark.parametrize(
    "record, message",
    [
        ({"name": "www", "target": "1.2.3.4"}, "IR validation error"),
        ({"type": "A", "name": "www", "target": "not-an-ip"}, "not an IP address"),
        ({"type": "A", "name": "www.other.com.", "target": "1.2.3.4"}, "outside the zone"),
        ({"type": "CAA", "target": "x", "caaflag": 0, "caatag": "bogus"}, "CAA tag"),
        ({"type": "A", "name": "www", "target": "1.2.3.4", "ttl": -1}, "IR validation error"),
    ],
)
def test_invalid_records(record, message):
    with pytest.raises(ValidationError, match=message):
        parse_config(_document([record]))


def test_json_file(tmp_path):
    path = tmp_path / "dnsconfig.json"
    path.write_text(json.dumps(_document([{"type": "A", "name": "@", "target": "1.2.3.4"}])))

    cfg = load_config_file(path)

    assert cfg.domains[0].records[0].name == "@"


def test_yaml_file_is_rendered_with_env_and_vars(tmp_path, monkeypatch):
    monkeypatch.setenv("WEB_IP", "10.0.0.5")
    path = tmp_path / "dnsconfig.yaml"
    path.write_text(
        "dns_providers:\n"
        "  - name: bind\n"
        "domains:\n"
        "  - name: {{ zone }}\n"
        "    dnsProviders: {bind: 0}\n"
        "    records:\n"
        "      - {type: A, name: www, target: \"{{ env.WEB_IP }}\"}\n"
    )

    cfg = load_config_file(path, template_vars={"zone": "example.org"})

    assert cfg.domains[0].name == "example.org"
    assert cfg.domains[0].records[0].target == "10.0.0.5"


def test_file_errors(tmp_path):
    with pytest.raises(ValidationError, match="does not exist"):
        load_config_file(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{")
    with pytest.raises(ValidationError, match="Failed to parse JSON"):
        load_config_file(broken)

    undefined = tmp_path / "undefined.yaml"
    undefined.write_text("domains: [{name: {{ nope }}}]\n")
    with pytest.raises(ValidationError, match="Failed to render"):
        load_config_file(undefined)
