import json

from zonectl.models import Correction
from zonectl.report import ReportItem, gen_report_item, parse_correction_msg, report_to_json, write_report


def _noop():
    return None


def test_parse_correction_msg_strips_styling():
    msg = "\x1b[32m+ CREATE www.example.com A 1.2.3.4 ttl=300\x1b[0m\n\n  - DELETE x.example.com A 9.9.9.9 ttl=300 "

    assert parse_correction_msg(msg) == [
        "+ CREATE www.example.com A 1.2.3.4 ttl=300",
        "- DELETE x.example.com A 9.9.9.9 ttl=300",
    ]


def test_reports_do_not_count():
    corrections = [
        Correction.message("1 records not being deleted because of NO_PURGE:"),
        Correction(msg="GENERATE_ZONEFILE: 'example.com'. Changes:\n+ CREATE a.example.com A 1.1.1.1 ttl=300", action=_noop),
    ]

    item = gen_report_item("example.com", corrections, provider="bind")

    assert item.corrections == 2
    assert item.correction_details[1] == "+ CREATE a.example.com A 1.1.1.1 ttl=300"
    assert item.to_dict()["provider"] == "bind"
    assert "registrar" not in item.to_dict()


def test_write_report(tmp_path):
    items = [ReportItem(domain="example.com", corrections=0, registrar="none")]
    path = tmp_path / "reports" / "run.json"

    write_report(path, items)
    write_report(None, items)

    assert json.loads(path.read_text()) == [
        {"domain": "example.com", "corrections": 0, "correction_details": [], "registrar": "none"}
    ]
    assert report_to_json([]) == "[]"
