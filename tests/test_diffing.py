"""Differ behaviour: pairing, ordering, hands-off handling and messages."""

import pytest

from fakes import ds, make_domain, rec
from zonectl import diffing
from zonectl.diffing import ChangeKind
from zonectl.handsoff import configure_reporting
from zonectl.models import UnmanagedConfig, UnmanagedConflictError


@pytest.fixture(autouse=True)
def _reset_reporting():
    configure_reporting()
    yield
    configure_reporting()


def _kinds(changeset):
    return [(change.kind, change.key.type) for change in changeset.instructions]


def test_create_from_empty_zone():
    dc = make_domain(records=[rec("@", "A", 300, "1.2.3.4"), rec("www", "A", 300, "5.6.7.8")])

    changes = diffing.by_record_set([], dc)

    assert [c.kind for c in changes.instructions] == [ChangeKind.CREATE, ChangeKind.CREATE]
    assert changes.actual_change_count == 2
    assert changes.instructions[0].key.name_fqdn == "example.com"
    assert "+ CREATE www A 5.6.7.8 ttl=300" in changes.instructions[1].msgs


def test_no_changes_when_zone_matches():
    desired = [rec("@", "A", 300, "1.2.3.4"), rec("www", "A", 300, "5.6.7.8")]
    existing = [rec("@", "A", 300, "1.2.3.4"), rec("www", "A", 300, "5.6.7.8")]

    assert diffing.by_record_set(existing, make_domain(records=desired)).instructions == []
    assert diffing.by_record(existing, make_domain(records=desired)).instructions == []
    assert diffing.by_label(existing, make_domain(records=desired)).instructions == []
    assert not diffing.by_zone(existing, make_domain(records=desired)).changed


def test_ttl_change_is_a_single_change():
    existing = [rec("www", "A", 300, "5.6.7.8")]
    dc = make_domain(records=[rec("www", "A", 600, "5.6.7.8")])

    for differ in (diffing.by_record_set, diffing.by_record):
        changes = differ(existing, dc)
        assert len(changes.instructions) == 1
        change = changes.instructions[0]
        assert change.kind is ChangeKind.CHANGE
        assert "ttl 300 -> 600" in change.msgs_joined


def test_ignored_records_are_preserved_silently():
    existing = [rec("_acme-challenge", "TXT", 300, '"xyz"'), rec("www", "A", 300, "5.6.7.8")]
    dc = make_domain(
        records=[rec("www", "A", 300, "5.6.7.8")],
        unmanaged=[UnmanagedConfig(label_pattern="_acme-challenge", rtype_pattern="*", target_pattern="*")],
    )

    changes = diffing.by_record_set(existing, dc)

    assert changes.instructions == []
    assert changes.reports[0] == "1 records not being deleted because of IGNORE*():"


def test_desired_record_matching_ignore_pattern_is_rejected():
    existing = [rec("_acme-challenge", "TXT", 300, '"xyz"'), rec("www", "A", 300, "5.6.7.8")]
    dc = make_domain(
        records=[rec("www", "A", 300, "5.6.7.8"), rec("_acme-challenge", "TXT", 300, '"other"')],
        unmanaged=[UnmanagedConfig(label_pattern="_acme-challenge")],
    )

    with pytest.raises(UnmanagedConflictError, match="desired record collides with an ignored record"):
        diffing.by_record_set(existing, dc)


def test_safety_check_can_be_disabled():
    existing = [rec("_acme-challenge", "TXT", 300, '"xyz"')]
    dc = make_domain(
        records=[rec("_acme-challenge", "TXT", 300, '"other"')],
        unmanaged=[UnmanagedConfig(label_pattern="_acme-challenge")],
        unmanaged_unsafe=True,
    )

    changes = diffing.by_record(existing, dc)

    assert _kinds(changes) == [(ChangeKind.CREATE, "TXT")]
    assert '"other"' in changes.instructions[0].msgs_joined


def test_ds_and_ns_swap_is_ordered():
    existing = [rec("sub", "NS", 300, "ns.old."), ds("sub", 300, 1, 1, 1, "abc")]
    desired = [rec("sub", "NS", 300, "ns.new."), ds("sub", 300, 2, 2, 2, "def")]
    expected = [
        (ChangeKind.DELETE, "DS"),
        (ChangeKind.DELETE, "NS"),
        (ChangeKind.CREATE, "NS"),
        (ChangeKind.CREATE, "DS"),
    ]

    assert _kinds(diffing.by_record(existing, make_domain(records=desired))) == expected
    assert _kinds(diffing.by_record_set(existing, make_domain(records=desired))) == expected


def test_ns_change_without_ds_stays_a_change():
    existing = [rec("sub", "NS", 300, "ns.old.")]
    dc = make_domain(records=[rec("sub", "NS", 300, "ns.new.")])

    changes = diffing.by_record(existing, dc)

    assert _kinds(changes) == [(ChangeKind.CHANGE, "NS")]
    assert changes.instructions[0].msgs[0].startswith("± MODIFY sub NS ns.old. ttl=300 -> ns.new. ttl=300")


def test_deletes_precede_creates_at_a_label():
    existing = [rec("www", "A", 300, "1.2.3.4")]
    dc = make_domain(records=[rec("www", "CNAME", 300, "web.example.net.")])

    assert _kinds(diffing.by_record(existing, dc)) == [(ChangeKind.DELETE, "A"), (ChangeKind.CREATE, "CNAME")]


def test_labels_are_ordered_apex_first():
    dc = make_domain(
        records=[
            rec("b", "A", 300, "1.1.1.1"),
            rec("a.b", "A", 300, "1.1.1.2"),
            rec("@", "A", 300, "1.1.1.3"),
            rec("a", "A", 300, "1.1.1.4"),
        ]
    )

    names = [c.key.name_fqdn for c in diffing.by_record([], dc).instructions]

    assert names == ["example.com", "a.example.com", "b.example.com", "a.b.example.com"]


def test_record_mode_keeps_one_instruction_per_record():
    existing = [rec("@", "MX", 300, "10 mx1.example.com.")]
    dc = make_domain(
        records=[rec("@", "MX", 300, "10 mx1.example.com."), rec("@", "MX", 300, "20 mx2.example.com.")]
    )

    by_record = diffing.by_record(existing, dc)
    by_set = diffing.by_record_set(existing, dc)

    assert _kinds(by_record) == [(ChangeKind.CREATE, "MX")]
    assert by_record.instructions[0].new[0].mx_preference == 20
    assert _kinds(by_set) == [(ChangeKind.CHANGE, "MX")]
    assert len(by_set.instructions[0].new) == 2
    assert len(by_set.instructions[0].old) == 1


def test_record_set_delete_carries_every_old_record():
    existing = [rec("old", "A", 300, "1.1.1.1"), rec("old", "A", 300, "2.2.2.2")]

    changes = diffing.by_record_set(existing, make_domain())

    assert _kinds(changes) == [(ChangeKind.DELETE, "A")]
    assert len(changes.instructions[0].old) == 2
    assert len(changes.instructions[0].msgs) == 2


def test_by_label_groups_types():
    existing = [rec("www", "A", 300, "1.1.1.1")]
    dc = make_domain(records=[rec("www", "A", 300, "1.1.1.2"), rec("www", "AAAA", 300, "2001:db8::1")])

    changes = diffing.by_label(existing, dc)

    assert len(changes.instructions) == 1
    assert changes.instructions[0].kind is ChangeKind.CHANGE
    assert len(changes.instructions[0].msgs) == 2


def test_by_zone_lists_every_message():
    dc = make_domain(records=[rec("www", "A", 300, "1.1.1.2")])

    changes = diffing.by_zone([rec("ftp", "A", 300, "1.1.1.1")], dc)

    assert changes.changed
    assert changes.actual_change_count == 2
    assert changes.msgs[0].startswith("- DELETE ftp A")


def test_compare_extra_detects_metadata_changes():
    existing = [rec("www", "A", 300, "1.2.3.4")]
    desired = [rec("www", "A", 300, "1.2.3.4")]
    desired[0].meta.proxy = "on"

    changes = diffing.by_record(existing, make_domain(records=desired), lambda r: f"proxy={r.meta.proxy or 'off'}")

    assert _kinds(changes) == [(ChangeKind.CHANGE, "A")]
    assert "proxy=on" in changes.instructions[0].msgs_joined


def test_no_purge_keeps_unknown_records():
    existing = [rec("www", "A", 300, "1.1.1.1"), rec("legacy", "A", 300, "9.9.9.9")]
    dc = make_domain(records=[rec("www", "A", 300, "1.1.1.1")], keep_unknown=True)

    changes = diffing.by_record(existing, dc)

    assert changes.instructions == []
    assert changes.reports[0] == "1 records not being deleted because of NO_PURGE:"
    assert "legacy.example.com. A 9.9.9.9" in changes.reports[1]


def test_no_purge_still_manages_desired_rrsets():
    existing = [rec("www", "A", 300, "1.1.1.1"), rec("www", "A", 300, "2.2.2.2")]
    dc = make_domain(records=[rec("www", "A", 300, "1.1.1.1")], keep_unknown=True)

    assert _kinds(diffing.by_record(existing, dc)) == [(ChangeKind.DELETE, "A")]


def test_ensure_absent_overrides_no_purge():
    existing = [rec("www", "A", 300, "1.1.1.1"), rec("legacy", "A", 300, "9.9.9.9")]
    dc = make_domain(
        records=[rec("www", "A", 300, "1.1.1.1")],
        keep_unknown=True,
        ensure_absent=[rec("legacy", "A", 300, "9.9.9.9")],
    )

    changes = diffing.by_record(existing, dc)

    assert _kinds(changes) == [(ChangeKind.DELETE, "A")]
    assert changes.instructions[0].key.name_fqdn == "legacy.example.com"


def test_skip_report_is_truncated():
    configure_reporting(max_report=2)
    existing = [rec(f"host{i}", "A", 300, f"10.0.0.{i}") for i in range(4)]
    dc = make_domain(unmanaged=[UnmanagedConfig(label_pattern="host*")])

    reports = diffing.by_record(existing, dc).reports

    assert reports[0] == "4 records not being deleted because of IGNORE*():"
    assert reports[-1] == "    ...and 2 more... (use --full to show all)"
    assert len(reports) == 4


def test_differ_does_not_mutate_inputs():
    existing = [rec("www", "A", 300, "1.1.1.1")]
    desired = [rec("www", "A", 600, "1.1.1.2")]
    dc = make_domain(records=desired)

    diffing.by_record_set(existing, dc)

    assert [str(r) for r in existing] == ["www.example.com 300 A 1.1.1.1"]
    assert [str(r) for r in dc.records] == ["www.example.com 600 A 1.1.1.2"]
