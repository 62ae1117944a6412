"""Compute ordered CREATE/CHANGE/DELETE instructions between two record sets."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Sequence, Tuple

from .handsoff import handsoff
from .models import DomainConfig, Record, RecordKey

LOG = logging.getLogger("zonectl")

CompareFn = Callable[[Record], str]


class ChangeKind(Enum):
    """What an instruction asks the provider to do."""

    CREATE = "CREATE"
    CHANGE = "CHANGE"
    DELETE = "DELETE"


_PHASE = {ChangeKind.DELETE: 0, ChangeKind.CHANGE: 1, ChangeKind.CREATE: 2}


@dataclass
class Change:
    """One instruction for a provider."""

    kind: ChangeKind
    key: RecordKey
    old: List[Record] = field(default_factory=list)
    new: List[Record] = field(default_factory=list)
    msgs: List[str] = field(default_factory=list)

    @property
    def msgs_joined(self) -> str:
        return "\n".join(self.msgs)

    def __str__(self) -> str:
        return self.msgs_joined


@dataclass
class ChangeSet:
    """Instructions plus report-only lines (skipped records)."""

    instructions: List[Change] = field(default_factory=list)
    reports: List[str] = field(default_factory=list)

    @property
    def actual_change_count(self) -> int:
        return len(self.instructions)


@dataclass
class ZoneChanges:
    """Whole-zone result for providers that rewrite the zone in one go."""

    msgs: List[str] = field(default_factory=list)
    reports: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.msgs)

    @property
    def actual_change_count(self) -> int:
        return len(self.msgs)


@dataclass
class _Op:
    """A record-level pairing result inside one RRset."""

    kind: str  # create, delete, modify, ttl
    old: Record | None
    new: Record | None

    def message(self, compare_fn: CompareFn | None) -> str:
        """Render the one-line diff, e.g. ``± MODIFY www A 1.2.3.4 ttl=300 -> 1.2.3.5 ttl=300``."""
        if self.kind == "create":
            rec = self.new
            return f"+ CREATE {rec.name} {rec.type} {rec.get_target_combined()} ttl={rec.ttl}"
        if self.kind == "delete":
            rec = self.old
            return f"- DELETE {rec.name} {rec.type} {rec.get_target_combined()} ttl={rec.ttl}"
        old, new = self.old, self.new
        if self.kind == "ttl":
            return f"± MODIFY-TTL {new.name} {new.type} {new.get_target_combined()} ttl {old.ttl} -> {new.ttl}"
        return (
            f"± MODIFY {new.name} {new.type} "
            f"{old.to_comparable_no_ttl(compare_fn)} ttl={old.ttl} -> "
            f"{new.to_comparable_no_ttl(compare_fn)} ttl={new.ttl}"
        )

    @property
    def record(self) -> Record:
        return self.new if self.new is not None else self.old


def _full_comparable(record: Record, compare_fn: CompareFn | None) -> str:
    return f"{record.to_comparable_no_ttl(compare_fn)} ttl={record.ttl}"


def _take(pool: List[Record], wanted: str, project: Callable[[Record], str]) -> Record | None:
    """Remove and return the first record whose projection equals ``wanted``."""
    for index, candidate in enumerate(pool):
        if project(candidate) == wanted:
            return pool.pop(index)
    return None


def _pair_rrset(existing: Sequence[Record], desired: Sequence[Record], compare_fn: CompareFn | None) -> List[_Op]:
    """Pair records of one RRset; identical records produce no op."""
    full = lambda r: _full_comparable(r, compare_fn)  # noqa: E731
    data = lambda r: r.to_comparable_no_ttl(compare_fn)  # noqa: E731

    old_pool = sorted(existing, key=full)
    new_left: List[Record] = []
    for record in sorted(desired, key=full):
        if _take(old_pool, full(record), full) is None:
            new_left.append(record)

    ops: List[_Op] = []
    remaining_new: List[Record] = []
    for record in new_left:
        match = _take(old_pool, data(record), data)
        if match is None:
            remaining_new.append(record)
        else:
            ops.append(_Op("ttl", match, record))

    for old, new in zip(old_pool, remaining_new):
        ops.append(_Op("modify", old, new))
    for old in old_pool[len(remaining_new):]:
        ops.append(_Op("delete", old, None))
    for new in remaining_new[len(old_pool):]:
        ops.append(_Op("create", None, new))
    return ops


def _group(records: Sequence[Record]) -> Dict[RecordKey, List[Record]]:
    """Bucket records by (owner, type)."""
    grouped: Dict[RecordKey, List[Record]] = defaultdict(list)
    for record in records:
        grouped[record.key()].append(record)
    return grouped


def _label_order(name_fqdn: str) -> Tuple[str, ...]:
    return tuple(reversed(name_fqdn.split(".")))


def _type_rank(kind: ChangeKind, rtype: str) -> int:
    # DS goes before NS when removing, NS before DS when adding.
    if kind is ChangeKind.DELETE:
        return 0 if rtype == "DS" else 1
    return 0 if rtype == "NS" else 1


def _sort_key(change: Change) -> tuple:
    """Label, then phase, then DS/NS rank, then type and target."""
    records = change.new or change.old
    target = records[0].get_target_combined() if records else ""
    return (
        _label_order(change.key.name_fqdn),
        _PHASE[change.kind],
        _type_rank(change.kind, change.key.type),
        change.key.type,
        target,
    )


def sort_changes(changes: List[Change]) -> List[Change]:
    """Order instructions the way providers must apply them."""
    return sorted(changes, key=_sort_key)


def _prepare(
    existing: Sequence[Record], dc: DomainConfig, compare_fn: CompareFn | None
) -> Tuple[List[str], Dict[RecordKey, List[Record]], Dict[RecordKey, List[Record]], Dict[RecordKey, List[_Op]]]:
    result = handsoff(
        dc.name,
        existing,
        dc.records,
        absences=dc.ensure_absent,
        unmanaged=dc.unmanaged,
        unmanaged_unsafe=dc.unmanaged_unsafe,
        keep_unknown=dc.keep_unknown,
        compare_fn=compare_fn,
    )
    old_groups = _group(existing)
    new_groups = _group(result.desired)
    ops: Dict[RecordKey, List[_Op]] = {}
    for key in set(old_groups) | set(new_groups):
        pairs = _pair_rrset(old_groups.get(key, []), new_groups.get(key, []), compare_fn)
        if pairs:
            ops[key] = pairs
    return result.reports, old_groups, new_groups, ops


def _split_labels(ops: Dict[RecordKey, List[_Op]]) -> set:
    """Labels where both DS and NS change; those changes become DELETE+CREATE."""
    types_by_label: Dict[str, set] = defaultdict(set)
    for key in ops:
        types_by_label[key.name_fqdn].add(key.type)
    return {label for label, types in types_by_label.items() if {"DS", "NS"} <= types}


def by_record_set(existing: Sequence[Record], dc: DomainConfig, compare_fn: CompareFn | None = None) -> ChangeSet:
    """One instruction per changed (label, type)."""
    reports, old_groups, new_groups, ops = _prepare(existing, dc, compare_fn)
    split = _split_labels(ops)
    changes: List[Change] = []
    for key, pairs in ops.items():
        msgs = [op.message(compare_fn) for op in _sorted_ops(pairs)]
        old = old_groups.get(key, [])
        new = new_groups.get(key, [])
        if not new:
            changes.append(Change(ChangeKind.DELETE, key, old=list(old), msgs=msgs))
        elif not old:
            changes.append(Change(ChangeKind.CREATE, key, new=list(new), msgs=msgs))
        elif key.name_fqdn in split and key.type in ("DS", "NS"):
            gone = [op for op in pairs if op.old is not None]
            added = [op for op in pairs if op.new is not None]
            changes.append(
                Change(
                    ChangeKind.DELETE,
                    key,
                    old=[op.old for op in gone],
                    msgs=[_Op("delete", op.old, None).message(compare_fn) for op in gone],
                )
            )
            changes.append(
                Change(
                    ChangeKind.CREATE,
                    key,
                    new=[op.new for op in added],
                    msgs=[_Op("create", None, op.new).message(compare_fn) for op in added],
                )
            )
        else:
            changes.append(Change(ChangeKind.CHANGE, key, old=list(old), new=list(new), msgs=msgs))
    result = ChangeSet(instructions=sort_changes(changes), reports=reports)
    LOG.debug("%s: %d record set changes", dc.name, result.actual_change_count)
    return result


def by_record(existing: Sequence[Record], dc: DomainConfig, compare_fn: CompareFn | None = None) -> ChangeSet:
    """One instruction per changed record."""
    reports, _, _, ops = _prepare(existing, dc, compare_fn)
    split = _split_labels(ops)
    changes: List[Change] = []
    for key, pairs in ops.items():
        for op in pairs:
            if op.kind in ("modify", "ttl") and key.name_fqdn in split and key.type in ("DS", "NS"):
                expanded = [_Op("delete", op.old, None), _Op("create", None, op.new)]
            else:
                expanded = [op]
            for item in expanded:
                changes.append(_op_to_change(key, item, compare_fn))
    result = ChangeSet(instructions=sort_changes(changes), reports=reports)
    LOG.debug("%s: %d record changes", dc.name, result.actual_change_count)
    return result


def by_label(existing: Sequence[Record], dc: DomainConfig, compare_fn: CompareFn | None = None) -> ChangeSet:
    """One instruction per changed label, carrying every record at that label."""
    reports, old_groups, new_groups, ops = _prepare(existing, dc, compare_fn)
    by_name: Dict[str, List[_Op]] = defaultdict(list)
    for key, pairs in ops.items():
        by_name[key.name_fqdn].extend(pairs)
    changes: List[Change] = []
    for name, pairs in by_name.items():
        old = [r for key, recs in old_groups.items() if key.name_fqdn == name for r in recs]
        new = [r for key, recs in new_groups.items() if key.name_fqdn == name for r in recs]
        msgs = [op.message(compare_fn) for op in _sorted_ops(pairs)]
        key = RecordKey(name, "")
        if not new:
            kind = ChangeKind.DELETE
        elif not old:
            kind = ChangeKind.CREATE
        else:
            kind = ChangeKind.CHANGE
        changes.append(Change(kind, key, old=old, new=new, msgs=msgs))
    return ChangeSet(instructions=sort_changes(changes), reports=reports)


def by_zone(existing: Sequence[Record], dc: DomainConfig, compare_fn: CompareFn | None = None) -> ZoneChanges:
    """Whole-zone messages for providers that replace the zone at once."""
    changeset = by_record(existing, dc, compare_fn)
    msgs = [msg for change in changeset.instructions for msg in change.msgs]
    return ZoneChanges(msgs=msgs, reports=changeset.reports)


def desired_records(existing: Sequence[Record], dc: DomainConfig, compare_fn: CompareFn | None = None) -> List[Record]:
    """Return the records a zone should contain once hands-off records are kept."""
    result = handsoff(
        dc.name,
        existing,
        dc.records,
        absences=dc.ensure_absent,
        unmanaged=dc.unmanaged,
        unmanaged_unsafe=dc.unmanaged_unsafe,
        keep_unknown=dc.keep_unknown,
        compare_fn=compare_fn,
    )
    return result.desired


def _op_to_change(key: RecordKey, op: _Op, compare_fn: CompareFn | None) -> Change:
    msg = op.message(compare_fn)
    if op.kind == "create":
        return Change(ChangeKind.CREATE, key, new=[op.new], msgs=[msg])
    if op.kind == "delete":
        return Change(ChangeKind.DELETE, key, old=[op.old], msgs=[msg])
    return Change(ChangeKind.CHANGE, key, old=[op.old], new=[op.new], msgs=[msg])


_OP_PHASE = {"delete": 0, "modify": 1, "ttl": 1, "create": 2}


def _sorted_ops(ops: Sequence[_Op]) -> List[_Op]:
    return sorted(
        ops,
        key=lambda op: (
            _label_order(op.record.name_fqdn),
            _OP_PHASE[op.kind],
            op.record.type,
            op.record.get_target_combined(),
        ),
    )
