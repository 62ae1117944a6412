"""IGNORE(), NO_PURGE and ENSURE_ABSENT handling for the differ."""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from .models import Record, UnmanagedConfig, UnmanagedConflictError

LOG = logging.getLogger("zonectl")

_MAX_REPORT = 5
_FULL_REPORT = False


def configure_reporting(max_report: int = 5, full: bool = False) -> None:
    """Set how many skipped records are listed before the list is truncated."""
    global _MAX_REPORT, _FULL_REPORT
    _MAX_REPORT = max(0, int(max_report))
    _FULL_REPORT = full


def _glob(pattern: str, value: str) -> bool:
    """Case-insensitive glob; an empty pattern matches anything."""
    pattern = (pattern or "*").lower()
    if pattern == "*":
        return True
    value = value.lower()
    return fnmatch.fnmatchcase(value, pattern) or fnmatch.fnmatchcase(value.rstrip("."), pattern.rstrip("."))


def _rtype_match(pattern: str, rtype: str) -> bool:
    pattern = (pattern or "*").strip()
    if pattern == "*":
        return True
    wanted = {part.strip().upper() for part in pattern.split(",") if part.strip()}
    return rtype.upper() in wanted


def matches(pattern: UnmanagedConfig, record: Record) -> bool:
    """Return True when the record's label, type and target all match."""
    return (
        _glob(pattern.label_pattern, record.name)
        and _rtype_match(pattern.rtype_pattern, record.type)
        and _glob(pattern.target_pattern, record.get_target_field())
    )


def is_ignored(record: Record, patterns: Iterable[UnmanagedConfig]) -> bool:
    """True when any IGNORE pattern covers ``record``."""
    return any(matches(pattern, record) for pattern in patterns)


def find_conflicts(patterns: Sequence[UnmanagedConfig], desired: Iterable[Record]) -> list[Record]:
    """Return desired records that an IGNORE pattern would hide."""
    if not patterns:
        return []
    return [record for record in desired if is_ignored(record, patterns)]


def report_skips(records: Sequence[Record], full: bool | None = None) -> list[str]:
    """Render skipped records, truncated unless ``full``."""
    full = _FULL_REPORT if full is None else full
    shorten = not full and len(records) > _MAX_REPORT
    shown = records[:_MAX_REPORT] if shorten else records
    lines = [f"    {record.name_fqdn}. {record.type} {record.get_target_combined()}" for record in shown]
    if shorten:
        lines.append(f"    ...and {len(records) - _MAX_REPORT} more... (use --full to show all)")
    return lines


@dataclass
class HandsOffResult:
    """Desired records after IGNORE/NO_PURGE processing, plus skip reports."""

    desired: list[Record]
    reports: list[str] = field(default_factory=list)


def _identity(record: Record, compare_fn: Callable[[Record], str] | None) -> tuple[str, str, str]:
    return (record.name_fqdn, record.type, record.to_comparable_no_ttl(compare_fn))


def handsoff(
    zone: str,
    existing: Sequence[Record],
    desired: Sequence[Record],
    absences: Sequence[Record] = (),
    unmanaged: Sequence[UnmanagedConfig] = (),
    unmanaged_unsafe: bool = False,
    keep_unknown: bool = False,
    compare_fn: Callable[[Record], str] | None = None,
) -> HandsOffResult:
    """Fold records the user asked us to leave alone into ``desired``.

    Existing records matching an IGNORE pattern, and (with ``keep_unknown``)
    existing records whose label and type are not desired at all, are added to
    the desired list so the differ never deletes them. ENSURE_ABSENT records
    are exempt from NO_PURGE and removed from the desired list.
    """
    absent_ids = {(r.name_fqdn, r.type, r.get_target_combined()) for r in absences}
    desired = [r for r in desired if (r.name_fqdn, r.type, r.get_target_combined()) not in absent_ids]
    desired_keys = {r.key() for r in desired}

    ignorable: list[Record] = []
    foreign: list[Record] = []
    for record in existing:
        if is_ignored(record, unmanaged):
            ignorable.append(record)
        elif keep_unknown and record.key() not in desired_keys:
            if (record.name_fqdn, record.type, record.get_target_combined()) not in absent_ids:
                foreign.append(record)

    reports: list[str] = []
    if foreign:
        reports.append(f"{len(foreign)} records not being deleted because of NO_PURGE:")
        reports.extend(report_skips(foreign))
    if ignorable:
        reports.append(f"{len(ignorable)} records not being deleted because of IGNORE*():")
        reports.extend(report_skips(ignorable))

    conflicts = find_conflicts(unmanaged, desired)
    if conflicts:
        details = "; ".join(f"{r.name_fqdn} {r.type} {r.get_target_combined()}" for r in conflicts)
        if not unmanaged_unsafe:
            raise UnmanagedConflictError(
                f"{zone}: desired record collides with an ignored record: {details} "
                "(set unmanaged_disable_safety_check to allow this)"
            )
        LOG.warning("%s: ignored records are also desired (safety check disabled): %s", zone, details)

    seen = {_identity(r, compare_fn) for r in desired}
    merged = list(desired)
    for record in ignorable + foreign:
        identity = _identity(record, compare_fn)
        if identity not in seen:
            seen.add(identity)
            merged.append(record)
    return HandsOffResult(desired=merged, reports=reports)
