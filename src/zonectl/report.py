"""Machine-readable JSON report of planned corrections."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .models import Correction

ANSI_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")


@dataclass
class ReportItem:
    """One (zone, provider) or (zone, registrar) entry in the report."""

    domain: str
    corrections: int
    correction_details: list[str] = field(default_factory=list)
    provider: str = ""
    registrar: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert into a serialisable dictionary, omitting empty provider/registrar."""
        data: dict[str, Any] = {
            "domain": self.domain,
            "corrections": self.corrections,
            "correction_details": list(self.correction_details),
        }
        if self.provider:
            data["provider"] = self.provider
        if self.registrar:
            data["registrar"] = self.registrar
        return data


def parse_correction_msg(msg: str) -> list[str]:
    """Strip terminal styling and split a message into one line per change."""
    cleaned = ANSI_RE.sub("", msg)
    return [line.strip() for line in cleaned.split("\n") if line.strip()]


def gen_report_item(
    zone: str,
    corrections: Iterable[Correction],
    provider: str = "",
    registrar: str = "",
) -> ReportItem:
    """Summarise the actionable corrections for one zone and provider."""
    details: list[str] = []
    for correction in corrections:
        if correction.action is not None:
            details.extend(parse_correction_msg(correction.msg))
    return ReportItem(
        domain=zone,
        corrections=len(details),
        correction_details=details,
        provider=provider,
        registrar=registrar,
    )


def report_to_json(items: Iterable[ReportItem]) -> str:
    """Return the JSON representation of the report."""
    return json.dumps([item.to_dict() for item in items], indent=2)


def write_report(path: Path | None, items: Iterable[ReportItem]) -> None:
    """Write the report, creating parent directories. No path means no report."""
    if path is None or str(path) == "":
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report_to_json(items), encoding="utf-8")
