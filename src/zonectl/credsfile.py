"""Load the credentials store (creds.json or creds.yaml)."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from .models import CredentialsError

LOG = logging.getLogger("zonectl")

Credentials = Dict[str, Dict[str, str]]

TYPE_KEY = "TYPE"
EXCLUDE_KEY = "_exclude_from_defaults"

SYNTHESIZED = {
    "none": {TYPE_KEY: "NONE"},
    "bind": {TYPE_KEY: "BIND"},
}


def _substitute(provider: str, key: str, value: Any) -> str:
    """Replace ``$VAR`` values with the environment variable of that name."""
    text = "" if value is None else str(value)
    if text.startswith("$") and len(text) > 1:
        var = text[1:]
        if var not in os.environ:
            raise CredentialsError(
                f"creds entry {provider!r} key {key!r} refers to ${var}, which is not set in the environment."
            )
        return os.environ[var]
    return text


def parse_credentials(data: Any, source: str = "<creds>") -> Credentials:
    """Validate the loaded document and substitute environment variables."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise CredentialsError(f"{source}: expected a mapping of provider names to settings.")
    creds: Credentials = {}
    for provider, fields in data.items():
        if fields is None:
            fields = {}
        if not isinstance(fields, dict):
            raise CredentialsError(f"{source}: entry {provider!r} must be a mapping.")
        creds[str(provider)] = {str(key): _substitute(provider, key, value) for key, value in fields.items()}
    for name, fields in SYNTHESIZED.items():
        creds.setdefault(name, dict(fields))
    return creds


def load_credentials(path: Path) -> Credentials:
    """Read a credentials file; a missing file yields only the synthesized entries."""
    if not path.exists():
        LOG.debug("Credentials file %s not found; using built-in entries only", path)
        return parse_credentials({}, str(path))
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CredentialsError(f"Failed to read {path}: {exc}") from exc
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text) if text.strip() else {}
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise CredentialsError(f"Failed to parse {path}: {exc}") from exc
    return parse_credentials(data, str(path))


def is_excluded_from_defaults(fields: Dict[str, str]) -> bool:
    return fields.get(EXCLUDE_KEY, "").strip().lower() in {"1", "true", "yes"}
