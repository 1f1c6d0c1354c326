"""
Configuration Loader (``closing_config.loader``).

Responsibility
--------------
Loads the YAML fragments of a configuration set and parses them into the
frozen dataclasses of ``closing_config.schema``.  Runtime callers go
through ``closing_config.get_active_config()`` instead.

Layout of a configuration set directory::

    <set>/root.yaml          config_id, version, description, timezone
    <set>/series/*.yaml      one series per file

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Bad values (unknown key type, sign rule, non-numeric tolerance)
  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from closing_config.schema import (
    ClosingPolicy,
    KeyType,
    LedgerConfiguration,
    RoleGrants,
    SeriesConfig,
    SignRule,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal:
    """
    Parse a Decimal from YAML.

    Strings and ints only: YAML floats would carry binary error into the
    tolerance.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Decimal values must be quoted strings or ints, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Cannot parse decimal from {value!r}") from exc


def _str_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def parse_grants(data: dict[str, Any]) -> RoleGrants:
    """Parse a RoleGrants block."""
    return RoleGrants(
        record=_str_tuple(data.get("record")),
        void=_str_tuple(data.get("void")),
        close=_str_tuple(data.get("close")),
        reopen=_str_tuple(data.get("reopen")),
        delete=_str_tuple(data.get("delete")),
    )


def parse_closing_policy(data: dict[str, Any]) -> ClosingPolicy:
    """Parse a ClosingPolicy block."""
    return ClosingPolicy(
        prefix=data["prefix"],
        tolerance=parse_decimal(data.get("tolerance", "0")),
        number_width=int(data.get("number_width", 6)),
        photo_required=bool(data.get("photo_required", False)),
        counted_category=data.get("counted_category"),
    )


def parse_series(data: dict[str, Any]) -> SeriesConfig:
    """
    Parse a SeriesConfig from a dict.

    ``kinds`` is a mapping of kind name to sign rule; it is stored as a
    sorted tuple of pairs so the dataclass stays hashable.
    """
    kinds = tuple(
        (str(name), SignRule(rule))
        for name, rule in sorted((data.get("kinds") or {}).items())
    )
    closing_data = data.get("closing")
    return SeriesConfig(
        name=data["name"],
        key_type=KeyType(data["key_type"]),
        categories=_str_tuple(data.get("categories")),
        kinds=kinds,
        grants=parse_grants(data.get("grants") or {}),
        closing=parse_closing_policy(closing_data) if closing_data else None,
        allow_negative_balance=bool(data.get("allow_negative_balance", True)),
        lock_series=data.get("lock_series"),
        justified_kinds=_str_tuple(data.get("justified_kinds")),
        description=data.get("description", ""),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_configuration_set(directory: Path) -> LedgerConfiguration:
    """
    Load a configuration set directory into a LedgerConfiguration.

    Series fragments are read in file-name order; the checksum covers the
    root document and every fragment.
    """
    root = load_yaml_file(directory / "root.yaml")

    series_dir = directory / "series"
    fragments: list[dict[str, Any]] = []
    if series_dir.is_dir():
        for path in sorted(series_dir.glob("*.yaml")):
            fragments.append(load_yaml_file(path))
    fragments.extend(root.get("series") or [])

    checksum = compute_checksum({"root": {k: v for k, v in root.items() if k != "series"},
                                 "series": fragments})

    return LedgerConfiguration(
        config_id=root["config_id"],
        version=int(root.get("version", 1)),
        series=tuple(parse_series(f) for f in fragments),
        description=root.get("description", ""),
        checksum=checksum,
        timezone=str(root.get("timezone", "UTC")),
    )
