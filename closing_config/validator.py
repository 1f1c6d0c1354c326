"""
Configuration Validator (``closing_config.validator``).

Responsibility
--------------
Validates a ``LedgerConfiguration`` before it is handed to the services,
so that a bad tolerance or a grant naming an unknown role fails at load
time rather than in the middle of a closing.

Invariants enforced
-------------------
* Series names are unique.
* Every series has at least one category and one kind; kinds are drawn
  from ``CONFIGURABLE_KINDS``.
* Grants only name ``KNOWN_ROLES``.
* Closing policies exist only on date-keyed series, have a non-empty
  prefix and a non-negative tolerance, and any ``counted_category`` is one
  of the series' categories.
* ``lock_series`` names another series that closes.
* ``timezone`` is a known IANA zone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from closing_config.schema import (
    CONFIGURABLE_KINDS,
    GRANT_ACTIONS,
    KNOWN_ROLES,
    LedgerConfiguration,
    SeriesConfig,
)


class ConfigValidationError(ValueError):
    """Raised when a configuration set fails validation."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty.  Warnings do not
    block loading.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def raise_if_invalid(self) -> None:
        if not self.is_valid:
            raise ConfigValidationError(self.errors)


def validate_configuration(config: LedgerConfiguration) -> ConfigValidationResult:
    """Validate a complete configuration set."""
    result = ConfigValidationResult()

    if not config.series:
        result.errors.append("Configuration declares no series")

    try:
        ZoneInfo(config.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        result.errors.append(f"Unknown timezone: {config.timezone!r}")

    seen: set[str] = set()
    for series in config.series:
        if series.name in seen:
            result.errors.append(f"Duplicate series: {series.name}")
        seen.add(series.name)
        _validate_series(series, result)

    for series in config.series:
        if series.lock_series is None:
            continue
        target = config.get_series(series.lock_series)
        if target is None:
            result.errors.append(
                f"{series.name}: lock_series {series.lock_series!r} is not a declared series"
            )
        elif not target.closes:
            result.errors.append(
                f"{series.name}: lock_series {series.lock_series!r} has no closing policy"
            )

    return result


def _validate_series(series: SeriesConfig, result: ConfigValidationResult) -> None:
    name = series.name

    if not series.categories:
        result.errors.append(f"{name}: at least one category is required")
    if len(set(series.categories)) != len(series.categories):
        result.errors.append(f"{name}: duplicate categories")

    if not series.kinds:
        result.errors.append(f"{name}: at least one movement kind is required")
    for kind in series.kind_names:
        if kind not in CONFIGURABLE_KINDS:
            result.errors.append(f"{name}: unknown movement kind {kind!r}")
    for kind in series.justified_kinds:
        if kind not in series.kind_names:
            result.errors.append(f"{name}: justified kind {kind!r} is not enabled")

    for action in GRANT_ACTIONS:
        for role in series.grants.roles_for(action):
            if role not in KNOWN_ROLES:
                result.errors.append(f"{name}: grant {action} names unknown role {role!r}")
    if not series.grants.record:
        result.warnings.append(f"{name}: no role may record movements")

    policy = series.closing
    if policy is None:
        if series.grants.close or series.grants.reopen or series.grants.delete:
            result.warnings.append(f"{name}: closing grants declared without a closing policy")
        return

    if not series.is_date_keyed:
        result.errors.append(f"{name}: only date-keyed series can be closed")
    if not policy.prefix:
        result.errors.append(f"{name}: closing prefix is required")
    if policy.tolerance < 0:
        result.errors.append(f"{name}: tolerance must be non-negative, got {policy.tolerance}")
    if policy.number_width < 1:
        result.errors.append(f"{name}: number_width must be positive")
    if policy.counted_category is not None and policy.counted_category not in series.categories:
        result.errors.append(
            f"{name}: counted_category {policy.counted_category!r} is not a category"
        )
