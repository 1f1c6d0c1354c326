"""
closing_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a validated ``LedgerConfiguration``.
    YAML loading is internal tooling and never exposed to callers.

Architecture position:
    Configuration -- YAML-driven series definitions.  This package is a
    leaf: it imports nothing from ``closing_kernel``.  The kernel services
    receive the ``LedgerConfiguration`` from their caller.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set directory, or no set
      matching the requested ``config_id``.
    - ``ConfigValidationError`` -- structural validation failed.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry with the config_id, version and
    checksum, tying each closing back to the configuration in force.
"""

from __future__ import annotations

import logging
from pathlib import Path

from closing_config.loader import load_configuration_set
from closing_config.schema import (
    ClosingPolicy,
    KeyType,
    LedgerConfiguration,
    RoleGrants,
    SeriesConfig,
    SignRule,
)
from closing_config.validator import (
    ConfigValidationError,
    ConfigValidationResult,
    validate_configuration,
)

_logger = logging.getLogger("closing_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

__all__ = [
    "ClosingPolicy",
    "ConfigValidationError",
    "ConfigValidationResult",
    "KeyType",
    "LedgerConfiguration",
    "RoleGrants",
    "SeriesConfig",
    "SignRule",
    "get_active_config",
    "validate_configuration",
]


def get_active_config(
    config_dir: Path | None = None,
    config_id: str | None = None,
) -> LedgerConfiguration:
    """The ONLY public configuration entrypoint.

    Args:
        config_dir: Override path to the configuration sets directory.
            Defaults to closing_config/sets/.
        config_id: Select a set by id when the directory holds several.
            With a single set it may be omitted.

    Raises:
        FileNotFoundError: If no matching configuration set is found.
        ValueError: If several sets match and no config_id was given.
        ConfigValidationError: If validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    config = _find_matching_config(sets_dir, config_id)

    validation = validate_configuration(config)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})
    validation.raise_if_invalid()

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "series": list(config.series_names),
        },
    )
    return config


def _find_matching_config(sets_dir: Path, config_id: str | None) -> LedgerConfiguration:
    """Scan *sets_dir* for configuration sets and pick one.

    A set is any subdirectory holding a ``root.yaml``.  *sets_dir* may
    itself be a set.
    """
    if not sets_dir.is_dir():
        raise FileNotFoundError(f"Configuration sets directory not found: {sets_dir}")

    if (sets_dir / "root.yaml").exists():
        candidates = [load_configuration_set(sets_dir)]
    else:
        candidates = [
            load_configuration_set(subdir)
            for subdir in sorted(sets_dir.iterdir())
            if subdir.is_dir() and (subdir / "root.yaml").exists()
        ]

    if config_id is not None:
        candidates = [c for c in candidates if c.config_id == config_id]
        if not candidates:
            raise FileNotFoundError(f"No configuration set {config_id!r} in {sets_dir}")

    if not candidates:
        raise FileNotFoundError(f"No configuration sets found in {sets_dir}")
    if len(candidates) > 1:
        raise ValueError(
            f"Several configuration sets in {sets_dir}; pass config_id "
            f"(one of {', '.join(c.config_id for c in candidates)})"
        )
    return candidates[0]
