"""
procure_config -- single public entrypoint for approval policy configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains a
    ``PolicySnapshot``.  It loads the YAML policy set, validates it and
    builds the frozen snapshot.  YAML loading itself is internal.

Invariants enforced:
    - Single entrypoint: all policy configuration flows through
      ``get_active_config()``.
    - A policy set with validation errors is never built.
    - Deterministic: the same YAML always yields the same snapshot checksum.

Failure modes:
    - ``FileNotFoundError`` -- the policy file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ConfigurationError`` -- structural validation failed; ``errors``
      lists every problem found.

Every successful call emits a ``POLICY_CONFIG_TRACE`` log record with the
policy name, version, checksum and component counts, so each routing
decision can be tied back to the configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from procure_config.loader import build_snapshot, load_yaml_file
from procure_config.validator import ConfigValidationResult, validate_policy_data
from procure_kernel.domain.policy import PolicySnapshot
from procure_kernel.exceptions import ConfigurationError

_logger = logging.getLogger("procure_kernel.config")

DEFAULT_POLICY_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> PolicySnapshot:
    """
    Load, validate and build the active policy snapshot.

    Args:
        path: Policy YAML file.  Defaults to ``procure_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: the file does not exist.
        ConfigurationError: validation failed.
    """
    policy_path = Path(path) if path is not None else DEFAULT_POLICY_PATH
    data = load_yaml_file(policy_path)

    validation = validate_policy_data(data)
    for warning in validation.warnings:
        _logger.warning(
            "policy_config_warning",
            extra={"policy_path": str(policy_path), "warning": warning},
        )
    if not validation.is_valid:
        raise ConfigurationError(validation.errors)

    snapshot = build_snapshot(data)

    _logger.info(
        "POLICY_CONFIG_TRACE",
        extra={
            "trace_type": "POLICY_CONFIG_TRACE",
            "policy_name": snapshot.name,
            "policy_version": snapshot.version,
            "checksum": snapshot.checksum,
            "rule_count": len(snapshot.rules),
            "threshold_count": len(snapshot.thresholds),
            "bypass_count": len(snapshot.bypasses),
            "policy_path": str(policy_path),
        },
    )
    return snapshot


__all__ = [
    "ConfigValidationResult",
    "DEFAULT_POLICY_PATH",
    "get_active_config",
    "validate_policy_data",
]
