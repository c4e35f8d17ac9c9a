"""
settlement_config -- single public entrypoint for settlement configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services and modules receive the returned
    ``SettlementConfig`` from the orchestrator and never read files or
    environment variables themselves.

Architecture position:
    Configuration -- YAML-driven policy.  This package sits above
    ``settlement_kernel`` and below ``settlement_services`` /
    ``settlement_modules``.  The kernel MUST NEVER import from
    ``settlement_config``; bridges in this package translate the config into
    kernel- and engine-compatible inputs.

Failure modes:
    - ``FileNotFoundError`` -- the configured path does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SETTLEMENT_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying each settlement decision to the exact policy in force.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from settlement_config.loader import compute_checksum, load_settlement_config
from settlement_config.schema import (
    EmailTemplate,
    RbacConfig,
    SagaConfig,
    SettlementConfig,
    ToleranceConfig,
)

_logger = logging.getLogger("settlement.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV_VAR = "SETTLEMENT_CONFIG"


def get_active_config(path: Path | str | None = None) -> SettlementConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: explicit ``path``, then the ``SETTLEMENT_CONFIG``
    environment variable, then the packaged ``defaults.yaml``.

    Non-goals:
        - Does NOT cache; callers hold the returned config for the lifetime
          of their orchestrator.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If the document fails validation.
        KeyError: If a required key is missing.
    """
    resolved = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    config = load_settlement_config(resolved)

    _logger.info(
        "SETTLEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "SETTLEMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(resolved),
            "role_count": len(config.rbac.role_permissions),
            "template_count": len(config.email_templates),
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "EmailTemplate",
    "RbacConfig",
    "SagaConfig",
    "SettlementConfig",
    "ToleranceConfig",
    "compute_checksum",
    "get_active_config",
]
