"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Loads the settlement YAML document and parses it into the frozen
``settlement_config.schema`` dataclasses.  Runtime callers go through
``settlement_config.get_active_config()``; tests call the parse functions
directly with in-memory dicts.

Architecture position
---------------------
**Config layer** -- no dependency on modules or services.  Imports only
the schema.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys never receive silent defaults.
* Money thresholds are parsed as ``Decimal`` from their string form, never
  via float.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Negative thresholds or an unknown role in ``elevated_roles``
  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import (
    EmailTemplate,
    RbacConfig,
    SagaConfig,
    SettlementConfig,
    ToleranceConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{name}: cannot parse decimal from {value!r}") from exc
    if result < 0:
        raise ValueError(f"{name} must be non-negative, got {result}")
    return result


def parse_tolerance(data: dict[str, Any]) -> ToleranceConfig:
    """Parse the ``tolerance`` section."""
    return ToleranceConfig(
        relative_percent=parse_decimal(data["relative_percent"], "tolerance.relative_percent"),
        absolute_floor=parse_decimal(data["absolute_floor"], "tolerance.absolute_floor"),
        close_threshold=parse_decimal(data["close_threshold"], "tolerance.close_threshold"),
    )


def parse_saga(data: dict[str, Any]) -> SagaConfig:
    max_attempts = int(data.get("max_attempts", 3))
    if max_attempts < 1:
        raise ValueError(f"saga.max_attempts must be >= 1, got {max_attempts}")
    return SagaConfig(max_attempts=max_attempts)


def parse_rbac(data: dict[str, Any]) -> RbacConfig:
    """
    Parse the ``rbac`` section.

    Preconditions:
        - ``role_permissions`` maps role name -> list of permission strings.
        - every entry of ``elevated_roles`` is a declared role.
    """
    role_permissions = {
        str(role): frozenset(str(p) for p in (perms or ()))
        for role, perms in data["role_permissions"].items()
    }
    elevated = frozenset(str(r) for r in data.get("elevated_roles", ()))
    unknown = elevated - set(role_permissions)
    if unknown:
        raise ValueError(f"rbac.elevated_roles references undeclared role(s): {sorted(unknown)}")
    return RbacConfig(role_permissions=role_permissions, elevated_roles=elevated)


def parse_email_template(data: dict[str, Any]) -> EmailTemplate:
    return EmailTemplate(
        key=data["key"],
        object_type=data["object_type"],
        status_from=data.get("status_from"),
        status_to=data["status_to"],
        recipient_role=data["recipient_role"],
        subject=data["subject"],
        body=data.get("body", ""),
    )


def parse_settlement_config(data: dict[str, Any]) -> SettlementConfig:
    """
    Parse the complete document.

    Postconditions:
        - Returns a frozen ``SettlementConfig`` whose ``checksum`` is the
          SHA-256 of ``data``.
    """
    templates = tuple(
        parse_email_template(t)
        for t in data.get("notifications", {}).get("email_templates", ())
    )
    keys = [t.key for t in templates]
    duplicates = sorted({k for k in keys if keys.count(k) > 1})
    if duplicates:
        raise ValueError(f"Duplicate e-mail template key(s): {duplicates}")

    return SettlementConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        currency=data.get("currency", "IDR"),
        tolerance=parse_tolerance(data["tolerance"]),
        saga=parse_saga(data.get("saga", {})),
        rbac=parse_rbac(data["rbac"]),
        email_templates=templates,
        checksum=compute_checksum(data),
    )


def load_settlement_config(path: Path) -> SettlementConfig:
    return parse_settlement_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
