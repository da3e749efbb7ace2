"""YAML-based capability matrix loader.

PermissionLoader reads YAML (or already-parsed dict) configs and builds
CapabilityMatrix instances plus the owner admin-only subset.

Schema
------
::

    version: "1.0"
    roles:
      TeamLeader:
        grants:
          team: [read, update]
          project: [read, update, manage]
      EnterpriseAdmin:
        grants:
          enterprise: "*"
          user: "*"
        scope_bypass: [department, team]
    admin_only:
      enterprise: [delete, manage]
      user: [delete]

``"*"`` grants every action on that resource type.

Example
-------
::

    loader = PermissionLoader()
    loaded = loader.load("/etc/access/permissions.yaml")
    engine = PermissionEngine(loaded.matrix, admin_only=loaded.admin_only)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from pathlib import Path

import yaml

from access_governance.permissions.capability_matrix import (
    Capability,
    CapabilityMatrix,
    PermissionAction,
    ResourceType,
    Scope,
)

logger = logging.getLogger(__name__)

_SUPPORTED_VERSIONS: frozenset[str] = frozenset(["1.0", "1"])
_WILDCARD = "*"


class PermissionConfigError(ValueError):
    """Raised when a permission config is malformed or invalid.

    Attributes
    ----------
    config_path:
        The path to the config file that caused the error, if known.
    """

    def __init__(self, message: str, config_path: str | None = None) -> None:
        self.config_path = config_path
        prefix = f"[{config_path}] " if config_path else ""
        super().__init__(f"{prefix}{message}")


@dataclass(frozen=True)
class LoadedPermissions:
    """Result of loading a permission config."""

    matrix: CapabilityMatrix
    admin_only: dict[ResourceType, frozenset[PermissionAction]] | None


class PermissionLoader:
    """Loads capability matrices from YAML files, strings, or dicts.

    Parameters
    ----------
    strict:
        When ``True``, unknown top-level keys are treated as an error.
    """

    _KNOWN_TOP_KEYS: frozenset[str] = frozenset(
        ["version", "roles", "admin_only", "metadata", "description"]
    )

    def __init__(self, strict: bool = False) -> None:
        self._strict = strict

    def load(self, config_path: str | Path) -> LoadedPermissions:
        """Load permissions from a YAML file on disk.

        Raises
        ------
        FileNotFoundError
            If the config file does not exist.
        PermissionConfigError
            If the file cannot be parsed or is structurally invalid.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Permission config not found: {config_path}")

        try:
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise PermissionConfigError(
                f"Failed to parse YAML: {exc}", str(config_path)
            ) from exc

        return self._build(raw, config_path=str(config_path))

    def load_from_dict(
        self,
        config: dict[str, object],
        config_path: str | None = None,
    ) -> LoadedPermissions:
        """Load permissions from an already-parsed config dictionary."""
        return self._build(config, config_path=config_path)

    def load_from_yaml_string(
        self,
        yaml_string: str,
        config_path: str | None = None,
    ) -> LoadedPermissions:
        """Load permissions from a YAML string."""
        try:
            raw = yaml.safe_load(yaml_string) or {}
        except yaml.YAMLError as exc:
            raise PermissionConfigError(
                f"Failed to parse YAML string: {exc}", config_path
            ) from exc
        return self._build(raw, config_path=config_path)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build(self, config: object, config_path: str | None = None) -> LoadedPermissions:
        raw = self._validate_structure(config, config_path)

        version = str(raw.get("version", "1.0"))
        if version not in _SUPPORTED_VERSIONS:
            raise PermissionConfigError(
                f"Unsupported config version {version!r}. "
                f"Supported: {sorted(_SUPPORTED_VERSIONS)}.",
                config_path,
            )

        grants: dict[str, frozenset[Capability]] = {}
        bypass: dict[str, frozenset[Scope]] = {}
        for role, spec in raw["roles"].items():
            if not isinstance(spec, dict):
                raise PermissionConfigError(
                    f"Role {role!r} must be a mapping.", config_path
                )
            grants[str(role)] = self._parse_grants(str(role), spec.get("grants", {}), config_path)
            scopes = spec.get("scope_bypass", [])
            if scopes:
                bypass[str(role)] = self._parse_scopes(str(role), scopes, config_path)

        admin_only = None
        if "admin_only" in raw:
            admin_only = parse_admin_only(raw["admin_only"], config_path)

        try:
            matrix = CapabilityMatrix(grants, bypass)
        except ValueError as exc:
            raise PermissionConfigError(str(exc), config_path) from exc

        logger.info(
            "Loaded capability matrix with %d roles from %s",
            len(grants),
            config_path or "<dict>",
        )
        return LoadedPermissions(matrix=matrix, admin_only=admin_only)

    def _parse_grants(
        self,
        role: str,
        raw_grants: object,
        config_path: str | None,
    ) -> frozenset[Capability]:
        if not isinstance(raw_grants, dict):
            raise PermissionConfigError(
                f"Role {role!r}: 'grants' must be a mapping of resource type to actions.",
                config_path,
            )
        caps: set[Capability] = set()
        for raw_type, raw_actions in raw_grants.items():
            resource_type = _coerce(ResourceType, raw_type, f"Role {role!r}", config_path)
            if raw_actions == _WILDCARD:
                actions = list(PermissionAction)
            elif isinstance(raw_actions, list):
                actions = [
                    _coerce(PermissionAction, a, f"Role {role!r}", config_path)
                    for a in raw_actions
                ]
            else:
                raise PermissionConfigError(
                    f"Role {role!r}: actions for {raw_type!r} must be a list or '*'.",
                    config_path,
                )
            caps.update((resource_type, action) for action in actions)
        return frozenset(caps)

    def _parse_scopes(
        self,
        role: str,
        raw_scopes: object,
        config_path: str | None,
    ) -> frozenset[Scope]:
        if not isinstance(raw_scopes, list):
            raise PermissionConfigError(
                f"Role {role!r}: 'scope_bypass' must be a list.", config_path
            )
        return frozenset(_coerce(Scope, s, f"Role {role!r}", config_path) for s in raw_scopes)

    def _validate_structure(
        self, raw: object, config_path: str | None
    ) -> dict[str, Any]:
        if not isinstance(raw, dict):
            raise PermissionConfigError(
                "Permission config must be a YAML mapping (dict).", config_path
            )
        if "roles" not in raw:
            raise PermissionConfigError(
                "Permission config must contain a 'roles' mapping.", config_path
            )
        if not isinstance(raw["roles"], dict):
            raise PermissionConfigError(
                "Permission config 'roles' must be a mapping.", config_path
            )
        if self._strict:
            unknown_keys = set(raw.keys()) - self._KNOWN_TOP_KEYS
            if unknown_keys:
                raise PermissionConfigError(
                    f"Unknown top-level keys: {sorted(unknown_keys)}. "
                    f"Known keys: {sorted(self._KNOWN_TOP_KEYS)}.",
                    config_path,
                )
        return raw


def parse_admin_only(
    raw: object,
    config_path: str | None = None,
) -> dict[ResourceType, frozenset[PermissionAction]]:
    """Parse an ``admin_only`` mapping of resource type -> action list."""
    if not isinstance(raw, dict):
        raise PermissionConfigError("'admin_only' must be a mapping.", config_path)
    parsed: dict[ResourceType, frozenset[PermissionAction]] = {}
    for raw_type, raw_actions in raw.items():
        resource_type = _coerce(ResourceType, raw_type, "admin_only", config_path)
        if not isinstance(raw_actions, list):
            raise PermissionConfigError(
                f"admin_only: actions for {raw_type!r} must be a list.", config_path
            )
        parsed[resource_type] = frozenset(
            _coerce(PermissionAction, a, "admin_only", config_path) for a in raw_actions
        )
    return parsed


def _coerce(enum_cls, value: object, where: str, config_path: str | None):  # type: ignore[no-untyped-def]
    try:
        return enum_cls(str(value).lower())
    except ValueError as exc:
        valid = sorted(member.value for member in enum_cls)
        raise PermissionConfigError(
            f"{where}: unknown {enum_cls.__name__} {value!r}. Valid: {valid}.",
            config_path,
        ) from exc
