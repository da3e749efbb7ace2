"""Governance configuration loader with Pydantic v2 validation.

Loads and validates a ``governance.yaml`` file into a typed
:class:`GovernanceConfig` object.  Unknown keys are allowed to support
future schema additions without breakage.

Example
-------
>>> loader = ConfigLoader()
>>> config = loader.load_string("retention:\\n  low_days: 30\\n")
>>> config.retention.low_days
30
"""
from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from access_governance.anomaly.detector import AnomalyThresholds
from access_governance.audit.logger import DEFAULT_REDACT_FIELDS
from access_governance.audit.retention import RetentionPolicy
from access_governance.audit.risk import PRIVILEGE_ESCALATION_ACTIONS
from access_governance.permissions.capability_matrix import PermissionAction, ResourceType
from access_governance.permissions.permission_loader import (
    PermissionConfigError,
    parse_admin_only,
)


class ConfigError(ValueError):
    """Raised when a governance config cannot be parsed or validated."""


class AuditConfig(BaseModel):
    """Configuration for the audit pipeline."""

    model_config = {"extra": "allow"}

    backend: Literal["memory", "jsonl"] = Field(default="memory")
    log_path: Path = Field(default=Path("./access_audit.jsonl"))
    redact_fields: list[str] = Field(default_factory=lambda: sorted(DEFAULT_REDACT_FIELDS))
    stats_top_n: int = Field(default=10, ge=1)
    sweep_interval_seconds: float = Field(default=3600.0, ge=1)


class RetentionConfig(BaseModel):
    """Retention windows in days, per risk tier."""

    model_config = {"extra": "allow"}

    high_days: int = Field(default=365, ge=1)
    medium_days: int = Field(default=180, ge=1)
    low_days: int = Field(default=90, ge=1)

    def to_policy(self) -> RetentionPolicy:
        return RetentionPolicy(
            high_days=self.high_days,
            medium_days=self.medium_days,
            low_days=self.low_days,
        )


class PermissionsConfig(BaseModel):
    """Configuration for the permission engine."""

    model_config = {"extra": "allow"}

    matrix_file: Path | None = Field(default=None)
    admin_only: dict[str, list[str]] | None = Field(default=None)

    @field_validator("admin_only")
    @classmethod
    def validate_admin_only(
        cls, value: dict[str, list[str]] | None
    ) -> dict[str, list[str]] | None:
        if value is not None:
            try:
                parse_admin_only(value)
            except PermissionConfigError as exc:
                raise ValueError(str(exc)) from exc
        return value

    def parsed_admin_only(self) -> dict[ResourceType, frozenset[PermissionAction]] | None:
        """Return ``admin_only`` as enum-keyed sets, or ``None`` for the default."""
        if self.admin_only is None:
            return None
        return parse_admin_only(self.admin_only)


class AnomalyConfig(BaseModel):
    """Configuration for the anomaly detector."""

    model_config = {"extra": "allow"}

    failed_login_threshold: int = Field(default=5, ge=1)
    ip_activity_threshold: int = Field(default=100, ge=1)
    privilege_escalation_actions: list[str] = Field(
        default_factory=lambda: sorted(PRIVILEGE_ESCALATION_ACTIONS)
    )
    window_limit: int = Field(default=1000, ge=1)

    def to_thresholds(self) -> AnomalyThresholds:
        return AnomalyThresholds(
            failed_login_threshold=self.failed_login_threshold,
            ip_activity_threshold=self.ip_activity_threshold,
            privilege_escalation_actions=frozenset(self.privilege_escalation_actions),
        )


class GovernanceConfig(BaseModel):
    """Top-level configuration schema.

    Loaded from ``governance.yaml``.  All sections are optional and fall
    back to defaults.
    """

    model_config = {"extra": "allow"}

    version: str = Field(default="1")
    audit: AuditConfig = Field(default_factory=AuditConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    anomaly: AnomalyConfig = Field(default_factory=AnomalyConfig)


class ConfigLoader:
    """Loads and validates governance YAML configuration."""

    def load(self, config_path: Path) -> GovernanceConfig:
        """Load and validate a governance YAML file.

        Raises
        ------
        FileNotFoundError:
            When the config file does not exist.
        ConfigError:
            When the YAML is malformed or fails validation.
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Governance config not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as fh:
            return self._validate(fh.read(), str(config_path))

    def load_string(self, yaml_content: str) -> GovernanceConfig:
        """Load and validate a YAML string directly."""
        return self._validate(yaml_content, "<string>")

    def defaults(self) -> GovernanceConfig:
        """Return a configuration with all defaults applied."""
        return GovernanceConfig()

    def _validate(self, yaml_content: str, source: str) -> GovernanceConfig:
        try:
            raw = yaml.safe_load(yaml_content) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"[{source}] Failed to parse YAML: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"[{source}] Governance config must be a YAML mapping.")
        try:
            return GovernanceConfig.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(f"[{source}] Invalid governance config: {exc}") from exc
