"""
Configuration - Scan settings loaded from YAML and command-line overrides.

Shape and ranges are enforced by pydantic; rules that involve several fields
live in ScanConfig.validate_for_scan() so they can fail fast, before any
network call, with a ConfigurationError.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from .errors import ConfigurationError
from .models import SourceLocationType


PASSWORD_ENV_VAR = "SCARUNNER_PASSWORD"

CLOUD_ACCESS_CONTROL_BASE_URL = "https://platform.checkmarx.net"


class ThresholdConfig(BaseModel):
    """Per-severity ceilings; ignored unless ``enabled``"""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    high: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    low: int = Field(default=0, ge=0)


class ScaConfig(BaseModel):
    """Connection, source and polling settings for the SCA service"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Service endpoints
    api_url: str = ""
    access_control_url: str = ""
    web_app_url: str = ""

    # Credentials
    username: str = ""
    password: SecretStr = SecretStr("")
    tenant: str = ""

    # Source
    source_location_type: SourceLocationType = SourceLocationType.REMOTE_REPOSITORY
    remote_repository_url: str = ""
    dependency_file_extension: str = ""
    dependency_folder_exclusion: str = ""
    include_source: bool = False
    fingerprints_file_path: str = ""
    fingerprints_write_required: bool = False

    # Results
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)

    # Polling and transport
    poll_interval: float = Field(default=5.0, gt=0)
    max_wait: float = Field(default=30 * 60.0, gt=0)
    max_poll_errors: int = Field(default=3, ge=0)
    request_timeout: float = Field(default=60.0, gt=0)
    verify_ssl: bool = True

    @field_validator("source_location_type", mode="before")
    @classmethod
    def _accept_type_names(cls, value: Any) -> Any:
        if isinstance(value, str) and value.upper() in SourceLocationType.__members__:
            return SourceLocationType[value.upper()]
        return value

    @property
    def is_cloud(self) -> bool:
        return self.access_control_url.startswith(CLOUD_ACCESS_CONTROL_BASE_URL)


class ScanConfig(BaseModel):
    """Everything one call to ScanOrchestrator.scan() needs"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_location: str = ""
    project_name: str = ""
    is_sync_mode: bool = True
    sca: ScaConfig = Field(default_factory=ScaConfig)

    def validate_for_scan(self) -> None:
        """
        Check cross-field rules before any remote call.

        Raises:
            ConfigurationError: If the configuration cannot produce a scan
        """
        sca = self.sca

        if not self.project_name or not self.project_name.strip():
            raise ConfigurationError("Non-empty project name must be provided.")

        if not sca.api_url:
            raise ConfigurationError("SCA API URL must be provided.")

        if not sca.access_control_url:
            raise ConfigurationError("Access control URL must be provided.")

        if sca.include_source and sca.fingerprints_file_path:
            raise ConfigurationError(
                "include_source and fingerprints_file_path cannot be used together."
            )

        if sca.source_location_type is SourceLocationType.REMOTE_REPOSITORY:
            if not sca.remote_repository_url:
                raise ConfigurationError(
                    "URL must be provided in SCA configuration when using source "
                    f"location of type {sca.source_location_type.value}."
                )
        else:
            if not self.source_location:
                raise ConfigurationError("Source location must be provided for local directory scans.")
            if not Path(self.source_location).is_dir():
                raise ConfigurationError(f"Source location is not a directory: {self.source_location}")


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_scan_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ScanConfig:
    """
    Build a ScanConfig from an optional YAML file plus overrides.

    Overrides win over file values; ``None`` overrides are ignored so unset
    command-line options keep the file's value. The password falls back to
    the SCARUNNER_PASSWORD environment variable.

    Raises:
        ConfigurationError: If the file is unreadable or the values are invalid
    """
    raw: Dict[str, Any] = {}

    if config_path is not None:
        try:
            with open(config_path) as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")

    raw = _deep_merge(raw, overrides or {})

    sca = raw.setdefault("sca", {})
    if isinstance(sca, dict) and not sca.get("password") and os.getenv(PASSWORD_ENV_VAR):
        sca["password"] = os.environ[PASSWORD_ENV_VAR]

    try:
        return ScanConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
