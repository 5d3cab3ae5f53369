"""Resolve uploader configuration from defaults, environment, and overrides."""

from __future__ import annotations

import logging
import os
from typing import Any

from bucketstream.config_manager.helpers import parse_bytes
from bucketstream.config_manager.uploader_config import UploaderConfig
from bucketstream.const import ENV_PREFIX

logger = logging.getLogger(__name__)

_ENV_MAP: dict[str, str] = {
    "chunk_size": f"{ENV_PREFIX}CHUNK_SIZE",
    "bandwidth_limit": f"{ENV_PREFIX}BANDWIDTH_LIMIT",
    "empty_upload_policy": f"{ENV_PREFIX}EMPTY_UPLOAD_POLICY",
    "gcs_access_token": f"{ENV_PREFIX}GCS_ACCESS_TOKEN",
    "s3_endpoint_url": f"{ENV_PREFIX}S3_ENDPOINT_URL",
    "s3_region": f"{ENV_PREFIX}S3_REGION",
}

_BYTE_FIELDS = {"chunk_size", "bandwidth_limit"}


class ConfigManager:
    """Build effective uploader configuration from a base, env, and overrides."""

    def __init__(self, base_config: UploaderConfig | None = None) -> None:
        """Initialise ConfigManager.

        Args:
            base_config: Configuration to start from. Defaults are used when
                omitted.
        """
        self.base_config = base_config or UploaderConfig()

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Unparsable byte quantities are skipped with a warning.

        Returns:
            A dictionary of configuration field names to override values.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            if field_name in _BYTE_FIELDS:
                try:
                    overrides[field_name] = parse_bytes(env_value)
                except ValueError:
                    logger.warning("Ignoring %s=%r", env_var_name, env_value)
                    continue
            elif field_name == "empty_upload_policy":
                overrides[field_name] = env_value.strip().lower()
            else:
                overrides[field_name] = env_value

        return overrides

    def resolve_effective_config(
        self, overrides: dict[str, Any] | None = None
    ) -> UploaderConfig:
        """Resolve the effective configuration for an upload.

        Args:
            overrides: Optional explicit overrides; these win over the
                environment.

        Returns:
            The resolved ``UploaderConfig``.

        Raises:
            pydantic.ValidationError: If the merged values are invalid.
        """
        merged = self.base_config.model_dump()
        merged.update(self._read_env_overrides())
        if overrides is not None:
            merged.update(overrides)
        return UploaderConfig.model_validate(merged)
