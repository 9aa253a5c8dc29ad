"""
Pydantic models for the controller's own configuration.

Loaded from ``<home>/config/config.yaml``; every field has a default so a
missing or broken file still yields a working controller.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from . import VMAGENT_HOME

logger = logging.getLogger(__name__)


class ControllerConfig(BaseModel):
    """Persistent configuration for the cloud controller."""

    cloud_name: str = "default"
    resource_group_name: str = "vmagent-agents"
    credentials_id: str = ""
    provisioning_service: str = "offline"
    reverify_interval_seconds: float = Field(default=300.0, gt=0)
    max_agents_per_request: int = Field(default=10, ge=1)


def load_config(home: Optional[Path] = None) -> ControllerConfig:
    """Load the controller configuration.

    Args:
        home: vmagent home directory (default ~/.vmagent).

    Returns:
        ControllerConfig loaded from config.yaml, or defaults.
    """
    config_file = (home or Path(VMAGENT_HOME)).expanduser() / "config" / "config.yaml"
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return ControllerConfig(**data)
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            logger.warning("Failed to load config: %s, using defaults", exc)
    return ControllerConfig()
