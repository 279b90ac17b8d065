"""
Configuration loader for the brokerage service
"""

import logging
import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "brokerage_config.yml"


class OfferConfig(BaseModel):
    """Offer issuing configuration"""

    validity_days: int = Field(default=30, ge=1, le=365)
    number_prefix: str = Field(default="OFF", min_length=1, max_length=8)


class PolicyConfig(BaseModel):
    """Policy issuing configuration"""

    number_prefix: str = Field(default="POL", min_length=1, max_length=8)


class ScopeConfig(BaseModel):
    """Data visibility configuration"""

    # "none": a non-privileged actor without a broker id sees nothing.
    # "all": legacy behaviour, such an actor sees every record.
    null_broker_visibility: Literal["none", "all"] = "none"


class StorageConfig(BaseModel):
    """Payment proof storage configuration"""

    upload_dir: str = "data/uploads"
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1)


class BrokerageConfig(BaseModel):
    """Complete brokerage configuration"""

    currency: str = "RON"
    offers: OfferConfig = Field(default_factory=OfferConfig)
    policies: PolicyConfig = Field(default_factory=PolicyConfig)
    scope: ScopeConfig = Field(default_factory=ScopeConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def load_brokerage_config(config_path: Optional[Path] = None) -> BrokerageConfig:
    """
    Load and validate brokerage configuration from YAML file

    Args:
        config_path: Path to config file. Defaults to $BROKERAGE_CONFIG, then
            config/brokerage_config.yml

    Returns:
        Validated BrokerageConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config doesn't match schema
    """
    if config_path is None:
        env_path = os.getenv("BROKERAGE_CONFIG", "").strip()
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    try:
        config = BrokerageConfig(**config_data)
        logger.info("Successfully loaded config from %s", config_path)
        return config
    except ValidationError as e:
        logger.error("Config validation failed: %s", e)
        raise
