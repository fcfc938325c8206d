"""
Configuration loader for the public site
"""

import yaml
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, ValidationError
import logging

from src.integrations.contracts.interfaces import InsuranceType

logger = logging.getLogger(__name__)


class LogoConfig(BaseModel):
    """Logo assets"""

    main: str = "/assets/logo.png"
    favicon: str = "/assets/favicon.png"
    alt: str = "Logo"


class CompanyConfig(BaseModel):
    name: str
    tagline: str = ""
    description: str = ""


class ContactConfig(BaseModel):
    phone: str = ""
    email: str = ""
    address: str = ""


class BrandingConfig(BaseModel):
    """Company identity shown on every page"""

    logo: LogoConfig = Field(default_factory=lambda: LogoConfig())
    company: CompanyConfig
    contact: ContactConfig = Field(default_factory=lambda: ContactConfig())


class ServiceCardConfig(BaseModel):
    """One card in the services section"""

    title: str
    insurance_type: InsuranceType
    description: str
    features: List[str] = Field(default_factory=list)


class MaintenanceConfig(BaseModel):
    message: str = "We are performing scheduled maintenance. Please check back shortly."


class BackendConfig(BaseModel):
    health_interval_seconds: float = Field(default=30.0, gt=0)
    verify_timeout_seconds: float = Field(default=10.0, gt=0)
    forms_refresh_interval_seconds: int = Field(default=30, ge=1)


class SiteConfig(BaseModel):
    """Complete site configuration"""

    branding: BrandingConfig
    services: List[ServiceCardConfig] = Field(default_factory=list)
    maintenance: MaintenanceConfig = Field(default_factory=lambda: MaintenanceConfig())
    backend: BackendConfig = Field(default_factory=lambda: BackendConfig())


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "site_config.yml"


def load_site_config(config_path: Optional[Path] = None) -> SiteConfig:
    """
    Load and validate site configuration from YAML file

    Args:
        config_path: Path to config file. Defaults to config/site_config.yml

    Returns:
        Validated SiteConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config doesn't match schema
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    try:
        config = SiteConfig(**config_data)
        logger.info(f"Successfully loaded config from {config_path}")
        return config
    except ValidationError as e:
        logger.error(f"Config validation failed: {e}")
        raise
